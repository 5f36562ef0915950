from __future__ import annotations

"""
packetgen/shared/retry.py

Bounded retry helper shared by every remediation site:
- StructuredResponseParser (parse -> remediate -> parse ...)
- QuestionCrafter (regenerate until the question passes its checks)
- BonusWriter (re-request a triplet that repeats used answers)
- CycleResolver (regenerate one item per attempt)

operation(attempt) is called with attempt = 1..max_attempts. Exceptions listed in
retry_on consume one attempt; anything else propagates immediately (GenerationFailure
is never retried here). When the ceiling is reached RetriesExhausted is raised with the
last error, and the call site turns it into its own domain failure.
"""

import logging
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetriesExhausted(Exception):
    def __init__(self, attempts: int, last_error: Optional[BaseException]) -> None:
        super().__init__(f"gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def retry_bounded(
    operation: Callable[[int], T],
    max_attempts: int,
    retry_on: Tuple[Type[BaseException], ...] = (ValueError,),
    label: str = "operation",
    on_failure: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    """
    Run operation until it returns, at most max_attempts times.

    Args:
        operation: Callable receiving the 1-based attempt number
        max_attempts: Attempt ceiling (>= 1)
        retry_on: Exception types that count as a failed attempt
        label: Name used in log lines
        on_failure: Optional hook called with (attempt, error) after each failed attempt

    Returns:
        The first successful return value of operation

    Raises:
        RetriesExhausted: every attempt failed with a retry_on exception
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    last_error: Optional[BaseException] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return operation(attempt)
        except retry_on as e:
            last_error = e
            logger.debug(f"[retry] {label} attempt {attempt}/{max_attempts} failed: {e}")
            if on_failure is not None:
                on_failure(attempt, e)

    logger.warning(f"[retry] {label} exhausted {max_attempts} attempt(s): {last_error}")
    raise RetriesExhausted(max_attempts, last_error)


__all__ = ["RetriesExhausted", "retry_bounded"]
