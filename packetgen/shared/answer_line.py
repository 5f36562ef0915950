"""
packetgen/shared/answer_line.py

Answer-line helpers.

An answer line looks like:
    ANSWER: Mount Vesuvius [or Vesuvio] (accept Somma-Vesuvius complex)

normalize_answer() reduces it to the comparison key used for uniqueness checks and
cross-reference detection: marker, [alternates] and (clarifications) removed, trimmed,
lower-cased.
"""

import re
from typing import Iterable, List, Set

ANSWER_MARKER_RE = re.compile(r"(?i)ANSWER:\s*")
BRACKETED_RE = re.compile(r"\[.*?\]")
PARENTHETICAL_RE = re.compile(r"\(.*?\)")
WHITESPACE_RE = re.compile(r"\s+")


def normalize_answer(answer_line: str) -> str:
    if not answer_line:
        return ""
    text = ANSWER_MARKER_RE.sub("", answer_line)
    text = BRACKETED_RE.sub("", text)
    text = PARENTHETICAL_RE.sub("", text)
    text = WHITESPACE_RE.sub(" ", text)
    return text.strip().lower()


def format_answer_line(text: str) -> str:
    """
    Coerce a bare answer into "ANSWER: ..." form. Returns "" for blank input.
    """
    cleaned = (text or "").strip()
    if not cleaned:
        return ""
    marker = ANSWER_MARKER_RE.match(cleaned)
    body = cleaned[marker.end():].strip() if marker else cleaned
    if not body:
        return ""
    return f"ANSWER: {body}"


def normalized_set(answer_lines: Iterable[str]) -> Set[str]:
    return {n for n in (normalize_answer(a) for a in answer_lines) if n}


def dedupe_answers(answer_lines: Iterable[str], exclude: Iterable[str] = ()) -> List[str]:
    """
    Keep the first occurrence of each normalized answer, dropping anything in exclude.
    """
    seen = normalized_set(exclude)
    kept: List[str] = []
    for line in answer_lines:
        key = normalize_answer(line)
        if not key or key in seen:
            continue
        seen.add(key)
        kept.append(line)
    return kept


def mentions_answer(text: str, answer_line: str) -> bool:
    """
    Whole-word, case-insensitive check for the main answer inside question text.
    """
    key = normalize_answer(answer_line)
    if not key or not text:
        return False
    pattern = r"(?<!\w)" + re.escape(key) + r"(?!\w)"
    return re.search(pattern, text.lower()) is not None


__all__ = [
    "normalize_answer",
    "format_answer_line",
    "normalized_set",
    "dedupe_answers",
    "mentions_answer",
]
