# packetgen/shared/llm_json.py
# LLM JSON parsing toolkit + StructuredResponseParser

"""
[Module Description]
Turns free-text LLM responses into validated, typed values:
1. Payload extraction: first opening bracket/brace through the last matching closer,
   tolerating prose and code fences around the intended JSON
2. String-literal sanitizing: literal newlines escaped, carriage returns dropped,
   invalid backslash escapes removed
3. Shape validation: ExpectedShape builders turn decoded JSON into typed results
   (schemas.CandidateScore, schemas.BonusTriplet, ...) and raise ShapeError on
   missing or blank mandatory fields
4. Remediation: on failure the offending text and error go back to the model with a
   "fix this JSON, do not change meaning" instruction, bounded by a ceiling

[Usage Scenarios]
- CandidateAnswerGenerator: array of answer lines
- CandidateEvaluator: array of {index, score, reasoning} with an exact count
- QuestionCrafter / BonusWriter: {"question"}, {"preamble"}, triplet objects
- KnowledgeAggregator: gap-analysis object

[Design Principles]
- This is the single place where LLM unreliability is absorbed
- Never loops unbounded: ParseFailure after the ceiling, carrying the last raw
  response and error
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from packetgen.shared.retry import RetriesExhausted, retry_bounded
from packetgen.shared.schemas import (
    BonusTriplet,
    CandidateScore,
    GapAnalysis,
    GenerationFailure,
    ParseFailure,
    Preamble,
    QuestionText,
)

logger = logging.getLogger(__name__)

VALID_ESCAPE_CHARS = set('"\\/bfnrtu')


class ShapeError(ValueError):
    """
    Decoded JSON does not have the expected container, item count or mandatory fields.
    """
    pass


# ============================================================================
# 1. Payload extraction
# ============================================================================

def extract_json_candidate(text: str, container: str = "object") -> Optional[str]:
    """
    Slice the payload out of a response by first-occurrence / last-occurrence scan.

    Args:
        text: Raw LLM response
        container: "object" ({...}) or "array" ([...])

    Returns:
        The span from the first opener to the last closer, or None if either is missing
    """
    if not text:
        return None
    opener, closer = ("[", "]") if container == "array" else ("{", "}")
    start = text.find(opener)
    end = text.rfind(closer)
    if start < 0 or end <= start:
        return None
    return text[start:end + 1]


# ============================================================================
# 2. String-literal sanitizing
# ============================================================================

def sanitize_json_strings(s: str) -> str:
    """
    Repair common generation mistakes inside quoted strings.

    [Supported Repairs]
    1. Literal newline inside a string -> \\n
    2. Literal carriage return inside a string -> dropped
    3. Backslash not followed by a valid escape character -> dropped

    Text outside string literals is left untouched.
    """
    if not s:
        return s

    out: List[str] = []
    in_string = False
    i = 0
    n = len(s)
    while i < n:
        ch = s[i]
        if not in_string:
            if ch == '"':
                in_string = True
            out.append(ch)
            i += 1
            continue

        if ch == "\\":
            nxt = s[i + 1] if i + 1 < n else ""
            if nxt and nxt in VALID_ESCAPE_CHARS:
                out.append(ch)
                out.append(nxt)
                i += 2
            else:
                i += 1
            continue
        if ch == '"':
            in_string = False
            out.append(ch)
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            pass
        else:
            out.append(ch)
        i += 1

    return "".join(out)


# ============================================================================
# 3. Expected shapes
# ============================================================================

@dataclass(frozen=True)
class ExpectedShape:
    """
    What a structured response must look like.

    - container: "object" or "array"
    - build: decoded JSON -> typed value, raises ShapeError on invalid content
    - expected_count: exact minimum item count for arrays (shorter arrays fail)
    - description: short field description repeated in the remediation prompt
    """
    container: str
    build: Callable[[Any], Any]
    expected_count: Optional[int] = None
    description: str = ""

    def validate(self, data: Any) -> Any:
        if self.container == "array":
            if not isinstance(data, list):
                raise ShapeError(f"expected a JSON array, got {type(data).__name__}")
            if self.expected_count is not None and len(data) < self.expected_count:
                raise ShapeError(f"expected {self.expected_count} items, got {len(data)}")
        elif not isinstance(data, dict):
            raise ShapeError(f"expected a JSON object, got {type(data).__name__}")
        return self.build(data)


def _required_text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ShapeError(f"missing or empty field '{key}'")
    return value.strip()


def _build_string_list(data: List[Any]) -> List[str]:
    # [] is valid: no new candidates
    return [item.strip() for item in data if isinstance(item, str) and item.strip()]


def _build_candidate_scores(data: List[Any]) -> List[CandidateScore]:
    scores: List[CandidateScore] = []
    for pos, item in enumerate(data, start=1):
        if not isinstance(item, dict):
            raise ShapeError(f"item {pos} is not an object")
        try:
            index = int(item["index"])
            score = float(item["score"])
        except (KeyError, TypeError, ValueError) as e:
            raise ShapeError(f"item {pos} needs numeric 'index' and 'score' ({e})")
        scores.append(CandidateScore(index=index, score=score, reasoning=str(item.get("reasoning", "")).strip()))
    return scores


def _scores_covering(expected_count: int) -> Callable[[List[Any]], List[CandidateScore]]:
    """
    Builder that also requires every index 1..expected_count to be scored.
    Duplicates and out-of-range indices do not count toward coverage.
    """
    def build(data: List[Any]) -> List[CandidateScore]:
        scores = _build_candidate_scores(data)
        covered = {s.index for s in scores if 1 <= s.index <= expected_count}
        if len(covered) < expected_count:
            missing = sorted(set(range(1, expected_count + 1)) - covered)
            raise ShapeError(f"no score for candidate index(es) {missing}; score each of 1..{expected_count} once")
        return scores
    return build


def string_list_shape() -> ExpectedShape:
    return ExpectedShape(
        container="array",
        build=_build_string_list,
        description='a JSON array of strings, e.g. ["ANSWER: First", "ANSWER: Second"]',
    )


def candidate_scores_shape(expected_count: int) -> ExpectedShape:
    return ExpectedShape(
        container="array",
        build=_scores_covering(expected_count),
        expected_count=expected_count,
        description='a JSON array of objects {"index": <int>, "score": <0-10>, "reasoning": "<text>"}',
    )


def question_shape() -> ExpectedShape:
    return ExpectedShape(
        container="object",
        build=lambda d: QuestionText(question=_required_text(d, "question")),
        description='a JSON object {"question": "<text>"}',
    )


def preamble_shape() -> ExpectedShape:
    return ExpectedShape(
        container="object",
        build=lambda d: Preamble(preamble=_required_text(d, "preamble")),
        description='a JSON object {"preamble": "<text>"}',
    )


def triplet_shape() -> ExpectedShape:
    return ExpectedShape(
        container="object",
        build=lambda d: BonusTriplet(
            theme=_required_text(d, "theme"),
            answer_a=_required_text(d, "answer_a"),
            answer_b=_required_text(d, "answer_b"),
            answer_c=_required_text(d, "answer_c"),
        ),
        description='a JSON object {"theme": "...", "answer_a": "...", "answer_b": "...", "answer_c": "..."}',
    )


def gap_analysis_shape() -> ExpectedShape:
    return ExpectedShape(
        container="object",
        build=lambda d: GapAnalysis(
            missing_aspects=str(d.get("missing_aspects", "")).strip(),
            follow_up_query=_required_text(d, "follow_up_query"),
        ),
        description='a JSON object {"missing_aspects": "...", "follow_up_query": "..."}',
    )


def decode_structured(text: str, shape: ExpectedShape) -> Any:
    """
    One parse attempt: extract -> sanitize -> json.loads -> shape validation.

    Raises:
        ValueError (json.JSONDecodeError or ShapeError) on any failure
    """
    candidate = extract_json_candidate(text, shape.container)
    if candidate is None:
        raise ShapeError(f"no JSON {shape.container} found in response")
    data = json.loads(sanitize_json_strings(candidate))
    return shape.validate(data)


# ============================================================================
# 4. StructuredResponseParser
# ============================================================================

REMEDIATION_PROMPT = """The following JSON has a syntax or structure error and could not be used.

ERROR: {error}

MALFORMED JSON:
{malformed}

Fix ALL JSON syntax errors. The result must be {description}.{count_clause}
Do NOT change the content or meaning of any value; only repair the structure.
Return ONLY the fixed JSON, with no explanation and no code fences."""


class StructuredResponseParser:
    """
    Parse structured LLM output, asking the model to repair it when it is malformed.

    Ceiling (total parse attempts, including the first):
    - array shapes: array_max_attempts (default 5)
    - object shapes: object_max_attempts (default 10)
    """

    AGENT_NAME = "StructuredResponseParser"

    def __init__(
        self,
        llm_client: Any,
        prompt_logger: Any = None,
        object_max_attempts: int = 10,
        array_max_attempts: int = 5,
        system_prompt: str = "",
    ) -> None:
        self.llm_client = llm_client
        self.prompt_logger = prompt_logger
        self.object_max_attempts = object_max_attempts
        self.array_max_attempts = array_max_attempts
        self.system_prompt = system_prompt

    def ceiling_for(self, shape: ExpectedShape) -> int:
        return self.array_max_attempts if shape.container == "array" else self.object_max_attempts

    def parse(self, raw_text: str, shape: ExpectedShape, label: str = "response") -> Any:
        """
        Parse raw_text into the typed value described by shape.

        Args:
            raw_text: First raw response from the model
            shape: Expected container / count / builder
            label: Caller name, used in logs and remediation metadata

        Returns:
            The value produced by shape.build

        Raises:
            ParseFailure: ceiling reached without a valid value
            GenerationFailure: a remediation call itself raised
        """
        max_attempts = self.ceiling_for(shape)
        state = {"text": raw_text or "", "error": ""}

        def attempt(n: int) -> Any:
            if n > 1:
                state["text"] = self._request_remediation(state["text"], state["error"], shape, label, n)
            try:
                return decode_structured(state["text"], shape)
            except ValueError as e:
                state["error"] = str(e)
                raise

        try:
            return retry_bounded(attempt, max_attempts, retry_on=(ValueError,), label=f"parse {label}")
        except RetriesExhausted as e:
            raise ParseFailure(
                f"[{label}] structured response still invalid after {e.attempts} attempt(s): {state['error']}",
                raw_response=state["text"],
                error=state["error"],
                attempts=e.attempts,
            ) from e.last_error

    def _request_remediation(self, malformed: str, error: str, shape: ExpectedShape, label: str, attempt: int) -> str:
        count_clause = ""
        if shape.expected_count is not None:
            count_clause = f"\nThe array must contain exactly {shape.expected_count} objects."
        prompt = REMEDIATION_PROMPT.format(
            error=error or "unknown error",
            malformed=malformed,
            description=shape.description or f"a JSON {shape.container}",
            count_clause=count_clause,
        )

        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})

        logger.info(f"[{self.AGENT_NAME}] Requesting remediation for {label} (attempt {attempt}): {error}")
        metadata = {"agent": self.AGENT_NAME, "stage": "remediation", "label": label, "attempt": attempt}
        try:
            response = self.llm_client.generate(messages, metadata=metadata)
        except Exception as e:
            raise GenerationFailure(
                f"[{self.AGENT_NAME}] remediation call failed for {label}: {e}",
                agent=self.AGENT_NAME,
                stage="remediation",
            ) from e

        text = response if isinstance(response, str) else str(response or "")
        if self.prompt_logger is not None:
            self.prompt_logger.save_agent_log(
                agent_name=self.AGENT_NAME,
                stage="remediation",
                prompt=prompt,
                response=text,
                metadata=metadata,
                model=getattr(self.llm_client, "model_name", None),
            )
        return text


__all__ = [
    "ShapeError",
    "ExpectedShape",
    "extract_json_candidate",
    "sanitize_json_strings",
    "decode_structured",
    "string_list_shape",
    "candidate_scores_shape",
    "question_shape",
    "preamble_shape",
    "triplet_shape",
    "gap_analysis_shape",
    "StructuredResponseParser",
]
