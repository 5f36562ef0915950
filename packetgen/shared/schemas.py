from __future__ import annotations

"""
packetgen/shared/schemas.py

Data contracts shared by every stage of the packet pipeline:
- KnowledgeBase / KnowledgeSection: the per-run fact base
- AnswerCandidate / CandidateScore: ephemeral selection-loop records
- Tossup / BonusPart / Bonus / Packet: finalized output
- Typed parse results (QuestionText, BonusTriplet, Preamble, GapAnalysis)
- The PacketGenerationError exception family

Note:
- This file has no dependencies on other project modules, only pure data structures
- Everything exported to disk goes through to_dict()
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple


# ======================
# Common Exceptions
# ======================


class PacketGenerationError(Exception):
    """
    Base class for every failure a packet-generation run can report to its caller.
    """
    pass


class InvalidRequestError(PacketGenerationError):
    """
    Raised before any generation call when the request itself is malformed
    (blank topic, tossup count outside the allowed range).
    """
    pass


class GenerationFailure(PacketGenerationError):
    """
    The text-generation client raised. Never retried by the pipeline.
    """

    def __init__(self, message: str, agent: str = "", stage: str = "") -> None:
        super().__init__(message)
        self.agent = agent
        self.stage = stage


class ParseFailure(PacketGenerationError):
    """
    A structured response never became valid within its remediation ceiling.

    Carries the last raw response and the last error for diagnostics.
    """

    def __init__(self, message: str, raw_response: str = "", error: str = "", attempts: int = 0) -> None:
        super().__init__(message)
        self.raw_response = raw_response
        self.error = error
        self.attempts = attempts


class SelectionShortfall(PacketGenerationError):
    """
    The answer selection loop ran out of iterations before reaching its target.
    """

    def __init__(self, message: str, accepted: Optional[List[str]] = None, target: int = 0) -> None:
        super().__init__(message)
        self.accepted = list(accepted or [])
        self.target = target


class CraftFailure(PacketGenerationError):
    """
    Question text (tossup or bonus part, preamble, triplet) could not be produced
    within its attempt ceiling.
    """
    pass


class CycleUnresolved(PacketGenerationError):
    """
    Reciprocal cross-references survived every regeneration attempt.
    """

    def __init__(self, message: str, reciprocal_pairs: Optional[List[Tuple[int, int]]] = None) -> None:
        super().__init__(message)
        self.reciprocal_pairs = list(reciprocal_pairs or [])


class PacketValidationError(PacketGenerationError):
    """
    A finished packet violates uniqueness, acyclicity or size. Nothing is persisted.
    """
    pass


# ======================
# Knowledge Base
# ======================


KNOWLEDGE_SECTION_TITLES = {
    "comprehensive": "Comprehensive Knowledge",
    "context-specific": "Context-Specific Knowledge",
}


@dataclass
class KnowledgeSection:
    """
    One labeled block of gathered text.

    label is a provenance tag: "comprehensive", "context-specific" or "deeper-search-N".
    """
    label: str
    text: str

    @property
    def title(self) -> str:
        if self.label in KNOWLEDGE_SECTION_TITLES:
            return KNOWLEDGE_SECTION_TITLES[self.label]
        if self.label.startswith("deeper-search-"):
            return f"Iteration {self.label.rsplit('-', 1)[-1]} Deeper Search"
        return self.label


@dataclass
class KnowledgeBase:
    """
    Append-only fact base owned by a single packet-generation run.
    """
    topic: str
    context: str = ""
    sections: List[KnowledgeSection] = field(default_factory=list)

    def append(self, label: str, text: str) -> KnowledgeSection:
        section = KnowledgeSection(label=label, text=(text or "").strip())
        self.sections.append(section)
        return section

    @property
    def labels(self) -> List[str]:
        return [s.label for s in self.sections]

    def render(self) -> str:
        """
        Render the fact base as the "factual sources" block embedded in prompts.
        """
        blocks = []
        for section in self.sections:
            if not section.text:
                continue
            blocks.append(f"=== {section.title} ===\n{section.text}")
        return "\n\n".join(blocks)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ======================
# Selection Loop Records
# ======================


@dataclass
class AnswerCandidate:
    """
    A candidate answer line with its 0-10 score. Exists only inside the selection loop.
    """
    text: str
    score: float = 0.0
    rationale: str = ""


@dataclass
class CandidateScore:
    """
    One validated item of the batched evaluation response. index is 1-based.
    """
    index: int
    score: float
    reasoning: str = ""


# ======================
# Typed Parse Results
# ======================


@dataclass
class QuestionText:
    question: str


@dataclass
class Preamble:
    preamble: str


@dataclass
class BonusTriplet:
    """
    Themed scaffolding for one bonus. The theme is not kept in the finished Bonus.
    """
    theme: str
    answer_a: str
    answer_b: str
    answer_c: str

    @property
    def answers(self) -> List[str]:
        return [self.answer_a, self.answer_b, self.answer_c]


@dataclass
class GapAnalysis:
    """
    Result of asking what the accepted answer set still leaves uncovered.
    """
    missing_aspects: str
    follow_up_query: str


# ======================
# Packet Output
# ======================


@dataclass(frozen=True)
class Tossup:
    """
    A single pyramidal question and its answer line.

    Frozen: cycle resolution replaces a tossup wholesale instead of editing it.
    """
    question_text: str
    answer_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"question": self.question_text, "answer": self.answer_text}


@dataclass(frozen=True)
class BonusPart:
    question_text: str
    answer_text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"question": self.question_text, "answer": self.answer_text}


@dataclass(frozen=True)
class Bonus:
    preamble: str
    parts: Tuple[BonusPart, BonusPart, BonusPart]

    def __post_init__(self) -> None:
        if len(self.parts) != 3:
            raise ValueError(f"Bonus requires exactly 3 parts, got {len(self.parts)}")

    @property
    def answers(self) -> List[str]:
        return [p.answer_text for p in self.parts]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preamble": self.preamble,
            "parts": [p.to_dict() for p in self.parts],
        }


@dataclass
class Packet:
    """
    Fully assembled packet handed to the PacketStore exactly once.
    """
    name: str
    tossups: List[Tossup] = field(default_factory=list)
    bonuses: List[Bonus] = field(default_factory=list)

    @property
    def answers(self) -> List[str]:
        return [t.answer_text for t in self.tossups]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "tossups": [t.to_dict() for t in self.tossups],
            "bonuses": [b.to_dict() for b in self.bonuses],
        }


__all__ = [
    "PacketGenerationError",
    "InvalidRequestError",
    "GenerationFailure",
    "ParseFailure",
    "SelectionShortfall",
    "CraftFailure",
    "CycleUnresolved",
    "PacketValidationError",
    "KnowledgeSection",
    "KnowledgeBase",
    "AnswerCandidate",
    "CandidateScore",
    "QuestionText",
    "Preamble",
    "BonusTriplet",
    "GapAnalysis",
    "Tossup",
    "BonusPart",
    "Bonus",
    "Packet",
]
