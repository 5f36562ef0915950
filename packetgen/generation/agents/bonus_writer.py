"""
packetgen/generation/agents/bonus_writer.py

BonusWriter: themed triplet -> preamble -> three independent parts.

1. Triplet: one structured object {theme, answer_a, answer_b, answer_c}, excluding every
   tossup and earlier bonus answer. A triplet that reuses an excluded answer or repeats
   itself is re-requested (BonusConfig.max_attempts, then CraftFailure).
2. Preamble: 1-2 sentences ending with "For 10 points each:".
3. Parts: one {"question"} call per answer, ~30-80 words, self-contained.

No cross-reference analysis is applied to bonus parts.
"""

import logging
from typing import List, Sequence

from packetgen.generation.agents.base_agent import BaseAgent
from packetgen.shared.answer_line import format_answer_line, normalize_answer, normalized_set
from packetgen.shared.config import BonusConfig
from packetgen.shared.llm_json import preamble_shape, question_shape, triplet_shape
from packetgen.shared.retry import RetriesExhausted, retry_bounded
from packetgen.shared.schemas import Bonus, BonusPart, BonusTriplet, CraftFailure, KnowledgeBase

logger = logging.getLogger(__name__)

HANDOFF_PHRASE = "For 10 points each:"
PART_LABELS = ("A", "B", "C")

TRIPLET_PROMPT = """Based on the following knowledge about '{topic}', generate a themed quiz bowl bonus.
{context_line}
KNOWLEDGE:
{fact_sources}

Generate a themed triplet of THREE related answers for an ADVANCED quiz bowl bonus.

REQUIREMENTS:
1. All three answers must be related by a SPECIFIC, INTERESTING theme
2. The theme should be QUIZ BOWL-WORTHY (not too obvious, requires knowledge)
3. Each answer must be a SPECIFIC, referenceable entity (proper noun, defined term, specific work, etc.)
4. Answers should be formatted in NAQT answer line format ("ANSWER: ...")
5. AVOID obvious/canonical examples - choose lesser-known but notable answers
6. The three answers should have similar difficulty levels
7. The theme should be specific enough to be interesting but broad enough to support 3 answers

EXAMPLE THEMES (for reference, create your own):
- 'Scientific discoveries made by accident'
- 'Historical figures who died in duels'
- 'Poems written in terza rima'
{avoid_block}
Return as JSON with fields: theme, answer_a, answer_b, answer_c
The theme should be a clear, specific description of what connects the three answers."""

PREAMBLE_PROMPT = """Generate a concise, engaging preamble for a quiz bowl bonus.

The bonus theme is: {theme}

The three answers are:
{answer_block}

PREAMBLE REQUIREMENTS:
1. Should be 1-2 sentences (roughly 20-40 words)
2. Clearly state the theme/connection without naming any of the answers
3. Set up what the three parts will ask about
4. Must end with the phrase '{handoff}'

EXAMPLE PREAMBLES:
- 'This bonus is about works of art that depict the Annunciation. For 10 points each:'
- 'Answer these questions about scientific discoveries made by accident. For 10 points each:'

Return ONLY the preamble text as a JSON object with a single field 'preamble'."""

PART_PROMPT = """Generate a quiz bowl bonus part question for this answer.

Bonus theme: {theme}
Preamble: {preamble}

Part {label} Answer: {answer}

Supporting knowledge:
{fact_sources}

QUESTION REQUIREMENTS:
1. Should be 1-3 sentences (roughly {min_words}-{max_words} words)
2. Provide enough clues to identify the answer, without stating it
3. Include SPECIFIC, VERIFIABLE facts
4. Progress from harder to easier clues within the question
5. Should be self-contained but relate to the theme
6. Don't start with 'Part A:', 'Part B:', etc. - just the question text

Return ONLY the question text as a JSON object with a single field 'question'."""


class TripletRejected(ValueError):
    pass


def ensure_handoff(preamble: str) -> str:
    """
    Append the standard hand-off phrase when the model left it out.
    """
    text = preamble.strip()
    if text.lower().rstrip(":").endswith("for 10 points each") or text.lower().rstrip(":").endswith("for ten points each"):
        return text if text.endswith(":") else text + ":"
    return f"{text} {HANDOFF_PHRASE}"


class BonusWriter(BaseAgent):
    AGENT_NAME = "BonusWriter"

    def __init__(self, *args, config: BonusConfig = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.config = config or BonusConfig()

    def write(self, topic: str, context: str, kb: KnowledgeBase, used_answers: Sequence[str] = ()) -> Bonus:
        """
        Args:
            used_answers: Tossup answers and earlier bonus answers of the packet

        Raises:
            CraftFailure: no acceptable triplet within the attempt ceiling
        """
        triplet = self.generate_triplet(topic, context, kb, used_answers)
        logger.info(f"[{self.AGENT_NAME}] Theme: {triplet.theme}")

        preamble = self.generate_preamble(triplet)
        parts = tuple(
            self.generate_part(triplet, preamble, label, answer, kb)
            for label, answer in zip(PART_LABELS, triplet.answers)
        )
        return Bonus(preamble=preamble, parts=parts)

    def generate_triplet(self, topic: str, context: str, kb: KnowledgeBase, used_answers: Sequence[str]) -> BonusTriplet:
        used = list(used_answers)
        avoid_block = ""
        if used:
            avoid_block = "\nAVOID these answers (already used):\n" + "\n".join(f"- {a}" for a in used) + "\n"
        prompt = TRIPLET_PROMPT.format(
            topic=topic,
            context_line=f"\nAdditional context: {context}\n" if context else "",
            fact_sources=kb.render() or "(no sources gathered)",
            avoid_block=avoid_block,
        )
        blocked = normalized_set(used)

        def attempt(n: int) -> BonusTriplet:
            parsed = self._generate_structured(prompt, "triplet", triplet_shape(), metadata={"topic": topic, "attempt": n})
            triplet = BonusTriplet(
                theme=parsed.theme,
                answer_a=format_answer_line(parsed.answer_a),
                answer_b=format_answer_line(parsed.answer_b),
                answer_c=format_answer_line(parsed.answer_c),
            )
            keys = [normalize_answer(a) for a in triplet.answers]
            if any(not k for k in keys):
                raise TripletRejected("triplet contains an empty answer")
            if len(set(keys)) != 3:
                raise TripletRejected("triplet repeats an answer")
            reused = [a for a, k in zip(triplet.answers, keys) if k in blocked]
            if reused:
                raise TripletRejected(f"triplet reuses already-used answer(s): {reused}")
            return triplet

        try:
            return retry_bounded(
                attempt,
                self.config.max_attempts,
                retry_on=(TripletRejected,),
                label="bonus triplet",
            )
        except RetriesExhausted as e:
            raise CraftFailure(
                f"[{self.AGENT_NAME}] no usable bonus triplet after {e.attempts} attempt(s): {e.last_error}"
            ) from e.last_error

    def generate_preamble(self, triplet: BonusTriplet) -> str:
        prompt = PREAMBLE_PROMPT.format(
            theme=triplet.theme,
            answer_block="\n".join(f"- {a}" for a in triplet.answers),
            handoff=HANDOFF_PHRASE,
        )
        parsed = self._generate_structured(prompt, "preamble", preamble_shape())
        return ensure_handoff(parsed.preamble)

    def generate_part(self, triplet: BonusTriplet, preamble: str, label: str, answer: str, kb: KnowledgeBase) -> BonusPart:
        prompt = PART_PROMPT.format(
            theme=triplet.theme,
            preamble=preamble,
            label=label,
            answer=answer,
            fact_sources=kb.render() or "(no sources gathered)",
            min_words=self.config.min_part_words,
            max_words=self.config.max_part_words,
        )
        parsed = self._generate_structured(prompt, "bonus-part", question_shape(), metadata={"part": label, "answer": answer})
        words = len(parsed.question.split())
        if not self.config.min_part_words <= words <= self.config.max_part_words:
            logger.warning(f"[{self.AGENT_NAME}] Part {label} has {words} words")
        return BonusPart(question_text=parsed.question, answer_text=answer)

    @staticmethod
    def collect_answers(bonuses: Sequence[Bonus]) -> List[str]:
        return [a for b in bonuses for a in b.answers]


__all__ = ["BonusWriter", "HANDOFF_PHRASE", "ensure_handoff"]
