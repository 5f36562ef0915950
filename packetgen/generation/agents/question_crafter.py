"""
packetgen/generation/agents/question_crafter.py

QuestionCrafter: writes the pyramidal tossup text for one answer.

Each attempt = one generation call + structured parse ({"question": ...}).
Hard checks (a failed check consumes an attempt):
- non-empty question text
- the main answer does not appear as a whole word in the question
- exactly one power mark, when CrafterConfig.require_power_mark
Soft checks (logged only): 3-5 sentences, ~400-600 characters.

After CrafterConfig.max_attempts failed attempts -> CraftFailure.
"""

import logging
import re
from typing import List

from packetgen.generation.agents.base_agent import BaseAgent
from packetgen.shared.answer_line import mentions_answer
from packetgen.shared.config import CrafterConfig
from packetgen.shared.llm_json import question_shape
from packetgen.shared.retry import RetriesExhausted, retry_bounded
from packetgen.shared.schemas import CraftFailure, KnowledgeBase, ParseFailure, Tossup

logger = logging.getLogger(__name__)

SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)")

TOSSUP_PROMPT = """You are crafting an NAQT-style pyramidal tossup question for this specific answer:

{answer}

Topic context: {topic}{context_line}

Use these factual sources to construct your question:
{fact_sources}

PYRAMIDAL STRUCTURE (CRITICAL - MUST FOLLOW):

SENTENCE 1 (HARDEST - Experts only):
- Use the MOST OBSCURE fact from the sources
- Technical terms, lesser-known works, specific dates, niche details

POWER MARK {power_mark}: Place immediately after sentence 1, exactly once

SENTENCE 2-3 (MODERATE - Knowledgeable players):
- Use RECOGNIZABLE but not obvious facts
- Notable works, significant achievements, historical context

FINAL SENTENCE (EASIEST - Giveaway):
- Use the MOST FAMOUS, CANONICAL fact
- Should allow even beginners to buzz with confidence

REQUIREMENTS:
1. STRICT pyramidal progression: each sentence must be EASIER than the previous
2. Write {min_sentences}-{max_sentences} sentences, approximately {min_chars}-{max_chars} characters total
3. ALL FACTS MUST BE VERIFIABLE from the sources provided
4. Never state the answer itself (or its alternates) anywhere in the question text
{feedback}
Return your response as a JSON object with a single field "question" containing the pyramidal question text.
Do NOT include the answer line in the response - we already have it."""


class QuestionRejected(ValueError):
    """
    Parsed question text fails a hard structural check.
    """
    pass


def count_sentences(text: str) -> int:
    return len(SENTENCE_END_RE.findall(text or ""))


class QuestionCrafter(BaseAgent):
    AGENT_NAME = "QuestionCrafter"

    def __init__(self, *args, config: CrafterConfig = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.config = config or CrafterConfig()

    def craft(self, topic: str, answer: str, kb: KnowledgeBase, context: str = "") -> Tossup:
        """
        Returns:
            Tossup(question_text, answer) with answer passed through unchanged

        Raises:
            CraftFailure: every attempt failed to parse or was rejected
            GenerationFailure: the client raised (not retried)
        """
        feedback: List[str] = []

        def attempt(n: int) -> str:
            prompt = self._build_prompt(topic, answer, kb, context, feedback)
            parsed = self._generate_structured(
                prompt,
                "question",
                question_shape(),
                metadata={"topic": topic, "answer": answer, "attempt": n},
            )
            question = parsed.question.strip()
            self._check_hard(question, answer)
            self._check_soft(question, answer)
            return question

        def on_failure(n: int, error: BaseException) -> None:
            logger.warning(f"[{self.AGENT_NAME}] Attempt {n}/{self.config.max_attempts} for {answer} failed: {error}")
            if isinstance(error, QuestionRejected):
                feedback.append(str(error))

        try:
            question = retry_bounded(
                attempt,
                self.config.max_attempts,
                retry_on=(ParseFailure, QuestionRejected),
                label=f"craft {answer}",
                on_failure=on_failure,
            )
        except RetriesExhausted as e:
            raise CraftFailure(
                f"[{self.AGENT_NAME}] could not craft a question for {answer} after {e.attempts} attempt(s): {e.last_error}"
            ) from e.last_error

        logger.info(f"[{self.AGENT_NAME}] [OK] {answer}: {question[:60]}...")
        return Tossup(question_text=question, answer_text=answer)

    def _build_prompt(self, topic: str, answer: str, kb: KnowledgeBase, context: str, feedback: List[str]) -> str:
        feedback_block = ""
        if feedback:
            feedback_block = "\nPREVIOUS ATTEMPTS WERE REJECTED:\n" + "\n".join(f"- {f}" for f in feedback) + "\n"
        cfg = self.config
        return TOSSUP_PROMPT.format(
            answer=answer,
            topic=topic,
            context_line=f"\nAdditional context: {context}" if context else "",
            fact_sources=kb.render() or "(no sources gathered)",
            power_mark=cfg.power_mark,
            min_sentences=cfg.min_sentences,
            max_sentences=cfg.max_sentences,
            min_chars=cfg.min_chars,
            max_chars=cfg.max_chars,
            feedback=feedback_block,
        )

    def _check_hard(self, question: str, answer: str) -> None:
        if not question:
            raise QuestionRejected("question text is empty")
        if mentions_answer(question, answer):
            raise QuestionRejected("question text gives away the answer")
        if self.config.require_power_mark:
            marks = question.count(self.config.power_mark)
            if marks != 1:
                raise QuestionRejected(f"expected exactly one power mark {self.config.power_mark}, found {marks}")

    def _check_soft(self, question: str, answer: str) -> None:
        cfg = self.config
        sentences = count_sentences(question)
        if not cfg.min_sentences <= sentences <= cfg.max_sentences:
            logger.warning(f"[{self.AGENT_NAME}] {answer}: {sentences} sentence(s), outside {cfg.min_sentences}-{cfg.max_sentences}")
        if not cfg.min_chars <= len(question) <= cfg.max_chars:
            logger.warning(f"[{self.AGENT_NAME}] {answer}: {len(question)} characters, outside {cfg.min_chars}-{cfg.max_chars}")


__all__ = ["QuestionCrafter", "QuestionRejected", "count_sentences"]
