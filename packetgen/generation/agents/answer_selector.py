"""
packetgen/generation/agents/answer_selector.py

AnswerSelectionLoop: generate -> evaluate -> select -> (deepen) until the target is met.

Per iteration (at most SelectionConfig.max_iterations):
1. needed = target - accepted; stop when <= 0
2. needed * candidate_multiplier candidates, excluding accepted + caller exclusions
3. score (uninspected 7.0 without context, batched evaluation with context)
4. keep score >= threshold (6.0 with context, 4.0 without), best first, top `needed`
5. still short and iterations left -> KnowledgeAggregator.deepen()

Returns however many were accepted; full-packet callers treat a short list as
SelectionShortfall.
"""

import logging
from typing import List, Sequence

from packetgen.generation.agents.answer_generator import CandidateAnswerGenerator
from packetgen.generation.agents.candidate_evaluator import CandidateEvaluator
from packetgen.generation.agents.knowledge_aggregator import KnowledgeAggregator
from packetgen.shared.answer_line import normalize_answer, normalized_set
from packetgen.shared.config import SelectionConfig
from packetgen.shared.schemas import AnswerCandidate, KnowledgeBase

logger = logging.getLogger(__name__)


def selection_threshold(context: str, config: SelectionConfig) -> float:
    return config.context_threshold if (context or "").strip() else config.open_threshold


def select_best(candidates: Sequence[AnswerCandidate], needed: int, threshold: float) -> List[AnswerCandidate]:
    """
    Candidates scoring at least threshold, highest first (ties keep input order), at most needed.
    """
    if needed <= 0:
        return []
    eligible = [c for c in candidates if c.score >= threshold]
    eligible.sort(key=lambda c: c.score, reverse=True)
    return eligible[:needed]


class AnswerSelectionLoop:
    """
    Owns no LLM client itself; drives the generator, evaluator and aggregator.
    """

    def __init__(
        self,
        config: SelectionConfig,
        generator: CandidateAnswerGenerator,
        evaluator: CandidateEvaluator,
        aggregator: KnowledgeAggregator,
    ) -> None:
        self.config = config
        self.generator = generator
        self.evaluator = evaluator
        self.aggregator = aggregator

    def select_answers(
        self,
        topic: str,
        context: str,
        kb: KnowledgeBase,
        target_count: int,
        exclude: Sequence[str] = (),
    ) -> List[str]:
        """
        Args:
            topic: Packet topic
            context: Additional context ("" for none)
            kb: Run's knowledge base (deepening appends to it)
            target_count: Answers wanted
            exclude: Answers already used elsewhere (never re-selected)

        Returns:
            Accepted answer lines, len <= target_count, pairwise distinct and disjoint from exclude
        """
        threshold = selection_threshold(context, self.config)
        accepted: List[str] = []
        max_iterations = self.config.max_iterations

        for iteration in range(1, max_iterations + 1):
            needed = target_count - len(accepted)
            if needed <= 0:
                break

            logger.info(
                f"[AnswerSelectionLoop] Iteration {iteration}/{max_iterations}: need {needed} "
                f"(threshold {threshold:.1f})"
            )
            blocked = list(exclude) + accepted
            candidates = self.generator.generate(
                topic,
                context,
                kb,
                count=needed * self.config.candidate_multiplier,
                exclude=blocked,
            )
            scored = self.evaluator.evaluate(candidates, topic, context, kb)

            taken = normalized_set(blocked)
            fresh: List[AnswerCandidate] = []
            for c in scored:
                key = normalize_answer(c.text)
                if key and key not in taken:
                    taken.add(key)
                    fresh.append(c)

            chosen = select_best(fresh, needed, threshold)
            accepted.extend(c.text for c in chosen)
            for c in chosen:
                logger.info(f"[AnswerSelectionLoop]   + {c.text} ({c.score:.1f}) {c.rationale}")

            if len(accepted) < target_count and iteration < max_iterations:
                self.aggregator.deepen(kb, accepted, target_count - len(accepted), iteration)

        if len(accepted) < target_count:
            logger.warning(f"[AnswerSelectionLoop] Accepted {len(accepted)}/{target_count} after {max_iterations} iteration(s)")
        else:
            logger.info(f"[AnswerSelectionLoop] Accepted {len(accepted)}/{target_count}")
        return accepted


__all__ = ["AnswerSelectionLoop", "select_best", "selection_threshold"]
