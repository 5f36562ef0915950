"""
packetgen/generation/agents/candidate_evaluator.py

CandidateEvaluator: scores candidate answers 0-10 for topic/context fit and non-obviousness.

- No context: evaluation is skipped, every candidate gets the uninspected score (7.0)
- With context: ONE batched call listing all candidates (1-based), parsed as an array of
  {index, score, reasoning}; the parser sends any response that leaves an index in 1..N
  unscored back for remediation
Scores are clamped to [0, 10]; indices outside 1..N are ignored; for a repeated index the
first score wins.
"""

import logging
from typing import Dict, List, Sequence

from packetgen.generation.agents.base_agent import BaseAgent
from packetgen.shared.llm_json import candidate_scores_shape
from packetgen.shared.schemas import AnswerCandidate, KnowledgeBase

logger = logging.getLogger(__name__)

NO_CONTEXT_RATIONALE = "No specific context to match"

EVALUATION_PROMPT = """You are judging candidate answers for ADVANCED quiz bowl tossups.

Topic: {topic}
Context/Requirements: {context}

Candidates:
{candidate_block}

Score EACH candidate from 0 to 10:
- 8-10: a specific, referenceable entity that clearly fits the context and is NOT a textbook-famous example
- 5-7: fits, but is either well known or only loosely tied to the context
- 0-4: a vague category or description, off-context, or the most canonical/obvious answer

Return ONLY a JSON array with exactly {count} objects, one per candidate, in order:
[{{"index": 1, "score": 8, "reasoning": "<one sentence>"}}, ...]"""


class CandidateEvaluator(BaseAgent):
    AGENT_NAME = "CandidateEvaluator"

    def __init__(self, *args, uninspected_score: float = 7.0, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.uninspected_score = uninspected_score

    def evaluate(
        self,
        candidates: Sequence[str],
        topic: str,
        context: str,
        kb: KnowledgeBase,
    ) -> List[AnswerCandidate]:
        if not candidates:
            return []

        if not (context or "").strip():
            return [AnswerCandidate(text=c, score=self.uninspected_score, rationale=NO_CONTEXT_RATIONALE) for c in candidates]

        candidate_block = "\n".join(f"{i}. {c}" for i, c in enumerate(candidates, start=1))
        prompt = EVALUATION_PROMPT.format(
            topic=topic,
            context=context,
            candidate_block=candidate_block,
            count=len(candidates),
        )
        scores = self._generate_structured(
            prompt,
            "evaluation",
            candidate_scores_shape(len(candidates)),
            metadata={"topic": topic, "count": len(candidates)},
        )

        by_index: Dict[int, AnswerCandidate] = {}
        for item in scores:
            if not 1 <= item.index <= len(candidates):
                logger.warning(f"[{self.AGENT_NAME}] Ignoring score for out-of-range index {item.index}")
                continue
            if item.index in by_index:
                continue
            by_index[item.index] = AnswerCandidate(
                text=candidates[item.index - 1],
                score=min(10.0, max(0.0, item.score)),
                rationale=item.reasoning,
            )

        evaluated = [by_index[i] for i in sorted(by_index)]
        logger.info(
            f"[{self.AGENT_NAME}] Scored {len(evaluated)}/{len(candidates)} candidate(s): "
            + ", ".join(f"{c.score:.1f}" for c in evaluated)
        )
        return evaluated


__all__ = ["CandidateEvaluator", "NO_CONTEXT_RATIONALE"]
