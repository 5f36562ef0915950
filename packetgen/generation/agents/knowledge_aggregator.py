"""
packetgen/generation/agents/knowledge_aggregator.py

KnowledgeAggregator: builds the per-run fact base.

- gather(topic, context): one "comprehensive facts" call, plus a context-focused call
  when context is given
- deepen(...): gap analysis over the accepted answers, then the follow-up query it
  proposes; appended as "deeper-search-<iteration>"

Failures here are fatal: GenerationFailure / ParseFailure propagate unchanged.
"""

import logging
from typing import Sequence

from packetgen.generation.agents.base_agent import BaseAgent
from packetgen.shared.llm_json import gap_analysis_shape
from packetgen.shared.schemas import GapAnalysis, KnowledgeBase

logger = logging.getLogger(__name__)


COMPREHENSIVE_PROMPT = """Provide comprehensive, factual, and detailed information about: {topic}{context_block}

Your response should include:
- Key facts, dates, names, and specific details
- Historical context and significance
- Notable examples and instances (avoid only the most famous/canonical ones)
- Technical or specialized information
- Diverse aspects covering different categories and time periods
- Lesser-known but notable and significant details

Focus on providing rich, specific, verifiable information that can support ADVANCED quiz bowl questions."""

CONTEXT_PROMPT = """Focusing specifically on '{context}' in the context of '{topic}', provide detailed, factual information.

Include:
- Specific people, works, events, places and terms that fit this focus
- Dates, technical details and lesser-known connections
- Second and third-order entities, not only the most famous examples

Focus on specific, verifiable facts suitable for ADVANCED quiz bowl questions."""

GAP_ANALYSIS_PROMPT = """We are selecting answers for ADVANCED, NON-OBVIOUS quiz bowl tossups about: {topic}{context_block}

We still need {needed} more answer(s). Answers accepted so far:
{accepted_block}

Current knowledge covers these sections: {section_labels}

Explain which aspects of the topic (sub-areas, periods, kinds of entities) are still unmet by the accepted answers,
then write ONE follow-up research query that would surface DIFFERENT, MORE SPECIFIC, lesser-known material.

Return ONLY a JSON object:
{{"missing_aspects": "<what is still uncovered>", "follow_up_query": "<the follow-up query>"}}"""

DEEPER_SEARCH_PROMPT = """We need additional ADVANCED, NON-OBVIOUS information about: {topic}{context_block}

Research query: {query}

Gaps identified so far: {missing_aspects}

We already have information about:
{accepted_block}

Provide DIFFERENT, MORE SPECIFIC information focusing on:
- LESSER-KNOWN but notable and quiz bowl-worthy aspects
- Specialized, technical, or niche details
- Second and third-order concepts (not the main/obvious ones)
- Specific examples, works, events, or figures that are NOT the most famous

CRITICAL: Avoid obvious, canonical, or textbook examples. Focus on depth and specificity."""


def _context_block(context: str, label: str = "Additional context/requirements") -> str:
    return f"\n\n{label}: {context}" if context else ""


def _accepted_block(accepted: Sequence[str]) -> str:
    if not accepted:
        return "(This is our first attempt)"
    return "\n".join(f"- {a}" for a in accepted)


class KnowledgeAggregator(BaseAgent):
    AGENT_NAME = "KnowledgeAggregator"

    def gather(self, topic: str, context: str = "") -> KnowledgeBase:
        context = (context or "").strip()
        logger.info(f"[{self.AGENT_NAME}] Gathering knowledge for '{topic}'" + (f" (context: {context})" if context else ""))

        kb = KnowledgeBase(topic=topic, context=context)
        comprehensive = self._call_llm(
            COMPREHENSIVE_PROMPT.format(topic=topic, context_block=_context_block(context)),
            stage="comprehensive",
            metadata={"topic": topic},
        )
        kb.append("comprehensive", comprehensive)

        if context:
            focused = self._call_llm(
                CONTEXT_PROMPT.format(topic=topic, context=context),
                stage="context-specific",
                metadata={"topic": topic},
            )
            kb.append("context-specific", focused)

        logger.info(f"[{self.AGENT_NAME}] Knowledge base ready: {kb.labels} ({len(kb.render())} chars)")
        return kb

    def analyze_gaps(self, kb: KnowledgeBase, accepted: Sequence[str], needed: int) -> GapAnalysis:
        prompt = GAP_ANALYSIS_PROMPT.format(
            topic=kb.topic,
            context_block=_context_block(kb.context, "Context/Requirements"),
            needed=needed,
            accepted_block=_accepted_block(accepted),
            section_labels=", ".join(kb.labels) or "(none)",
        )
        return self._generate_structured(prompt, "gap-analysis", gap_analysis_shape(), metadata={"topic": kb.topic})

    def deepen(self, kb: KnowledgeBase, accepted: Sequence[str], needed: int, iteration: int) -> GapAnalysis:
        """
        Gap-analysis deepening step; appends "deeper-search-<iteration>" to kb.

        Returns:
            The gap analysis that drove the follow-up query
        """
        gaps = self.analyze_gaps(kb, accepted, needed)
        logger.info(f"[{self.AGENT_NAME}] Iteration {iteration} follow-up query: {gaps.follow_up_query}")

        prompt = DEEPER_SEARCH_PROMPT.format(
            topic=kb.topic,
            context_block=_context_block(kb.context, "Context/Requirements"),
            query=gaps.follow_up_query,
            missing_aspects=gaps.missing_aspects or "(not stated)",
            accepted_block=_accepted_block(accepted),
        )
        text = self._call_llm(prompt, stage="deeper-search", metadata={"topic": kb.topic, "iteration": iteration})
        kb.append(f"deeper-search-{iteration}", text)
        return gaps


__all__ = ["KnowledgeAggregator"]
