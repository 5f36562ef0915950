"""
packetgen/generation/agents/answer_generator.py

CandidateAnswerGenerator: asks for a batch of ADVANCED, NON-OBVIOUS answer lines grounded in
the fact base, excluding answers that are already consumed.

Output is post-filtered: blanks dropped, every entry coerced to "ANSWER: ...",
duplicates and excluded answers removed by normalized form.
"""

import logging
from typing import List, Sequence

from packetgen.generation.agents.base_agent import BaseAgent
from packetgen.shared.answer_line import dedupe_answers, format_answer_line
from packetgen.shared.llm_json import string_list_shape
from packetgen.shared.schemas import KnowledgeBase

logger = logging.getLogger(__name__)


ANSWER_LIST_PROMPT = """Based on the following factual sources about "{topic}", generate a list of {count} ADVANCED, NON-OBVIOUS answers
for challenging quiz bowl tossup questions.
{context_line}
FACTUAL SOURCES:
{fact_sources}

ANSWER MUST BE A SPECIFIC, CONCRETE THING:
GOOD - Specific entities:
   - Proper names: "Charles Babbage", "Mount Vesuvius", "The Rite of Spring"
   - Specific works, events, defined terms, named movements or groups
BAD - Vague descriptions/categories:
   - "novels about the American Dream" (category, not a thing)
   - "paintings from the Renaissance" (too broad)
RULE: If you can't write an encyclopedia article specifically about THIS THING, it's too vague.

CRITICAL - AVOID OBVIOUS/EASY CONCEPTS:
- DO NOT use the most famous, canonical, or textbook examples
- Example: If topic is "Impressionism", DON'T use Monet or Renoir - use Caillebotte or Berthe Morisot

REQUIREMENTS:
1. Each answer MUST be a specific, referenceable entity - NOT a vague category or description
2. Format each in NAQT answer line format (e.g., "ANSWER: Main Answer [or alternate] (clarification)")
3. Prioritize answers with rich, verifiable details in the sources
4. Ensure diversity - cover different categories, time periods, and aspects of the topic
5. Choose answers that are independent and won't give each other away
   (e.g. don't include both "Romeo and Juliet" and "Juliet Capulet")
{avoid_block}
Return ONLY a JSON array of answer strings, like:
["ANSWER: First Answer", "ANSWER: Second Answer"]"""


class CandidateAnswerGenerator(BaseAgent):
    AGENT_NAME = "CandidateAnswerGenerator"

    def generate(
        self,
        topic: str,
        context: str,
        kb: KnowledgeBase,
        count: int,
        exclude: Sequence[str] = (),
    ) -> List[str]:
        """
        Request count candidate answer lines.

        Returns:
            Distinct answer lines (possibly fewer than count), none matching exclude
        """
        if count <= 0:
            return []

        avoid_block = ""
        if exclude:
            avoid_block = "\nDo NOT generate answers for any of these (already used):\n" + "\n".join(exclude) + "\n"

        prompt = ANSWER_LIST_PROMPT.format(
            topic=topic,
            count=count,
            context_line=f"\nAdditional context: {context}\n" if context else "",
            fact_sources=kb.render() or "(no sources gathered)",
            avoid_block=avoid_block,
        )
        raw_answers = self._generate_structured(
            prompt,
            "candidates",
            string_list_shape(),
            metadata={"topic": topic, "count": count},
        )

        formatted = [format_answer_line(a) for a in raw_answers]
        candidates = dedupe_answers([a for a in formatted if a], exclude=exclude)
        dropped = len(raw_answers) - len(candidates)
        logger.info(
            f"[{self.AGENT_NAME}] {len(candidates)} candidate(s) from {len(raw_answers)} returned"
            + (f" ({dropped} duplicate/excluded dropped)" if dropped else "")
        )
        return candidates


__all__ = ["CandidateAnswerGenerator"]
