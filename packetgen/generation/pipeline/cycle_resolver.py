"""
packetgen/generation/pipeline/cycle_resolver.py

CycleResolver: removes reciprocal cross-references from a tossup set.

State machine:
    ANALYZING -> CLEAN                          (no reciprocal pair, done)
    ANALYZING -> CYCLES_FOUND -> REGENERATING -> ANALYZING
    REGENERATING x CycleConfig.max_attempts, still reciprocal -> UNRESOLVABLE (CycleUnresolved)

One regeneration:
1. pick one index from reciprocal_nodes() via the injected RandomSource
2. select a single replacement answer (exclude every answer currently in the set)
3. craft its question
4. splice it in at the same index, re-analyze

An empty selection still consumes the attempt.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from packetgen.generation.agents.answer_selector import AnswerSelectionLoop
from packetgen.generation.agents.question_crafter import QuestionCrafter
from packetgen.generation.utils.reference_graph import CrossReferenceAnalyzer, ReferenceGraph
from packetgen.shared.config import CycleConfig
from packetgen.shared.randomness import RandomSource, SeededRandomSource
from packetgen.shared.retry import RetriesExhausted, retry_bounded
from packetgen.shared.schemas import CycleUnresolved, KnowledgeBase, Tossup

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    ANALYZING = "analyzing"
    CLEAN = "clean"
    CYCLES_FOUND = "cycles_found"
    REGENERATING = "regenerating"
    UNRESOLVABLE = "unresolvable"


class ReciprocalPairsRemain(ValueError):
    pass


@dataclass
class CycleResolution:
    """
    Per-run result; also carries the run's state machine trace.
    """
    tossups: List[Tossup]
    graph: ReferenceGraph
    regenerations: int = 0
    replaced_indices: List[int] = field(default_factory=list)
    state: ResolutionState = ResolutionState.ANALYZING
    history: List[ResolutionState] = field(default_factory=list)

    def enter(self, state: ResolutionState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"[CycleResolver] -> {state.value}")


class CycleResolver:
    def __init__(
        self,
        config: CycleConfig,
        selector: AnswerSelectionLoop,
        crafter: QuestionCrafter,
        random_source: Optional[RandomSource] = None,
        analyzer: Optional[CrossReferenceAnalyzer] = None,
    ) -> None:
        self.config = config
        self.selector = selector
        self.crafter = crafter
        self.random_source = random_source or SeededRandomSource(config.seed)
        self.analyzer = analyzer or CrossReferenceAnalyzer()

    def resolve(
        self,
        tossups: Sequence[Tossup],
        topic: str,
        context: str,
        kb: KnowledgeBase,
    ) -> CycleResolution:
        """
        Args:
            tossups: Crafted tossups (not modified; a new list is returned)
            topic / context / kb: Passed through to selection and crafting

        Returns:
            CycleResolution whose graph has no reciprocal pair

        Raises:
            CycleUnresolved: reciprocal pairs remain after max_attempts regenerations
        """
        working = list(tossups)
        resolution = CycleResolution(tossups=working, graph=ReferenceGraph(len(working)))
        self._analyze(resolution)
        if resolution.state == ResolutionState.CLEAN:
            return resolution

        def regenerate(attempt: int) -> ReferenceGraph:
            resolution.enter(ResolutionState.REGENERATING)
            nodes = resolution.graph.reciprocal_nodes()
            index = self.random_source.choice(nodes)
            logger.info(
                f"[CycleResolver] Attempt {attempt}/{self.config.max_attempts}: "
                f"pairs {resolution.graph.reciprocal_pairs()}, regenerating #{index}"
            )

            current = [t.answer_text for t in working]
            answers = self.selector.select_answers(topic, context, kb, 1, exclude=current)
            resolution.regenerations += 1
            if answers:
                working[index] = self.crafter.craft(topic, answers[0], kb, context)
                resolution.replaced_indices.append(index)
                self._analyze(resolution)
            else:
                logger.warning(f"[CycleResolver] No replacement answer found for #{index}")
                resolution.enter(ResolutionState.ANALYZING)
                resolution.enter(ResolutionState.CYCLES_FOUND)

            if resolution.state != ResolutionState.CLEAN:
                raise ReciprocalPairsRemain(f"reciprocal pairs remain: {resolution.graph.reciprocal_pairs()}")
            return resolution.graph

        try:
            retry_bounded(
                regenerate,
                self.config.max_attempts,
                retry_on=(ReciprocalPairsRemain,),
                label="cycle resolution",
            )
        except RetriesExhausted as e:
            resolution.enter(ResolutionState.UNRESOLVABLE)
            pairs = resolution.graph.reciprocal_pairs()
            raise CycleUnresolved(
                f"[CycleResolver] {len(pairs)} reciprocal pair(s) remain after {e.attempts} regeneration(s): {pairs}",
                reciprocal_pairs=pairs,
            ) from e.last_error

        logger.info(f"[CycleResolver] Resolved after {resolution.regenerations} regeneration(s)")
        return resolution

    def _analyze(self, resolution: CycleResolution) -> None:
        resolution.enter(ResolutionState.ANALYZING)
        resolution.graph = self.analyzer.analyze(resolution.tossups)
        if resolution.graph.has_reciprocal_edge():
            resolution.enter(ResolutionState.CYCLES_FOUND)
        else:
            resolution.enter(ResolutionState.CLEAN)


__all__ = ["CycleResolver", "CycleResolution", "ResolutionState"]
