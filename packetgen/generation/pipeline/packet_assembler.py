"""
packetgen/generation/pipeline/packet_assembler.py

PacketAssembler: orchestrates the knowledge-first packet pipeline.

Position in Pipeline:
Top-level orchestrator; run.py and library callers only talk to this class.

Main Responsibilities:
1. Build the shared LLM client, prompt logger, parser and every agent once per assembler
2. Run the stages in order for each request, with a fresh KnowledgeBase per run
3. Re-check the finalized packet before persisting it
4. Hand the packet to the PacketStore exactly once

Full packet:
    validate -> gather knowledge -> select answers -> craft tossups -> resolve cycles
    -> order -> bonuses -> verify -> PacketStore.save -> return

Usage Example:
```python
from packetgen.shared.config import create_default_config
from packetgen.generation.pipeline.packet_assembler import PacketAssembler

config = create_default_config("RUN_001")
config.target_tossup_count = 3

assembler = PacketAssembler(config)
packet = assembler.generate_packet("Photosynthesis")

# Single items
tossup = assembler.generate_tossup("Photosynthesis", existing=packet.tossups)
bonus = assembler.generate_bonus("Photosynthesis", existing_tossups=packet.tossups)
```
"""

import logging
import uuid
from pathlib import Path
from typing import Any, List, Optional, Sequence

from packetgen.generation.agents.answer_generator import CandidateAnswerGenerator
from packetgen.generation.agents.answer_selector import AnswerSelectionLoop
from packetgen.generation.agents.base_agent import QUIZBOWL_SYSTEM_PROMPT
from packetgen.generation.agents.bonus_writer import BonusWriter
from packetgen.generation.agents.candidate_evaluator import CandidateEvaluator
from packetgen.generation.agents.knowledge_aggregator import KnowledgeAggregator
from packetgen.generation.agents.question_crafter import QuestionCrafter
from packetgen.generation.pipeline.cycle_resolver import CycleResolver
from packetgen.generation.pipeline.packet_orderer import PacketOrderer
from packetgen.generation.utils.reference_graph import CrossReferenceAnalyzer
from packetgen.shared.answer_line import normalize_answer
from packetgen.shared.config import MAX_TOSSUP_COUNT, MIN_TOSSUP_COUNT, PacketGenConfig
from packetgen.shared.llm_interface import LLMClient
from packetgen.shared.llm_json import StructuredResponseParser
from packetgen.shared.packet_store import JsonPacketStore, PacketStore
from packetgen.shared.prompt_logger import PromptLogger
from packetgen.shared.randomness import RandomSource, SeededRandomSource
from packetgen.shared.schemas import (
    Bonus,
    InvalidRequestError,
    KnowledgeBase,
    Packet,
    PacketValidationError,
    SelectionShortfall,
    Tossup,
)

logger = logging.getLogger(__name__)

PACKET_NAME_TEMPLATE = "Generated Packet (Knowledge-First): {topic} - {uid}"


class PacketAssembler:
    """
    Main Methods:
    - generate_packet(topic, context): full packet, persisted once
    - generate_tossup(topic, context, existing): one tossup, not persisted
    - generate_bonus(topic, context, existing_tossups, existing_bonuses): one bonus, not persisted
    """

    def __init__(
        self,
        config: PacketGenConfig,
        llm_client: Optional[Any] = None,
        packet_store: Optional[PacketStore] = None,
        prompt_logger: Optional[PromptLogger] = None,
        random_source: Optional[RandomSource] = None,
    ) -> None:
        """
        Args:
            config: Run configuration
            llm_client: Any object with LLMClient.generate's signature (built from config.llm if omitted)
            packet_store: Persistence collaborator (JsonPacketStore under output_dir if omitted
                and config.save_packet is set)
            prompt_logger: Prompt/response JSONL logger (output_dir/logs/prompts if omitted)
            random_source: Picks which reciprocal item gets regenerated
        """
        self.config = config

        self.llm_client = llm_client if llm_client is not None else LLMClient.from_runtime_config(config.llm)

        if prompt_logger is None:
            prompt_log_dir = (Path(config.output_dir) / "logs" / "prompts").resolve()
            prompt_log_dir.mkdir(parents=True, exist_ok=True)
            prompt_logger = PromptLogger(log_dir=str(prompt_log_dir))
        self.prompt_logger = prompt_logger

        if packet_store is None and config.save_packet:
            packet_store = JsonPacketStore(config.output_dir)
        self.packet_store = packet_store

        self.parser = StructuredResponseParser(
            self.llm_client,
            prompt_logger=self.prompt_logger,
            object_max_attempts=config.parser.object_max_attempts,
            array_max_attempts=config.parser.array_max_attempts,
            system_prompt=QUIZBOWL_SYSTEM_PROMPT,
        )
        agent_args = (self.llm_client, self.parser, self.prompt_logger)

        self.aggregator = KnowledgeAggregator(*agent_args)
        self.generator = CandidateAnswerGenerator(*agent_args)
        self.evaluator = CandidateEvaluator(*agent_args, uninspected_score=config.selection.uninspected_score)
        self.selector = AnswerSelectionLoop(config.selection, self.generator, self.evaluator, self.aggregator)
        self.crafter = QuestionCrafter(*agent_args, config=config.crafter)
        self.bonus_writer = BonusWriter(*agent_args, config=config.bonus)

        self.analyzer = CrossReferenceAnalyzer()
        self.cycle_resolver = CycleResolver(
            config.cycles,
            self.selector,
            self.crafter,
            random_source=random_source or SeededRandomSource(config.cycles.seed),
            analyzer=self.analyzer,
        )
        self.orderer = PacketOrderer()

    # ------------------------------------------------------------------ #
    # Full packet
    # ------------------------------------------------------------------ #
    def generate_packet(self, topic: str, context: str = "") -> Packet:
        """
        Raises:
            InvalidRequestError / GenerationFailure / ParseFailure / SelectionShortfall /
            CraftFailure / CycleUnresolved / PacketValidationError
            (nothing is persisted when any of these is raised)
        """
        topic, context = self._validate_request(topic, context)
        target = self.config.target_tossup_count
        if not MIN_TOSSUP_COUNT <= target <= MAX_TOSSUP_COUNT:
            raise InvalidRequestError(
                f"tossup count must be between {MIN_TOSSUP_COUNT} and {MAX_TOSSUP_COUNT}, got {target}"
            )

        logger.info(f"[PacketAssembler] ===== Packet: {topic} ({target} tossups) =====")

        # Step 1: knowledge
        kb = self.aggregator.gather(topic, context)

        # Step 2: answers
        answers = self.selector.select_answers(topic, context, kb, target)
        if len(answers) < target:
            raise SelectionShortfall(
                f"[PacketAssembler] selected {len(answers)}/{target} answers for '{topic}'",
                accepted=answers,
                target=target,
            )

        # Step 3: questions
        tossups: List[Tossup] = []
        for i, answer in enumerate(answers, start=1):
            logger.info(f"[PacketAssembler] Crafting tossup {i}/{target}: {answer}")
            tossups.append(self.crafter.craft(topic, answer, kb, context))

        # Step 4: cross-references
        resolution = self.cycle_resolver.resolve(tossups, topic, context, kb)

        # Step 5: ordering
        ordering = self.orderer.order(resolution.tossups, resolution.graph)

        # Step 6: bonuses
        bonuses = self._generate_bonuses(topic, context, kb, ordering.tossups)

        packet = Packet(
            name=PACKET_NAME_TEMPLATE.format(topic=topic, uid=uuid.uuid4()),
            tossups=ordering.tossups,
            bonuses=bonuses,
        )
        self._verify_invariants(packet, target)

        if self.packet_store is not None:
            self.packet_store.save(packet)
        logger.info(
            f"[PacketAssembler] Done: {len(packet.tossups)} tossups, {len(packet.bonuses)} bonuses "
            f"({resolution.regenerations} cycle regeneration(s), fell_back={ordering.fell_back})"
        )
        return packet

    def _generate_bonuses(self, topic: str, context: str, kb: KnowledgeBase, tossups: Sequence[Tossup]) -> List[Bonus]:
        count = self.config.effective_bonus_count
        bonuses: List[Bonus] = []
        for i in range(1, count + 1):
            logger.info(f"[PacketAssembler] Writing bonus {i}/{count}")
            used = [t.answer_text for t in tossups] + BonusWriter.collect_answers(bonuses)
            bonuses.append(self.bonus_writer.write(topic, context, kb, used))
        return bonuses

    # ------------------------------------------------------------------ #
    # Single items
    # ------------------------------------------------------------------ #
    def generate_tossup(self, topic: str, context: str = "", existing: Sequence[Tossup] = ()) -> Tossup:
        """
        One tossup whose answer differs from every answer in existing.

        Raises:
            SelectionShortfall: no acceptable answer was found
        """
        topic, context = self._validate_request(topic, context)
        kb = self.aggregator.gather(topic, context)
        exclude = [t.answer_text for t in existing]
        answers = self.selector.select_answers(topic, context, kb, 1, exclude=exclude)
        if not answers:
            raise SelectionShortfall(
                f"[PacketAssembler] no answer selected for single tossup on '{topic}'",
                accepted=[],
                target=1,
            )
        return self.crafter.craft(topic, answers[0], kb, context)

    def generate_bonus(
        self,
        topic: str,
        context: str = "",
        existing_tossups: Sequence[Tossup] = (),
        existing_bonuses: Sequence[Bonus] = (),
    ) -> Bonus:
        topic, context = self._validate_request(topic, context)
        kb = self.aggregator.gather(topic, context)
        used = [t.answer_text for t in existing_tossups] + BonusWriter.collect_answers(existing_bonuses)
        return self.bonus_writer.write(topic, context, kb, used)

    # ------------------------------------------------------------------ #
    # Checks
    # ------------------------------------------------------------------ #
    @staticmethod
    def _validate_request(topic: str, context: str) -> tuple:
        topic = (topic or "").strip()
        if not topic:
            raise InvalidRequestError("topic must be a non-blank string")
        return topic, (context or "").strip()

    def _verify_invariants(self, packet: Packet, target: int) -> None:
        if len(packet.tossups) != target:
            raise PacketValidationError(
                f"packet has {len(packet.tossups)} tossups, expected {target}"
            )

        keys = [normalize_answer(a) for a in packet.answers]
        if len(set(keys)) != len(keys) or not all(keys):
            raise PacketValidationError(f"tossup answers are not pairwise distinct: {packet.answers}")

        graph = self.analyzer.analyze(packet.tossups)
        if graph.has_reciprocal_edge():
            raise PacketValidationError(
                f"finalized packet still has reciprocal references: {graph.reciprocal_pairs()}"
            )


__all__ = ["PacketAssembler", "PACKET_NAME_TEMPLATE"]
