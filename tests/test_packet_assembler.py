"""End-to-end packet assembly tests"""

import json
import tempfile
import unittest
from pathlib import Path

from packetgen.generation.pipeline.packet_assembler import PacketAssembler
from packetgen.generation.utils.reference_graph import analyze_cross_references
from packetgen.shared.answer_line import normalize_answer
from packetgen.shared.config import LLMRuntimeConfig, PacketGenConfig
from packetgen.shared.schemas import InvalidRequestError, SelectionShortfall

from tests.fakes import (
    FirstChoice,
    RecordingStore,
    ScriptedLLMClient,
    as_json,
    clean_question,
    make_tossup,
    question_json,
    route_by_metadata,
)

ANSWERS = [
    "ANSWER: Calvin cycle",
    "ANSWER: Rubisco",
    "ANSWER: Stroma",
    "ANSWER: Thylakoid",
    "ANSWER: Photosystem II",
    "ANSWER: Plastoquinone",
    "ANSWER: Ferredoxin",
    "ANSWER: Chlorophyll a",
    "ANSWER: Bundle sheath",
]


def scripted_routes(**overrides):
    routes = {
        "comprehensive": "Light reactions, carbon fixation, pigments.",
        "candidates": as_json(ANSWERS),
        "question": question_json(clean_question()),
        "triplet": as_json({
            "theme": "Electron carriers",
            "answer_a": "Plastocyanin",
            "answer_b": "Cytochrome b6f",
            "answer_c": "NADP+ reductase",
        }),
        "preamble": as_json({"preamble": "Name these electron carriers. For 10 points each:"}),
        "bonus-part": question_json(" ".join(["clue"] * 35)),
        "gap-analysis": as_json({"missing_aspects": "none", "follow_up_query": "more"}),
        "deeper-search": "More notes.",
    }
    routes.update(overrides)
    return routes


class AssemblerTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.output_dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def make_config(self, **kwargs):
        kwargs.setdefault("llm", LLMRuntimeConfig(preset="dummy"))
        return PacketGenConfig(run_id="test", output_dir=self.output_dir, **kwargs)

    def make_assembler(self, client, **config_kwargs):
        self.store = RecordingStore()
        return PacketAssembler(
            self.make_config(**config_kwargs),
            llm_client=client,
            packet_store=self.store,
            random_source=FirstChoice(),
        )


class TestGeneratePacket(AssemblerTestCase):

    def test_photosynthesis_three_tossups_no_context(self):
        client = ScriptedLLMClient(scripted_routes())
        assembler = self.make_assembler(client, target_tossup_count=3, bonus_count=1)

        packet = assembler.generate_packet("Photosynthesis")

        self.assertEqual(len(packet.tossups), 3)
        keys = [normalize_answer(a) for a in packet.answers]
        self.assertEqual(len(set(keys)), 3)
        self.assertFalse(analyze_cross_references(packet.tossups).has_reciprocal_edge())
        self.assertIn("Photosynthesis", packet.name)
        self.assertTrue(packet.name.startswith("Generated Packet (Knowledge-First): Photosynthesis - "))
        self.assertEqual(self.store.saved, [packet])
        # No context: evaluation is skipped entirely
        self.assertEqual(client.calls_for("evaluation"), [])

        self.assertEqual(len(packet.bonuses), 1)
        self.assertEqual(len(packet.bonuses[0].parts), 3)
        triplet_prompt = ScriptedLLMClient.user_prompt(client.calls_for("triplet")[0])
        for answer in packet.answers:
            self.assertIn(answer, triplet_prompt)

        log_dir = self.output_dir / "logs" / "prompts"
        self.assertTrue((log_dir / "QuestionCrafter.jsonl").exists())

    def test_bonus_count_defaults_to_tossup_count(self):
        triplets = [
            as_json({"theme": "T", "answer_a": f"A{i}", "answer_b": f"B{i}", "answer_c": f"C{i}"})
            for i in range(2)
        ]
        client = ScriptedLLMClient(scripted_routes(triplet=triplets))
        packet = self.make_assembler(client, target_tossup_count=2).generate_packet("Photosynthesis")
        self.assertEqual(len(packet.bonuses), 2)
        second_prompt = ScriptedLLMClient.user_prompt(client.calls_for("triplet")[1])
        self.assertIn("ANSWER: A0", second_prompt)

    def test_bonuses_disabled(self):
        client = ScriptedLLMClient(scripted_routes())
        packet = self.make_assembler(client, target_tossup_count=2, generate_bonuses=False).generate_packet("Photosynthesis")
        self.assertEqual(packet.bonuses, [])
        self.assertEqual(client.calls_for("triplet"), [])

    def test_reciprocal_questions_are_regenerated(self):
        questions = route_by_metadata("answer", {
            "ANSWER: Calvin cycle": question_json("This cycle depends on rubisco. (*) Name it."),
            "ANSWER: Rubisco": question_json("This enzyme drives the calvin cycle. (*) Name it."),
        }, default=question_json(clean_question()))
        client = ScriptedLLMClient(scripted_routes(question=questions))

        packet = self.make_assembler(client, target_tossup_count=3, generate_bonuses=False).generate_packet("Photosynthesis")

        self.assertNotIn("ANSWER: Calvin cycle", packet.answers)
        self.assertIn("ANSWER: Thylakoid", packet.answers)
        self.assertFalse(analyze_cross_references(packet.tossups).has_reciprocal_edge())
        self.assertEqual(len(self.store.saved), 1)

    def test_shortfall_persists_nothing(self):
        client = ScriptedLLMClient(scripted_routes(candidates=as_json(["ANSWER: Calvin cycle"])))
        assembler = self.make_assembler(client, target_tossup_count=3)
        with self.assertRaises(SelectionShortfall) as ctx:
            assembler.generate_packet("Photosynthesis")
        self.assertEqual(ctx.exception.accepted, ["ANSWER: Calvin cycle"])
        self.assertEqual(ctx.exception.target, 3)
        self.assertEqual(self.store.saved, [])
        self.assertEqual(client.calls_for("question"), [])

    def test_invalid_requests(self):
        for count in (0, 31):
            client = ScriptedLLMClient(scripted_routes())
            with self.assertRaises(InvalidRequestError):
                self.make_assembler(client, target_tossup_count=count).generate_packet("Photosynthesis")
            self.assertEqual(client.calls, [])

        client = ScriptedLLMClient(scripted_routes())
        with self.assertRaises(InvalidRequestError):
            self.make_assembler(client).generate_packet("   ")
        self.assertEqual(client.calls, [])


class TestSingleItems(AssemblerTestCase):

    def test_generate_tossup_excludes_existing(self):
        client = ScriptedLLMClient(scripted_routes())
        assembler = self.make_assembler(client)
        existing = [make_tossup(clean_question(), "ANSWER: Calvin cycle")]

        tossup = assembler.generate_tossup("Photosynthesis", existing=existing)

        self.assertEqual(tossup.answer_text, "ANSWER: Rubisco")
        self.assertEqual(self.store.saved, [])

    def test_generate_tossup_shortfall(self):
        client = ScriptedLLMClient(scripted_routes(candidates=as_json(["ANSWER: Calvin cycle"])))
        assembler = self.make_assembler(client)
        with self.assertRaises(SelectionShortfall):
            assembler.generate_tossup("Photosynthesis", existing=[make_tossup(clean_question(), "ANSWER: Calvin cycle")])

    def test_generate_bonus(self):
        client = ScriptedLLMClient(scripted_routes())
        existing = [make_tossup(clean_question(), "ANSWER: Rubisco")]
        bonus = self.make_assembler(client).generate_bonus("Photosynthesis", existing_tossups=existing)
        self.assertEqual(bonus.answers, ["ANSWER: Plastocyanin", "ANSWER: Cytochrome b6f", "ANSWER: NADP+ reductase"])
        self.assertIn("ANSWER: Rubisco", ScriptedLLMClient.user_prompt(client.calls_for("triplet")[0]))


class TestDummyBackend(AssemblerTestCase):

    def test_offline_smoke_run_writes_packet(self):
        config = self.make_config(target_tossup_count=3)
        assembler = PacketAssembler(config)

        packet = assembler.generate_packet("Photosynthesis")

        self.assertEqual(len(packet.tossups), 3)
        self.assertEqual(len(packet.bonuses), 3)
        saved = assembler.packet_store.last_path
        self.assertIsNotNone(saved)
        with open(saved, encoding="utf-8") as f:
            data = json.load(f)
        self.assertEqual(data["name"], packet.name)
        self.assertEqual(len(data["tossups"]), 3)
        self.assertEqual(set(data["tossups"][0]), {"question", "answer"})


if __name__ == "__main__":
    unittest.main()
