"""Configuration, persistence and client plumbing tests"""

import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from packetgen.shared.api_config import clamp_max_tokens, get_generator_client_params
from packetgen.shared.config import LLMRuntimeConfig, PacketGenConfig, create_default_config
from packetgen.shared.llm_interface import (
    LLMClient,
    clear_retry_audit,
    get_network_config,
    get_retry_audit,
    set_network_config,
)
from packetgen.shared.packet_store import JsonPacketStore
from packetgen.shared.randomness import SeededRandomSource
from packetgen.shared.schemas import Bonus, BonusPart, KnowledgeBase, Packet, Tossup


class TestConfig(unittest.TestCase):

    def test_defaults(self):
        with tempfile.TemporaryDirectory() as tmp:
            config = create_default_config("RUN_X", output_root=tmp)
            self.assertEqual(config.output_dir, Path(tmp) / "RUN_X")
            self.assertTrue(config.output_dir.exists())
        self.assertEqual(config.target_tossup_count, 5)
        self.assertEqual(config.selection.candidate_multiplier, 3)
        self.assertEqual(config.selection.max_iterations, 5)
        self.assertEqual(config.parser.object_max_attempts, 10)
        self.assertEqual(config.parser.array_max_attempts, 5)
        self.assertEqual(config.crafter.power_mark, "(*)")

    def test_effective_bonus_count(self):
        config = PacketGenConfig(run_id="x", target_tossup_count=4, llm=LLMRuntimeConfig(preset="dummy"))
        self.assertEqual(config.effective_bonus_count, 4)
        config.bonus_count = 2
        self.assertEqual(config.effective_bonus_count, 2)
        config.generate_bonuses = False
        self.assertEqual(config.effective_bonus_count, 0)

    def test_runtime_config_fills_from_preset(self):
        llm = LLMRuntimeConfig(preset="ollama_local", top_p=0.9)
        self.assertEqual(llm.api_type, "openai")
        self.assertEqual(llm.model_name, get_generator_client_params("ollama_local")["model_name"])
        self.assertEqual(llm.api_key, "ollama")
        self.assertEqual(llm.sampling_kwargs(), {"top_p": 0.9})

    def test_unknown_preset(self):
        with self.assertRaises(ValueError):
            get_generator_client_params("no_such_preset")

    def test_clamp_never_exceeds_request(self):
        self.assertLessEqual(clamp_max_tokens("some-unknown-model", 1234), 1234)


class TestDummyClient(unittest.TestCase):

    def test_dummy_candidates_are_unique(self):
        client = LLMClient(api_type="dummy", model_name="dummy-quizbowl")
        first = json.loads(client.generate([{"role": "user", "content": "x"}], metadata={"stage": "candidates", "count": 2}))
        second = json.loads(client.generate([{"role": "user", "content": "x"}], metadata={"stage": "candidates", "count": 2}))
        self.assertEqual(len(set(first + second)), 4)

    def test_unsupported_backend(self):
        with self.assertRaises(ValueError):
            LLMClient(api_type="carrier-pigeon", model_name="x")


class FlakyClient(LLMClient):
    """Dummy client whose first calls raise a connection error"""

    def __init__(self, failures, **kwargs):
        super().__init__(api_type="dummy", model_name="flaky", **kwargs)
        self.failures = failures

    def _do_generate(self, messages, temperature, max_tokens, metadata, **kwargs):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("Connection reset by peer")
        return "ok"


class TestNetworkRecovery(unittest.TestCase):

    def setUp(self):
        clear_retry_audit()

    def tearDown(self):
        set_network_config()
        clear_retry_audit()

    @mock.patch("packetgen.shared.llm_interface.time.sleep")
    def test_network_wait_does_not_consume_attempts(self, sleep):
        client = FlakyClient(failures=3)
        self.assertEqual(client.generate([{"role": "user", "content": "x"}], max_retries=1), "ok")
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [5.0, 10.0, 20.0])

    @mock.patch("packetgen.shared.llm_interface.time.sleep")
    def test_disabled_recovery_counts_as_failed_attempt(self, sleep):
        set_network_config(enabled=False)
        self.assertFalse(get_network_config().enabled)
        client = FlakyClient(failures=1)
        with self.assertRaises(ConnectionError):
            client.generate([{"role": "user", "content": "x"}], max_retries=1)
        sleep.assert_not_called()
        self.assertEqual(get_retry_audit().get_summary()["total_failures"], 1)


class TestJsonPacketStore(unittest.TestCase):

    def test_save_writes_utf8_json(self):
        part = BonusPart(question_text="Name this.", answer_text="ANSWER: Ferredoxin")
        packet = Packet(
            name="Generated Packet (Knowledge-First): Photosynthèse - 1234",
            tossups=[Tossup(question_text="Name this (*) enzyme.", answer_text="ANSWER: Rubisco")],
            bonuses=[Bonus(preamble="For 10 points each:", parts=(part, part, part))],
        )
        with tempfile.TemporaryDirectory() as tmp:
            store = JsonPacketStore(tmp)
            store.save(packet)
            path = store.last_path
            self.assertEqual(path.parent, Path(tmp) / "packets")
            text = path.read_text(encoding="utf-8")
        self.assertIn("Photosynthèse", text)
        data = json.loads(text)
        self.assertEqual(data["tossups"], [{"question": "Name this (*) enzyme.", "answer": "ANSWER: Rubisco"}])
        self.assertEqual(len(data["bonuses"][0]["parts"]), 3)


class TestRecords(unittest.TestCase):

    def test_bonus_requires_three_parts(self):
        part = BonusPart(question_text="q", answer_text="ANSWER: a")
        with self.assertRaises(ValueError):
            Bonus(preamble="p", parts=(part, part))

    def test_knowledge_render_skips_empty_sections(self):
        kb = KnowledgeBase(topic="Photosynthesis")
        kb.append("comprehensive", "General.")
        kb.append("context-specific", "   ")
        kb.append("deeper-search-2", "Deeper.")
        self.assertEqual(
            kb.render(),
            "=== Comprehensive Knowledge ===\nGeneral.\n\n=== Iteration 2 Deeper Search ===\nDeeper.",
        )

    def test_seeded_source_is_reproducible(self):
        picks_a = [SeededRandomSource(7).choice([1, 2, 3, 4]) for _ in range(3)]
        picks_b = [SeededRandomSource(7).choice([1, 2, 3, 4]) for _ in range(3)]
        self.assertEqual(picks_a, picks_b)
        with self.assertRaises(ValueError):
            SeededRandomSource(1).choice([])


if __name__ == "__main__":
    unittest.main()
