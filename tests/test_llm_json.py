"""Structured response parsing tests"""

import json
import unittest

from packetgen.shared.llm_json import (
    StructuredResponseParser,
    candidate_scores_shape,
    decode_structured,
    extract_json_candidate,
    question_shape,
    sanitize_json_strings,
    string_list_shape,
    triplet_shape,
)
from packetgen.shared.schemas import GenerationFailure, ParseFailure

from tests.fakes import FailingLLMClient, ScriptedLLMClient


class TestExtraction(unittest.TestCase):

    def test_object_inside_prose_and_fences(self):
        text = 'Sure! ```json\n{"question": "Name this."}\n``` Hope that helps.'
        self.assertEqual(extract_json_candidate(text, "object"), '{"question": "Name this."}')

    def test_array(self):
        text = 'Here: ["ANSWER: A", "ANSWER: B"] done'
        self.assertEqual(extract_json_candidate(text, "array"), '["ANSWER: A", "ANSWER: B"]')

    def test_missing_container(self):
        self.assertIsNone(extract_json_candidate("no json here", "object"))
        self.assertIsNone(extract_json_candidate("", "array"))


class TestSanitize(unittest.TestCase):

    def test_newline_inside_string_is_escaped(self):
        self.assertEqual(sanitize_json_strings('{"q": "line one\nline two"}'), '{"q": "line one\\nline two"}')

    def test_newline_outside_string_is_kept(self):
        self.assertEqual(sanitize_json_strings('{\n"q": "x"\n}'), '{\n"q": "x"\n}')

    def test_carriage_return_dropped(self):
        self.assertEqual(sanitize_json_strings('{"q": "a\rb"}'), '{"q": "ab"}')

    def test_invalid_escape_removed(self):
        self.assertEqual(sanitize_json_strings('{"q": "a\\qb"}'), '{"q": "aqb"}')

    def test_valid_escape_kept(self):
        self.assertEqual(sanitize_json_strings('{"q": "say \\"hi\\""}'), '{"q": "say \\"hi\\""}')


class TestDecodeStructured(unittest.TestCase):

    def test_question_with_literal_newline(self):
        result = decode_structured('{"question": "Clue one.\nClue two."}', question_shape())
        self.assertEqual(result.question, "Clue one.\nClue two.")

    def test_triplet_requires_all_fields(self):
        with self.assertRaises(ValueError):
            decode_structured('{"theme": "T", "answer_a": "A", "answer_b": "B"}', triplet_shape())

    def test_score_count_must_be_met(self):
        text = '[{"index": 1, "score": 8}]'
        with self.assertRaises(ValueError):
            decode_structured(text, candidate_scores_shape(2))

    def test_string_list_drops_blanks(self):
        self.assertEqual(decode_structured('["ANSWER: A", "", "  "]', string_list_shape()), ["ANSWER: A"])

    def test_empty_string_list_is_valid(self):
        self.assertEqual(decode_structured("[]", string_list_shape()), [])
        self.assertEqual(decode_structured('Nothing new: ["", " "]', string_list_shape()), [])

    def test_duplicate_score_indices_do_not_cover_every_candidate(self):
        item = {"index": 1, "score": 8, "reasoning": "r"}
        with self.assertRaises(ValueError):
            decode_structured(json.dumps([item] * 3), candidate_scores_shape(3))

    def test_out_of_range_index_does_not_count_toward_coverage(self):
        text = '[{"index": 1, "score": 8}, {"index": 9, "score": 5}]'
        with self.assertRaises(ValueError):
            decode_structured(text, candidate_scores_shape(2))


class TestStructuredResponseParser(unittest.TestCase):

    def test_valid_first_response_needs_no_remediation(self):
        client = ScriptedLLMClient({})
        parser = StructuredResponseParser(client)
        result = parser.parse('["ANSWER: A"]', string_list_shape())
        self.assertEqual(result, ["ANSWER: A"])
        self.assertEqual(client.calls, [])

    def test_array_ceiling_terminates_with_parse_failure(self):
        client = ScriptedLLMClient({"remediation": "still not json"})
        parser = StructuredResponseParser(client, array_max_attempts=5)
        with self.assertRaises(ParseFailure) as ctx:
            parser.parse("garbage", string_list_shape())
        self.assertEqual(len(client.calls_for("remediation")), 4)
        self.assertEqual(ctx.exception.attempts, 5)
        self.assertEqual(ctx.exception.raw_response, "still not json")

    def test_object_ceiling(self):
        client = ScriptedLLMClient({"remediation": "{broken"})
        parser = StructuredResponseParser(client)
        with self.assertRaises(ParseFailure):
            parser.parse("{broken", question_shape())
        self.assertEqual(len(client.calls_for("remediation")), 9)

    def test_remediation_repairs_response(self):
        client = ScriptedLLMClient({"remediation": '{"question": "Fixed."}'})
        parser = StructuredResponseParser(client)
        result = parser.parse('{"question": "Broken', question_shape())
        self.assertEqual(result.question, "Fixed.")
        self.assertEqual(len(client.calls), 1)
        prompt = ScriptedLLMClient.user_prompt(client.calls[0])
        self.assertIn('{"question": "Broken', prompt)
        self.assertEqual(client.calls[0]["metadata"]["agent"], "StructuredResponseParser")

    def test_remediation_client_error_is_generation_failure(self):
        parser = StructuredResponseParser(FailingLLMClient())
        with self.assertRaises(GenerationFailure):
            parser.parse("garbage", string_list_shape())


if __name__ == "__main__":
    unittest.main()
