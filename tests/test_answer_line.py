"""Answer-line helper tests"""

import unittest

from packetgen.shared.answer_line import (
    dedupe_answers,
    format_answer_line,
    mentions_answer,
    normalize_answer,
    normalized_set,
)


class TestNormalizeAnswer(unittest.TestCase):

    def test_strips_marker_alternates_and_clarification(self):
        line = "ANSWER: Mount Vesuvius [or Vesuvio] (accept Somma-Vesuvius complex)"
        self.assertEqual(normalize_answer(line), "mount vesuvius")

    def test_marker_is_case_insensitive(self):
        self.assertEqual(normalize_answer("answer:   Calvin Cycle"), "calvin cycle")

    def test_bare_answer(self):
        self.assertEqual(normalize_answer("Rubisco"), "rubisco")

    def test_empty_inputs(self):
        self.assertEqual(normalize_answer(""), "")
        self.assertEqual(normalize_answer("ANSWER: [or nothing] (just a note)"), "")


class TestFormatAnswerLine(unittest.TestCase):

    def test_adds_marker(self):
        self.assertEqual(format_answer_line("  Calvin cycle "), "ANSWER: Calvin cycle")

    def test_keeps_existing_marker(self):
        self.assertEqual(format_answer_line("answer: Calvin cycle"), "ANSWER: Calvin cycle")

    def test_blank(self):
        self.assertEqual(format_answer_line("   "), "")
        self.assertEqual(format_answer_line("ANSWER:  "), "")


class TestDedupe(unittest.TestCase):

    def test_first_occurrence_wins(self):
        lines = ["ANSWER: Rubisco", "ANSWER: rubisco [or RuBisCO]", "ANSWER: Stroma"]
        self.assertEqual(dedupe_answers(lines), ["ANSWER: Rubisco", "ANSWER: Stroma"])

    def test_exclusions_are_normalized(self):
        lines = ["ANSWER: Rubisco", "ANSWER: Stroma"]
        self.assertEqual(dedupe_answers(lines, exclude=["ANSWER: RUBISCO (enzyme)"]), ["ANSWER: Stroma"])

    def test_normalized_set_skips_blanks(self):
        self.assertEqual(normalized_set(["ANSWER: A", "", "ANSWER: [or B]"]), {"a"})


class TestMentionsAnswer(unittest.TestCase):

    def test_whole_word_match(self):
        self.assertTrue(mentions_answer("This enzyme, Rubisco, fixes carbon.", "ANSWER: Rubisco"))

    def test_partial_word_does_not_match(self):
        self.assertFalse(mentions_answer("Studies of chlorophyllase activity", "ANSWER: chlorophyll"))

    def test_empty_answer_never_matches(self):
        self.assertFalse(mentions_answer("anything", "ANSWER: (none)"))


if __name__ == "__main__":
    unittest.main()
