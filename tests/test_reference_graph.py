"""Cross-reference graph and ordering tests"""

import unittest

from packetgen.generation.pipeline.packet_orderer import PacketOrderer
from packetgen.generation.utils.reference_graph import (
    ReferenceEdge,
    ReferenceGraph,
    analyze_cross_references,
)

from tests.fakes import make_tossup


class TestAnalyzeCrossReferences(unittest.TestCase):

    def test_edge_when_question_contains_other_answer(self):
        tossups = [
            make_tossup("This process is catalyzed by RUBISCO in the stroma.", "ANSWER: Calvin cycle"),
            make_tossup("This enzyme is the most abundant protein on Earth.", "ANSWER: Rubisco [or RuBisCO]"),
        ]
        graph = analyze_cross_references(tossups)
        self.assertEqual(graph.edges(), [ReferenceEdge(0, 1)])
        self.assertFalse(graph.has_reciprocal_edge())

    def test_reciprocal_pair(self):
        tossups = [
            make_tossup("Its light reactions feed the calvin cycle.", "ANSWER: Photosynthesis"),
            make_tossup("This stage of photosynthesis fixes carbon.", "ANSWER: Calvin cycle"),
            make_tossup("Name this pigment.", "ANSWER: Chlorophyll"),
        ]
        graph = analyze_cross_references(tossups)
        self.assertEqual(graph.reciprocal_pairs(), [(0, 1)])
        self.assertEqual(graph.reciprocal_nodes(), [0, 1])

    def test_line_break_inside_answer_phrase_still_matches(self):
        tossups = [
            make_tossup("Its light reactions feed the Calvin\ncycle  via ATP.", "ANSWER: Photosynthesis"),
            make_tossup("This stage fixes carbon in the stroma.", "ANSWER: Calvin   cycle"),
        ]
        self.assertEqual(analyze_cross_references(tossups).edges(), [ReferenceEdge(0, 1)])

    def test_empty_normalized_answer_adds_no_edges(self):
        tossups = [
            make_tossup("Anything at all.", "ANSWER: (blank)"),
            make_tossup("Something else entirely.", "ANSWER: Stroma"),
        ]
        self.assertEqual(analyze_cross_references(tossups).edge_count(), 0)

    def test_own_answer_is_not_an_edge(self):
        tossups = [make_tossup("Name this stroma feature.", "ANSWER: Stroma")]
        self.assertEqual(analyze_cross_references(tossups).edge_count(), 0)

    def test_three_cycle_is_not_reciprocal(self):
        graph = ReferenceGraph(3)
        graph.add_edge(0, 1)
        graph.add_edge(1, 2)
        graph.add_edge(2, 0)
        self.assertFalse(graph.has_reciprocal_edge())
        self.assertEqual(graph.topo_sort(), [])

    def test_add_edge_bounds(self):
        graph = ReferenceGraph(2)
        with self.assertRaises(IndexError):
            graph.add_edge(0, 2)


class TestPacketOrderer(unittest.TestCase):

    def test_referenced_answer_comes_first(self):
        tossups = [
            make_tossup("Discovered alongside the calvin cycle work.", "ANSWER: Melvin Calvin"),
            make_tossup("This set of reactions fixes carbon.", "ANSWER: Calvin cycle"),
            make_tossup("Name this organelle.", "ANSWER: Chloroplast"),
        ]
        graph = analyze_cross_references(tossups)
        ordering = PacketOrderer().order(tossups, graph)

        self.assertFalse(ordering.fell_back)
        self.assertEqual(ordering.indices, [1, 2, 0])
        self.assertEqual([t.answer_text for t in ordering.tossups][0], "ANSWER: Calvin cycle")
        for edge in graph.edges():
            self.assertLess(ordering.indices.index(edge.to_index), ordering.indices.index(edge.from_index))

    def test_independent_tossups_keep_order(self):
        tossups = [make_tossup(f"Question {i}.", f"ANSWER: Item {chr(65 + i)}") for i in range(4)]
        ordering = PacketOrderer().order(tossups, analyze_cross_references(tossups))
        self.assertEqual(ordering.indices, [0, 1, 2, 3])

    def test_falls_back_to_original_order(self):
        tossups = [make_tossup(f"Question {i}.", f"ANSWER: Item {chr(65 + i)}") for i in range(3)]
        graph = ReferenceGraph(3)
        graph.add_edge(0, 1)
        graph.add_edge(1, 2)
        graph.add_edge(2, 0)
        ordering = PacketOrderer().order(tossups, graph)
        self.assertTrue(ordering.fell_back)
        self.assertEqual(ordering.tossups, tossups)
        self.assertEqual(ordering.indices, [0, 1, 2])


if __name__ == "__main__":
    unittest.main()
