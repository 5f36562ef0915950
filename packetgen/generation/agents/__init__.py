# packetgen/generation/agents/__init__.py
"""
Pipeline agents. Each one owns a single kind of generation call:
- KnowledgeAggregator: fact base gathering and gap-analysis deepening
- CandidateAnswerGenerator / CandidateEvaluator / AnswerSelectionLoop: answer selection
- QuestionCrafter: pyramidal tossup text
- BonusWriter: themed bonuses
"""

from packetgen.generation.agents.answer_generator import CandidateAnswerGenerator
from packetgen.generation.agents.answer_selector import AnswerSelectionLoop
from packetgen.generation.agents.bonus_writer import BonusWriter
from packetgen.generation.agents.candidate_evaluator import CandidateEvaluator
from packetgen.generation.agents.knowledge_aggregator import KnowledgeAggregator
from packetgen.generation.agents.question_crafter import QuestionCrafter

__all__ = [
    "KnowledgeAggregator",
    "CandidateAnswerGenerator",
    "CandidateEvaluator",
    "AnswerSelectionLoop",
    "QuestionCrafter",
    "BonusWriter",
]
