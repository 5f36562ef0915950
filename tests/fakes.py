"""Test doubles shared by the pipeline tests.

ScriptedLLMClient answers by metadata["stage"]:
- str: returned every time
- list: consumed in order, the last item repeats
- callable(messages, metadata) -> str
"""

import json
from typing import Any, Callable, Dict, List, Sequence

from packetgen.shared.schemas import KnowledgeBase, Tossup


class ScriptedLLMClient:
    model_name = "scripted"

    def __init__(self, routes: Dict[str, Any] = None) -> None:
        self.routes = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []

    def generate(self, messages, temperature=None, max_tokens=None, metadata=None, **kwargs) -> str:
        metadata = dict(metadata or {})
        self.calls.append({"messages": messages, "metadata": metadata})
        stage = metadata.get("stage")
        if stage not in self.routes:
            raise KeyError(f"no scripted response for stage {stage!r}")

        route = self.routes[stage]
        if callable(route):
            return route(messages, metadata)
        if isinstance(route, list):
            return route.pop(0) if len(route) > 1 else route[0]
        return route

    def calls_for(self, stage: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["metadata"].get("stage") == stage]

    @staticmethod
    def user_prompt(call: Dict[str, Any]) -> str:
        return call["messages"][-1]["content"]


class FailingLLMClient:
    model_name = "failing"

    def __init__(self, error: Exception = None) -> None:
        self.error = error or RuntimeError("connection reset")
        self.calls = 0

    def generate(self, messages, **kwargs) -> str:
        self.calls += 1
        raise self.error


class FirstChoice:
    """RandomSource that always picks the first item."""

    def __init__(self) -> None:
        self.seen: List[Sequence[Any]] = []

    def choice(self, items):
        self.seen.append(list(items))
        return items[0]


class RecordingStore:
    def __init__(self) -> None:
        self.saved = []

    def save(self, packet) -> None:
        self.saved.append(packet)


def as_json(value: Any) -> str:
    return json.dumps(value)


def question_json(text: str) -> str:
    return json.dumps({"question": text})


def clean_question(label: str = "this subject") -> str:
    return (
        f"An early monograph tied {label} to a disputed marginal note in a regional archive. (*) "
        "A later survey linked it to a minor technical controversy. "
        "For ten points, name this subject covered in every introductory account."
    )


def make_kb(topic: str = "Photosynthesis", context: str = "") -> KnowledgeBase:
    kb = KnowledgeBase(topic=topic, context=context)
    kb.append("comprehensive", f"Background notes on {topic}.")
    return kb


def make_tossup(question: str, answer: str) -> Tossup:
    return Tossup(question_text=question, answer_text=answer)


def route_by_metadata(key: str, table: Dict[str, str], default: str = "") -> Callable[[Any, Dict[str, Any]], str]:
    def route(messages, metadata):
        return table.get(metadata.get(key), default)
    return route
