from __future__ import annotations

"""
packetgen/shared/config.py

Centralized configuration data structures for one packet-generation run:
- PacketGenConfig: Global config for one run (request size, output dir, sub-configs)
- LLMRuntimeConfig: Backend and sampling parameters (per-request overrides)
- ParserConfig / SelectionConfig / CrafterConfig / CycleConfig / BonusConfig:
  ceilings and thresholds of the individual pipeline stages

Note:
- Only pure data structures plus create_default_config()
- Backend presets and API keys live in api_config.py
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from packetgen.shared.api_config import get_generator_client_params


MIN_TOSSUP_COUNT = 1
MAX_TOSSUP_COUNT = 30
DEFAULT_TOSSUP_COUNT = 5


@dataclass
class LLMRuntimeConfig:
    """
    Runtime LLM invocation configuration.

    Defaults come from the active preset in api_config.py (GENERATOR_PRESET / PACKETGEN_PRESET).
    temperature / top_p / frequency_penalty / presence_penalty are per-request overrides;
    None means "let the backend decide".
    """
    preset: Optional[str] = None
    api_type: Optional[str] = None                # "openai" / "google_genai" / "dummy"
    model_name: Optional[str] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    max_tokens: Optional[int] = None
    base_url: Optional[str] = None
    api_key_env: Optional[str] = None
    # Preset-provided key; LLMClient falls back to api_key_env when None
    api_key: Optional[str] = None
    verbose: bool = False

    def __post_init__(self) -> None:
        params = get_generator_client_params(self.preset, self.model_name)
        if self.api_type is None:
            self.api_type = params["api_type"]
        if self.model_name is None:
            self.model_name = params["model_name"]
        if self.temperature is None:
            self.temperature = params["temperature"]
        if self.max_tokens is None:
            self.max_tokens = params["max_tokens"]
        if self.base_url is None:
            self.base_url = params["base_url"]
        if self.api_key is None and self.api_type == params["api_type"]:
            self.api_key = params["api_key"]
        if self.api_key_env is None:
            self.api_key_env = params["api_key_env"]

    def sampling_kwargs(self) -> dict:
        """
        Extra sampling parameters forwarded to the OpenAI-compatible backend when set.
        """
        extra = {}
        if self.top_p is not None:
            extra["top_p"] = self.top_p
        if self.frequency_penalty is not None:
            extra["frequency_penalty"] = self.frequency_penalty
        if self.presence_penalty is not None:
            extra["presence_penalty"] = self.presence_penalty
        return extra


@dataclass
class ParserConfig:
    """StructuredResponseParser ceilings (attempts, including the first parse)."""
    object_max_attempts: int = 10
    array_max_attempts: int = 5


@dataclass
class SelectionConfig:
    """AnswerSelectionLoop + CandidateEvaluator."""
    candidate_multiplier: int = 3
    max_iterations: int = 5
    # Threshold when additional context is supplied / when it is not
    context_threshold: float = 6.0
    open_threshold: float = 4.0
    # Score given to every candidate when there is no context to judge against
    uninspected_score: float = 7.0


@dataclass
class CrafterConfig:
    """
    QuestionCrafter.

    The sentence / character windows are soft: violations are logged, not retried.
    """
    max_attempts: int = 5
    require_power_mark: bool = True
    power_mark: str = "(*)"
    min_sentences: int = 3
    max_sentences: int = 5
    min_chars: int = 400
    max_chars: int = 600


@dataclass
class CycleConfig:
    """CycleResolver."""
    max_attempts: int = 5
    # None -> nondeterministic pick; set for reproducible runs
    seed: Optional[int] = None


@dataclass
class BonusConfig:
    """BonusWriter."""
    max_attempts: int = 5
    min_part_words: int = 30
    max_part_words: int = 80


@dataclass
class PacketGenConfig:
    """
    Global configuration object for a single packet-generation run.

    Used by:
    - run.py
    - PacketAssembler and the agents it builds
    """
    run_id: str
    target_tossup_count: int = DEFAULT_TOSSUP_COUNT
    generate_bonuses: bool = True
    # None -> one bonus per tossup
    bonus_count: Optional[int] = None
    output_dir: Path = field(default_factory=lambda: Path("outputs"))
    llm: LLMRuntimeConfig = field(default_factory=LLMRuntimeConfig)
    parser: ParserConfig = field(default_factory=ParserConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    crafter: CrafterConfig = field(default_factory=CrafterConfig)
    cycles: CycleConfig = field(default_factory=CycleConfig)
    bonus: BonusConfig = field(default_factory=BonusConfig)
    # Write packets/<name>.json through JsonPacketStore when no store is injected
    save_packet: bool = True

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)

    @property
    def effective_bonus_count(self) -> int:
        if not self.generate_bonuses:
            return 0
        if self.bonus_count is None:
            return self.target_tossup_count
        return max(0, self.bonus_count)


def create_default_config(run_id: str, output_root: str | Path = "outputs") -> PacketGenConfig:
    """
    Create a PacketGenConfig with default settings, ensuring output directory exists.
    """
    base_output_dir = Path(output_root) / run_id
    base_output_dir.mkdir(parents=True, exist_ok=True)

    return PacketGenConfig(
        run_id=run_id,
        output_dir=base_output_dir,
    )


__all__ = [
    "MIN_TOSSUP_COUNT",
    "MAX_TOSSUP_COUNT",
    "DEFAULT_TOSSUP_COUNT",
    "LLMRuntimeConfig",
    "ParserConfig",
    "SelectionConfig",
    "CrafterConfig",
    "CycleConfig",
    "BonusConfig",
    "PacketGenConfig",
    "create_default_config",
]
