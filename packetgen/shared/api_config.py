"""
packetgen/shared/api_config.py

API configuration for switching generation backends quickly

================================================================================
                              Configuration Guide
================================================================================

[API Key Config] - Put all API keys in the .env file in the project root
  Environment variables from .env are loaded at import time

[Generator Backend] - Select a preset via GENERATOR_PRESET (or env PACKETGEN_PRESET)
  Available presets:
  - "openai_official"     : OpenAI official endpoint
  - "google_official"     : Google Gemini (google-genai SDK)
  - "deepseek_official"   : DeepSeek (OpenAI-compatible)
  - "qwen_official"       : Alibaba Qwen (OpenAI-compatible)
  - "ollama_local"        : Local Ollama server, OpenAI-compatible /v1 endpoint
  - "dummy"               : Offline placeholder responses, no network

================================================================================
"""

import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


# ============================================================================
#            Generator Selection - Modify Here Only
# ============================================================================

# Options: "openai_official", "google_official", "deepseek_official",
#          "qwen_official", "ollama_local", "dummy"
GENERATOR_PRESET = os.getenv("PACKETGEN_PRESET", "openai_official")

# Default model per preset; PACKETGEN_MODEL overrides whichever preset is active
DEFAULT_PRESET_MODELS = {
    "openai_official": "gpt-4.1-mini",
    "google_official": "gemini-2.5-flash",
    "deepseek_official": "deepseek-chat",
    "qwen_official": "qwen-max",
    "ollama_local": "qwen2.5:32b",
    "dummy": "dummy-quizbowl",
}
GENERATOR_MODEL = os.getenv("PACKETGEN_MODEL", "")

# Question writing benefits from some variety; evaluation prompts ask for strict JSON anyway
GENERATOR_TEMPERATURE = 0.7
GENERATOR_MAX_TOKENS = 8192


# ============================================================================
#            API Key Config - Read from .env
# ============================================================================

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
DEEPSEEK_API_KEY = os.getenv("DEEPSEEK_API_KEY", "")
QWEN_API_KEY = os.getenv("QWEN_API_KEY", "")
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1")


# ============================================================================
#                    Model Capability Config
# ============================================================================

# Model prefixes that don't support temperature parameter
NO_TEMPERATURE_MODEL_PREFIXES = [
    "gpt-5-mini", "o1-mini", "o1-preview", "o1", "o3-mini", "o3", "o4-mini",
]

# Model prefixes that use max_completion_tokens instead of max_tokens
NO_MAX_TOKENS_MODEL_PREFIXES = [
    "gpt-5", "gpt-4.1", "o1", "o3", "o4",
]

# Model max_tokens limit configuration
MODEL_MAX_TOKENS_LIMITS = {
    "deepseek-chat": 8192,
    "deepseek-coder": 8192,
}


# ============================================================================
#                        Helper Functions
# ============================================================================

def _matches_any(model_name: str, prefixes) -> bool:
    if not model_name:
        return False
    model_lower = model_name.lower()
    return any(prefix.lower() in model_lower for prefix in prefixes)


def is_no_temperature_model(model_name: str) -> bool:
    """
    Check if model doesn't support temperature parameter
    """
    return _matches_any(model_name, NO_TEMPERATURE_MODEL_PREFIXES)


def is_no_max_tokens_model(model_name: str) -> bool:
    """
    Check if model expects max_completion_tokens
    """
    return _matches_any(model_name, NO_MAX_TOKENS_MODEL_PREFIXES)


def get_model_max_tokens_limit(model_name: str) -> Optional[int]:
    if not model_name:
        return None
    model_lower = model_name.lower()
    for prefix, limit in MODEL_MAX_TOKENS_LIMITS.items():
        if prefix.lower() in model_lower:
            return limit
    return None


def clamp_max_tokens(model_name: str, requested_max_tokens: int) -> int:
    """
    Adjust max_tokens value based on model limits
    """
    limit = get_model_max_tokens_limit(model_name)
    if limit is not None and requested_max_tokens > limit:
        return limit
    return requested_max_tokens


# ============================================================================
#              Preset Table
# ============================================================================

_GENERATOR_PRESETS: Dict[str, Dict[str, Optional[str]]] = {
    "openai_official": {
        "api_type": "openai",
        "api_key": OPENAI_API_KEY,
        "api_key_env": "OPENAI_API_KEY",
        "base_url": None,
    },
    "google_official": {
        "api_type": "google_genai",
        "api_key": GOOGLE_API_KEY,
        "api_key_env": "GOOGLE_API_KEY",
        "base_url": None,
    },
    "deepseek_official": {
        "api_type": "openai",
        "api_key": DEEPSEEK_API_KEY,
        "api_key_env": "DEEPSEEK_API_KEY",
        "base_url": "https://api.deepseek.com",
    },
    "qwen_official": {
        "api_type": "openai",
        "api_key": QWEN_API_KEY,
        "api_key_env": "QWEN_API_KEY",
        "base_url": "https://dashscope.aliyuncs.com/compatible-mode/v1",
    },
    "ollama_local": {
        "api_type": "openai",
        # Ollama ignores the key but the openai SDK requires one
        "api_key": "ollama",
        "api_key_env": "OLLAMA_API_KEY",
        "base_url": OLLAMA_BASE_URL,
    },
    "dummy": {
        "api_type": "dummy",
        "api_key": None,
        "api_key_env": "OPENAI_API_KEY",
        "base_url": None,
    },
}


def available_presets() -> list:
    return sorted(_GENERATOR_PRESETS)


def get_generator_client_params(preset: Optional[str] = None, model: Optional[str] = None) -> dict:
    """
    Get LLMClient initialization parameters for a preset.

    Args:
        preset: Preset name (defaults to GENERATOR_PRESET)
        model: Model name (defaults to PACKETGEN_MODEL, then the preset's default model)

    Returns:
        dict with api_type / model_name / api_key / api_key_env / base_url / temperature / max_tokens
    """
    preset_name = preset or GENERATOR_PRESET
    entry = _GENERATOR_PRESETS.get(preset_name)
    if not entry:
        raise ValueError(f"Unknown generator preset: {preset_name} (available: {available_presets()})")

    model_name = model or GENERATOR_MODEL or DEFAULT_PRESET_MODELS[preset_name]
    return {
        "api_type": entry["api_type"],
        "model_name": model_name,
        "api_key": entry["api_key"] or None,
        "api_key_env": entry["api_key_env"],
        "base_url": entry["base_url"],
        "temperature": None if is_no_temperature_model(model_name) else GENERATOR_TEMPERATURE,
        "max_tokens": GENERATOR_MAX_TOKENS,
    }


__all__ = [
    "GENERATOR_PRESET",
    "GENERATOR_MODEL",
    "GENERATOR_TEMPERATURE",
    "GENERATOR_MAX_TOKENS",
    "is_no_temperature_model",
    "is_no_max_tokens_model",
    "get_model_max_tokens_limit",
    "clamp_max_tokens",
    "available_presets",
    "get_generator_client_params",
]
