from __future__ import annotations

"""
packetgen/shared/llm_interface.py

LLMClient is the lightweight wrapper for underlying LLM calls:
- Every pipeline agent only interacts with this class (the text-generation collaborator)
- Switching between OpenAI-compatible endpoints, Google Gemini or the offline dummy
  backend happens here without touching agent code

Supported api_type values:
- "openai":       openai>=1.x SDK, any OpenAI-compatible base_url (OpenAI, DeepSeek, Qwen, Ollama)
- "google_genai": google-genai SDK
- "dummy":        deterministic placeholder responses shaped like the pipeline expects,
                  routed by metadata["stage"]; used for offline smoke runs

Auto-retry Mechanism (transport level only):
- Default 3 attempts per call
- Empty responses and transient errors are retried; network-like errors additionally
  back off exponentially, bounded by NetworkRecoveryConfig.max_total_wait
- Retry and failure info is recorded in the global LLMRetryAudit
- The last exception is re-raised; the pipeline wraps it as GenerationFailure
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json
import logging
import os
import re
import time

from openai import OpenAI
from google import genai as google_genai
from google.genai import types as genai_types

from packetgen.shared.api_config import (
    clamp_max_tokens,
    is_no_max_tokens_model,
    is_no_temperature_model,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Global Retry Audit Log
# Collects all retry and failure info across calls
# =============================================================================

class LLMRetryAudit:
    """
    LLM call retry audit logger

    Collects all LLM call failures and retries in the current session,
    so the CLI can report network fluctuations at the end of a run.
    """

    def __init__(self):
        self.retry_records: List[Dict[str, Any]] = []
        self.failure_records: List[Dict[str, Any]] = []

    def record_retry(
        self,
        model_name: str,
        attempt: int,
        max_attempts: int,
        error_msg: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.retry_records.append({
            "timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
            "model_name": model_name,
            "attempt": attempt,
            "max_attempts": max_attempts,
            "error_msg": error_msg,
            "context": context or {},
        })

    def record_failure(
        self,
        model_name: str,
        total_attempts: int,
        errors: List[str],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Record final failure (all retries exhausted)
        """
        self.failure_records.append({
            "timestamp": time.strftime("%Y-%m-%d %H:%M:%S"),
            "model_name": model_name,
            "total_attempts": total_attempts,
            "errors": errors,
            "context": context or {},
        })

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_retries": len(self.retry_records),
            "total_failures": len(self.failure_records),
            "retry_records": self.retry_records,
            "failure_records": self.failure_records,
        }

    def has_issues(self) -> bool:
        return len(self.retry_records) > 0 or len(self.failure_records) > 0

    def clear(self) -> None:
        """
        Clear records (call when starting a new run)
        """
        self.retry_records.clear()
        self.failure_records.clear()


_global_retry_audit = LLMRetryAudit()


def get_retry_audit() -> LLMRetryAudit:
    return _global_retry_audit


def clear_retry_audit() -> None:
    _global_retry_audit.clear()


# =============================================================================
# Network Error Detection & Backoff
# =============================================================================

# Keywords for network-related errors
NETWORK_ERROR_KEYWORDS = [
    "connection",
    "timeout",
    "timed out",
    "network",
    "socket",
    "refused",
    "reset",
    "unreachable",
    "name resolution",
    "502",
    "503",
    "504",
    "429",  # Rate limit also treated as network issue
    "rate limit",
    "too many requests",
]


def _is_network_error(error_msg: str) -> bool:
    if not error_msg:
        return False
    error_lower = error_msg.lower()
    return any(kw in error_lower for kw in NETWORK_ERROR_KEYWORDS)


@dataclass
class NetworkRecoveryConfig:
    """
    Exponential backoff for network-like errors.

    A network wait does not consume a normal retry; the total wait per call is capped
    by max_total_wait, after which the error counts as a regular failed attempt.
    """
    enabled: bool = True
    base_delay: float = 5.0
    max_delay: float = 60.0
    max_total_wait: float = 300.0
    _total_wait_time: float = field(default=0.0, init=False, repr=False)

    def should_retry(self, error_msg: str) -> bool:
        return self.enabled and _is_network_error(error_msg)

    def wait(self, model_name: str, error_msg: str, attempt: int) -> bool:
        """
        Sleep for the next backoff step.

        Returns:
            True if the caller should retry without consuming an attempt, False once
            the total wait budget is spent
        """
        if not self.enabled or self._total_wait_time >= self.max_total_wait:
            return False

        wait_time = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        wait_time = min(wait_time, self.max_total_wait - self._total_wait_time)
        if wait_time <= 0:
            return False

        logger.warning(
            f"[Network Recovery] {model_name} network error: {error_msg[:100]} "
            f"(waiting {wait_time:.1f}s, {self._total_wait_time:.0f}s/{self.max_total_wait:.0f}s used)"
        )
        _global_retry_audit.record_retry(
            model_name=model_name,
            attempt=attempt,
            max_attempts=-1,
            error_msg=f"[Network recovery wait] {error_msg}",
            context={"wait_seconds": wait_time, "network_error": True},
        )
        time.sleep(wait_time)
        self._total_wait_time += wait_time
        return True

    def reset(self) -> None:
        self._total_wait_time = 0.0


_global_network_config = NetworkRecoveryConfig()


def get_network_config() -> NetworkRecoveryConfig:
    return _global_network_config


def set_network_config(
    enabled: bool = True,
    base_delay: float = 5.0,
    max_delay: float = 60.0,
    max_total_wait: float = 300.0,
) -> None:
    """
    Replace the global network recovery configuration.
    """
    global _global_network_config
    _global_network_config = NetworkRecoveryConfig(
        enabled=enabled,
        base_delay=base_delay,
        max_delay=max_delay,
        max_total_wait=max_total_wait,
    )


@dataclass
class LLMClient:
    """
    LLM client wrapper class

    Wraps calls to OpenAI-compatible endpoints, Google Gemini and the offline dummy backend.
    """
    api_type: str
    model_name: str
    verbose: bool = False
    base_url: Optional[str] = None
    api_key_env: str = "OPENAI_API_KEY"
    api_key: Optional[str] = None  # Direct API key (priority over env var)
    max_tokens: int = 8192
    temperature: Optional[float] = 0.7
    # Forwarded on every OpenAI-compatible call (top_p / frequency_penalty / presence_penalty)
    default_kwargs: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.api_key:
            self.api_key = os.getenv(self.api_key_env)
        self._openai_client = None
        self._google_client = None
        self._dummy_counter = 0

        # Offline smoke runs: PACKETGEN_NO_LLM=1 forces the dummy backend
        if os.getenv("PACKETGEN_NO_LLM") == "1":
            self.api_type = "dummy"
            logger.info(f"[LLMClient] PACKETGEN_NO_LLM=1, forcing dummy mode (model={self.model_name})")

        if self.verbose:
            logger.info(
                f"[LLMClient] Initialize: api_type={self.api_type}, "
                f"model_name={self.model_name}, api_key_env={self.api_key_env}"
            )

        if self.api_type == "openai":
            if not self.api_key:
                raise ValueError(
                    f"API key not configured, cannot call OpenAI-compatible API (model={self.model_name}).\n"
                    f"Set {self.api_key_env} in .env or pick another preset."
                )
            self._openai_client = OpenAI(api_key=self.api_key, base_url=self.base_url)

        elif self.api_type == "google_genai":
            if not self.api_key:
                raise ValueError(
                    f"API key not configured, cannot call Google Gemini API (model={self.model_name}).\n"
                    f"Set {self.api_key_env} in .env or pick another preset."
                )
            self._google_client = google_genai.Client(api_key=self.api_key)

        elif self.api_type in ("dummy", "offline"):
            if self.verbose:
                logger.info("[LLMClient] Using dummy/offline mode, returns placeholder responses only.")
        else:
            raise ValueError(f"Unsupported api_type: {self.api_type!r}")

    @classmethod
    def from_runtime_config(cls, llm_config: Any) -> "LLMClient":
        """
        Build a client from LLMRuntimeConfig.
        """
        return cls(
            api_type=llm_config.api_type,
            model_name=llm_config.model_name,
            verbose=llm_config.verbose,
            base_url=llm_config.base_url,
            api_key_env=llm_config.api_key_env,
            api_key=getattr(llm_config, "api_key", None),
            max_tokens=llm_config.max_tokens,
            temperature=llm_config.temperature,
            default_kwargs=llm_config.sampling_kwargs(),
        )

    # ------------------------------------------------------------------
    # Public unified call interface
    # ------------------------------------------------------------------
    def generate(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        **kwargs: Any,
    ) -> str:
        """
        Unified call entry point for the pipeline agents.

        Args:
            messages: OpenAI-style message list:
                [{"role": "system"|"user"|"assistant", "content": "..."}, ...]
            temperature: Sampling temp (defaults to instance config)
            max_tokens: Max tokens (defaults to instance config)
            metadata: Routing/logging metadata (agent, stage, count ...)
            max_retries: Max attempts (default 3)
            retry_delay: Delay between attempts in seconds
            **kwargs: Pass-through params for the underlying SDK

        Returns:
            Text content returned by the model (first choice only). An empty string
            after every attempt came back empty.
        """
        if temperature is None:
            temperature = self.temperature
        if max_tokens is None:
            max_tokens = self.max_tokens
        call_kwargs = {**self.default_kwargs, **kwargs}

        errors_collected: List[str] = []
        content = ""

        network_config = get_network_config()
        network_config.reset()
        network_retry_count = 0

        attempt = 0
        while attempt < max_retries:
            attempt += 1
            start_time = time.time()

            try:
                content = self._do_generate(
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    metadata=metadata or {},
                    **call_kwargs,
                )
            except Exception as e:
                error_msg = str(e)
                errors_collected.append(f"[Attempt {attempt}] {error_msg}")

                if network_config.should_retry(error_msg):
                    network_retry_count += 1
                    if network_config.wait(self.model_name, error_msg, network_retry_count):
                        # Network wait does not consume a normal attempt
                        attempt -= 1
                        continue

                if attempt < max_retries:
                    _global_retry_audit.record_retry(
                        model_name=self.model_name,
                        attempt=attempt,
                        max_attempts=max_retries,
                        error_msg=error_msg,
                        context=metadata,
                    )
                    logger.warning(
                        f"[LLMClient] {self.model_name} attempt {attempt}/{max_retries} failed: {error_msg}, "
                        f"retrying in {retry_delay}s..."
                    )
                    time.sleep(retry_delay)
                    continue

                _global_retry_audit.record_failure(
                    model_name=self.model_name,
                    total_attempts=max_retries,
                    errors=errors_collected,
                    context=metadata,
                )
                logger.error(f"[LLMClient] {self.model_name} failed {max_retries} times, giving up: {errors_collected}")
                raise

            if not content or not content.strip():
                error_msg = "Model returned empty response"
                errors_collected.append(f"[Attempt {attempt}] {error_msg}")
                if attempt < max_retries:
                    _global_retry_audit.record_retry(
                        model_name=self.model_name,
                        attempt=attempt,
                        max_attempts=max_retries,
                        error_msg=error_msg,
                        context=metadata,
                    )
                    logger.warning(
                        f"[LLMClient] {self.model_name} returned empty response, "
                        f"attempt {attempt}/{max_retries}, retrying in {retry_delay}s..."
                    )
                    time.sleep(retry_delay)
                    continue
                _global_retry_audit.record_failure(
                    model_name=self.model_name,
                    total_attempts=max_retries,
                    errors=errors_collected,
                    context=metadata,
                )
                logger.error(f"[LLMClient] {self.model_name} returned empty response {max_retries} times")
                # Upper layer (StructuredResponseParser) decides what an empty response means
                return ""

            if self.verbose:
                latency_ms = (time.time() - start_time) * 1000
                logger.debug(
                    f"[LLMClient] Call complete: model={self.model_name}, stage={(metadata or {}).get('stage')}, "
                    f"response_len={len(content)}, latency={latency_ms:.2f}ms, "
                    f"attempt={attempt}/{max_retries}, network_retries={network_retry_count}"
                )
            return content

        return content

    def _do_generate(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float],
        max_tokens: int,
        metadata: Dict[str, Any],
        **kwargs: Any,
    ) -> str:
        """
        Internal method that actually executes the LLM call (no retry logic)
        """
        if self.api_type == "openai":
            api_params: Dict[str, Any] = {
                "model": self.model_name,
                "messages": messages,
            }
            if temperature is not None and not is_no_temperature_model(self.model_name):
                api_params["temperature"] = temperature

            clamped_max_tokens = clamp_max_tokens(self.model_name, max_tokens)
            if is_no_max_tokens_model(self.model_name):
                api_params["max_completion_tokens"] = clamped_max_tokens
            else:
                api_params["max_tokens"] = clamped_max_tokens
            api_params.update(kwargs)

            resp = self._openai_client.chat.completions.create(**api_params)
            return resp.choices[0].message.content or ""

        if self.api_type == "google_genai":
            config_kwargs: Dict[str, Any] = {"max_output_tokens": max_tokens}
            if temperature is not None:
                config_kwargs["temperature"] = temperature
            if "top_p" in kwargs:
                config_kwargs["top_p"] = kwargs["top_p"]
            response = self._google_client.models.generate_content(
                model=self.model_name,
                contents=self._convert_messages_to_gemini(messages),
                config=genai_types.GenerateContentConfig(**config_kwargs),
            )
            return response.text or ""

        if self.api_type in ("dummy", "offline"):
            return self._dummy_response(messages, metadata)

        raise ValueError(f"Unsupported api_type: {self.api_type!r}")

    # ------------------------------------------------------------------
    # Google Gemini message format conversion
    # ------------------------------------------------------------------
    @staticmethod
    def _convert_messages_to_gemini(messages: List[Dict[str, str]]) -> str:
        """
        Merge OpenAI-style messages into a single Gemini contents string.

        System messages become a leading instruction block, the rest are concatenated in order.
        """
        system_parts = []
        conversation_parts = []

        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")
            if not content:
                continue
            if role == "system":
                system_parts.append(content)
            elif role == "user":
                conversation_parts.append(f"User: {content}")
            else:
                conversation_parts.append(f"{role.capitalize()}: {content}")

        if len(conversation_parts) == 1 and not system_parts:
            return conversation_parts[0].replace("User: ", "", 1)

        final_parts = []
        if system_parts:
            final_parts.append("[System Instructions]\n" + "\n\n".join(system_parts) + "\n")
        if conversation_parts:
            final_parts.append("[Conversation]\n" + "\n".join(conversation_parts))
        return "\n".join(final_parts)

    # ------------------------------------------------------------------
    # Dummy backend
    # ------------------------------------------------------------------
    def _next_dummy_label(self) -> str:
        self._dummy_counter += 1
        return f"Mock Entity {self._dummy_counter:03d}"

    def _dummy_response(self, messages: List[Dict[str, str]], metadata: Dict[str, Any]) -> str:
        """
        Placeholder responses with the structure each pipeline stage expects.
        """
        stage = metadata.get("stage", "")
        count = int(metadata.get("count") or 1)
        topic = metadata.get("topic", "the topic")

        if stage in ("comprehensive", "context-specific", "deeper-search"):
            return (
                f"[MOCK] Background notes on {topic} ({stage}). "
                "Specialist terminology, second-order figures and lesser-known works would appear here."
            )
        if stage == "gap-analysis":
            return json.dumps({
                "missing_aspects": "[MOCK] Later periods and technical sub-topics are not covered yet.",
                "follow_up_query": f"Lesser-known technical details and figures related to {topic}",
            })
        if stage == "candidates":
            return json.dumps([f"ANSWER: {self._next_dummy_label()}" for _ in range(count)])
        if stage == "evaluation":
            return json.dumps([
                {"index": i + 1, "score": 8, "reasoning": "[MOCK] Specific and quizbowl-worthy"}
                for i in range(count)
            ])
        if stage == "question":
            return json.dumps({"question": (
                "[MOCK] In an obscure monograph, this subject was tied to a disputed marginal note "
                "preserved in a single regional archive. (*) A later survey connected it to a minor "
                "technical controversy that few specialists still remember today. Mid-level sources "
                "describe how it shaped a well-known debate among practitioners of the field. For "
                "ten points, name this subject that every introductory account of the topic covers "
                "in its opening chapter."
            )})
        if stage == "triplet":
            return json.dumps({
                "theme": f"[MOCK] Three related aspects of {topic}",
                "answer_a": f"ANSWER: {self._next_dummy_label()}",
                "answer_b": f"ANSWER: {self._next_dummy_label()}",
                "answer_c": f"ANSWER: {self._next_dummy_label()}",
            })
        if stage == "preamble":
            return json.dumps({"preamble": "[MOCK] This bonus concerns three related subjects. For 10 points each:"})
        if stage == "bonus-part":
            return json.dumps({"question": (
                "[MOCK] A regional archive preserves the earliest description of this subject, which "
                "later writers connected to a broader debate. Name this subject."
            )})
        if stage == "remediation":
            # Echo back whatever JSON-looking payload the prompt quoted
            last_user = next((m.get("content", "") for m in reversed(messages) if m.get("role") == "user"), "")
            match = re.search(r"MALFORMED JSON:\s*(.*?)\s*(?:Fix ALL|$)", last_user, re.S)
            return match.group(1) if match else "{}"

        last_user = next((m.get("content", "") for m in reversed(messages) if m.get("role") == "user"), "")
        return (
            f"[LLMClient dummy({self.model_name}) response, for debugging only]\n"
            f"Original input length: {len(last_user)} characters"
        )


__all__ = [
    "LLMClient",
    "LLMRetryAudit",
    "get_retry_audit",
    "clear_retry_audit",
    "NetworkRecoveryConfig",
    "get_network_config",
    "set_network_config",
]
