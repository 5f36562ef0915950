"""
packetgen/generation/agents/base_agent.py

Shared plumbing for the pipeline agents:
- fixed quizbowl-writer system message
- _call_llm: one blocking generation call, prompt/response logged, client errors
  wrapped as GenerationFailure (never retried here)
- _generate_structured: one call + StructuredResponseParser with this agent's label
"""

import logging
from typing import Any, Dict, Optional

from packetgen.shared.llm_json import ExpectedShape, StructuredResponseParser
from packetgen.shared.prompt_logger import PromptLogger
from packetgen.shared.schemas import GenerationFailure

logger = logging.getLogger(__name__)


QUIZBOWL_SYSTEM_PROMPT = """**Role:** You are an expert NAQT-style Quizbowl Question Writer. You craft high-quality, factually accurate, stylistically compliant questions for standard high school or collegiate difficulty.

**Pyramidal Structure (Most Important Principle):** questions progress from HARDEST to EASIEST clues.
1. OPENING (Hardest): obscure, technical or specialized facts only experts would know.
2. MIDDLE (Moderate): recognizable but still challenging information.
3. GIVEAWAY (Easiest): the most famous, canonical fact a casual enthusiast would know.

**Power Mark (*):** placed once, after approximately 1/3 of the question (usually after the first sentence).

**Answer Line Format:**
*   Start with `ANSWER:` (all caps) followed by the most specific common name of the answer.
*   Use `[` and `]` for alternate acceptable answers, separated by `or`.
*   Use `(` and `)` for non-essential clarifications or pronunciation guides.

**Guiding Principles:** accuracy, clarity, conciseness, fairness. When asked for JSON, reply with JSON only."""


class BaseAgent:
    """
    Base class for every agent that talks to the text-generation client.
    """

    AGENT_NAME = "Agent"

    def __init__(
        self,
        llm_client: Any,
        parser: StructuredResponseParser,
        prompt_logger: Optional[PromptLogger] = None,
    ) -> None:
        self.llm_client = llm_client
        self.parser = parser
        self.prompt_logger = prompt_logger

    # ------------------------------------------------------------------ #
    # LLM Call
    # ------------------------------------------------------------------ #
    def _call_llm(self, user_prompt: str, stage: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        messages = [
            {"role": "system", "content": QUIZBOWL_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]
        call_metadata = {"agent": self.AGENT_NAME, "stage": stage, **(metadata or {})}

        try:
            response = self.llm_client.generate(messages, metadata=call_metadata)
        except Exception as e:
            logger.error(f"[{self.AGENT_NAME}] Generation call failed at stage '{stage}': {e}")
            raise GenerationFailure(
                f"[{self.AGENT_NAME}] generation call failed at stage '{stage}': {e}",
                agent=self.AGENT_NAME,
                stage=stage,
            ) from e

        text = response if isinstance(response, str) else str(response or "")
        if self.prompt_logger is not None:
            self.prompt_logger.save_agent_log(
                agent_name=self.AGENT_NAME,
                stage=stage,
                prompt=user_prompt,
                response=text,
                metadata=call_metadata,
                model=getattr(self.llm_client, "model_name", None),
            )
        return text

    def _generate_structured(
        self,
        user_prompt: str,
        stage: str,
        shape: ExpectedShape,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        One generation call followed by a parse (with remediation) into shape's typed value.
        """
        raw = self._call_llm(user_prompt, stage, metadata)
        return self.parser.parse(raw, shape, label=f"{self.AGENT_NAME}.{stage}")


__all__ = ["BaseAgent", "QUIZBOWL_SYSTEM_PROMPT"]
