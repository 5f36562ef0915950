from __future__ import annotations

"""
packetgen/shared/prompt_logger.py

Append-only record of every prompt/response exchanged by the pipeline agents.
Log format: One JSON record per line, written to <log_dir>/<agent_name>.jsonl.
"""

from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Dict, Optional
import datetime
import json
import logging

logger = logging.getLogger(__name__)


@dataclass
class PromptLogRecord:
    agent_name: str
    stage: str
    prompt: str
    response: str
    model: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        if not d.get("timestamp"):
            d["timestamp"] = datetime.datetime.now().isoformat(timespec="seconds")
        return d


class PromptLogger:
    """
    Lightweight JSONL logger; a failed write logs a warning and the run continues.

    PacketAssembler places it under <output_dir>/logs/prompts so runs do not mix.
    """

    def __init__(self, log_dir: str | Path) -> None:
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def save_agent_log(
        self,
        agent_name: str,
        stage: str,
        prompt: str,
        response: str,
        metadata: Optional[Dict[str, Any]] = None,
        model: Optional[str] = None,
    ) -> None:
        record = PromptLogRecord(
            agent_name=agent_name,
            stage=stage,
            prompt=prompt,
            response=response,
            metadata=metadata or {},
            model=model,
        ).to_dict()

        file_path = self.log_dir / f"{agent_name}.jsonl"
        try:
            with file_path.open("a", encoding="utf-8") as f:
                json.dump(record, f, ensure_ascii=False)
                f.write("\n")
        except OSError as e:
            logger.warning(f"[PromptLogger] Failed to write log: {e} (path={file_path})")

    def read_agent_log(self, agent_name: str) -> list:
        """
        Load every record previously written for agent_name (empty list if none).
        """
        file_path = self.log_dir / f"{agent_name}.jsonl"
        if not file_path.exists():
            return []
        with file_path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]


__all__ = ["PromptLogger", "PromptLogRecord"]
