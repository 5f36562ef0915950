from __future__ import annotations

"""
packetgen/shared/packet_store.py

Persistence collaborator for finished packets.

PacketAssembler calls PacketStore.save(packet) exactly once per successful run, with a
fully assembled Packet. JsonPacketStore is the file-based implementation used by run.py:
<output_dir>/packets/<slug>.json, UTF-8, indent=2.
"""

import json
import logging
import re
from pathlib import Path
from typing import List, Optional, Protocol

from packetgen.shared.schemas import Packet

logger = logging.getLogger(__name__)


class PacketStore(Protocol):
    def save(self, packet: Packet) -> None:
        ...


def _slugify(name: str, max_len: int = 120) -> str:
    slug = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("_")
    return (slug or "packet")[:max_len]


class JsonPacketStore:
    def __init__(self, output_dir: str | Path) -> None:
        self.packet_dir = Path(output_dir) / "packets"
        self.saved_paths: List[Path] = []

    def path_for(self, packet: Packet) -> Path:
        return self.packet_dir / f"{_slugify(packet.name)}.json"

    def save(self, packet: Packet) -> None:
        self.packet_dir.mkdir(parents=True, exist_ok=True)
        output_file = self.path_for(packet)
        with open(output_file, "w", encoding="utf-8") as f:
            json.dump(packet.to_dict(), f, ensure_ascii=False, indent=2)
        self.saved_paths.append(output_file)
        logger.info(f"[JsonPacketStore] Packet saved: {output_file}")

    @property
    def last_path(self) -> Optional[Path]:
        return self.saved_paths[-1] if self.saved_paths else None


__all__ = ["PacketStore", "JsonPacketStore"]
