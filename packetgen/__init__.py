# packetgen/__init__.py
"""
Knowledge-first quizbowl packet generation.

Exported Classes:
- PacketAssembler: full packet / single tossup / single bonus entry point;
- PacketGenConfig / create_default_config: run configuration;
- Packet / Tossup / Bonus: output records;
- PacketGenerationError: base class of every reported failure.
"""

from packetgen.generation.pipeline.packet_assembler import PacketAssembler
from packetgen.shared.config import PacketGenConfig, create_default_config
from packetgen.shared.schemas import Bonus, BonusPart, Packet, PacketGenerationError, Tossup

__version__ = "0.1.0"

__all__ = [
    "PacketAssembler",
    "PacketGenConfig",
    "create_default_config",
    "Packet",
    "Tossup",
    "Bonus",
    "BonusPart",
    "PacketGenerationError",
]
