"""
packetgen/generation/pipeline/packet_orderer.py

PacketOrderer: places every referenced tossup before the tossups whose questions mention it.
Falls back to the incoming order (fell_back=True) when the graph cannot be fully sorted.
"""

import logging
from dataclasses import dataclass
from typing import List, Sequence

from packetgen.generation.utils.reference_graph import ReferenceGraph
from packetgen.shared.schemas import Tossup

logger = logging.getLogger(__name__)


@dataclass
class PacketOrdering:
    tossups: List[Tossup]
    # indices[k] = position in the input of the k-th output tossup
    indices: List[int]
    fell_back: bool = False


class PacketOrderer:
    def order(self, tossups: Sequence[Tossup], graph: ReferenceGraph) -> PacketOrdering:
        if graph.size != len(tossups):
            raise ValueError(f"graph has {graph.size} nodes for {len(tossups)} tossups")

        indices = graph.topo_sort()
        if len(indices) < len(tossups):
            logger.warning(
                f"[PacketOrderer] Sorted {len(indices)}/{len(tossups)} tossups, keeping original order"
            )
            return PacketOrdering(tossups=list(tossups), indices=list(range(len(tossups))), fell_back=True)

        if indices != list(range(len(tossups))):
            logger.info(f"[PacketOrderer] Reordered tossups: {indices}")
        return PacketOrdering(tossups=[tossups[i] for i in indices], indices=indices)


__all__ = ["PacketOrderer", "PacketOrdering"]
