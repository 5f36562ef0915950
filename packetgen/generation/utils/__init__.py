# packetgen/generation/utils/__init__.py
"""
Generation utility modules.

This package contains utility functions for the generation stage, including:
- reference_graph: cross-reference graph over a tossup set (reciprocal pairs, ordering)
"""

from packetgen.generation.utils.reference_graph import (
    CrossReferenceAnalyzer,
    ReferenceEdge,
    ReferenceGraph,
    analyze_cross_references,
)

__all__ = [
    "CrossReferenceAnalyzer",
    "ReferenceEdge",
    "ReferenceGraph",
    "analyze_cross_references",
]
