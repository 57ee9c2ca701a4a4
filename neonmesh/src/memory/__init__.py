"""Cross-agent memory for the reasoning mesh."""

from .index import ContextualPrompts, MemoryIndex, MemoryQuery
from .insights import KnowledgeGraph, MemoryInsight, MemoryMetricsSource

__all__ = (
    "ContextualPrompts",
    "KnowledgeGraph",
    "MemoryIndex",
    "MemoryInsight",
    "MemoryMetricsSource",
    "MemoryQuery",
)
