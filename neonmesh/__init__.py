"""Convenience exports for the reasoning mesh package.

Attributes are proxied lazily from ``neonmesh.src`` so that importing
:mod:`neonmesh` (for example to reach the CLI) does not pull in FastAPI or
numpy until a service is actually requested.
"""

from __future__ import annotations

import importlib
from typing import Any

_IMPORT_MAP = {
    "AgentRegistry": "neonmesh.src.agents.registry",
    "CommandRouter": "neonmesh.src.core.router",
    "GoalPlanner": "neonmesh.src.core.planner",
    "MemoryIndex": "neonmesh.src.memory.index",
    "Mesh": "neonmesh.src.mesh",
    "MeshConfig": "neonmesh.src.core.config",
    "ReasoningProtocol": "neonmesh.src.core.reasoning",
    "build_mesh": "neonmesh.src.mesh",
    "decompose_goal": "neonmesh.src.core.decomposer",
    "resolve_consensus": "neonmesh.src.core.reasoning",
}

__all__ = tuple(sorted(_IMPORT_MAP))


def __getattr__(name: str) -> Any:
    module_name = _IMPORT_MAP.get(name)
    if module_name is None:
        raise AttributeError(name)
    return getattr(importlib.import_module(module_name), name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(__all__))
