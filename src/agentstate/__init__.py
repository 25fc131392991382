"""agentstate — agent state store and lifecycle event core for multi-agent orchestration."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from agentstate.config import CoreSettings as CoreSettings
    from agentstate.runtime import StateCore as StateCore

_EXPORTS = {
    "StateCore": "agentstate.runtime",
    "CoreSettings": "agentstate.config",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'agentstate' has no attribute {name!r}")
