"""
Engine layer for opaquesync.

An engine is a remote question server exposing start / process / stop.
The synchronizer reaches it through an EngineConnection built by the
EngineRegistry.
"""

from opaquesync.engine.base import RemoteSessionClient
from opaquesync.engine.connection import EngineConnection
from opaquesync.engine.models import (
    EngineDefinition,
    ProcessReturn,
    Resource,
    Results,
    Score,
    StartReturn,
)
from opaquesync.engine.registry import EngineRegistry

__all__ = [
    "RemoteSessionClient",
    "EngineConnection",
    "EngineDefinition",
    "EngineRegistry",
    "ProcessReturn",
    "Resource",
    "Results",
    "Score",
    "StartReturn",
]
