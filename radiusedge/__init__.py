"""RadiusEdge: run RADIUS test scenarios against lab servers."""

from radiusedge.execution import ExecutionController
from radiusedge.models import (
    DatabaseProfile,
    ExecutionRecord,
    ExecutionStatus,
    LogEntry,
    LogLevel,
    PreambleCommand,
    RadiusPacket,
    Scenario,
    ScenarioStep,
    ScenarioVariable,
    ServerProfile,
)
from radiusedge.store import FileStore, MemoryStore

__version__ = "0.1.0"

__all__ = [
    "DatabaseProfile",
    "ExecutionController",
    "ExecutionRecord",
    "ExecutionStatus",
    "FileStore",
    "LogEntry",
    "LogLevel",
    "MemoryStore",
    "PreambleCommand",
    "RadiusPacket",
    "Scenario",
    "ScenarioStep",
    "ScenarioVariable",
    "ServerProfile",
]
