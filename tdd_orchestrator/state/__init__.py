"""
State Layer - Runtime Data Models

Defines the runtime records: subtask lifecycle status, agent loop states and
events, the agent transition log and workflow outcome records.
"""

from tdd_orchestrator.state.models import (
    AgentLoopEvent,
    AgentLoopState,
    AgentTransition,
    OutcomeRecord,
    Subtask,
    SubtaskStatus,
)

__all__ = [
    "AgentLoopEvent",
    "AgentLoopState",
    "AgentTransition",
    "OutcomeRecord",
    "Subtask",
    "SubtaskStatus",
]
