"""
TDD Orchestrator

Coordinates autonomous agent roles (orchestrator, tester, developer) that
drive software subtasks through a test-driven lifecycle, on top of a
data-driven state machine engine.
"""

from tdd_orchestrator.domain import (
    StateMachineDefinition,
    StateSpec,
    TransitionSpec,
    WorkflowMetadata,
    WorkflowPatch,
)
from tdd_orchestrator.state import (
    AgentLoopEvent,
    AgentLoopState,
    Subtask,
    SubtaskStatus,
)
from tdd_orchestrator.schemas import Action, ActionType, AgentResult, TaskContext
from tdd_orchestrator.execution import WorkflowEngine

__all__ = [
    # Domain Layer
    "StateMachineDefinition",
    "StateSpec",
    "TransitionSpec",
    "WorkflowMetadata",
    "WorkflowPatch",
    # State Layer
    "AgentLoopEvent",
    "AgentLoopState",
    "Subtask",
    "SubtaskStatus",
    # Schemas
    "Action",
    "ActionType",
    "AgentResult",
    "TaskContext",
    # Execution Layer
    "WorkflowEngine",
]
