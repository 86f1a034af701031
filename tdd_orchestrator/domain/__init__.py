"""
Domain Layer - State Machine Definitions

Defines the static structure of workflows: definitions, states, transitions
and the patches that evolve them.
"""

from tdd_orchestrator.domain.models import (
    PatchAdditions,
    PatchRemovals,
    StateMachineDefinition,
    StateSpec,
    TransitionSpec,
    WorkflowMetadata,
    WorkflowPatch,
)

__all__ = [
    "PatchAdditions",
    "PatchRemovals",
    "StateMachineDefinition",
    "StateSpec",
    "TransitionSpec",
    "WorkflowMetadata",
    "WorkflowPatch",
]
