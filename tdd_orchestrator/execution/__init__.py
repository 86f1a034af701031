"""
Execution Layer - Workflow Orchestration

Defines the WorkflowEngine (data-driven state machine) and the pure
transition resolution it is built on. The agent execution loop lives in
execution.agent_loop.
"""

from tdd_orchestrator.execution.engine import WorkflowEngine
from tdd_orchestrator.execution.transitions import (
    DEFAULT_GUARDS,
    ResolvedTransition,
    resolve_transition,
)


__all__ = [
    "DEFAULT_GUARDS",
    "ResolvedTransition",
    "WorkflowEngine",
    "resolve_transition",
]
