"""
State Layer - Runtime Data Models

This module defines the runtime records the orchestrator tracks: the
lifecycle status of each Subtask, the states of the agent execution loop,
the audit trail of agent loop transitions, and the outcome log consumed by
the EvolutionService.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubtaskStatus(str, Enum):
    """
    The closed set of lifecycle states a subtask can be in.

    pending -> in_progress -> red -> green -> refactor -> integration_red
    -> integration_green -> verification -> completed, with
    in_progress <-> blocked and in_progress -> failed.
    """
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RED = "red"
    GREEN = "green"
    REFACTOR = "refactor"
    INTEGRATION_RED = "integration_red"
    INTEGRATION_GREEN = "integration_green"
    VERIFICATION = "verification"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    FAILED = "failed"

    @classmethod
    def values(cls) -> frozenset:
        return frozenset(member.value for member in cls)


class AgentLoopState(str, Enum):
    OBSERVE = "OBSERVE"
    THINK = "THINK"
    ACT = "ACT"
    WAIT = "WAIT"
    VERIFY = "VERIFY"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class AgentLoopEvent(str, Enum):
    OBSERVE_COMPLETE = "OBSERVE_COMPLETE"
    THINK_COMPLETE = "THINK_COMPLETE"
    ACTION_COMPLETE = "ACTION_COMPLETE"
    WAIT_COMPLETE = "WAIT_COMPLETE"
    VERIFICATION_PASSED = "VERIFICATION_PASSED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    ERROR_OCCURRED = "ERROR_OCCURRED"
    ERROR_HANDLED = "ERROR_HANDLED"


class Subtask(BaseModel):
    """
    The unit of work whose lifecycle the OrchestratorService manages.
    Subtasks are never deleted; terminal states are kept for audit.
    """
    id: str
    title: str = ""
    status: SubtaskStatus = SubtaskStatus.PENDING
    updated_at: datetime = Field(default_factory=utc_now)


class AgentTransition(BaseModel):
    """
    One step of an agent execution loop, as written to the transition log.
    """
    id: Optional[int] = None
    subtask_id: str
    agent: str
    from_state: str
    to_state: str
    timestamp: datetime = Field(default_factory=utc_now)


class OutcomeRecord(BaseModel):
    """
    One logged workflow execution. `metrics` is free-form; the
    EvolutionService reads the optional `error` and `state` keys.
    """
    id: Optional[int] = None
    workflow_id: str
    success: bool
    metrics: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
