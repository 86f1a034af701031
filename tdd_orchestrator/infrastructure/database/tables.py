"""
Database Table Definitions.

This module defines the SQL schema using SQLModel.
We use the 'DBModel' suffix to distinguish these persistence models
from the Pydantic domain models (StateMachineDefinition, Subtask, ...).
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from ...state.models import utc_now

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class WorkflowDBModel(SQLModel, table=True):
    """
    Persistence model for state machine definitions.
    Maps 1-to-1 with the 'workflows' table.
    """

    __tablename__ = "workflows"

    name: str = Field(primary_key=True)
    title: str

    # The entire StateMachineDefinition (states, transitions, metadata).
    workflow_data: Dict[str, Any] = Field(sa_column=Column(JSONType, nullable=False))

    version: int = Field(default=1)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class SubtaskDBModel(SQLModel, table=True):
    """
    Persistence model for subtasks and their lifecycle status.
    """

    __tablename__ = "subtasks"

    id: str = Field(primary_key=True)
    title: str = Field(default="")
    status: str = Field(default="pending", index=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class WorkflowOutcomeDBModel(SQLModel, table=True):
    """
    Append-only log of workflow executions, read by the EvolutionService.
    """

    __tablename__ = "workflow_outcomes"

    id: Optional[int] = Field(default=None, primary_key=True)
    workflow_id: str = Field(index=True)
    success: bool
    metrics: Dict[str, Any] = Field(sa_column=Column(JSONType, nullable=False))
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class AgentTransitionDBModel(SQLModel, table=True):
    """
    Audit trail of agent loop transitions (OBSERVE -> THINK -> ...).
    """

    __tablename__ = "agent_fsm_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    subtask_id: str = Field(index=True)
    agent: str
    from_state: str
    to_state: str
    timestamp: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
