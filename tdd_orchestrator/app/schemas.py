"""
API Layer - Request/Response Schemas

Pydantic models for API request and response validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from ..schemas.actions import ToolResult


class CreateSubtaskRequest(BaseModel):
    id: str
    title: str = ""


class SubtaskRead(BaseModel):
    id: str
    title: str
    status: str
    updated_at: datetime
    allowed_events: Dict[str, str] = Field(default_factory=dict)


class SubtaskTransitionRequest(BaseModel):
    """Either an explicit lifecycle event or a target state."""
    event: Optional[str] = None
    target: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _event_or_target(self) -> "SubtaskTransitionRequest":
        if not (self.event or self.target):
            raise ValueError("either 'event' or 'target' is required")
        return self


class SubtaskTransitionResponse(BaseModel):
    subtask_id: str
    status: str


class AgentInfo(BaseModel):
    name: str
    role: str
    llm_enabled: bool


class WorkflowList(BaseModel):
    workflows: List[str]
    paused: bool


class WorkflowTransitionRequest(BaseModel):
    current_state: str
    event: str
    context: Dict[str, Any] = Field(default_factory=dict)


class WorkflowTransitionResponse(BaseModel):
    workflow: str
    from_state: str
    event: str
    to_state: str


class PauseRequest(BaseModel):
    workflow: Optional[str] = None


class PauseStatus(BaseModel):
    workflow: Optional[str] = None
    paused: bool


class AgentRunRequest(BaseModel):
    subtask_id: str
    context: Dict[str, Any] = Field(default_factory=dict)


class AgentRunResponse(BaseModel):
    """How one agent loop run ended; `error` is set when it ended in ERROR."""
    subtask_id: str
    agent: str
    state: str
    completed: bool
    steps: int
    error: Optional[str] = None
    results: List[ToolResult] = Field(default_factory=list)
