"""
Schemas - Structured Actions

This module defines the typed instructions that flow out of agents and the
ActionParser and into the ActionDispatcher. Actions are ephemeral: produced
per agent execution and consumed immediately.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActionType(str, Enum):
    """
    The closed set of action kinds. Values are the wire names used by the
    agents and the UI, which is why some are camelCase.
    """
    # ActionParser
    CREATE_FILE = "create_file"
    UPDATE_STATUS = "update_status"
    ASK_QUESTION = "ask_question"
    GENERIC = "generic"
    TOOL_CALL = "tool_call"
    # Orchestrator (Orion)
    ASSIGN_TASK = "assignTask"
    APPROVE_COMPLETION = "approveCompletion"
    REJECT_COMPLETION = "rejectCompletion"
    ESCALATE_BLOCKER = "escalateBlocker"
    TRIGGER_TRANSITION = "triggerTransition"
    # Tester (Tara)
    GENERATE_UNIT_TESTS = "generateUnitTests"
    GENERATE_INTEGRATION_TESTS = "generateIntegrationTests"
    RUN_COVERAGE_CHECK = "runCoverageCheck"
    REPORT_VERIFICATION_STATUS = "reportVerificationStatus"
    WRITE_TEST_FILE = "writeTestFile"
    # Developer (Devon)
    IMPLEMENT_CODE = "implementCode"
    REFACTOR_CODE = "refactorCode"
    FIX_FAILING_TESTS = "fixFailingTests"
    WRITE_IMPLEMENTATION_FILE = "writeImplementationFile"


class Action(BaseModel):
    """
    A structured instruction derived from agent or LLM output.

    payload is type-specific, e.g. {path, content} for file actions,
    {status} for update_status, {question} for ask_question,
    {from, to} for triggerTransition.
    """
    type: ActionType
    payload: Dict[str, Any] = Field(default_factory=dict)
    subtask_id: Optional[str] = None


class TaskRef(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    status: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_numeric_id(cls, value: Union[int, str]) -> Any:
        # Subtask ids arrive as JSON numbers from some clients.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class TaskContext(BaseModel):
    """
    The context handed to Agent.execute(). Only `current_task` is shared by
    all roles; the remaining flags are read by the roles that care about them.
    """
    model_config = ConfigDict(extra="allow")

    current_task: Optional[TaskRef] = None
    instruction: Optional[str] = None

    # Orchestrator
    available_agents: List[str] = Field(default_factory=list)
    approved: bool = False
    review_required: bool = False
    issues: List[str] = Field(default_factory=list)
    blocker: Optional[str] = None
    blocked_for: Optional[str] = None
    completed: bool = False

    # Tester
    test_phase: Optional[str] = None
    coverage_required: bool = False
    tests_passed: Optional[bool] = None
    coverage: Optional[float] = None

    # Developer
    task_type: Optional[str] = None
    test_file: Optional[str] = None
    refactor_needed: bool = False
    test_errors: Optional[List[str]] = None

    # Shared by tester and developer
    target_path: Optional[str] = None


class AgentResult(BaseModel):
    agent: str
    actions: List[Action] = Field(default_factory=list)
    error: Optional[str] = None


class ToolResult(BaseModel):
    """Outcome of dispatching one action, renderable as an XML <result> element."""
    tool: str
    action: str
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class CodeBlock:
    language: str
    content: str
