"""
Service Layer Exceptions

Error taxonomy shared by the WorkflowEngine, the OrchestratorService and the
EvolutionService. Every failure surfaced to a caller carries a distinguishable
kind so the API layer can tell "this will work once resumed" (PausedError)
apart from "this will never work" (InvalidTransitionError).
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for all orchestration errors."""
    pass


class NotFoundError(WorkflowError):
    """Raised when a named workflow or a subtask does not exist."""
    pass


class WorkflowNotFoundError(NotFoundError):
    def __init__(self, name: str):
        super().__init__(f"Workflow not found: {name}")
        self.name = name


class SubtaskNotFoundError(NotFoundError):
    def __init__(self, subtask_id: str):
        super().__init__(f"Subtask not found: {subtask_id}")
        self.subtask_id = subtask_id


class PausedError(WorkflowError):
    """Raised by WorkflowEngine.transition while the engine (or workflow) is paused."""

    def __init__(self, workflow: Optional[str] = None):
        super().__init__("Workflow execution is paused")
        self.workflow = workflow


class InvalidTransitionError(WorkflowError):
    """
    Raised when an event is not defined for the current state, when the
    target lifecycle edge is illegal, or when a guard rejects the transition.
    """

    def __init__(
        self,
        message: str,
        *,
        workflow: Optional[str] = None,
        state: Optional[str] = None,
        event: Optional[str] = None,
    ):
        super().__init__(message)
        self.workflow = workflow
        self.state = state
        self.event = event


class GuardRejectedError(InvalidTransitionError):
    """The event exists for the state, but its guard evaluated to False."""

    def __init__(self, message: str, *, guard: str, **kwargs):
        super().__init__(message, **kwargs)
        self.guard = guard


class UnknownStrategyError(WorkflowError):
    """Raised when a planning transition is requested with an unrecognized strategy."""

    def __init__(self, strategy: str):
        super().__init__(f"Unknown planning strategy: {strategy}")
        self.strategy = strategy


class InvalidDefinitionError(WorkflowError):
    """Raised when a stored state machine definition fails validation."""
    pass


class AgentExecutionError(WorkflowError):
    """
    Wraps an LLM failure that survived the agent retry policy.
    `retriable` tells the caller whether trying again later makes sense.
    """

    def __init__(self, agent: str, cause: Exception, *, retriable: bool = False):
        super().__init__(f"Agent '{agent}' failed: {cause}")
        self.agent = agent
        self.cause = cause
        self.retriable = retriable
