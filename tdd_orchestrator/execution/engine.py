"""
Engine - Workflow Orchestration Layer

The WorkflowEngine is the data-driven state machine ("The Manager"). It loads
StateMachineDefinitions from a repository, validates requested transitions
against them, and dispatches the exit/entry/auto-actions bound to the states
it moves between.
-----------------------------------------------

The engine is stateless with respect to workflow *instances*: callers pass
the current state in and receive the next state back, and they own
persisting it. The only shared mutable state is:

1. The paused flag (global, plus a set of individually paused workflows).
   It gates the *next* transition() call; calls already past the check run
   to completion.
2. The handler and guard registries, populated at startup and read many times.
3. The definition cache, filled on first use and cleared by invalidate().
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Set

from ..domain.models import StateMachineDefinition
from ..repositories.workflow import WorkflowRepository
from ..services.exceptions import NotFoundError, PausedError
from .transitions import (
    DEFAULT_GUARDS,
    ActionHandler,
    Guard,
    ResolvedTransition,
    handler_context,
    resolve_transition,
    run_actions,
)

logger = logging.getLogger(__name__)


class WorkflowEngine:
    def __init__(
        self,
        repository: WorkflowRepository,
        guards: Optional[Mapping[str, Guard]] = None,
    ):
        self.repository = repository
        self._cache: Dict[str, StateMachineDefinition] = {}
        self._action_handlers: Dict[str, ActionHandler] = {}
        self._guards: Dict[str, Guard] = dict(DEFAULT_GUARDS)
        self._guards.update(guards or {})
        self._paused = False
        self._paused_workflows: Set[str] = set()

    # ==========================================================================
    # Definitions
    # ==========================================================================

    def load_workflow(self, name: str) -> StateMachineDefinition:
        """
        Returns the cached definition, fetching it from the repository on a miss.
        Raises WorkflowNotFoundError when storage has no such workflow; other
        storage errors propagate untouched.
        """
        cached = self._cache.get(name)
        if cached is not None:
            logger.debug(f"Workflow cache hit: {name}")
            return cached

        definition = self.repository.get_workflow(name)
        self._cache[name] = definition
        logger.info(f"Loaded workflow '{name}' v{definition.version}")
        return definition

    def get_workflow(self, name: str) -> Optional[StateMachineDefinition]:
        try:
            return self.load_workflow(name)
        except NotFoundError:
            return None

    def list_workflows(self) -> List[str]:
        return self.repository.list_workflows()

    def update_workflow(self, definition: StateMachineDefinition):
        """Replaces a stored definition wholesale and drops the stale cache entry."""
        self.repository.update_workflow(definition)
        self.invalidate(definition.name)

    def invalidate(self, name: Optional[str] = None):
        if name is None:
            self._cache.clear()
        else:
            self._cache.pop(name, None)

    def validate_state(self, workflow_name: str, state: str) -> bool:
        return state in self.load_workflow(workflow_name).states

    # ==========================================================================
    # Registries
    # ==========================================================================

    def register_action_handler(self, action_id: str, handler: ActionHandler):
        """Last registration for a given id wins."""
        self._action_handlers[action_id] = handler

    def register_guard(self, name: str, guard: Guard):
        self._guards[name] = guard

    # ==========================================================================
    # Pause / Resume
    # ==========================================================================

    def pause(self, workflow_name: Optional[str] = None):
        if workflow_name:
            self._paused_workflows.add(workflow_name)
        else:
            self._paused = True
        logger.info(f"Paused {workflow_name or 'all workflows'}")

    def resume(self, workflow_name: Optional[str] = None):
        if workflow_name:
            self._paused_workflows.discard(workflow_name)
        else:
            self._paused = False
        logger.info(f"Resumed {workflow_name or 'all workflows'}")

    def is_paused(self, workflow_name: Optional[str] = None) -> bool:
        if workflow_name:
            return workflow_name in self._paused_workflows
        return self._paused

    # ==========================================================================
    # Transitions
    # ==========================================================================

    def resolve(
        self,
        workflow_name: str,
        current_state: str,
        event: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ResolvedTransition:
        """Computes the transition without running any action (a dry run)."""
        definition = self.load_workflow(workflow_name)
        return resolve_transition(
            definition, current_state, event, context or {}, self._guards
        )

    async def transition(
        self,
        workflow_name: str,
        current_state: str,
        event: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Steps the named workflow from current_state on event and returns the
        target state name.

        1. Pause check (no side effects when paused)
        2. Load (or reuse) the definition
        3. Resolve: event lookup, guard, planning rule
        4. Exit actions, entry actions, then the target's auto-action

        Raises:
            PausedError, WorkflowNotFoundError, InvalidTransitionError,
            GuardRejectedError, UnknownStrategyError. None are retried here.
        """
        if self._paused or workflow_name in self._paused_workflows:
            raise PausedError(workflow_name)

        context = context or {}
        resolved = self.resolve(workflow_name, current_state, event, context)

        await run_actions(
            self._action_handlers, resolved.actions, handler_context(resolved, context)
        )

        logger.info(f"[{workflow_name}] {current_state} --{event}--> {resolved.target}")
        return resolved.target
