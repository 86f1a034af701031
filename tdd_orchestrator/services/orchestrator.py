"""
Orchestrator Service - Subtask Lifecycle Façade

This service is the entry point for every subtask lifecycle change. It owns
no state of its own: the persisted status in the SubtaskRepository is the
single source of truth, so two service instances over the same store (or one
instance before and after a restart) always agree.

Every transition is all-or-nothing up to the persistence write:
1. Read the current state
2. Validate the edge against the hardcoded lifecycle (event + guard)
3. Persist the new state
4. Run the target state's entry actions
5. Notify listeners (errors propagate; the persisted state is kept)
"""

import logging
from typing import Any, Dict, Mapping, Optional

from ..data.hardcoded_workflows import SUBTASK_LIFECYCLE
from ..domain.models import StateMachineDefinition
from ..execution.transitions import (
    DEFAULT_GUARDS,
    ActionHandler,
    handler_context,
    resolve_transition,
    run_actions,
)
from ..repositories.subtask import SubtaskRepository
from ..state.models import Subtask
from .exceptions import InvalidTransitionError, SubtaskNotFoundError
from .notifier import Notifier

logger = logging.getLogger(__name__)


def _log_state_change(context: Dict[str, Any]):
    logger.info(
        f"Subtask {context.get('subtask_id')} state changed: "
        f"{context['from_state']} -> {context['to_state']} ({context['event']})"
    )


class OrchestratorService:
    def __init__(
        self,
        repository: Optional[SubtaskRepository] = None,
        notifier: Optional[Notifier] = None,
        lifecycle: StateMachineDefinition = SUBTASK_LIFECYCLE,
    ):
        self.repository = repository
        self.notifier = notifier
        self.lifecycle = lifecycle
        self.action_handlers: Dict[str, ActionHandler] = {
            "log_state_change": _log_state_change,
        }

    # ==========================================================================
    # Lifecycle steps
    # ==========================================================================

    async def start_subtask(self, subtask_id: str) -> str:
        return await self.transition(subtask_id, "START")

    async def transition_to_red(self, subtask_id: str) -> str:
        """Tests written (and failing)."""
        return await self.transition(subtask_id, "TESTS_WRITTEN")

    async def transition_to_green(self, subtask_id: str, tests_exist: bool = True) -> str:
        """Tests pass. Guarded: refused when tests_exist is False."""
        return await self.transition(subtask_id, "TESTS_PASS", tests_exist=tests_exist)

    async def transition_to_refactor(self, subtask_id: str) -> str:
        return await self.transition(subtask_id, "REFACTOR")

    async def transition_to_integration_red(self, subtask_id: str) -> str:
        return await self.transition(subtask_id, "INTEGRATION_TEST")

    async def transition_to_integration_green(self, subtask_id: str) -> str:
        return await self.transition(subtask_id, "INTEGRATION_PASS")

    async def transition_to_verification(self, subtask_id: str) -> str:
        return await self.transition(subtask_id, "VERIFY")

    async def complete_subtask(self, subtask_id: str) -> str:
        return await self.transition(subtask_id, "VERIFICATION_PASS")

    async def block_subtask(self, subtask_id: str) -> str:
        return await self.transition(subtask_id, "BLOCK")

    async def unblock_subtask(self, subtask_id: str) -> str:
        return await self.transition(subtask_id, "UNBLOCK")

    async def fail_subtask(self, subtask_id: str) -> str:
        return await self.transition(subtask_id, "FAIL")

    # ==========================================================================
    # Generic transitions
    # ==========================================================================

    async def transition(self, subtask_id: str, event: str, **context: Any) -> str:
        """
        Applies `event` to the subtask and returns the new state.

        Raises:
            InvalidTransitionError: the edge is not legal from the persisted
                state (nothing is persisted or notified).
            SubtaskNotFoundError: a repository is configured but has no such subtask.
        """
        current_state = self._current_state(subtask_id)
        context = {"subtask_id": subtask_id, **context}

        resolved = resolve_transition(
            self.lifecycle, current_state, event, context, DEFAULT_GUARDS
        )
        new_state = resolved.target

        if self.repository is not None:
            self.repository.update_subtask_state(subtask_id, new_state)

        await run_actions(
            self.action_handlers, resolved.entry_actions, handler_context(resolved, context)
        )

        if self.notifier is not None:
            await self.notifier.notify_agent(subtask_id, new_state)

        logger.info(f"Subtask {subtask_id}: {current_state} -> {new_state}")
        return new_state

    async def transition_to_state(
        self, subtask_id: str, target: str, **context: Any
    ) -> str:
        """
        Moves the subtask to `target` using whichever lifecycle event leads
        there from its persisted state.
        """
        current_state = self._current_state(subtask_id)
        event = self._event_for_edge(current_state, target)
        if event is None:
            raise InvalidTransitionError(
                f"Invalid transition from '{current_state}' to '{target}' "
                f"for subtask {subtask_id}",
                workflow=self.lifecycle.name, state=current_state,
            )
        return await self.transition(subtask_id, event, **context)

    # ==========================================================================
    # Persistence pass-through
    # ==========================================================================

    def create_subtask(self, subtask_id: str, title: str = "") -> Subtask:
        if self.repository is None:
            return Subtask(id=subtask_id, title=title)
        return self.repository.create(subtask_id, title)

    def get_subtask_state(self, subtask_id: str) -> Optional[str]:
        if self.repository is None:
            return None
        return self.repository.get_subtask_state(subtask_id)

    def save_subtask_state(self, subtask_id: str, state: str):
        if self.repository is not None:
            self.repository.save_subtask_state(subtask_id, state)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _current_state(self, subtask_id: str) -> str:
        if self.repository is None:
            return self.lifecycle.initial_state
        state = self.repository.get_subtask_state(subtask_id)
        if state is None:
            raise SubtaskNotFoundError(subtask_id)
        return state

    def _event_for_edge(self, source: str, target: str) -> Optional[str]:
        state_spec = self.lifecycle.states.get(source)
        if state_spec is None:
            return None
        return next(
            (event for event, spec in state_spec.on.items() if spec.target == target),
            None,
        )

    def allowed_events(self, state: str) -> Mapping[str, str]:
        """Event -> target map for a lifecycle state (empty for final states)."""
        state_spec = self.lifecycle.states.get(state)
        if state_spec is None:
            return {}
        return {event: spec.target for event, spec in state_spec.on.items()}
