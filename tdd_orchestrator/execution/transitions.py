"""
Transition Resolution - Pure FSM Step Computation

Given a StateMachineDefinition, a current state, an event and a context, work
out which transition fires and which actions it implies. Nothing here touches
storage or runs a handler; the WorkflowEngine and the OrchestratorService
both build on these functions and add their own side effects around them.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Tuple, Union

from ..domain.models import StateMachineDefinition
from ..services.exceptions import (
    GuardRejectedError,
    InvalidTransitionError,
    UnknownStrategyError,
)

logger = logging.getLogger(__name__)

Guard = Callable[[Mapping[str, Any]], bool]
ActionHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]

STRATEGIC_PLANNING = "strategic_planning"
STANDARD_PLANNING = "standard_planning"
STRATEGY_ROUTES = {
    "three-tier": STRATEGIC_PLANNING,
    "standard": STANDARD_PLANNING,
}


def context_value(context: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Reads the first key present; contexts arrive in both snake_case and camelCase."""
    for key in keys:
        if key in context:
            return context[key]
    return default


def _tests_exist(context: Mapping[str, Any]) -> bool:
    return context_value(context, "tests_exist", "testsExist") is not False


def _has_tests(context: Mapping[str, Any]) -> bool:
    return bool(context_value(context, "tests_exist", "testsExist"))


DEFAULT_GUARDS: Dict[str, Guard] = {
    "testsExist": _tests_exist,
    "hasTests": _has_tests,
}


@dataclass(frozen=True)
class ResolvedTransition:
    """
    The outcome of resolve_transition(): where the machine goes and what runs
    on the way. Actions run in the order exit -> entry -> auto-action.
    """

    workflow: str
    source: str
    event: str
    target: str
    exit_actions: Tuple[str, ...] = ()
    entry_actions: Tuple[str, ...] = ()
    auto_action: Optional[str] = None

    @property
    def actions(self) -> Tuple[str, ...]:
        tail = (self.auto_action,) if self.auto_action else ()
        return self.exit_actions + self.entry_actions + tail


def is_escalation(context: Mapping[str, Any]) -> bool:
    return (
        context_value(context, "is_bug_escalation", "isBugEscalation") is True
        or context_value(context, "escalated_from", "escalatedFrom") == "devon"
    )


def route_planning(
    definition: StateMachineDefinition,
    source: str,
    declared_target: str,
    context: Mapping[str, Any],
) -> str:
    """
    The planning rule. Only applies to transitions that enter one of the two
    planning states of a definition declaring both, from outside them. Edges
    between the planning states (an ESCALATE) keep their declared target. A
    bug escalation always wins over the requested strategy.
    """
    planning_states = (STRATEGIC_PLANNING, STANDARD_PLANNING)
    if declared_target not in planning_states or source in planning_states:
        return declared_target
    if not all(state in definition.states for state in planning_states):
        return declared_target

    if is_escalation(context):
        return STRATEGIC_PLANNING

    strategy = context.get("strategy")
    if not strategy:
        return declared_target
    if strategy not in STRATEGY_ROUTES:
        raise UnknownStrategyError(strategy)
    return STRATEGY_ROUTES[strategy]


def resolve_transition(
    definition: StateMachineDefinition,
    current_state: str,
    event: str,
    context: Mapping[str, Any],
    guards: Mapping[str, Guard],
) -> ResolvedTransition:
    """
    Computes the transition for (current_state, event) under `context`.

    Raises:
        InvalidTransitionError: unknown state, final state, or event not defined.
        GuardRejectedError: the transition's guard is unknown or returned False.
        UnknownStrategyError: a planning transition got an unrecognized strategy.
    """
    name = definition.name
    state_spec = definition.states.get(current_state)
    if state_spec is None:
        logger.warning(f"[{name}] rejected {event}: unknown state '{current_state}'")
        raise InvalidTransitionError(
            f"Invalid transition: state '{current_state}' does not exist in workflow '{name}'",
            workflow=name, state=current_state, event=event,
        )

    transition = state_spec.on.get(event)
    if transition is None:
        logger.warning(f"[{name}] rejected {event}: not defined for state '{current_state}'")
        raise InvalidTransitionError(
            f"Invalid transition: no '{event}' transition from state '{current_state}' "
            f"in workflow '{name}'",
            workflow=name, state=current_state, event=event,
        )

    if transition.guard is not None:
        guard = guards.get(transition.guard)
        if guard is None or not guard(context):
            reason = "is not registered" if guard is None else "returned False"
            logger.warning(
                f"[{name}] rejected {event} from '{current_state}': guard "
                f"'{transition.guard}' {reason}"
            )
            raise GuardRejectedError(
                f"Invalid transition: guard '{transition.guard}' rejected '{event}' "
                f"from state '{current_state}' in workflow '{name}'",
                guard=transition.guard, workflow=name, state=current_state, event=event,
            )

    target = route_planning(definition, current_state, transition.target, context)

    target_spec = definition.states.get(target)
    if target_spec is None:
        # Definitions are validated on load; this only trips on hand-built ones.
        raise InvalidTransitionError(
            f"Invalid transition: target '{target}' does not exist in workflow '{name}'",
            workflow=name, state=current_state, event=event,
        )

    return ResolvedTransition(
        workflow=name,
        source=current_state,
        event=event,
        target=target,
        exit_actions=state_spec.exit,
        entry_actions=target_spec.entry,
        auto_action=definition.metadata.auto_actions.get(target),
    )


def handler_context(transition: ResolvedTransition, context: Mapping[str, Any]) -> Dict[str, Any]:
    """A fresh dict for handlers; the caller's context is never handed out."""
    enriched = dict(context)
    enriched.update(
        workflow=transition.workflow,
        from_state=transition.source,
        to_state=transition.target,
        event=transition.event,
    )
    return enriched


async def run_actions(
    handlers: Mapping[str, ActionHandler],
    action_ids: Iterable[str],
    context: Dict[str, Any],
) -> None:
    """Runs the registered handler for each id in order; unknown ids are no-ops."""
    for action_id in action_ids:
        handler = handlers.get(action_id)
        if handler is None:
            logger.debug(f"No handler registered for action '{action_id}'")
            continue
        result = handler(context)
        if inspect.isawaitable(result):
            await result
