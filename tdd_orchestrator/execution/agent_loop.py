"""
Agent Loop - Observe / Think / Act Execution

Drives one agent through the `agent_loop` workflow:

    OBSERVE -> THINK -> ACT -> WAIT -> VERIFY -> COMPLETE
                 ^                        |
                 +--- VERIFICATION_FAILED-+

Any step may raise ERROR_OCCURRED. The loop itself is a stored
StateMachineDefinition executed through the WorkflowEngine, so pausing the
engine also halts agent loops at their next step.

- OBSERVE: ask the LLM what to do next.
- THINK: turn the reply into actions (XML tool calls first, natural language
  extraction as the fallback). After a failed verification, the LLM is asked
  again with the failing results attached.
- ACT: hand every action to the ActionDispatcher.
- VERIFY: pass when every dispatch succeeded.

When an EvolutionService is wired in, every finished run is logged as one
`agent_loop` outcome so recurring failures can be analysed.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..agents.base import Agent
from ..config import settings
from ..llm.interface import LLMError, LLMProvider
from ..parsing.response_parser import ResponseParser
from ..parsing.xml_parser import XmlOutputParser
from ..prompts.loader import render
from ..prompts.templates import Template
from ..repositories.transition_log import TransitionLogRepository
from ..schemas.actions import Action, ActionType, ToolResult
from ..services.dispatcher import ActionDispatcher
from ..services.evolution import EvolutionService
from ..services.exceptions import InvalidTransitionError, NotFoundError
from ..services.notifier import Notifier
from ..state.models import AgentLoopEvent, AgentLoopState
from .engine import WorkflowEngine

logger = logging.getLogger(__name__)

AGENT_LOOP_WORKFLOW = "agent_loop"

TERMINAL_STATES = (AgentLoopState.COMPLETE.value, AgentLoopState.ERROR.value)


def update_context(
    from_state: Union[AgentLoopState, str],
    event: Union[AgentLoopEvent, str],
    context: Mapping[str, Any],
) -> Dict[str, Any]:
    """
    Returns the loop context after `event` fired in `from_state`.
    Pure: `context` itself is never modified.
    """
    from_state = AgentLoopState(from_state)
    event = AgentLoopEvent(event)
    updated = dict(context)

    # Recovering from an error is not a step of its own.
    if not (from_state == AgentLoopState.ERROR and event == AgentLoopEvent.ERROR_HANDLED):
        updated["step_count"] = updated.get("step_count", 0) + 1

    updated["last_event"] = event.value

    if event == AgentLoopEvent.OBSERVE_COMPLETE:
        updated["last_observation"] = context.get("last_result")
    elif event == AgentLoopEvent.THINK_COMPLETE:
        updated["plan"] = context.get("last_result")
    elif event == AgentLoopEvent.ACTION_COMPLETE:
        updated["action_result"] = context.get("last_result")
    elif event == AgentLoopEvent.VERIFICATION_FAILED:
        updated["retry_count"] = updated.get("retry_count", 0) + 1
    elif event == AgentLoopEvent.ERROR_OCCURRED:
        updated["error"] = context.get("error") or "Unknown error"
        updated["failed_state"] = from_state.value
    elif event == AgentLoopEvent.ERROR_HANDLED:
        updated.pop("error", None)

    return updated


class AgentLoopResult(BaseModel):
    subtask_id: str
    agent: str
    state: AgentLoopState
    context: Dict[str, Any] = Field(default_factory=dict)
    results: List[ToolResult] = Field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.state == AgentLoopState.COMPLETE


def outcome_metrics(result: AgentLoopResult) -> Dict[str, Any]:
    """The metrics logged for a finished run; failures carry `error` and `state`."""
    metrics: Dict[str, Any] = {
        "subtask_id": result.subtask_id,
        "agent": result.agent,
        "steps": result.context.get("step_count", 0),
        "retries": result.context.get("retry_count", 0),
    }
    if not result.completed:
        metrics["error"] = result.context.get("error") or "Unknown error"
        metrics["state"] = result.context.get("failed_state")
    return metrics


class AgentLoop:
    def __init__(
        self,
        engine: WorkflowEngine,
        llm: LLMProvider,
        dispatcher: ActionDispatcher,
        transition_log: Optional[TransitionLogRepository] = None,
        notifier: Optional[Notifier] = None,
        evolution: Optional[EvolutionService] = None,
        max_steps: int = settings.AGENT_LOOP_MAX_STEPS,
        workflow_name: str = AGENT_LOOP_WORKFLOW,
    ):
        self.engine = engine
        self.llm = llm
        self.dispatcher = dispatcher
        self.transition_log = transition_log
        self.notifier = notifier
        self.evolution = evolution
        self.max_steps = max_steps
        self.workflow_name = workflow_name
        self.xml_parser = XmlOutputParser()
        self.action_parser = ResponseParser()

    async def run(
        self,
        subtask_id: str,
        agent: Agent,
        context: Optional[Mapping[str, Any]] = None,
    ) -> AgentLoopResult:
        """
        Runs the loop until COMPLETE or ERROR.

        LLM and lifecycle failures inside a step move the loop to ERROR
        (reported in the result). Engine failures (PausedError, an invalid
        definition) propagate.
        """
        definition = self.engine.load_workflow(self.workflow_name)
        state = definition.initial_state
        ctx: Dict[str, Any] = {**(context or {}), "step_count": 0}
        plan: List[Action] = []
        results: List[ToolResult] = []

        while state not in TERMINAL_STATES:
            if ctx["step_count"] >= self.max_steps:
                ctx["error"] = f"Step budget exceeded (max {self.max_steps} steps)"
                state, ctx = await self._advance(
                    subtask_id, agent, state, AgentLoopEvent.ERROR_OCCURRED, ctx
                )
                break

            event, ctx, plan, results = await self._perform(
                subtask_id, agent, state, ctx, plan, results
            )
            state, ctx = await self._advance(subtask_id, agent, state, event, ctx)

        if state == AgentLoopState.ERROR.value:
            logger.warning(f"Agent {agent.name} stopped on {subtask_id}: {ctx.get('error')}")
        result = AgentLoopResult(
            subtask_id=subtask_id,
            agent=agent.name,
            state=AgentLoopState(state),
            context=ctx,
            results=results,
        )
        if self.evolution is not None:
            self.evolution.log_outcome(self.workflow_name, result.completed, outcome_metrics(result))
        return result

    # ==========================================================================
    # Steps
    # ==========================================================================

    async def _perform(
        self,
        subtask_id: str,
        agent: Agent,
        state: str,
        ctx: Dict[str, Any],
        plan: List[Action],
        results: List[ToolResult],
    ) -> Tuple[AgentLoopEvent, Dict[str, Any], List[Action], List[ToolResult]]:
        ctx = dict(ctx)

        if state == AgentLoopState.OBSERVE:
            try:
                ctx["last_result"] = await self._ask(agent, ctx)
            except LLMError as e:
                ctx["error"] = f"LLM call failed: {e}"
                return AgentLoopEvent.ERROR_OCCURRED, ctx, plan, results
            return AgentLoopEvent.OBSERVE_COMPLETE, ctx, plan, results

        if state == AgentLoopState.THINK:
            text = ctx.get("last_observation") or ""
            feedback = ctx.pop("feedback", None)
            if feedback:
                try:
                    text = await self._ask(agent, ctx, feedback)
                except LLMError as e:
                    ctx["error"] = f"LLM call failed: {e}"
                    return AgentLoopEvent.ERROR_OCCURRED, ctx, plan, results
            plan = self._plan(text)
            ctx["last_result"] = [action.model_dump(mode="json") for action in plan]
            return AgentLoopEvent.THINK_COMPLETE, ctx, plan, results

        if state == AgentLoopState.ACT:
            try:
                results = [
                    await self.dispatcher.dispatch(action, subtask_id) for action in plan
                ]
            except (InvalidTransitionError, NotFoundError) as e:
                ctx["error"] = str(e)
                return AgentLoopEvent.ERROR_OCCURRED, ctx, plan, results
            ctx["last_result"] = [result.model_dump(mode="json") for result in results]
            return AgentLoopEvent.ACTION_COMPLETE, ctx, plan, results

        if state == AgentLoopState.WAIT:
            return AgentLoopEvent.WAIT_COMPLETE, ctx, plan, results

        if state == AgentLoopState.VERIFY:
            failed = [result for result in results if not result.success]
            if not failed:
                return AgentLoopEvent.VERIFICATION_PASSED, ctx, plan, results
            ctx["feedback"] = "\n".join(
                self.xml_parser.format_tool_result(result) for result in failed
            )
            return AgentLoopEvent.VERIFICATION_FAILED, ctx, plan, results

        ctx["error"] = f"Unexpected state: {state}"
        return AgentLoopEvent.ERROR_OCCURRED, ctx, plan, results

    async def _advance(
        self,
        subtask_id: str,
        agent: Agent,
        state: str,
        event: AgentLoopEvent,
        ctx: Dict[str, Any],
    ) -> Tuple[str, Dict[str, Any]]:
        next_state = await self.engine.transition(self.workflow_name, state, event.value, ctx)

        if self.transition_log is not None:
            self.transition_log.log_transition(subtask_id, agent.name, state, next_state)
        if self.notifier is not None:
            await self.notifier.broadcast(
                "state_change",
                {
                    "subtask_id": subtask_id,
                    "agent": agent.name,
                    "from": state,
                    "to": next_state,
                },
            )

        return next_state, update_context(state, event, ctx)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _ask(
        self, agent: Agent, ctx: Mapping[str, Any], feedback: Optional[str] = None
    ) -> str:
        task = ctx.get("current_task") or {}
        user_message = render(
            Template.AGENT_STEP,
            instruction=ctx.get("instruction") or "Work on the current subtask.",
            task_id=task.get("id"),
            task_status=task.get("status"),
            feedback=feedback,
        )
        completion = await self.llm.chat(
            [
                {"role": "system", "content": agent.prompt},
                {"role": "user", "content": user_message},
            ]
        )
        return completion.content

    def _plan(self, text: str) -> List[Action]:
        """Tool calls when the reply has any; otherwise the actionable parsed phrases."""
        actions = self.xml_parser.extract_actions(text)
        if actions:
            return actions
        # A reply with nothing actionable means the agent considers itself done.
        return [
            action
            for action in self.action_parser.parse_with_code(text)
            if action.type not in (ActionType.GENERIC, ActionType.ASK_QUESTION)
        ]
