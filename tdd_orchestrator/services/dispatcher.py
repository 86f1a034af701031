"""
Action Dispatcher - Actions to Side Effects

Consumes the Actions produced by agents and the parsers:
- Lifecycle actions (triggerTransition, update_status) become
  OrchestratorService transitions.
- tool_call actions run the tool registered under the call's `name`.
- Every other action type runs the handler registered for that type.

Each dispatch yields a ToolResult that can be fed back to the LLM (see
XmlOutputParser.format_tool_result). Unhandled actions produce an
unsuccessful result; lifecycle errors propagate to the caller.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ..schemas.actions import Action, ActionType, ToolResult
from .orchestrator import OrchestratorService

logger = logging.getLogger(__name__)

ActionFn = Callable[[Action], Union[Any, Awaitable[Any]]]
ToolFn = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]

LIFECYCLE_ACTIONS = (ActionType.TRIGGER_TRANSITION, ActionType.UPDATE_STATUS)


async def _call(fn: Callable, argument: Any) -> Any:
    result = fn(argument)
    if inspect.isawaitable(result):
        result = await result
    return result


class ActionDispatcher:
    def __init__(self, orchestrator: Optional[OrchestratorService] = None):
        self.orchestrator = orchestrator
        self._handlers: Dict[str, ActionFn] = {}
        self._tools: Dict[str, ToolFn] = {}

    def register(self, action_type: Union[ActionType, str], fn: ActionFn):
        self._handlers[ActionType(action_type).value] = fn

    def register_tool(self, name: str, fn: ToolFn):
        """`fn` receives the flat tool-call dict (attributes plus child elements)."""
        self._tools[name] = fn

    async def dispatch(self, action: Action, subtask_id: Optional[str] = None) -> ToolResult:
        subtask_id = action.subtask_id or subtask_id

        if action.type in LIFECYCLE_ACTIONS:
            return await self._dispatch_lifecycle(action, subtask_id)
        if action.type == ActionType.TOOL_CALL:
            return await self._dispatch_tool(action)

        handler = self._handlers.get(action.type.value)
        if handler is None:
            logger.info(f"No handler for action '{action.type.value}'")
            return ToolResult(
                tool="dispatcher",
                action=action.type.value,
                success=False,
                error=f"No handler registered for action '{action.type.value}'",
            )

        output = await _call(handler, action)
        return ToolResult(
            tool="dispatcher",
            action=action.type.value,
            success=True,
            output=None if output is None else str(output),
        )

    async def _dispatch_lifecycle(self, action: Action, subtask_id: Optional[str]) -> ToolResult:
        target = action.payload.get("to") or action.payload.get("status")
        if self.orchestrator is None or not subtask_id or not target:
            return ToolResult(
                tool="orchestrator",
                action=action.type.value,
                success=False,
                error="Lifecycle action needs an orchestrator, a subtask id and a target state",
            )

        new_state = await self.orchestrator.transition_to_state(subtask_id, target)
        return ToolResult(
            tool="orchestrator",
            action=action.type.value,
            success=True,
            output=f"Subtask {subtask_id} is now {new_state}",
        )

    async def _dispatch_tool(self, action: Action) -> ToolResult:
        name = action.payload.get("name", "")
        tool_action = action.payload.get("action", "")
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(
                tool=name, action=tool_action, success=False,
                error=f"Unknown tool '{name}'",
            )

        try:
            output = await _call(tool, dict(action.payload))
        except Exception as e:
            # Tool failures are reported back to the agent rather than raised.
            logger.warning(f"Tool {name}.{tool_action} failed: {e}")
            return ToolResult(tool=name, action=tool_action, success=False, error=str(e))

        return ToolResult(
            tool=name,
            action=tool_action,
            success=True,
            output=None if output is None else str(output),
        )
