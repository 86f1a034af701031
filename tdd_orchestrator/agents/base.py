"""
Agent Interface.

Defines the contract every role (Orion, Tara, Devon) implements:
`execute(context) -> AgentResult`. Roles do not share behaviour through a
base class; the retry policy lives in AgentRuntime and the optional LLM
consultation in consult_llm(), both applied by composition.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from ..llm.interface import LLMProvider
from ..parsing.response_parser import ResponseParser
from ..parsing.xml_parser import XmlOutputParser
from ..prompts.loader import render
from ..prompts.templates import Template
from ..schemas.actions import Action, AgentResult, TaskContext

logger = logging.getLogger(__name__)

ContextInput = Union[TaskContext, Mapping[str, Any], None]


class Agent(ABC):
    """
    Attributes:
        name: Lower-case agent id ("orion", "tara", "devon").
        role: Prompt store role ("orchestrator", "tester", "developer").
        prompt: The role's system prompt, non-empty.
    """
    name: str
    role: str
    prompt: str

    @abstractmethod
    async def execute(self, context: ContextInput = None) -> AgentResult:
        """
        Proposes actions for the given context. Ordinary business inputs
        (no current task, unknown status) yield an empty action list;
        provider failures (LLMError) propagate to the caller.
        """
        pass


def coerce_context(context: ContextInput) -> TaskContext:
    """Accepts a TaskContext, a plain dict (snake_case or camelCase keys) or None."""
    if context is None:
        return TaskContext()
    if isinstance(context, TaskContext):
        return context
    return TaskContext.model_validate(_snake_case_keys(context))


def _snake_case_keys(data: Mapping[str, Any]) -> dict:
    converted = {}
    for key, value in data.items():
        snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in key)
        converted[snake] = value
    return converted


def invalid_context(agent: str, error: ValidationError) -> AgentResult:
    logger.warning(f"Agent {agent} received an invalid context: {error}")
    return AgentResult(agent=agent, error=str(error))


async def consult_llm(
    llm: LLMProvider,
    prompt: str,
    context: TaskContext,
    feedback: Optional[str] = None,
) -> List[Action]:
    """
    Sends the role prompt plus the current instruction to the LLM and turns
    the reply into actions: XML tool calls when the reply has any, natural
    language extraction otherwise.
    """
    task = context.current_task
    user_message = render(
        Template.AGENT_STEP,
        instruction=context.instruction,
        task_id=task.id if task else None,
        task_status=task.status if task else None,
        feedback=feedback,
    )
    completion = await llm.chat(
        [
            {"role": "system", "content": prompt},
            {"role": "user", "content": user_message},
        ]
    )
    logger.debug(f"LLM usage: {completion.usage.total_tokens} tokens")

    actions = XmlOutputParser().extract_actions(completion.content)
    if not actions:
        actions = ResponseParser().parse_with_code(completion.content)

    subtask_id = task.id if task else None
    return [action.model_copy(update={"subtask_id": subtask_id}) for action in actions]
