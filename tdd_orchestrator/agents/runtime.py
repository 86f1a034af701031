"""
Agent Runtime - Retry Wrapper

Wraps any Agent with the shared retry policy: transient provider failures
(LLMError with `retriable`, i.e. rate limiting) are retried with exponential
backoff up to a fixed number of attempts; everything else is surfaced at
once. A successful retry returns the agent's result untouched.
"""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ..config import settings
from ..llm.interface import LLMError
from ..schemas.actions import AgentResult
from ..services.exceptions import AgentExecutionError
from .base import Agent, ContextInput

logger = logging.getLogger(__name__)


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, LLMError) and error.retriable


class AgentRuntime:
    def __init__(
        self,
        agent: Agent,
        max_attempts: int = settings.AGENT_MAX_ATTEMPTS,
        backoff_seconds: float = settings.AGENT_RETRY_BACKOFF_SECONDS,
        max_wait_seconds: float = settings.AGENT_RETRY_MAX_WAIT_SECONDS,
    ):
        self.agent = agent
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.max_wait_seconds = max_wait_seconds

    @property
    def name(self) -> str:
        return self.agent.name

    @property
    def prompt(self) -> str:
        return self.agent.prompt

    async def execute(self, context: ContextInput = None) -> AgentResult:
        """
        Raises:
            AgentExecutionError: the provider failed and retrying did not help
                (or the failure was not retriable). `retriable` mirrors the
                last provider error.
        """

        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=self.max_wait_seconds),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def _execute_with_retry():
            return await self.agent.execute(context)

        try:
            return await _execute_with_retry()
        except LLMError as e:
            logger.error(f"Agent {self.agent.name} gave up: {e!r}")
            raise AgentExecutionError(self.agent.name, e, retriable=e.retriable) from e
