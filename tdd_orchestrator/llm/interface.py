from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletion(BaseModel):
    content: str
    usage: Usage = Field(default_factory=Usage)


class LLMError(Exception):
    """
    Base class for provider failures. `retriable` is read by the agent retry
    policy: only transient failures (rate limiting) are retried.
    """
    retriable = False


class RateLimitError(LLMError):
    retriable = True


class AuthenticationError(LLMError):
    pass


class LLMTimeoutError(LLMError):
    pass


class LLMProvider(ABC):
    """
    Abstract Base Class interface that defines the contract for any LLM provider 
    (OpenAI, Anthropic, Local LLaMA, etc.)
    """

    @abstractmethod
    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
    ) -> ChatCompletion:
        """
        Sends a chat conversation and returns the assistant's reply with token usage.
        Raises an LLMError subclass on provider failures.
        """
        pass
