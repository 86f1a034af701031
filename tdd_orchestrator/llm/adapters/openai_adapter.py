from typing import Dict, List, Optional

import openai
from openai import AsyncOpenAI

from ..interface import (
    AuthenticationError,
    ChatCompletion,
    LLMError,
    LLMProvider,
    LLMTimeoutError,
    RateLimitError,
    Usage,
)
from ...config import settings


class OpenAIAdapter(LLMProvider):
    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = settings.OPENAI_MODEL,
        temperature: float = settings.LLM_TEMPERATURE,
    ):
        # Retries are owned by the agent runtime, not the SDK.
        self.client = AsyncOpenAI(api_key=api_key, max_retries=0)
        self.model_name = model_name
        self.temperature = temperature

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
    ) -> ChatCompletion:
        # This is where the specific OpenAI implementation lives.
        # If OpenAI changes their API tomorrow, we ONLY change this file.
        try:
            completion = await self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=self.temperature if temperature is None else temperature,
            )
        except openai.RateLimitError as e:
            raise RateLimitError(str(e)) from e
        except openai.AuthenticationError as e:
            raise AuthenticationError(str(e)) from e
        except openai.APITimeoutError as e:
            raise LLMTimeoutError(str(e)) from e
        except openai.OpenAIError as e:
            raise LLMError(str(e)) from e

        # We unwrap the specific OpenAI response structure here
        usage = completion.usage
        return ChatCompletion(
            content=completion.choices[0].message.content or "",
            usage=Usage(
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            )
            if usage
            else Usage(),
        )
