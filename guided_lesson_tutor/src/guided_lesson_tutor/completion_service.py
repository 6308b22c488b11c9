"""
Completion Service

Streaming text-completion interface consumed by the dialogue engine, and an
OpenAI-backed implementation.
"""

import logging
import os
from typing import AsyncIterator, Optional, Protocol

import openai
from dotenv import load_dotenv
from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """Transport-level failure while streaming a completion."""


class CompletionService(Protocol):
    def stream(self, system_prompt: str, user_message: str, max_tokens: int) -> AsyncIterator[str]:
        """Yield text chunks; raise CompletionError on transport failure."""
        ...


class OpenAICompletionService:
    """Chat-completion streaming through the OpenAI SDK."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        temperature: float = 0.7
    ):
        if client is None:
            load_dotenv()
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OPENAI_API_KEY not found in environment variables")
            client = AsyncOpenAI(api_key=api_key)
        self.client = client
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        self.temperature = temperature

    async def stream(self, system_prompt: str, user_message: str, max_tokens: int) -> AsyncIterator[str]:
        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
                stream=True,
                max_tokens=max_tokens,
                temperature=self.temperature,
            )
            async for chunk in stream:
                if chunk.choices and len(chunk.choices) > 0:
                    delta = chunk.choices[0].delta
                    if delta and delta.content:
                        yield delta.content
        except openai.OpenAIError as e:
            logger.warning(f"⚠️ [Completion] Streaming failed: {e}")
            raise CompletionError(str(e)) from e
