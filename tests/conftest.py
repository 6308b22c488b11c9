"""
Shared fixtures: a scripted completion service and zero-delay engine config.
"""

import asyncio
import os
import sys
from typing import List, Optional

import pytest

# Add project root to path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(project_root, "guided_lesson_tutor", "src"))

from guided_lesson_tutor.config import EngineConfig


class FakeCompletionService:
    """
    Completion service returning queued responses.

    Calls are routed by max_tokens: the phrase budget draws from `phrases`,
    the acknowledgment budget from `acknowledgments`, anything else from
    `explanations`. A queued Exception is raised instead of streamed. When
    `gate` is set, every stream blocks on it before yielding.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self.phrases: List = []
        self.explanations: List = []
        self.acknowledgments: List = []
        self.calls: List[dict] = []
        self.gate: Optional[asyncio.Event] = None

    def _next(self, max_tokens: int):
        if max_tokens == self.config.phrase_max_tokens:
            return self.phrases.pop(0) if self.phrases else "Nice!"
        if max_tokens == self.config.acknowledgment_max_tokens:
            return self.acknowledgments.pop(0) if self.acknowledgments else "Okay, let's continue!"
        return self.explanations.pop(0) if self.explanations else "Correct! Well done."

    async def stream(self, system_prompt: str, user_message: str, max_tokens: int):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_message": user_message,
            "max_tokens": max_tokens,
        })
        response = self._next(max_tokens)
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(response, Exception):
            raise response
        for word in response.split(" "):
            await asyncio.sleep(0)
            yield word + " "


@pytest.fixture
def config():
    """Engine config with every pacing delay collapsed to a bare yield."""
    return EngineConfig(time_scale=0)


@pytest.fixture
def completion(config):
    return FakeCompletionService(config)
