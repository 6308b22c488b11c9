"""
Session State Data Model

Defines the per-visit Session and the messages of the interaction transcript.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from guided_lesson_tutor.script_store import Channel


class Role(Enum):
    ASSISTANT = "assistant"
    USER = "user"


class ModulePhase(Enum):
    """Whether the scripted conversation is still running."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Message:
    """A transcript entry, tagged with the channel it was produced for."""
    role: Role
    content: str
    channel: Channel = Channel.INTERACTION
    is_streaming: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        object.__setattr__(self, "role", Role(self.role))
        object.__setattr__(self, "channel", Channel(self.channel))
        if self.role is Role.USER and self.channel is not Channel.INTERACTION:
            raise ValueError("User messages always belong to the interaction channel")

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, is_streaming: bool = False) -> "Message":
        return cls(role=Role.ASSISTANT, content=content, is_streaming=is_streaming)


@dataclass(frozen=True)
class LearnerContext:
    """Who is learning what; feeds prompts and the progress store."""
    lesson_id: str
    lesson_title: Optional[str] = None
    module_title: Optional[str] = None
    module_type: Optional[str] = None
    tutor_name: Optional[str] = None

    def describe(self) -> str:
        if self.lesson_title and self.module_title:
            module = self.module_title
            if self.module_type:
                module = f"{module} ({self.module_type})"
            return f"Current Lesson: {self.lesson_title}\nCurrent Module: {module}"
        return f"Current Lesson: {self.lesson_title or self.lesson_id}"


@dataclass
class Session:
    """Mutable state for one module visit."""
    generation: int
    module_id: Optional[str] = None
    context: Optional[LearnerContext] = None
    transcript: List[Message] = field(default_factory=list)
    current_step_index: int = 0
    is_streaming: bool = False
    is_checking: bool = False
    waiting_for_user: bool = False
    phase: ModulePhase = ModulePhase.IN_PROGRESS
    completed: bool = False
    attempt_counts: Dict[int, int] = field(default_factory=dict)
    # Fed back into completion calls, never rendered
    conversation_history: List[Dict[str, str]] = field(default_factory=list)

    @property
    def can_proceed(self) -> bool:
        return self.phase is ModulePhase.COMPLETED

    @property
    def lesson_id(self) -> Optional[str]:
        return self.context.lesson_id if self.context else None

    def add_message(self, message: Message) -> Message:
        assert message.channel is Channel.INTERACTION, (
            f"narration content leaked into the transcript: {message.content[:40]!r}"
        )
        self.transcript.append(message)
        return message

    def update_message(self, message_id: str, content: str, is_streaming: bool):
        for i, message in enumerate(self.transcript):
            if message.id == message_id:
                self.transcript[i] = replace(message, content=content, is_streaming=is_streaming)
                return

    def remove_message(self, message_id: str):
        self.transcript = [m for m in self.transcript if m.id != message_id]

    def record_history(self, role: Role, content: str):
        self.conversation_history.append({"role": role.value, "content": content})

    def attempts_for(self, step_index: int) -> int:
        return self.attempt_counts.get(step_index, 0)

    def increment_attempts(self, step_index: int) -> int:
        self.attempt_counts[step_index] = self.attempts_for(step_index) + 1
        return self.attempt_counts[step_index]

    def clear_attempts(self, step_index: int):
        self.attempt_counts.pop(step_index, None)

    def snapshot(self) -> "SessionSnapshot":
        return SessionSnapshot(
            module_id=self.module_id,
            generation=self.generation,
            transcript=tuple(self.transcript),
            current_step_index=self.current_step_index,
            is_streaming=self.is_streaming,
            is_checking=self.is_checking,
            waiting_for_user=self.waiting_for_user,
            phase=self.phase,
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a Session for rendering."""
    module_id: Optional[str]
    generation: int
    transcript: Tuple[Message, ...]
    current_step_index: int
    is_streaming: bool
    is_checking: bool
    waiting_for_user: bool
    phase: ModulePhase

    @property
    def can_proceed(self) -> bool:
        return self.phase is ModulePhase.COMPLETED
