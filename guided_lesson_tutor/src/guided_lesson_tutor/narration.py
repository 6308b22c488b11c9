"""
Narration Channel

Speech-bubble state, its presenter, semantic splitting of long fragments and
the reading-time pacing used for narration autoplay.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from guided_lesson_tutor.config import EngineConfig
from guided_lesson_tutor.script_store import PacingHint

logger = logging.getLogger(__name__)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class NarrationFragment:
    """A single bubble's worth of narration."""
    content: str
    pacing: PacingHint = PacingHint.NORMAL


def _split_at_boundaries(text: str, max_length: int) -> List[str]:
    """Split at paragraph breaks first, then group sentences up to max_length."""
    if "\n\n" in text:
        paragraphs = [p for p in text.split("\n\n") if p.strip()]
        if len(paragraphs) > 1:
            return paragraphs

    parts = _SENTENCE_BOUNDARY.split(text)
    if len(parts) <= 1:
        return [text]

    chunks = []
    current = ""
    for part in parts:
        if not current:
            current = part
        elif len(f"{current} {part}") <= max_length:
            current = f"{current} {part}"
        else:
            chunks.append(current)
            current = part
    if current:
        chunks.append(current)

    return chunks if len(chunks) > 1 else [text]


def semantic_split(
    fragments: Sequence[NarrationFragment],
    max_length: int = 100
) -> List[NarrationFragment]:
    """
    Break long fragments into reading-sized chunks.

    Fragments within max_length pass through unchanged. Longer ones split at
    paragraph breaks, then at sentence endings. Never splits mid-sentence, so
    a single sentence longer than max_length stays whole.
    """
    result = []
    for fragment in fragments:
        if len(fragment.content) <= max_length:
            result.append(fragment)
            continue
        for chunk in _split_at_boundaries(fragment.content, max_length):
            if chunk.strip():
                result.append(replace(fragment, content=chunk.strip()))
    return result


# ---------------------------------------------------------------------------
# Pacing
# ---------------------------------------------------------------------------

def display_ms(text: str, config: EngineConfig) -> int:
    """Reading time: ~300ms per word, clamped to [2s, 8s]."""
    word_count = len(text.split())
    return min(max(word_count * config.words_ms, config.min_display_ms), config.max_display_ms)


def gap_ms(fragment: NarrationFragment, config: EngineConfig) -> int:
    """Pause after a bubble before the next one appears."""
    if fragment.content.rstrip().endswith("?"):
        return config.question_gap_ms
    if fragment.pacing is PacingHint.FAST:
        return config.short_gap_ms
    if fragment.pacing is PacingHint.SLOW:
        return config.long_gap_ms
    length = len(fragment.content)
    if length < 50:
        return config.short_gap_ms
    if length < 120:
        return config.medium_gap_ms
    return config.long_gap_ms


def fragment_schedule_ms(
    fragments: Sequence[NarrationFragment],
    config: EngineConfig
) -> List[int]:
    """Per-fragment dwell times; the last one carries the one-time grace period."""
    schedule = [display_ms(f.content, config) + gap_ms(f, config) for f in fragments]
    if schedule:
        schedule[-1] += config.final_grace_ms
    return schedule


def narration_duration_ms(fragments: Sequence[NarrationFragment], config: EngineConfig) -> int:
    return sum(fragment_schedule_ms(fragments, config))


# ---------------------------------------------------------------------------
# State and presenter
# ---------------------------------------------------------------------------

@dataclass
class NarrationState:
    """Speech bubble state."""
    fragments: List[NarrationFragment] = field(default_factory=list)
    cursor: int = 0
    active: bool = False
    paused: bool = False
    thinking: bool = False
    subject_id: Optional[str] = None
    hidden_instantly: bool = False

    @property
    def current(self) -> Optional[NarrationFragment]:
        if not self.active or self.cursor >= len(self.fragments):
            return None
        return self.fragments[self.cursor]


@dataclass(frozen=True)
class NarrationSnapshot:
    """Read-only view for rendering."""
    fragments: Tuple[str, ...]
    cursor: int
    active: bool
    paused: bool
    thinking: bool
    subject_id: Optional[str]
    hidden_instantly: bool


class NarrationPresenter:
    """Owns the speech-bubble channel."""

    def __init__(self):
        self.state = NarrationState()
        self._resumed = asyncio.Event()
        self._resumed.set()

    def show_narrative(self, fragments: Sequence[NarrationFragment], subject_id: str):
        """Replace the bubble contents and start from the first fragment."""
        logger.debug(f"💬 [Narration] Showing {len(fragments)} fragment(s) for {subject_id}")
        self.state = NarrationState(
            fragments=list(fragments),
            cursor=0,
            active=True,
            paused=self.state.paused,
            subject_id=subject_id,
        )

    def next_message(self):
        """Advance the cursor; no-op at the end or when inactive."""
        if not self.state.active or self.state.cursor >= len(self.state.fragments) - 1:
            return
        self.state.cursor += 1

    def hide_narrative(self, instant: bool = False):
        """Clear the bubble. instant=True suppresses the fade-out."""
        self.state = NarrationState(
            paused=self.state.paused,
            hidden_instantly=instant,
        )

    def set_thinking(self, thinking: bool):
        self.state.thinking = thinking

    def pause(self):
        """Hold autoplay, e.g. while a confirmation dialog is open."""
        self.state.paused = True
        self._resumed.clear()

    def resume(self):
        self.state.paused = False
        self._resumed.set()

    async def wait_until_resumed(self):
        await self._resumed.wait()

    def clear(self):
        """Full reset, including the pause gate."""
        self.state = NarrationState()
        self._resumed.set()

    @property
    def is_active(self) -> bool:
        return self.state.active

    def snapshot(self) -> NarrationSnapshot:
        state = self.state
        return NarrationSnapshot(
            fragments=tuple(f.content for f in state.fragments),
            cursor=state.cursor,
            active=state.active,
            paused=state.paused,
            thinking=state.thinking,
            subject_id=state.subject_id,
            hidden_instantly=state.hidden_instantly,
        )
