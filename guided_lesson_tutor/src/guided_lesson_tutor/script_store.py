"""
Lesson Script Store

Step data model and the read-only mapping from module identifier to the
ordered steps of its scripted conversation.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

OPEN_QA_MARKER = "tap next"


class Channel(Enum):
    """Presentation channel a message belongs to."""
    NARRATION = "narration"  # Speech bubble next to the avatar
    INTERACTION = "interaction"  # Main transcript, where the learner types


class PacingHint(Enum):
    """Narration timing hint; ignored for interaction steps."""
    SLOW = "slow"
    NORMAL = "normal"
    FAST = "fast"


class StepKind(Enum):
    """How an answerable step is graded."""
    GRADED = "graded"  # Up to max attempts, then forced advance
    OPEN_QA = "open_qa"  # End-of-module questions, loops until the learner is ready


@dataclass(frozen=True)
class Step:
    """One authored unit of scripted dialogue."""
    messages: Tuple[str, ...]
    channel: Channel
    wait_for_user: bool = False
    eval_context: Optional[str] = None
    module_complete: bool = False
    pacing: PacingHint = PacingHint.NORMAL
    kind: Optional[StepKind] = None

    def __post_init__(self):
        # Authored data may come in as lists / plain strings
        object.__setattr__(self, "messages", tuple(self.messages))
        object.__setattr__(self, "channel", Channel(self.channel))
        object.__setattr__(self, "pacing", PacingHint(self.pacing))
        if self.kind is not None:
            object.__setattr__(self, "kind", StepKind(self.kind))

    @property
    def is_answerable(self) -> bool:
        return self.eval_context is not None

    @property
    def resolved_kind(self) -> Optional[StepKind]:
        """
        Grading kind for answerable steps.

        An explicit kind wins. Otherwise rubrics that tell the learner to
        "tap next" are end-of-module open Q&A; everything else is graded.
        """
        if not self.is_answerable:
            return None
        if self.kind is not None:
            return self.kind
        if OPEN_QA_MARKER in self.eval_context.lower():
            return StepKind.OPEN_QA
        return StepKind.GRADED


GENERIC_FALLBACK_SCRIPT: Tuple[Step, ...] = (
    Step(
        messages=(
            "Let's explore this module together! Read through the content below, "
            "and tap **Next** when you're ready to continue.",
        ),
        channel=Channel.NARRATION,
        module_complete=True,
    ),
)


class ScriptStore:
    """Read-only catalog of lesson scripts keyed by module identifier."""

    def __init__(self, scripts: Optional[Mapping[str, Sequence[Step]]] = None):
        if scripts is None:
            from guided_lesson_tutor.lesson_scripts import LESSON_SCRIPTS
            scripts = LESSON_SCRIPTS
        self._scripts: Dict[str, Tuple[Step, ...]] = {
            module_id: tuple(steps) for module_id, steps in scripts.items()
        }

    def __contains__(self, module_id: str) -> bool:
        return module_id in self._scripts

    def module_ids(self) -> Tuple[str, ...]:
        return tuple(self._scripts)

    def get_script(self, module_id: str) -> Tuple[Step, ...]:
        """Steps for a module, or the generic auto-completing fallback."""
        steps = self._scripts.get(module_id)
        if not steps:
            logger.info(f"📚 [ScriptStore] No script for '{module_id}', using generic fallback")
            return GENERIC_FALLBACK_SCRIPT
        return steps
