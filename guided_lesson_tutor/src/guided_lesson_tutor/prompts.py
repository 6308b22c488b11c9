"""
Prompt builders for the three completion shapes used during a lesson, and
the sentinels read back out of model output.
"""

import re
from enum import Enum
from typing import Dict, Sequence

from guided_lesson_tutor.script_store import StepKind
from guided_lesson_tutor.session_state import LearnerContext

CORRECT_SENTINEL = "Correct!"
PARTIAL_SENTINEL = "Partially correct!"
PROCEED_SENTINEL = "Tap Next"

OPEN_QA_FOLLOW_UP = (
    "Do you have another question, or are you ready to move on? "
    "Ask away, or let me know you're ready!"
)

HISTORY_WINDOW = 6

_LEADING_MARKUP = re.compile(r"^[\s*_#>\"']+")
# Sentinel at the start, optionally after a short interjection ("Excellent! Correct!")
_SENTINEL = re.compile(r"(?:[a-z' ]{1,20}![\s*_]*)?(partially\s+)?correct!", re.IGNORECASE)


class Correctness(Enum):
    CORRECT = "correct"
    PARTIAL = "partial"
    INCORRECT = "incorrect"


def classify_correctness(explanation: str) -> Correctness:
    """Read the correctness sentinel the explanation must open with."""
    match = _SENTINEL.match(_LEADING_MARKUP.sub("", explanation))
    if match is None:
        return Correctness.INCORRECT
    if match.group(1):
        return Correctness.PARTIAL
    return Correctness.CORRECT


def has_proceed_sentinel(explanation: str) -> bool:
    return PROCEED_SENTINEL.lower() in explanation.lower()


def _format_history(history: Sequence[Dict[str, str]]) -> str:
    recent = list(history)[-HISTORY_WINDOW:]
    if not recent:
        return "(no earlier messages)"
    return "\n".join(f"{turn['role']}: {turn['content']}" for turn in recent)


def _hint_level(attempt: int, max_attempts: int) -> str:
    if attempt <= 1:
        return "GENTLE HINT: nudge them toward the idea without naming the answer."
    if attempt < max_attempts:
        return "SPECIFIC HINT: point at the exact concept they are missing."
    return "REVEAL: this is their last try, so warmly encourage them as the answer is explained."


def build_phrase_prompt(
    tutor_name: str,
    context: LearnerContext,
    rubric: str,
    attempt: int,
    max_attempts: int,
    kind: StepKind
) -> str:
    """Quick reactive phrase shown in the speech bubble."""
    if kind is StepKind.OPEN_QA:
        guidance = "React to their question or message with a short friendly phrase (e.g. \"Good question!\")."
    else:
        guidance = (
            "If correct: \"Excellent!\" or \"Tama!\"\n"
            "If partially correct: \"Almost!\" or \"Close!\"\n"
            f"If wrong, attempt {attempt} of {max_attempts}: {_hint_level(attempt, max_attempts)}"
        )
    return f"""You are {tutor_name}, reacting to a student's answer.

{context.describe()}

EVALUATION CONTEXT:
{rubric}

Respond with ONLY 1-4 words.
{guidance}

NO explanations, ONLY the short reaction."""


def build_explanation_prompt(
    tutor_name: str,
    context: LearnerContext,
    rubric: str,
    history: Sequence[Dict[str, str]],
    attempt: int,
    max_attempts: int,
    kind: StepKind
) -> str:
    """Full explanation streamed into the transcript."""
    if kind is StepKind.OPEN_QA:
        rules = f"""The student is in the open question time at the end of the module.
- If they ask about the current topic, answer in 2-3 simple sentences.
- If they ask about a different topic, say we can learn about that in another module.
- If they say they have no more questions or are ready, congratulate them and end with "{PROCEED_SENTINEL} to continue!"
- Only write "{PROCEED_SENTINEL}" when they are ready to move on."""
    else:
        rules = f"""Begin your reply with EXACTLY one of:
- "{CORRECT_SENTINEL}" if the answer is fully correct
- "{PARTIAL_SENTINEL}" if it is partially correct
- neither, if it is wrong
Then explain in 2-3 sentences.
This is attempt {attempt} of {max_attempts}. {_hint_level(attempt, max_attempts)}"""

    return f"""You are {tutor_name}, a friendly science tutor for Grade 9 students.

{context.describe()}

EVALUATION CONTEXT:
{rubric}

RECENT CONVERSATION:
{_format_history(history)}

{rules}

Use simple language for 14-15 year olds. Be warm and encouraging."""


def build_acknowledgment_prompt(
    tutor_name: str,
    context: LearnerContext,
    history: Sequence[Dict[str, str]]
) -> str:
    """General acknowledgment / scope check for messages that are not graded answers."""
    return f"""You are {tutor_name}, a friendly science tutor for Grade 9 students.

{context.describe()}

RECENT CONVERSATION:
{_format_history(history)}

The student just sent a message during the lesson. It is NOT an answer to a specific question, but:
- an acknowledgment (e.g. "ok", "ready", "yes")
- a question about the current topic
- or a question about a different topic

SCOPE CHECKING:
- Different topic: "We can learn about that in another module. Let's continue with our current topic for now!"
- Current topic: answer warmly in 1-2 sentences
- Acknowledgment: one brief encouraging sentence

Keep it to 1-2 sentences maximum."""

