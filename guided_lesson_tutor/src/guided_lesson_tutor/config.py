"""
Engine Configuration

Timing constants, attempt policy and completion budgets for the guided
dialogue engine. All durations are in milliseconds.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass
class EngineConfig:
    """Tunable settings for a DialogueEngine instance."""
    # Session lifecycle
    start_settle_ms: int = 300
    acknowledgment_pause_ms: int = 500
    advance_pause_ms: int = 800

    # Narration pacing
    words_ms: int = 300
    min_display_ms: int = 2000
    max_display_ms: int = 8000
    short_gap_ms: int = 800
    medium_gap_ms: int = 1200
    long_gap_ms: int = 1800
    question_gap_ms: int = 1500
    final_grace_ms: int = 2000
    channel_transition_ms: int = 200
    semantic_split_length: int = 100

    # Interaction pacing
    interaction_gap_ms: int = 600

    # Evaluation
    max_attempts: int = 3
    min_checking_ms: int = 300
    phrase_to_explanation_ms: int = 1500
    post_explanation_ms: int = 2000

    # Completion budgets (max_tokens)
    phrase_max_tokens: int = 10
    explanation_max_tokens: int = 300
    acknowledgment_max_tokens: int = 150

    # Multiplier for every pacing delay; 0 turns delays into bare yields
    time_scale: float = 1.0

    tutor_name: str = "SCI-Bot"
    model: str = "gpt-4o-mini"
    temperature: float = 0.7

    def seconds(self, ms: float) -> float:
        """Convert a pacing delay to scaled seconds for asyncio.sleep."""
        return max(0.0, ms * self.time_scale / 1000.0)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from environment variables (and .env if present)."""
        load_dotenv()
        return cls(
            time_scale=float(os.getenv("GUIDED_TIME_SCALE", "1.0")),
            max_attempts=int(os.getenv("GUIDED_MAX_ATTEMPTS", "3")),
            tutor_name=os.getenv("GUIDED_TUTOR_NAME", "SCI-Bot"),
            model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            temperature=float(os.getenv("OPENAI_TEMPERATURE", "0.7")),
        )
