"""
Narration variations: canned phrases picked at random for natural variety
without an extra completion call.
"""

import random
import re
from typing import Optional

_MODULE_COMPLETIONS = {
    ("fascinate",): [
        "Wow! You've completed Fa-SCI-nate! Isn't science amazing?",
        "That was fascinating, right? Fa-SCI-nate complete!",
        "Your curiosity is amazing! Fa-SCI-nate finished!",
        "Great job! Fa-SCI-nate is done!",
    ],
    ("goal",): [
        "Perfect! You've set your learning goals!",
        "Goal SCI-tting complete! Let's achieve those goals!",
        "Wonderful! Your learning path is clear!",
    ],
    ("presentation", "prescintation"): [
        "Great! You've completed Pre-SCI-ntation!",
        "Well done! You've finished Pre-SCI-ntation!",
    ],
    ("investigation", "invescitigation"): [
        "Amazing work, investigator! Inve-SCI-tigation complete!",
        "You explored like a true scientist! Well done!",
    ],
    ("assessment", "ascissment"): [
        "You're SCI-mazing! Assessment complete!",
        "You did it! Self-A-SCI-ssment complete!",
    ],
    ("supplementary", "scipplementary"): [
        "Great! You've completed SCI-pplementary!",
        "Perfect! SCI-pplementary complete!",
    ],
}

_DEFAULT_COMPLETION = "Great work! Module complete!"

_MAX_ATTEMPTS_ENCOURAGEMENT = [
    "That was a tough question! Let's move forward, you're doing great!",
    "This one was tricky! Don't worry, let's continue!",
    "That was challenging! You're learning so much!",
    "Good effort! Let's keep going, every attempt helps you learn!",
    "Tough question! Let's proceed, you're making progress!",
]

_rng = random.Random()


def module_completion(module_type: Optional[str], rng: Optional[random.Random] = None) -> str:
    """Completion message matched on the module type name (display name or json key)."""
    normalized = re.sub(r"[-_\s]", "", (module_type or "").lower())
    for aliases, variations in _MODULE_COMPLETIONS.items():
        if any(alias in normalized for alias in aliases):
            return (rng or _rng).choice(variations)
    return _DEFAULT_COMPLETION


def max_attempts_encouragement(rng: Optional[random.Random] = None) -> str:
    return (rng or _rng).choice(_MAX_ATTEMPTS_ENCOURAGEMENT)
