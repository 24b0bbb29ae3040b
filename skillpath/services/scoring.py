"""
skillpath/services/scoring.py
Adaptive proficiency scoring

Two separate views:
- per answer: K-factor update of the continuous (user, skill) score
- per session: percentage of correct answers mapped to a level 0..3

Both are pure functions; persistence happens in the stores.
"""
from typing import Tuple

from skillpath.config.settings import AssessmentSettings

EXPECTED_OUTCOME = 0.5

# (minimum percentage, level), checked top down
SESSION_LEVEL_STEPS = (
    (90, 3),
    (70, 2),
    (50, 1),
)


def k_factor(
    attempts: int,
    initial_k: float = AssessmentSettings.INITIAL_K,
    decay_rate: float = AssessmentSettings.DECAY_RATE
) -> float:
    """Update weight, shrinking as the learner accumulates attempts."""
    return initial_k / (1 + attempts * decay_rate)


def updated_skill_score(
    current_score: float,
    attempts: int,
    is_correct: bool,
    initial_k: float = AssessmentSettings.INITIAL_K,
    decay_rate: float = AssessmentSettings.DECAY_RATE
) -> float:
    """
    score' = score + K * (actual - expected)

    attempts is the number of answers recorded before this one.
    """
    actual = 1.0 if is_correct else 0.0
    return current_score + k_factor(attempts, initial_k, decay_rate) * (actual - EXPECTED_OUTCOME)


def level_for_percentage(percentage: float) -> int:
    for minimum, level in SESSION_LEVEL_STEPS:
        if percentage >= minimum:
            return level
    return 0


def session_summary(correct_count: int, total_questions: int) -> Tuple[int, int]:
    """Return (overall_score, overall_level) for a finished session."""
    if total_questions <= 0:
        return 0, 0
    percentage = 100.0 * correct_count / total_questions
    return round(percentage), level_for_percentage(percentage)
