"""
Scoring unit tests: per-answer K-factor update and session summary.
"""
import pytest

from skillpath.services.scoring import (
    k_factor,
    level_for_percentage,
    session_summary,
    updated_skill_score,
)


class TestSkillScoreUpdate:

    def test_first_correct_answer_from_default(self):
        assert updated_skill_score(500.0, 0, True) == pytest.approx(516.0)

    def test_first_wrong_answer_from_default(self):
        assert updated_skill_score(500.0, 0, False) == pytest.approx(484.0)

    def test_k_factor_decays_with_attempts(self):
        assert k_factor(0) == pytest.approx(32.0)
        assert k_factor(20) == pytest.approx(16.0)
        assert k_factor(10) > k_factor(11)

    def test_update_is_monotonic(self):
        for attempts in (0, 3, 50):
            assert updated_skill_score(600.0, attempts, True) > 600.0
            assert updated_skill_score(600.0, attempts, False) < 600.0


class TestSessionSummary:

    @pytest.mark.parametrize("correct, total, expected", [
        (10, 10, (100, 3)),
        (9, 10, (90, 3)),
        (7, 10, (70, 2)),
        (5, 10, (50, 1)),
        (4, 10, (40, 0)),
        (2, 3, (67, 1)),
    ])
    def test_summary(self, correct, total, expected):
        assert session_summary(correct, total) == expected

    def test_empty_session(self):
        assert session_summary(0, 0) == (0, 0)

    def test_level_boundaries(self):
        assert level_for_percentage(89.9) == 2
        assert level_for_percentage(69.9) == 1
        assert level_for_percentage(49.9) == 0
