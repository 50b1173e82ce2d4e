"""
Tests for estimator.py - effort scoring.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from estimator import estimate_effort
from models import SubtaskPayload, TaskPayload


def subtasks(n):
    return [SubtaskPayload(title=f"Step {i}") for i in range(n)]


class TestEstimateEffort:

    def test_base_estimate(self):
        assert estimate_effort(TaskPayload(title="Buy milk")) == 1

    def test_long_title_high_priority_with_subtasks(self):
        task = TaskPayload(title="Plan the quarterly offsite meeting", priority="high", subtasks=subtasks(2))
        # (1 + 0.5 + 1.0) * 1.2 = 3.0
        assert estimate_effort(task) == 3

    def test_hard_words(self):
        assert estimate_effort(TaskPayload(title="Fix complex bug")) == 2
        assert estimate_effort(TaskPayload(title="Difficult conversation")) == 2

    def test_description_capped_at_two_hours(self):
        long_description = " ".join(["word"] * 500)
        assert estimate_effort(TaskPayload(title="Write", description=long_description)) == 3

    def test_description_fraction(self):
        # 50 words adds exactly one hour
        description = " ".join(["word"] * 50)
        assert estimate_effort(TaskPayload(title="Write", description=description)) == 2

    def test_rounds_half_up(self):
        # 1 + 0.5 (long title) = 1.5 -> 2
        assert estimate_effort(TaskPayload(title="one two three four five six")) == 2

    def test_five_words_is_not_long(self):
        assert estimate_effort(TaskPayload(title="one two three four five")) == 1

    @pytest.mark.parametrize("priority", ["low", "medium", None])
    def test_only_high_priority_scales(self, priority):
        task = TaskPayload(title="Task", priority=priority, subtasks=subtasks(4))
        assert estimate_effort(task) == 3

    def test_is_deterministic(self):
        task = TaskPayload(title="Complex migration of the billing system", description="a b c", priority="high")
        assert estimate_effort(task) == estimate_effort(task)
