"""
Tests for services/budget.py — weekly budget alerts and segment status.
"""

import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.schemas import BudgetSegment
from services.budget import classify, evaluate_budget, next_segment_status, spent_pct


class TestSpentPct:

    @pytest.mark.parametrize("spent,limit,expected", [
        (0, 10_000, 0),
        (7_999, 10_000, 80),     # 79.99 rounds up
        (9_449, 10_000, 94),
        (9_450, 10_000, 95),     # 94.5 → 95, half-up
        (10_000, 10_000, 100),
        (25_000, 10_000, 250),
    ])
    def test_rounding(self, spent, limit, expected):
        assert spent_pct(spent, limit) == expected

    @pytest.mark.parametrize("limit", [0, -100])
    def test_non_positive_limit_rejected(self, limit):
        with pytest.raises(ValueError):
            spent_pct(100, limit)


class TestClassify:

    @pytest.mark.parametrize("pct,level,label", [
        (80, "caution", "WARNING"),
        (94, "caution", "WARNING"),
        (95, "warning", "SOFT THROTTLE"),
        (99, "warning", "SOFT THROTTLE"),
        (100, "critical", "HARD FREEZE"),
        (180, "critical", "HARD FREEZE"),
    ])
    def test_levels(self, pct, level, label):
        alert = classify("tiktok", pct)
        assert alert.level == level
        assert alert.label == label
        assert alert.pct == pct
        assert alert.segment == "tiktok"

    def test_below_80_no_alert(self):
        assert classify("tiktok", 79) is None


class TestSegmentStatus:

    def segment(self, status="approved"):
        return BudgetSegment(name="youtube", weekly_limit_cents=10_000, status=status)

    @pytest.mark.parametrize("status,pct,expected", [
        ("approved", 50, "approved"),
        ("approved", 94, "approved"),
        ("approved", 95, "throttled"),
        ("throttled", 97, "throttled"),
        ("approved", 100, "killed"),
        ("throttled", 100, "killed"),
        ("killed", 120, "killed"),
        ("killed", 10, "killed"),     # no automatic un-kill
    ])
    def test_transitions(self, status, pct, expected):
        assert next_segment_status(self.segment(status), pct) == expected


class TestEvaluateBudget:

    def test_segments_and_global(self):
        segments = [
            BudgetSegment(name="tiktok", weekly_limit_cents=10_000, spent_cents=10_000),
            BudgetSegment(name="youtube", weekly_limit_cents=10_000, spent_cents=9_600),
            BudgetSegment(name="instagram", weekly_limit_cents=10_000, spent_cents=1_000),
        ]
        alerts, updated = evaluate_budget(segments, global_limit_cents=25_000)

        assert [(a.segment, a.level) for a in alerts] == [
            ("tiktok", "critical"),
            ("youtube", "warning"),
            ("GLOBAL", "caution"),    # 20,600 / 25,000 = 82%
        ]
        assert [s.status for s in updated] == ["killed", "throttled", "approved"]

    def test_global_alert_uses_total_spend(self):
        segments = [
            BudgetSegment(name="a", weekly_limit_cents=50_000, spent_cents=10_000),
            BudgetSegment(name="b", weekly_limit_cents=50_000, spent_cents=10_000),
        ]
        alerts, _ = evaluate_budget(segments, global_limit_cents=20_000)
        assert len(alerts) == 1
        assert alerts[0].segment == "GLOBAL"
        assert alerts[0].pct == 100
        assert alerts[0].label == "HARD FREEZE"

    def test_no_alerts(self):
        segments = [BudgetSegment(name="a", weekly_limit_cents=10_000, spent_cents=100)]
        alerts, updated = evaluate_budget(segments, global_limit_cents=10_000)
        assert alerts == []
        assert updated[0].status == "approved"

    def test_input_not_modified(self):
        segments = [BudgetSegment(name="a", weekly_limit_cents=100, spent_cents=100)]
        evaluate_budget(segments, global_limit_cents=1_000)
        assert segments[0].status == "approved"
