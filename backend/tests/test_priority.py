"""
Tests for the Operational Priority Index.
"""

from datetime import timedelta

import pytest

from civicpulse.services.community.incident_service import sort_by_priority
from civicpulse.services.community.priority import compute_priority

from conftest import BASE_TIME


class TestComputePriority:

    def test_fresh_critical_report_scores_sixty(self, make_incident):
        incident = make_incident(severity="critical", confirmation_count=0, status="unverified")
        assert compute_priority(incident, now=BASE_TIME).score == 60

    @pytest.mark.parametrize("severity,points", [
        ("info", 10),
        ("attention", 30),
        ("critical", 60),
    ])
    def test_severity_points(self, make_incident, severity, points):
        result = compute_priority(make_incident(severity=severity), now=BASE_TIME)
        assert result.factors["severity"] == {"label": severity, "points": points}

    def test_confirmation_points_are_capped(self, make_incident):
        result = compute_priority(make_incident(confirmation_count=10), now=BASE_TIME)
        assert result.factors["confirmations"] == {"count": 10, "points": 40}

    def test_confirmation_points_per_confirmation(self, make_incident):
        result = compute_priority(make_incident(confirmation_count=2), now=BASE_TIME)
        assert result.factors["confirmations"]["points"] == 16

    def test_age_adds_a_point_per_minute_up_to_cap(self, make_incident):
        incident = make_incident(severity="info")
        assert compute_priority(incident, now=BASE_TIME + timedelta(minutes=12)).score == 22

        aged = compute_priority(incident, now=BASE_TIME + timedelta(hours=2))
        assert aged.factors["time_open"] == {"minutes": 120, "points": 45}
        assert aged.score == 55

    def test_future_timestamp_counts_as_zero_minutes(self, make_incident):
        incident = make_incident(timestamp=BASE_TIME + timedelta(minutes=30))
        result = compute_priority(incident, now=BASE_TIME)
        assert result.factors["time_open"] == {"minutes": 0, "points": 0}

    def test_resolved_sinks_to_the_bottom(self, make_incident):
        incident = make_incident(severity="critical", status="resolved", confirmation_count=5)
        result = compute_priority(incident, now=BASE_TIME)
        assert result.factors["status"] == {"label": "resolved", "points": -200}
        assert result.score == 60 + 40 - 200

    def test_score_is_sum_of_factors(self, make_incident):
        incident = make_incident(severity="attention", confirmation_count=3)
        result = compute_priority(incident, now=BASE_TIME + timedelta(minutes=7))
        assert result.score == sum(f["points"] for f in result.factors.values())

    def test_deterministic(self, make_incident):
        incident = make_incident(confirmation_count=1)
        now = BASE_TIME + timedelta(minutes=3)
        assert compute_priority(incident, now).to_dict() == compute_priority(incident, now).to_dict()


class TestPriorityOrdering:

    def test_ties_broken_by_newest_first(self, make_incident):
        now = BASE_TIME
        low = make_incident(id="low", severity="info", timestamp=now)
        older = make_incident(id="older", severity="critical", timestamp=now - timedelta(minutes=30))
        newer = make_incident(
            id="newer",
            severity="critical",
            confirmation_count=3,
            timestamp=now - timedelta(minutes=6),
        )

        assert [compute_priority(i, now).score for i in (low, older, newer)] == [10, 90, 90]
        ordered = sort_by_priority([low, older, newer], now)
        assert [i.id for i in ordered] == ["newer", "older", "low"]
