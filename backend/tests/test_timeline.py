"""
Tests for the incident timeline recorder.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from civicpulse.core.constants import TimelineActor
from civicpulse.services.community.timeline import append_entry

from conftest import BASE_TIME


class TestAppendEntry:

    def test_appends_in_time_order(self, make_incident):
        incident = make_incident()
        append_entry(incident, TimelineActor.SYSTEM, "incident_reported", "first", timestamp=BASE_TIME)
        append_entry(
            incident, TimelineActor.CROWD, "confirmation_received", "second",
            timestamp=BASE_TIME + timedelta(minutes=1),
        )
        assert [e.detail for e in incident.timeline] == ["first", "second"]

    def test_out_of_order_entry_is_placed_by_time(self, make_incident):
        incident = make_incident()
        append_entry(incident, TimelineActor.SYSTEM, "a", timestamp=BASE_TIME + timedelta(minutes=5))
        append_entry(incident, TimelineActor.SYSTEM, "b", timestamp=BASE_TIME)
        append_entry(incident, TimelineActor.SYSTEM, "c", timestamp=BASE_TIME + timedelta(minutes=2))
        assert [e.action for e in incident.timeline] == ["b", "c", "a"]

    def test_equal_timestamps_keep_append_order(self, make_incident):
        incident = make_incident()
        for action in ("one", "two", "three"):
            append_entry(incident, TimelineActor.RESPONDER, action, timestamp=BASE_TIME)
        assert [e.action for e in incident.timeline] == ["one", "two", "three"]

    def test_defaults(self, make_incident):
        incident = make_incident()
        entry = append_entry(incident, TimelineActor.SYSTEM, "incident_reported")
        assert entry.detail == ""
        assert entry.timestamp.tzinfo is not None

    def test_entries_are_immutable(self, make_incident):
        incident = make_incident()
        entry = append_entry(incident, TimelineActor.SYSTEM, "incident_reported", timestamp=BASE_TIME)
        with pytest.raises(ValidationError):
            entry.detail = "edited"
