"""
Tests for the incident lifecycle engine.
"""

import asyncio
from datetime import timedelta

import pytest

from civicpulse.core.constants import ErrorMessages, IncidentStatus, TimelineAction, TimelineActor
from civicpulse.core.exceptions import InvalidLocationError, NotFoundError, ValidationError
from civicpulse.db.models import PollResults
from civicpulse.schemas import IncidentCreate
from civicpulse.services.community.incident_service import IncidentService

from conftest import BASE_TIME, FakeGeocoder


def report(**overrides) -> IncidentCreate:
    data = {
        "type": "Fire",
        "description": "  Smoke coming out of the bakery  ",
        "severity": "critical",
        "latitude": 40.7128,
        "longitude": -74.006,
    }
    data.update(overrides)
    return IncidentCreate(**data)


def actions(incident):
    return [entry.action for entry in incident.timeline]


class TestCreateIncident:

    @pytest.mark.asyncio
    async def test_creates_unverified_group_root(self, service, geocoder):
        incident = await service.create_incident(report())

        assert incident.id.startswith("inc_")
        assert incident.type == "fire"
        assert incident.description == "Smoke coming out of the bakery"
        assert incident.severity.value == "critical"
        assert incident.status == IncidentStatus.UNVERIFIED
        assert incident.confirmation_count == 0
        assert incident.group_id == incident.id
        assert incident.duplicate_of is None
        assert incident.timestamp == BASE_TIME
        assert incident.updated_at == BASE_TIME
        assert incident.display_location == "Market Street, Springfield"
        assert geocoder.reverse_calls == [(40.7128, -74.006)]
        assert actions(incident) == [TimelineAction.INCIDENT_REPORTED]
        assert incident.timeline[0].detail == "Reported as fire (critical)"
        assert len(service) == 1

    @pytest.mark.asyncio
    async def test_normalizes_bad_severity_and_type(self, service):
        incident = await service.create_incident(report(type="", severity="extreme"))
        assert incident.type == "general"
        assert incident.severity.value == "attention"

    @pytest.mark.asyncio
    async def test_non_string_fields_fall_back_to_defaults(self, service):
        incident = await service.create_incident(report(type=123, severity=5, description=["smoke"]))
        assert incident.type == "general"
        assert incident.severity.value == "attention"
        assert incident.description == ""

    @pytest.mark.asyncio
    async def test_description_is_clamped(self, service):
        incident = await service.create_incident(report(description="x" * 500))
        assert len(incident.description) == 220

    @pytest.mark.asyncio
    async def test_forward_lookup_supplies_coordinates(self, service, geocoder):
        incident = await service.create_incident(
            report(latitude=None, longitude=None, location_name="City Hall")
        )
        assert (incident.latitude, incident.longitude) == (40.7128, -74.006)
        assert incident.display_location == "City Hall, New York"
        assert geocoder.forward_calls == ["City Hall"]
        assert geocoder.reverse_calls == []

    @pytest.mark.asyncio
    async def test_coordinates_win_over_location_name(self, service, geocoder):
        await service.create_incident(report(location_name="Somewhere"))
        assert geocoder.forward_calls == []

    @pytest.mark.asyncio
    async def test_unresolvable_location_name(self, service):
        with pytest.raises(InvalidLocationError) as exc_info:
            await service.create_incident(
                report(latitude=None, longitude=None, location_name="Atlantis")
            )
        assert '"Atlantis"' in exc_info.value.message
        assert exc_info.value.status_code == 422
        assert len(service) == 0

    @pytest.mark.asyncio
    async def test_missing_location(self, service):
        with pytest.raises(InvalidLocationError) as exc_info:
            await service.create_incident(report(latitude=None, longitude=None))
        assert exc_info.value.message == ErrorMessages.LOCATION_REQUIRED

    @pytest.mark.asyncio
    async def test_half_a_coordinate_pair_is_missing_location(self, service):
        with pytest.raises(InvalidLocationError):
            await service.create_incident(report(longitude=None))

    @pytest.mark.asyncio
    async def test_reverse_lookup_failure_falls_back_to_coordinates(self, incident_storage, clock):
        service = IncidentService(
            incident_storage, geocoder=FakeGeocoder(reverse_name=None), clock=clock
        )
        incident = await service.create_incident(report(latitude=40.712776, longitude=-74.005974))
        assert incident.display_location == "Lat: 40.7128, Lng: -74.0060"

    @pytest.mark.asyncio
    async def test_duplicate_is_grouped(self, service, clock):
        first = await service.create_incident(report())
        clock.advance(minutes=1)
        second = await service.create_incident(report(description="Also smoke"))

        assert second.duplicate_of == first.id
        assert second.group_id == first.id
        assert actions(second) == [
            TimelineAction.INCIDENT_REPORTED,
            TimelineAction.DUPLICATE_GROUPED,
        ]
        assert second.timeline[1].detail == f"Grouped with {first.id}"

    @pytest.mark.asyncio
    async def test_chained_duplicates_share_the_root(self, service, clock):
        root = await service.create_incident(report())
        clock.advance(minutes=8)
        await service.create_incident(report())
        clock.advance(minutes=8)
        # Only the second report is still within ten minutes
        third = await service.create_incident(report())
        assert third.group_id == root.id
        assert third.duplicate_of != root.id

    @pytest.mark.asyncio
    async def test_reports_far_apart_in_time_are_not_grouped(self, service, clock):
        await service.create_incident(report())
        clock.advance(minutes=15)
        later = await service.create_incident(report())
        assert later.duplicate_of is None
        assert later.group_id == later.id

    @pytest.mark.asyncio
    async def test_reports_far_apart_in_space_are_not_grouped(self, service, clock):
        await service.create_incident(report(latitude=40.7000))
        clock.advance(minutes=1)
        other = await service.create_incident(report(latitude=40.7045))
        assert other.duplicate_of is None


class TestConfirmIncident:

    @pytest.mark.asyncio
    async def test_third_confirmation_escalates(self, service, clock):
        incident = await service.create_incident(report())

        for expected in (1, 2):
            clock.advance(seconds=10)
            incident = service.confirm_incident(incident.id)
            assert incident.confirmation_count == expected
            assert incident.status == IncidentStatus.UNVERIFIED

        clock.advance(seconds=10)
        incident = service.confirm_incident(incident.id)
        assert incident.confirmation_count == 3
        assert incident.status == IncidentStatus.CROWD_CONFIRMED
        assert actions(incident)[-2:] == [
            TimelineAction.CONFIRMATION_RECEIVED,
            TimelineAction.STATUS_AUTO_ESCALATED,
        ]
        assert incident.timeline[-1].actor == TimelineActor.SYSTEM
        assert incident.updated_at == clock.now

    @pytest.mark.asyncio
    async def test_confirmation_does_not_downgrade_verified(self, service):
        incident = await service.create_incident(report())
        service.update_status(incident.id, "verified")
        for _ in range(4):
            incident = service.confirm_incident(incident.id)
        assert incident.status == IncidentStatus.VERIFIED
        assert TimelineAction.STATUS_AUTO_ESCALATED not in actions(incident)

    def test_unknown_incident(self, service):
        with pytest.raises(NotFoundError):
            service.confirm_incident("inc_missing")


class TestResponderActions:

    @pytest.mark.asyncio
    async def test_update_status_records_transition(self, service, clock):
        incident = await service.create_incident(report())
        clock.advance(minutes=2)
        updated = service.update_status(incident.id, "Responding")

        assert updated.status == IncidentStatus.RESPONDING
        assert updated.timeline[-1].actor == TimelineActor.RESPONDER
        assert updated.timeline[-1].action == TimelineAction.STATUS_UPDATED
        assert updated.timeline[-1].detail == "unverified -> responding"
        assert updated.updated_at == BASE_TIME + timedelta(minutes=2)

    @pytest.mark.asyncio
    async def test_unknown_status_falls_back_to_unverified(self, service):
        incident = await service.create_incident(report())
        service.update_status(incident.id, "verified")
        updated = service.update_status(incident.id, "closed")
        assert updated.status == IncidentStatus.UNVERIFIED

    @pytest.mark.asyncio
    async def test_non_string_status_falls_back_to_unverified(self, service):
        incident = await service.create_incident(report())
        service.update_status(incident.id, "responding")
        updated = service.update_status(incident.id, 7)
        assert updated.status == IncidentStatus.UNVERIFIED

    @pytest.mark.asyncio
    async def test_strict_mode_rejects_unknown_status(self, incident_storage, geocoder, clock):
        service = IncidentService(incident_storage, geocoder=geocoder, clock=clock, strict_enums=True)
        incident = await service.create_incident(report())
        with pytest.raises(ValidationError):
            service.update_status(incident.id, "closed")
        with pytest.raises(ValidationError):
            service.update_status(incident.id, 7)
        assert service.get(incident.id).status == IncidentStatus.UNVERIFIED

    @pytest.mark.asyncio
    async def test_update_notes_is_clamped(self, service):
        incident = await service.create_incident(report())
        updated = service.update_notes(incident.id, "n" * 1000)
        assert len(updated.internal_notes) == 900
        assert updated.timeline[-1].action == TimelineAction.NOTES_UPDATED

    @pytest.mark.asyncio
    async def test_updated_at_never_moves_backwards(self, service, clock):
        incident = await service.create_incident(report())
        clock.advance(minutes=-5)
        updated = service.update_notes(incident.id, "late clock")
        assert updated.updated_at == BASE_TIME

    @pytest.mark.asyncio
    async def test_delete_is_permanent(self, service):
        incident = await service.create_incident(report())
        deleted = service.delete_incident(incident.id)
        assert deleted.id == incident.id
        with pytest.raises(NotFoundError):
            service.get(incident.id)
        with pytest.raises(NotFoundError):
            service.delete_incident(incident.id)

    @pytest.mark.parametrize("method,args", [
        ("update_status", ("verified",)),
        ("update_notes", ("note",)),
        ("delete_incident", ()),
    ])
    def test_unknown_incident(self, service, method, args):
        with pytest.raises(NotFoundError):
            getattr(service, method)("inc_missing", *args)


class TestPollEscalation:

    @pytest.mark.asyncio
    async def test_three_confirm_votes_escalate(self, service):
        incident = await service.create_incident(report())
        results = PollResults(total=4, confirm=3, deny=1, unsure=0, confidence_score=75)

        updated = service.apply_poll_results(incident.id, results)

        assert updated.status == IncidentStatus.CROWD_CONFIRMED
        assert updated.timeline[-1].action == TimelineAction.STATUS_AUTO_ESCALATED
        assert updated.timeline[-1].detail == "Poll reached 3 confirm votes -> crowd_confirmed"

    @pytest.mark.asyncio
    async def test_two_confirm_votes_do_nothing(self, service):
        incident = await service.create_incident(report())
        results = PollResults(total=2, confirm=2, confidence_score=100)
        updated = service.apply_poll_results(incident.id, results)
        assert updated.status == IncidentStatus.UNVERIFIED
        assert len(updated.timeline) == 1


class TestReads:

    @pytest.mark.asyncio
    async def test_returned_incidents_are_copies(self, service):
        incident = await service.create_incident(report())
        incident.timeline.clear()
        incident.confirmation_count = 99
        stored = service.get(incident.id)
        assert len(stored.timeline) == 1
        assert stored.confirmation_count == 0

    @pytest.mark.asyncio
    async def test_list_all_orders_by_priority(self, service, clock):
        low = await service.create_incident(report(severity="info", latitude=10.0))
        high = await service.create_incident(report(severity="critical", latitude=20.0))
        mid = await service.create_incident(report(severity="attention", latitude=30.0))

        assert [i.id for i in service.list_all()] == [high.id, mid.id, low.id]

    @pytest.mark.asyncio
    async def test_list_all_since_filters_on_updated_at(self, service, clock):
        first = await service.create_incident(report(latitude=10.0))
        clock.advance(minutes=1)
        second = await service.create_incident(report(latitude=20.0))
        clock.advance(minutes=1)
        service.update_notes(first.id, "touched")

        since = BASE_TIME + timedelta(seconds=30)
        assert {i.id for i in service.list_all(since=since)} == {first.id, second.id}
        assert [i.id for i in service.list_all(since=clock.now)] == []
        assert [i.id for i in service.list_all(since=BASE_TIME + timedelta(seconds=90))] == [first.id]

    @pytest.mark.asyncio
    async def test_list_group_puts_root_first(self, service, clock):
        root = await service.create_incident(report())
        clock.advance(minutes=1)
        dup = await service.create_incident(report())
        members = service.list_group(root.id)
        assert [m.id for m in members] == [root.id, dup.id]

    def test_list_unknown_group(self, service):
        with pytest.raises(NotFoundError):
            service.list_group("inc_missing")

    @pytest.mark.asyncio
    async def test_present_adds_derived_fields(self, service, clock):
        incident = await service.create_incident(report())
        clock.advance(minutes=4)
        presented = service.present(incident)

        assert presented["age_minutes"] == 4
        assert presented["priority_score"] == 64
        assert presented["priority_factors"]["time_open"] == {"minutes": 4, "points": 4}
        assert presented["id"] == incident.id

    @pytest.mark.asyncio
    async def test_present_is_idempotent(self, service):
        incident = await service.create_incident(report())
        assert service.present(incident) == service.present(incident)

    @pytest.mark.asyncio
    async def test_present_does_not_persist_derived_fields(self, service):
        incident = await service.create_incident(report())
        service.present(incident)
        record = service.snapshot()[0]
        assert "priority_score" not in record
        assert "age_minutes" not in record


class TestPersistence:

    @pytest.mark.asyncio
    async def test_round_trip(self, service, incident_storage, geocoder, clock):
        first = await service.create_incident(report())
        clock.advance(minutes=1)
        second = await service.create_incident(report())
        service.confirm_incident(first.id)
        service.update_notes(second.id, "crew dispatched")

        assert service.pending_flush
        assert await service.flusher.flush()
        assert not service.pending_flush

        reloaded = IncidentService(incident_storage, geocoder=geocoder, clock=clock)
        assert await reloaded.load() == 2
        assert reloaded.get(first.id) == service.get(first.id)
        assert reloaded.get(second.id) == service.get(second.id)
        assert reloaded.snapshot() == service.snapshot()

    @pytest.mark.asyncio
    async def test_shutdown_flushes_pending_changes(self, service, incident_storage, geocoder, clock):
        await service.start()
        incident = await service.create_incident(report())
        await service.shutdown()

        reloaded = IncidentService(incident_storage, geocoder=geocoder, clock=clock)
        await reloaded.load()
        assert reloaded.get(incident.id).id == incident.id

    @pytest.mark.asyncio
    async def test_background_flush_writes_after_debounce(self, service, incident_storage):
        await service.start()
        try:
            await service.create_incident(report())
            await asyncio.sleep(0.2)
            records = await incident_storage.load_all()
            assert len(records) == 1
        finally:
            await service.shutdown()

    @pytest.mark.asyncio
    async def test_first_boot_is_empty(self, service):
        assert await service.load() == 0

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_empty(self, service, incident_storage):
        incident_storage.path.write_text("{not json", encoding="utf-8")
        assert await service.load() == 0

    @pytest.mark.asyncio
    async def test_malformed_records_are_skipped(self, service, incident_storage, make_incident):
        good = make_incident(id="inc_good").to_record()
        await incident_storage.save_all([good, {"id": "inc_bad"}, "junk"])
        assert await service.load() == 1
        assert service.get("inc_good").group_id == "inc_good"
