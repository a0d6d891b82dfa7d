"""
Incident lifecycle engine.

Owns the incident collection: creation (with geocoding and duplicate
grouping), crowd confirmation, responder status and note changes, deletion,
and the priority-ordered read path. Every mutation is recorded on the
incident's timeline and schedules a debounced flush.

State machine::

    unverified --(3 confirmations or 3 confirm votes)--> crowd_confirmed
    any --(responder)--> unverified | crowd_confirmed | verified | responding | resolved
"""
import secrets
import threading
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from civicpulse.core.constants import (
    ErrorMessages,
    IncidentConstants,
    IncidentStatus,
    TimelineAction,
    TimelineActor,
)
from civicpulse.core.exceptions import (
    InvalidLocationError,
    StorageError,
    ValidationError,
    raise_not_found,
)
from civicpulse.core.logging_config import LoggingContext, get_logger
from civicpulse.db.models import Incident, PollResults
from civicpulse.integrations.maps_client import BaseGeocoder, NullGeocoder
from civicpulse.schemas import IncidentCreate
from civicpulse.services.community.duplicates import find_duplicate, link_duplicate
from civicpulse.services.community.priority import compute_priority
from civicpulse.services.community.timeline import append_entry
from civicpulse.services.utils.clock import Clock, ensure_utc, minutes_between, utc_now
from civicpulse.services.utils.geo import format_coordinates, to_coordinate
from civicpulse.services.utils.text import (
    clamp_text,
    coerce_enum,
    normalize_severity,
    normalize_status,
    normalize_type,
)
from civicpulse.storage import DebouncedFlusher, JsonFileStorage

logger = get_logger(__name__, {"store": "incidents"})


def generate_incident_id() -> str:
    """Time-prefixed identifier, sortable by creation millisecond."""
    return f"inc_{int(time.time() * 1000):x}_{secrets.token_hex(3)}"


class IncidentService:
    """
    In-memory incident store with debounced JSON persistence.

    All read-modify-write sequences run under one re-entrant lock, and every
    incident handed to a caller is a deep copy, so readers never observe a
    half-applied mutation.

    Args:
        storage: Snapshot storage for the incident collection
        geocoder: Place-name lookup service
        flush_delay: Debounce window for persistence, in seconds
        clock: Source of the current time
        strict_enums: Reject unknown status values instead of coercing them
    """

    def __init__(
        self,
        storage: JsonFileStorage,
        geocoder: Optional[BaseGeocoder] = None,
        flush_delay: float = 0.35,
        clock: Clock = utc_now,
        strict_enums: bool = False,
    ):
        self.storage = storage
        self.geocoder = geocoder or NullGeocoder()
        self.clock = clock
        self.strict_enums = strict_enums

        self._incidents: Dict[str, Incident] = {}
        self._lock = threading.RLock()
        self.flusher = DebouncedFlusher("incidents", self.snapshot, storage, delay=flush_delay)

    def __len__(self) -> int:
        with self._lock:
            return len(self._incidents)

    @property
    def pending_flush(self) -> bool:
        return self.flusher.is_dirty

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load(self) -> int:
        """
        Load the persisted collection, replacing in-memory state.

        A missing file means a first boot. A corrupt file is logged and the
        store starts empty; malformed records are skipped.

        Returns:
            Number of incidents loaded
        """
        with LoggingContext(logger, f"Loading incidents from {self.storage.path}"):
            try:
                data = await self.storage.load_all()
            except StorageError as e:
                logger.error(f"Starting with an empty incident store: {e.message}")
                data = None

            loaded: Dict[str, Incident] = {}
            if isinstance(data, list):
                for item in data:
                    if not isinstance(item, dict) or not isinstance(item.get("id"), str):
                        continue
                    try:
                        incident = Incident.from_record(item)
                    except PydanticValidationError as e:
                        logger.warning(f"Skipping malformed incident record {item.get('id')}: {e}")
                        continue
                    loaded[incident.id] = incident

            with self._lock:
                self._incidents = loaded

        logger.info(f"Loaded {len(loaded)} incidents")
        return len(loaded)

    async def start(self) -> None:
        await self.flusher.start()

    async def shutdown(self) -> None:
        await self.flusher.shutdown()

    def snapshot(self) -> List[Dict[str, Any]]:
        """JSON-compatible copy of the whole collection."""
        with self._lock:
            return [incident.to_record() for incident in self._incidents.values()]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require(self, incident_id: str) -> Incident:
        incident = self._incidents.get(incident_id)
        if incident is None:
            raise_not_found("Incident", incident_id)
        return incident

    @staticmethod
    def _touch(incident: Incident, now: datetime) -> None:
        if now > incident.updated_at:
            incident.updated_at = now

    def _commit(self, incident: Incident, action: str) -> Incident:
        self.flusher.mark_dirty()
        logger.info(f"Incident {incident.id}: {action}", extra={"incident_id": incident.id})
        return incident.model_copy(deep=True)

    async def _resolve_location(self, payload: IncidentCreate):
        latitude = to_coordinate(payload.latitude)
        longitude = to_coordinate(payload.longitude)
        display_location: Optional[str] = None

        location_name = (payload.location_name or "").strip() or None
        if location_name and (latitude is None or longitude is None):
            geocoded = await self.geocoder.forward_lookup(location_name)
            if geocoded is None:
                raise InvalidLocationError(
                    ErrorMessages.LOCATION_UNRESOLVABLE.format(name=location_name),
                    location_name=location_name,
                )
            latitude = geocoded.latitude
            longitude = geocoded.longitude
            display_location = geocoded.display_name

        if latitude is None or longitude is None:
            raise InvalidLocationError(ErrorMessages.LOCATION_REQUIRED)

        if not display_location:
            display_location = await self.geocoder.reverse_lookup(latitude, longitude)

        return latitude, longitude, display_location or format_coordinates(latitude, longitude)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_incident(self, payload: IncidentCreate) -> Incident:
        """
        Report a new incident.

        Coordinates come from the payload or, failing that, from a forward
        lookup of ``location_name``. The display location comes from the
        forward lookup, a reverse lookup, or the formatted coordinates.

        Raises:
            InvalidLocationError: If no coordinates can be determined
        """
        incident_type = normalize_type(payload.type)
        description = clamp_text(payload.description, IncidentConstants.MAX_DESCRIPTION_LENGTH)
        severity = normalize_severity(payload.severity)

        # Network lookups happen before the lock is taken.
        latitude, longitude, display_location = await self._resolve_location(payload)

        with self._lock:
            now = self.clock()
            incident_id = generate_incident_id()
            while incident_id in self._incidents:
                incident_id = generate_incident_id()

            incident = Incident(
                id=incident_id,
                type=incident_type,
                description=description,
                severity=severity,
                latitude=latitude,
                longitude=longitude,
                display_location=display_location,
                timestamp=now,
                updated_at=now,
                status=IncidentStatus.UNVERIFIED,
                confirmation_count=0,
                group_id=incident_id,
            )

            match = find_duplicate(incident, self._incidents.values())
            link_duplicate(incident, match)

            append_entry(
                incident,
                TimelineActor.SYSTEM,
                TimelineAction.INCIDENT_REPORTED,
                f"Reported as {incident.type} ({incident.severity.value})",
                timestamp=now,
            )
            if incident.duplicate_of:
                append_entry(
                    incident,
                    TimelineActor.SYSTEM,
                    TimelineAction.DUPLICATE_GROUPED,
                    f"Grouped with {incident.duplicate_of}",
                    timestamp=now,
                )
                logger.info(
                    f"Incident {incident.id} grouped with {incident.duplicate_of} (group {incident.group_id})",
                    extra={"incident_id": incident.id},
                )

            self._incidents[incident.id] = incident
            return self._commit(incident, "reported")

    def confirm_incident(self, incident_id: str) -> Incident:
        """
        Record one crowd confirmation; the third one escalates an
        unverified incident to ``crowd_confirmed``.

        Raises:
            NotFoundError: If the incident does not exist
        """
        with self._lock:
            incident = self._require(incident_id)
            now = self.clock()

            incident.confirmation_count += 1
            append_entry(
                incident,
                TimelineActor.CROWD,
                TimelineAction.CONFIRMATION_RECEIVED,
                f"Confirmations: {incident.confirmation_count}",
                timestamp=now,
            )
            if (
                incident.status == IncidentStatus.UNVERIFIED
                and incident.confirmation_count >= IncidentConstants.AUTO_ESCALATION_THRESHOLD
            ):
                incident.status = IncidentStatus.CROWD_CONFIRMED
                append_entry(
                    incident,
                    TimelineActor.SYSTEM,
                    TimelineAction.STATUS_AUTO_ESCALATED,
                    f"Reached {IncidentConstants.AUTO_ESCALATION_THRESHOLD} confirmations -> crowd_confirmed",
                    timestamp=now,
                )
            self._touch(incident, now)
            return self._commit(incident, f"confirmed ({incident.confirmation_count})")

    def apply_poll_results(self, incident_id: str, results: PollResults) -> Incident:
        """
        Escalate an unverified incident once its poll has enough confirm votes.

        Raises:
            NotFoundError: If the incident does not exist
        """
        with self._lock:
            incident = self._require(incident_id)
            if (
                incident.status != IncidentStatus.UNVERIFIED
                or results.confirm < IncidentConstants.AUTO_ESCALATION_THRESHOLD
            ):
                return incident.model_copy(deep=True)

            now = self.clock()
            incident.status = IncidentStatus.CROWD_CONFIRMED
            append_entry(
                incident,
                TimelineActor.SYSTEM,
                TimelineAction.STATUS_AUTO_ESCALATED,
                f"Poll reached {results.confirm} confirm votes -> crowd_confirmed",
                timestamp=now,
            )
            self._touch(incident, now)
            return self._commit(incident, "escalated by poll")

    def update_status(self, incident_id: str, status: Any) -> Incident:
        """
        Set the workflow status on behalf of a responder.

        Unknown values become ``unverified`` unless ``strict_enums`` is set.

        Raises:
            NotFoundError: If the incident does not exist
            ValidationError: If ``strict_enums`` is set and the status is unknown
        """
        if self.strict_enums and coerce_enum(
            status, IncidentStatus, IncidentConstants.MAX_STATUS_LENGTH
        ) is None:
            allowed = ", ".join(s.value for s in IncidentStatus)
            raise ValidationError(
                ErrorMessages.INVALID_STATUS.format(allowed=allowed),
                field_errors={"status": [f"unsupported value: {status!r}"]},
            )
        next_status = normalize_status(status)

        with self._lock:
            incident = self._require(incident_id)
            now = self.clock()
            previous = incident.status
            incident.status = next_status
            append_entry(
                incident,
                TimelineActor.RESPONDER,
                TimelineAction.STATUS_UPDATED,
                f"{previous.value} -> {next_status.value}",
                timestamp=now,
            )
            self._touch(incident, now)
            return self._commit(incident, f"status {previous.value} -> {next_status.value}")

    def update_notes(self, incident_id: str, notes: Any) -> Incident:
        """
        Replace the responder-only notes.

        Raises:
            NotFoundError: If the incident does not exist
        """
        with self._lock:
            incident = self._require(incident_id)
            now = self.clock()
            incident.internal_notes = clamp_text(notes, IncidentConstants.MAX_NOTES_LENGTH)
            append_entry(
                incident,
                TimelineActor.RESPONDER,
                TimelineAction.NOTES_UPDATED,
                "Internal notes updated",
                timestamp=now,
            )
            self._touch(incident, now)
            return self._commit(incident, "notes updated")

    def delete_incident(self, incident_id: str) -> Incident:
        """
        Remove an incident permanently.

        Returns:
            The removed incident

        Raises:
            NotFoundError: If the incident does not exist
        """
        with self._lock:
            incident = self._require(incident_id)
            del self._incidents[incident_id]
            return self._commit(incident, "deleted")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, incident_id: str) -> Incident:
        """
        Raises:
            NotFoundError: If the incident does not exist
        """
        with self._lock:
            return self._require(incident_id).model_copy(deep=True)

    def exists(self, incident_id: str) -> bool:
        with self._lock:
            return incident_id in self._incidents

    def list_all(self, since: Optional[datetime] = None, now: Optional[datetime] = None) -> List[Incident]:
        """
        All incidents in triage order: highest priority first, newest first on ties.

        Args:
            since: Only return incidents updated strictly after this instant
            now: Reference instant for aging (defaults to the clock)
        """
        now = now or self.clock()
        since = ensure_utc(since)
        with self._lock:
            items = [
                incident.model_copy(deep=True)
                for incident in self._incidents.values()
                if since is None or incident.updated_at > since
            ]
        return sort_by_priority(items, now)

    def list_group(self, group_id: str) -> List[Incident]:
        """
        Members of a duplicate cluster, root first, then by report time.

        Raises:
            NotFoundError: If no incident belongs to the group
        """
        with self._lock:
            members = [
                incident.model_copy(deep=True)
                for incident in self._incidents.values()
                if incident.group_id == group_id
            ]
        if not members:
            raise_not_found("Incident group", group_id)
        members.sort(key=lambda i: (not i.is_group_root, i.timestamp))
        return members

    def present(self, incident: Incident, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Client-facing projection: the stored record plus ``age_minutes``,
        ``priority_score`` and ``priority_factors``, recomputed on every call.
        """
        now = now or self.clock()
        priority = compute_priority(incident, now)
        record = incident.to_record()
        record["age_minutes"] = minutes_between(incident.timestamp, now)
        record["priority_score"] = priority.score
        record["priority_factors"] = priority.factors
        return record


def sort_by_priority(incidents: Iterable[Incident], now: datetime) -> List[Incident]:
    """Order by descending priority score, then by descending creation time."""
    return sorted(
        incidents,
        key=lambda i: (-compute_priority(i, now).score, -i.timestamp.timestamp()),
    )
