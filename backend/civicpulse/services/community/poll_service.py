"""
Verification poll ledger.

Each incident has an open poll; every user may answer it once with confirm,
deny or unsure. The tally and its confidence score feed crowd
auto-escalation in the incident lifecycle engine.
"""
import math
import threading
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from civicpulse.core.constants import PollChoice
from civicpulse.core.exceptions import AlreadyVotedError, InvalidChoiceError, StorageError
from civicpulse.core.logging_config import LoggingContext, get_logger
from civicpulse.db.models import PollResponse, PollResults
from civicpulse.services.utils.clock import Clock, utc_now
from civicpulse.storage import DebouncedFlusher, JsonFileStorage

logger = get_logger(__name__, {"store": "poll_responses"})


def confidence_score(confirm: int, total: int) -> int:
    """Percentage of confirm votes, rounded half up; 0 for an empty poll."""
    if total <= 0:
        return 0
    return int(math.floor(confirm / total * 100 + 0.5))


def _parse_choice(choice: Any) -> Optional[PollChoice]:
    if isinstance(choice, PollChoice):
        return choice
    if not isinstance(choice, str):
        return None
    try:
        return PollChoice(choice)
    except ValueError:
        return None


class PollLedger:
    """
    One-vote-per-user poll responses, keyed by incident id.

    Args:
        storage: Snapshot storage for the response collection
        flush_delay: Debounce window for persistence, in seconds
        clock: Source of the current time
    """

    def __init__(self, storage: JsonFileStorage, flush_delay: float = 0.35, clock: Clock = utc_now):
        self.storage = storage
        self.clock = clock

        self._responses: Dict[str, List[PollResponse]] = {}
        self._lock = threading.RLock()
        self.flusher = DebouncedFlusher("poll_responses", self.snapshot, storage, delay=flush_delay)

    async def load(self) -> int:
        """
        Load persisted responses, replacing in-memory state.

        Returns:
            Number of responses loaded
        """
        with LoggingContext(logger, f"Loading poll responses from {self.storage.path}"):
            try:
                data = await self.storage.load_all()
            except StorageError as e:
                logger.error(f"Starting with an empty poll ledger: {e.message}")
                data = None

            loaded: Dict[str, List[PollResponse]] = {}
            count = 0
            if isinstance(data, dict):
                for incident_id, records in data.items():
                    if not isinstance(records, list):
                        continue
                    for record in records:
                        try:
                            response = PollResponse.model_validate(record)
                        except PydanticValidationError as e:
                            logger.warning(f"Skipping malformed poll response for {incident_id}: {e}")
                            continue
                        loaded.setdefault(incident_id, []).append(response)
                        count += 1

            with self._lock:
                self._responses = loaded

        logger.info(f"Loaded {count} poll responses for {len(loaded)} incidents")
        return count

    async def start(self) -> None:
        await self.flusher.start()

    async def shutdown(self) -> None:
        await self.flusher.shutdown()

    def snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        with self._lock:
            return {
                incident_id: [r.to_record() for r in responses]
                for incident_id, responses in self._responses.items()
            }

    def _find(self, incident_id: str, user_id: str) -> Optional[PollResponse]:
        for response in self._responses.get(incident_id, []):
            if response.user_id == user_id:
                return response
        return None

    def submit_vote(self, incident_id: str, user_id: str, choice: Any) -> PollResponse:
        """
        Record ``user_id``'s answer to the poll on ``incident_id``.

        Raises:
            AlreadyVotedError: If the user already answered this poll
            InvalidChoiceError: If ``choice`` is not confirm, deny or unsure
        """
        with self._lock:
            if self._find(incident_id, user_id) is not None:
                raise AlreadyVotedError(incident_id, user_id)

            parsed = _parse_choice(choice)
            if parsed is None:
                raise InvalidChoiceError(choice, [c.value for c in PollChoice])

            response = PollResponse(
                id=f"poll_{uuid.uuid4().hex}",
                incident_id=incident_id,
                user_id=user_id,
                choice=parsed,
                timestamp=self.clock(),
            )
            self._responses.setdefault(incident_id, []).append(response)
            self.flusher.mark_dirty()

        logger.info(
            f"Poll response {response.id} on {incident_id}: {parsed.value}",
            extra={"incident_id": incident_id, "user_id": user_id},
        )
        return response

    def get_results(self, incident_id: str) -> PollResults:
        with self._lock:
            votes = list(self._responses.get(incident_id, []))

        confirm = sum(1 for v in votes if v.choice == PollChoice.CONFIRM)
        deny = sum(1 for v in votes if v.choice == PollChoice.DENY)
        unsure = sum(1 for v in votes if v.choice == PollChoice.UNSURE)
        return PollResults(
            total=len(votes),
            confirm=confirm,
            deny=deny,
            unsure=unsure,
            confidence_score=confidence_score(confirm, len(votes)),
        )

    def has_voted(self, incident_id: str, user_id: str) -> bool:
        with self._lock:
            return self._find(incident_id, user_id) is not None

    def get_vote(self, incident_id: str, user_id: str) -> Optional[PollResponse]:
        with self._lock:
            return self._find(incident_id, user_id)
