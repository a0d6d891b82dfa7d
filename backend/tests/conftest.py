"""
Pytest configuration and shared fixtures for CivicPulse tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytest

from civicpulse.db.models import Incident
from civicpulse.integrations.maps_client import BaseGeocoder, GeocodeResult
from civicpulse.services.community.incident_service import IncidentService
from civicpulse.services.community.poll_service import PollLedger
from civicpulse.services.community.user_service import UserStore
from civicpulse.storage import JsonFileStorage

pytest_plugins = ('pytest_asyncio',)

BASE_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for deterministic timestamps."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeGeocoder(BaseGeocoder):
    """In-memory geocoder recording every lookup."""

    def __init__(
        self,
        places: Optional[Dict[str, GeocodeResult]] = None,
        reverse_name: Optional[str] = "Market Street, Springfield",
    ):
        self.places = places or {}
        self.reverse_name = reverse_name
        self.forward_calls = []
        self.reverse_calls = []
        self.closed = False

    async def reverse_lookup(self, latitude, longitude):
        self.reverse_calls.append((latitude, longitude))
        return self.reverse_name

    async def forward_lookup(self, place_name):
        self.forward_calls.append(place_name)
        return self.places.get(place_name)

    async def close(self):
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder(
        places={
            "City Hall": GeocodeResult(
                latitude=40.7128,
                longitude=-74.006,
                display_name="City Hall, New York",
            )
        }
    )


@pytest.fixture
def incident_storage(tmp_path) -> JsonFileStorage:
    return JsonFileStorage(tmp_path / "incidents.json")


@pytest.fixture
def poll_storage(tmp_path) -> JsonFileStorage:
    return JsonFileStorage(tmp_path / "poll_responses.json")


@pytest.fixture
def service(incident_storage, geocoder, clock) -> IncidentService:
    return IncidentService(incident_storage, geocoder=geocoder, flush_delay=0.01, clock=clock)


@pytest.fixture
def ledger(poll_storage, clock) -> PollLedger:
    return PollLedger(poll_storage, flush_delay=0.01, clock=clock)


@pytest.fixture
def user_store(tmp_path, clock) -> UserStore:
    return UserStore(JsonFileStorage(tmp_path / "users.json"), flush_delay=0.01, clock=clock)


@pytest.fixture
def make_incident():
    """Factory for standalone incident records."""

    def _make(**overrides) -> Incident:
        data = {
            "id": "inc_test",
            "type": "fire",
            "description": "Smoke from a window",
            "severity": "attention",
            "latitude": 51.5007,
            "longitude": -0.1246,
            "display_location": "Westminster, London",
            "timestamp": BASE_TIME,
        }
        data.update(overrides)
        return Incident(**data)

    return _make
