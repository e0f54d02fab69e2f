from __future__ import annotations

import json
from typing import Any, Optional

import pytest
import requests

from osm_geocoding.base import AdministrativeDirectory
from osm_geocoding.geocoders import NominatimClient
from osm_geocoding.pipeline import GeocodingPipeline
from osm_geocoding.resolver import ResponseResolver
from osm_geocoding.storage import InMemoryCache

BASE_URL = "https://nominatim.example.org/search"

BERLIN_RESPONSE = [
    {
        "lat": "52.52000123456789",
        "lon": "13.404954",
        "address": {"country_code": "de", "state": "Berlin", "city": "Berlin"},
    }
]


def make_response(status_code: int = 200, body: Any = None, text: Optional[str] = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    payload = text if text is not None else json.dumps(body if body is not None else [])
    response._content = payload.encode("utf-8")
    response.encoding = "utf-8"
    return response


class FakeSession:
    """Stands in for requests.Session, replaying queued responses."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    def get(self, url, headers=None, timeout=None):
        self.calls.append({"url": url, "headers": headers or {}, "timeout": timeout})
        if not self.responses:
            raise AssertionError(f"Unexpected request to {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeDirectory(AdministrativeDirectory):
    def __init__(self):
        self.countries: dict[str, int] = {}
        self.states: dict[int, tuple[str, Optional[str]]] = {}
        self.counties: dict[int, tuple[int, str]] = {}
        self.created: list[tuple[int, str]] = []

    def add_state(self, state_id: int, name: str, abbreviation: Optional[str] = None) -> None:
        self.states[state_id] = (name, abbreviation)

    def find_country_by_iso_code(self, iso_code):
        return self.countries.get(iso_code)

    def find_state_by_name(self, name):
        for state_id, (state_name, _) in sorted(self.states.items()):
            if state_name == name:
                return state_id
        return None

    def find_county_by_name(self, name):
        for county_id, (_, county_name) in sorted(self.counties.items()):
            if county_name == name:
                return county_id
        return None

    def create_county(self, state_province_id, name):
        county_id = max(self.counties, default=100) + 1
        self.counties[county_id] = (state_province_id, name)
        self.created.append((state_province_id, name))
        return county_id

    def find_state_name_by_id(self, state_province_id):
        state = self.states.get(state_province_id)
        return state[0] if state else None

    def find_state_name_by_abbreviation(self, abbreviation):
        for name, abbr in self.states.values():
            if abbr == abbreviation:
                return name
        return None


class CountingLimiter:
    def __init__(self):
        self.waits = 0

    def wait(self):
        self.waits += 1


@pytest.fixture
def directory():
    directory = FakeDirectory()
    directory.countries["de"] = 42
    directory.add_state(7, "Berlin", "BE")
    directory.add_state(8, "Bayern", "BY")
    return directory


@pytest.fixture
def cache():
    return InMemoryCache()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(cache, directory, session):
    return NominatimClient(
        cache=cache,
        resolver=ResponseResolver(directory),
        user_agent="osm-geocoding instance (abc123)",
        base_url=BASE_URL,
        session=session,
    )


@pytest.fixture
def pipeline(client, directory):
    return GeocodingPipeline(client=client, directory=directory, base_url=BASE_URL)
