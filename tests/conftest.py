"""Shared fixtures.

Strava and Supabase are replaced by ``FakeUpstream``, an in-memory stand-in
served through ``httpx.MockTransport``; the dispatcher's sync collaborator is
replaced by ``RecordingSync`` where only routing is under test.
"""

from __future__ import annotations

import json
import re
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient

from activity_relay.config import Settings
from activity_relay.main import create_app

DB_HOST = "db.test"
STRAVA_HOST = "www.strava.com"


class RecordingSync:
    """ActivitySync fake that keeps one record per activity id."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple] = []
        self.records: dict[int, int] = {}

    async def upsert(self, object_id: int, owner_id: int) -> None:
        self.calls.append(("upsert", object_id, owner_id))
        if self.fail:
            raise RuntimeError("datastore exploded")
        self.records[object_id] = owner_id

    async def delete(self, object_id: int) -> None:
        self.calls.append(("delete", object_id))
        if self.fail:
            raise RuntimeError("datastore exploded")
        self.records.pop(object_id, None)


def _eq(params, key):
    value = params.get(key)
    return int(value[3:]) if value and value.startswith("eq.") else None


class FakeUpstream:
    """Just enough of Strava's v3 API and Supabase's PostgREST to exercise the relay."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.db_down = False
        self.db_status = 200
        # supabase tables
        self.activities: dict[int, dict] = {}
        self.streams: dict[tuple[int, str], dict] = {}
        self.users: dict[int, dict] = {}
        # strava side
        self.details: dict[int, dict] = {}
        self.pages: list[list[dict]] = []
        self.zones: dict[int, list] = {}
        self.activity_streams: dict[int, dict] = {}
        self.rate_limited: int = 0
        self.zones_rate_limited: int = 0
        self.token_status = 200
        self.token_response = {
            "token_type": "Bearer",
            "access_token": "fresh-access",
            "refresh_token": "fresh-refresh",
            "expires_at": 4102444800,
            "athlete": {"id": 42, "firstname": "Ada", "lastname": "Lovelace", "profile": "https://img/ada.png"},
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == DB_HOST:
            return self._supabase(request)
        if request.url.host == STRAVA_HOST:
            return self._strava(request)
        return httpx.Response(404)

    def requests_to(self, host: str, path_prefix: str = "") -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host and r.url.path.startswith(path_prefix)]

    def _supabase(self, request: httpx.Request) -> httpx.Response:
        if self.db_down:
            raise httpx.ConnectError("connection refused", request=request)
        if self.db_status != 200:
            return httpx.Response(self.db_status, text="relation does not exist")
        table = request.url.path.rsplit("/", 1)[-1]
        params = dict(request.url.params)
        body = json.loads(request.content) if request.content else None

        if table == "activities":
            activity_id = _eq(params, "id")
            if request.method == "GET" and activity_id is not None:
                row = self.activities.get(activity_id)
                return httpx.Response(200, json=[{"id": activity_id}] if row else [])
            if request.method == "GET":
                rows = sorted(self.activities.values(), key=lambda r: r["start_date"], reverse=True)
                return httpx.Response(200, json=rows[: int(params.get("limit", 1000))])
            if request.method == "POST":
                self.activities[body["id"]] = body
                return httpx.Response(201)
            if request.method == "DELETE":
                self.activities.pop(activity_id, None)
                return httpx.Response(204)
        if table == "activity_streams" and request.method == "POST":
            for row in body:
                self.streams[(row["activity_id"], row["stream_type"])] = row
            return httpx.Response(201)
        if table == "users":
            athlete_id = _eq(params, "strava_athlete_id")
            if request.method == "GET":
                user = self.users.get(athlete_id)
                return httpx.Response(200, json=[user] if user else [])
            if request.method == "PATCH":
                self.users[athlete_id].update(body)
                return httpx.Response(204)
            if request.method == "POST":
                self.users[body["strava_athlete_id"]] = body
                return httpx.Response(201)
        return httpx.Response(400, text="unsupported")

    def _strava(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if self.rate_limited:
            self.rate_limited -= 1
            return httpx.Response(429, text="Rate Limit Exceeded")
        if path == "/oauth/token":
            form = parse_qs(request.content.decode())
            if self.token_status != 200:
                return httpx.Response(self.token_status, text='{"message":"Bad Request"}')
            assert form["grant_type"][0] in ("authorization_code", "refresh_token")
            return httpx.Response(200, json=self.token_response)
        if path == "/api/v3/athlete/activities":
            page = int(request.url.params["page"])
            return httpx.Response(200, json=self.pages[page - 1] if page <= len(self.pages) else [])
        m = re.fullmatch(r"/api/v3/activities/(\d+)(/zones|/streams)?", path)
        if m:
            activity_id, sub = int(m.group(1)), m.group(2)
            if sub == "/zones":
                if self.zones_rate_limited:
                    self.zones_rate_limited -= 1
                    return httpx.Response(429, text="Rate Limit Exceeded")
                return httpx.Response(200, json=self.zones[activity_id]) if activity_id in self.zones else httpx.Response(404)
            if sub == "/streams":
                if activity_id in self.activity_streams:
                    return httpx.Response(200, json=self.activity_streams[activity_id])
                return httpx.Response(404)
            if activity_id in self.details:
                return httpx.Response(200, json=self.details[activity_id])
            return httpx.Response(404, text='{"message":"Record Not Found"}')
        return httpx.Response(404)


def detail(activity_id: int, **overrides) -> dict:
    data = {
        "id": activity_id,
        "name": "Morning Ride",
        "type": "Ride",
        "sport_type": "Ride",
        "distance": 25012.4,
        "moving_time": 3600,
        "elapsed_time": 3900,
        "total_elevation_gain": 210.0,
        "start_date": "2024-05-01T06:00:00Z",
        "start_date_local": "2024-05-01T08:00:00Z",
        "timezone": "(GMT+01:00) Europe/Amsterdam",
        "map": {"polyline": "abc", "summary_polyline": "a"},
        "average_speed": 6.9,
        "has_heartrate": True,
        "average_heartrate": 141.2,
    }
    data.update(overrides)
    return data


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        STRAVA_CLIENT_ID="1234",
        STRAVA_CLIENT_SECRET="client-secret",
        STRAVA_VERIFY_TOKEN="S3CR3T",
        SUPABASE_URL=f"https://{DB_HOST}",
        SUPABASE_SERVICE_KEY="service-key",
        ADMIN_TOKEN="admin-token",
        RATE_LIMIT_WAIT_S=0,
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def http(upstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(upstream))


@pytest.fixture
def sync() -> RecordingSync:
    return RecordingSync()


@pytest.fixture
def client(settings, http, sync) -> TestClient:
    """App with the recording sync; datastore calls go to FakeUpstream."""
    return TestClient(create_app(settings, http=http, sync=sync))


@pytest.fixture
def live_client(settings, http) -> TestClient:
    """App with the real StravaActivitySync wired to FakeUpstream."""
    return TestClient(create_app(settings, http=http))
