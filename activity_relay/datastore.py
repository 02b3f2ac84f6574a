"""Supabase (PostgREST) access for users, activities and activity streams.

Every write that can be repeated by a redelivered webhook is an upsert keyed by
the row's natural id, so processing the same event twice overwrites instead of
adding.
"""

from typing import Any

import httpx

from .config import Settings
from .errors import DatastoreError
from .models import AthleteTokens

MERGE = "resolution=merge-duplicates,return=minimal"


class Datastore:
    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self._client = client
        self._base = f"{settings.SUPABASE_URL.rstrip('/')}/rest/v1"
        key = settings.SUPABASE_SERVICE_KEY
        self._headers = {"apikey": key, "Authorization": f"Bearer {key}"}

    async def _send(self, method: str, table: str, *, params=None, json=None, prefer: str | None = None) -> httpx.Response:
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        try:
            r = await self._client.request(method, f"{self._base}/{table}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise DatastoreError(f"{method} {table}: {e!r}") from e
        if r.is_error:
            raise DatastoreError(f"{method} {table} returned {r.status_code}: {r.text}")
        return r

    async def list_activities_raw(self, limit: int) -> bytes:
        """Newest activities first, as the datastore's raw JSON body."""
        r = await self._send("GET", "activities", params={
            "select": "*", "order": "start_date.desc", "limit": str(limit),
        })
        return r.content

    async def activity_exists(self, activity_id: int) -> bool:
        r = await self._send("GET", "activities", params={"select": "id", "id": f"eq.{activity_id}"})
        return bool(r.json())

    async def upsert_activity(self, row: dict[str, Any]) -> None:
        await self._send("POST", "activities", params={"on_conflict": "id"}, json=row, prefer=MERGE)

    async def delete_activity(self, activity_id: int) -> None:
        await self._send("DELETE", "activities", params={"id": f"eq.{activity_id}"})

    async def upsert_streams(self, rows: list[dict[str, Any]]) -> None:
        if not rows:
            return
        await self._send(
            "POST", "activity_streams",
            params={"on_conflict": "activity_id,stream_type"}, json=rows, prefer=MERGE,
        )

    async def get_tokens(self, athlete_id: int) -> AthleteTokens | None:
        r = await self._send("GET", "users", params={
            "select": "access_token,refresh_token,token_expires_at",
            "strava_athlete_id": f"eq.{athlete_id}",
        })
        rows = r.json()
        if not rows:
            return None
        return AthleteTokens.model_validate(rows[0])

    async def update_tokens(self, athlete_id: int, tokens: AthleteTokens) -> None:
        await self._send(
            "PATCH", "users",
            params={"strava_athlete_id": f"eq.{athlete_id}"},
            json=tokens.model_dump(mode="json"),
        )

    async def upsert_user(self, row: dict[str, Any]) -> None:
        await self._send("POST", "users", params={"on_conflict": "strava_athlete_id"}, json=row, prefer=MERGE)
