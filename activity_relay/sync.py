"""Activity sync: the actions the webhook dispatcher routes events to."""

from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

import httpx
from loguru import logger

from . import strava
from .config import Settings
from .datastore import Datastore
from .models import AthleteTokens

ROW_FIELDS = [
    "name", "type", "sport_type", "distance", "moving_time", "elapsed_time",
    "total_elevation_gain", "start_date", "start_date_local", "timezone",
    "start_latlng", "end_latlng", "achievement_count", "kudos_count",
    "comment_count", "athlete_count", "photo_count", "trainer", "commute",
    "manual", "private", "flagged", "gear_id", "average_speed", "max_speed",
    "average_cadence", "average_watts", "weighted_average_watts", "kilojoules",
    "device_watts", "has_heartrate", "average_heartrate", "max_heartrate",
    "calories", "suffer_score", "description", "workout_type", "photos",
    "laps", "splits_metric", "splits_standard",
]


@runtime_checkable
class ActivitySync(Protocol):
    """What the dispatcher needs from whatever keeps the activity store current.

    Both operations must tolerate redelivery and out-of-order delivery:
    ``upsert`` overwrites by id, ``delete`` of a missing id is a no-op.
    """

    async def upsert(self, object_id: int, owner_id: int) -> None: ...

    async def delete(self, object_id: int) -> None: ...


def to_activity_row(data: dict[str, Any], athlete_id: int, zones: list | None = None) -> dict[str, Any]:
    row = {"id": int(data["id"]), "strava_athlete_id": athlete_id}
    for field in ROW_FIELDS:
        row[field] = data.get(field)
    polyline_map = data.get("map") or {}
    row["map_polyline"] = polyline_map.get("polyline")
    row["map_summary_polyline"] = polyline_map.get("summary_polyline")
    row["zones"] = zones or None
    row["raw_data"] = data
    return row


def tokens_from_response(token: dict[str, Any]) -> AthleteTokens:
    return AthleteTokens(
        access_token=token["access_token"],
        refresh_token=token.get("refresh_token"),
        token_expires_at=datetime.fromtimestamp(token["expires_at"], tz=timezone.utc),
    )


async def access_token_for(
    client: httpx.AsyncClient, settings: Settings, store: Datastore, athlete_id: int,
) -> str | None:
    """Stored access token for the athlete, refreshed and persisted first if expired."""
    tokens = await store.get_tokens(athlete_id)
    if tokens is None or not tokens.access_token:
        logger.warning(f"No stored Strava tokens for athlete {athlete_id}")
        return None
    if not tokens.is_expired():
        return tokens.access_token
    if not tokens.refresh_token:
        logger.warning(f"Access token for athlete {athlete_id} expired and no refresh token is stored")
        return None

    logger.info(f"Refreshing Strava access token for athlete {athlete_id}")
    fresh = tokens_from_response(await strava.refresh_token(client, settings, tokens.refresh_token))
    if fresh.refresh_token is None:
        fresh.refresh_token = tokens.refresh_token
    await store.update_tokens(athlete_id, fresh)
    return fresh.access_token


class StravaActivitySync:
    """Fetches the activity detail from Strava and mirrors it into Supabase."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings, store: Datastore):
        self.client = client
        self.settings = settings
        self.store = store

    async def upsert(self, object_id: int, owner_id: int) -> None:
        token = await access_token_for(self.client, self.settings, self.store, owner_id)
        if token is None:
            return
        data = await strava.get_activity(self.client, token, object_id)
        await self.store.upsert_activity(to_activity_row(data, owner_id))
        logger.info(f"Stored activity {object_id} for athlete {owner_id}")

    async def delete(self, object_id: int) -> None:
        await self.store.delete_activity(object_id)
        logger.info(f"Deleted activity {object_id}")
