"""Load an athlete's full Strava history into the datastore.

Walks ``/athlete/activities`` page by page and stores every activity that is
not already present, together with its zones and streams. Safe to rerun: known
activities are skipped and every write is an upsert.
"""

import asyncio
from dataclasses import dataclass

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from loguru import logger

from . import strava
from .config import Settings
from .datastore import Datastore
from .deps import get_datastore, get_http_client, get_settings
from .errors import RelayError
from .security import require_admin
from .sync import access_token_for, to_activity_row

PER_PAGE = 100
MAX_ATTEMPTS = 3

router = APIRouter(prefix="/admin", tags=["admin"])


@dataclass
class BackfillResult:
    stored: int = 0
    skipped: int = 0
    failed: int = 0


def stream_rows(activity_id: int, streams: dict) -> list[dict]:
    return [
        {
            "activity_id": activity_id,
            "stream_type": stream_type,
            "series_type": stream.get("series_type"),
            "original_size": stream.get("original_size"),
            "resolution": stream.get("resolution"),
            "data": stream.get("data"),
        }
        for stream_type, stream in streams.items()
    ]


async def store_full_activity(
    client: httpx.AsyncClient, settings: Settings, store: Datastore,
    token: str, athlete_id: int, activity_id: int,
) -> None:
    retry = {"retries": MAX_ATTEMPTS, "rate_limit_wait": settings.RATE_LIMIT_WAIT_S}
    data = await strava.get_activity(client, token, activity_id, **retry)
    zones, streams = await asyncio.gather(
        strava.get_activity_zones(client, token, activity_id, **retry),
        strava.get_activity_streams(client, token, activity_id, **retry),
    )
    await store.upsert_activity(to_activity_row(data, athlete_id, zones))
    if streams:
        await store.upsert_streams(stream_rows(activity_id, streams))


async def walk_history(
    client: httpx.AsyncClient, settings: Settings, store: Datastore, token: str, athlete_id: int,
) -> BackfillResult:
    result = BackfillResult()
    page = 1
    while True:
        logger.info(f"Backfill athlete {athlete_id}: fetching page {page}")
        summaries = await strava.list_activities(
            client, token, page, PER_PAGE,
            retries=MAX_ATTEMPTS, rate_limit_wait=settings.RATE_LIMIT_WAIT_S,
        )
        for summary in summaries:
            activity_id = int(summary["id"])
            try:
                if await store.activity_exists(activity_id):
                    result.skipped += 1
                    continue
                await store_full_activity(client, settings, store, token, athlete_id, activity_id)
                result.stored += 1
            except RelayError as e:
                result.failed += 1
                logger.error(f"Backfill of activity {activity_id} failed: {e}")
        if len(summaries) < PER_PAGE:
            break
        page += 1

    logger.info(
        f"Backfill athlete {athlete_id} complete: stored={result.stored} "
        f"skipped={result.skipped} failed={result.failed}"
    )
    return result


async def backfill_activities(
    client: httpx.AsyncClient, settings: Settings, store: Datastore, athlete_id: int,
) -> BackfillResult | None:
    token = await access_token_for(client, settings, store, athlete_id)
    if token is None:
        return None
    return await walk_history(client, settings, store, token, athlete_id)


async def run_backfill(
    client: httpx.AsyncClient, settings: Settings, store: Datastore, token: str, athlete_id: int,
) -> None:
    try:
        await walk_history(client, settings, store, token, athlete_id)
    except RelayError as e:
        # the request already returned 202; a failed page walk only shows up here
        logger.opt(exception=e).error(f"Backfill athlete {athlete_id} aborted: {e}")


@router.post("/backfill", status_code=202)
async def admin_backfill(
    athlete_id: int,
    background: BackgroundTasks,
    _: None = Depends(require_admin),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
    store: Datastore = Depends(get_datastore),
):
    # the walk can sleep through rate limits for minutes, so it runs after the response
    token = await access_token_for(client, settings, store, athlete_id)
    if token is None:
        raise HTTPException(404, "no usable Strava tokens for athlete")
    background.add_task(run_backfill, client, settings, store, token, athlete_id)
    return {"ok": True, "athlete_id": athlete_id, "status": "scheduled"}
