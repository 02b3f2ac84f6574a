from html import escape

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse
from loguru import logger

from . import strava
from .config import Settings
from .datastore import Datastore
from .deps import get_datastore, get_http_client, get_settings
from .errors import DatastoreError, StravaError
from .sync import tokens_from_response

router = APIRouter(prefix="/api/auth/strava", tags=["auth"])

SUCCESS_PAGE = """<!DOCTYPE html>
<html>
  <head><title>Strava Connected!</title></head>
  <body>
    <h1>Connected!</h1>
    <p>Welcome, {name}!</p>
    <p>Your Strava account is now linked.</p>
    <p>Athlete ID: {athlete_id}</p>
  </body>
</html>
"""

@router.get("")
async def auth_start(settings: Settings = Depends(get_settings)):
    return RedirectResponse(strava.authorize_url(settings))

@router.get("/callback")
async def auth_cb(
    code: str | None = None,
    error: str | None = None,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
    store: Datastore = Depends(get_datastore),
):
    if error:
        return PlainTextResponse(f"Authorization failed: {error}", status_code=400)
    if not code:
        return PlainTextResponse("Missing authorization code", status_code=400)

    try:
        token = await strava.exchange_code(client, settings, code)
    except StravaError as e:
        logger.error(f"Token exchange failed: {e}")
        return PlainTextResponse(f"Token exchange failed: {e}", status_code=400)

    athlete = token["athlete"]
    tokens = tokens_from_response(token)
    row = {
        "strava_athlete_id": athlete["id"],
        "first_name": athlete.get("firstname"),
        "last_name": athlete.get("lastname"),
        "profile_picture_url": athlete.get("profile"),
        **tokens.model_dump(mode="json"),
    }
    try:
        await store.upsert_user(row)
    except DatastoreError as e:
        logger.error(f"Storing tokens for athlete {athlete['id']} failed: {e}")
        return PlainTextResponse("Database error", status_code=500)

    logger.info(f"Strava connected for athlete {athlete['id']}")
    name = escape((athlete.get("firstname") or "").strip() or f"Strava #{athlete['id']}")
    return HTMLResponse(SUCCESS_PAGE.format(name=name, athlete_id=athlete["id"]))
