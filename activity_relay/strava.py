import asyncio

import httpx
from loguru import logger

from .config import Settings
from .errors import StravaError

BASE = "https://www.strava.com/api/v3"
TOKEN_URL = "https://www.strava.com/oauth/token"
AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"

STREAM_TYPES = [
    "time", "latlng", "distance", "altitude", "velocity_smooth",
    "heartrate", "cadence", "watts", "temp", "moving", "grade_smooth",
]

def authorize_url(settings: Settings) -> str:
    params = {
        "client_id": settings.STRAVA_CLIENT_ID,
        "redirect_uri": settings.STRAVA_REDIRECT_URI,
        "response_type": "code",
        "scope": "read,activity:read_all",
    }
    return str(httpx.URL(AUTHORIZE_URL, params=params))

async def _request(client: httpx.AsyncClient, method: str, url: str, *,
                   retries: int = 1, rate_limit_wait: float = 60.0, **kwargs) -> httpx.Response:
    for attempt in range(retries):
        try:
            r = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise StravaError(f"{method} {url}: {e}") from e
        if r.status_code != 429:
            return r
        if attempt + 1 < retries:
            logger.warning(f"Strava rate limit hit, waiting {rate_limit_wait}s before retry {attempt + 1}")
            await asyncio.sleep(rate_limit_wait)
    raise StravaError(f"{method} {url}: rate limited after {retries} attempts")

def _json(r: httpx.Response):
    if r.is_error:
        raise StravaError(f"Strava returned {r.status_code}: {r.text}")
    return r.json()

async def exchange_code(client: httpx.AsyncClient, settings: Settings, code: str):
    r = await _request(client, "POST", TOKEN_URL, data={
        "client_id": settings.STRAVA_CLIENT_ID,
        "client_secret": settings.STRAVA_CLIENT_SECRET,
        "code": code,
        "grant_type": "authorization_code",
    })
    return _json(r)

async def refresh_token(client: httpx.AsyncClient, settings: Settings, refresh_token: str):
    r = await _request(client, "POST", TOKEN_URL, data={
        "client_id": settings.STRAVA_CLIENT_ID,
        "client_secret": settings.STRAVA_CLIENT_SECRET,
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
    })
    return _json(r)

async def get_activity(client: httpx.AsyncClient, access_token: str, activity_id: int, **retry):
    r = await _request(
        client, "GET", f"{BASE}/activities/{activity_id}",
        headers={"Authorization": f"Bearer {access_token}"}, **retry,
    )
    return _json(r)

async def list_activities(client: httpx.AsyncClient, access_token: str, page: int, per_page: int = 100, **retry):
    r = await _request(
        client, "GET", f"{BASE}/athlete/activities",
        headers={"Authorization": f"Bearer {access_token}"},
        params={"page": page, "per_page": per_page}, **retry,
    )
    return _json(r)

async def get_activity_zones(client: httpx.AsyncClient, access_token: str, activity_id: int, **retry):
    r = await _request(
        client, "GET", f"{BASE}/activities/{activity_id}/zones",
        headers={"Authorization": f"Bearer {access_token}"}, **retry,
    )
    # not every activity has zones (no HR or power data)
    if r.status_code == 404:
        return []
    return _json(r)

async def get_activity_streams(client: httpx.AsyncClient, access_token: str, activity_id: int, **retry):
    r = await _request(
        client, "GET", f"{BASE}/activities/{activity_id}/streams",
        headers={"Authorization": f"Bearer {access_token}"},
        params={"keys": ",".join(STREAM_TYPES), "key_by_type": "true"}, **retry,
    )
    # manual entries have no streams
    if r.status_code == 404:
        return None
    return _json(r)
