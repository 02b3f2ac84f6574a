from fastapi import APIRouter, Depends, Response
from loguru import logger

from .config import Settings
from .datastore import Datastore
from .deps import get_datastore, get_settings
from .errors import DatastoreError, UpstreamUnavailable
from .models import ActivityRecord

router = APIRouter(prefix="/api/activities", tags=["activities"])

@router.get("", responses={200: {"model": list[ActivityRecord], "description": "Newest activities first"}})
async def list_activities(
    store: Datastore = Depends(get_datastore),
    settings: Settings = Depends(get_settings),
):
    # pass-through: the datastore's body is forwarded without parsing
    try:
        body = await store.list_activities_raw(settings.ACTIVITIES_LIMIT)
    except DatastoreError as e:
        logger.error(f"Error fetching activities: {e}")
        raise UpstreamUnavailable(str(e)) from e
    return Response(content=body, media_type="application/json")
