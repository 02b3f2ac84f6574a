"""Strava push subscription endpoint.

GET answers the one-time subscription handshake, POST receives event
notifications. Events are acknowledged as soon as they parse; the routed sync
action runs afterwards as a background task, so a slow or failing action never
turns into a non-200 that would make Strava retry or drop the subscription.
"""

import json
from typing import Awaitable, Callable, Mapping

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from loguru import logger
from pydantic import ValidationError

from .config import Settings
from .deps import get_settings, get_sync
from .errors import DownstreamActionFailed, MalformedPayload, VerificationFailed
from .models import (
    ActivityChangeEvent, AspectType, ObjectType, RouteDecision,
    SubscriptionAck, SubscriptionChallenge,
)
from .security import verify_subscription
from .sync import ActivitySync

router = APIRouter(prefix="/api/webhook", tags=["webhook"])


def handle_verification(params: Mapping[str, str], settings: Settings) -> JSONResponse:
    query = SubscriptionChallenge.from_query(params)
    if not verify_subscription(query, settings.STRAVA_VERIFY_TOKEN):
        logger.warning(
            f"Webhook verification failed (mode={query.mode!r}, "
            f"token_present={query.verify_token is not None}, challenge_present={query.challenge is not None})"
        )
        raise VerificationFailed("Verification failed")
    logger.info("Webhook verified")
    # Strava expects this exact key back
    return JSONResponse(SubscriptionAck(challenge=query.challenge).model_dump(by_alias=True))


def parse_event(raw_body: bytes) -> ActivityChangeEvent:
    try:
        payload = json.loads(raw_body)
    except (ValueError, RecursionError) as e:
        # RecursionError: nesting deeper than the decoder's stack allows
        raise MalformedPayload("Invalid JSON") from e
    if not isinstance(payload, dict):
        raise MalformedPayload("Invalid body")
    try:
        return ActivityChangeEvent.model_validate(payload)
    except ValidationError as e:
        raise MalformedPayload("Invalid body") from e


def classify(event: ActivityChangeEvent) -> RouteDecision:
    if event.object_type != ObjectType.ACTIVITY:
        return RouteDecision.IGNORED
    if event.aspect_type in (AspectType.CREATE, AspectType.UPDATE):
        return RouteDecision.UPSERT
    if event.aspect_type == AspectType.DELETE:
        return RouteDecision.DELETE
    return RouteDecision.IGNORED


async def run_action(action: RouteDecision, object_id: int, fn: Callable[..., Awaitable[None]], *args) -> None:
    try:
        await fn(*args)
    except Exception as e:
        # already acknowledged; failures surface in the logs only
        err = DownstreamActionFailed(action.value, object_id, e)
        logger.opt(exception=e).error(str(err))


def handle_event(raw_body: bytes, sync: ActivitySync, background: BackgroundTasks) -> PlainTextResponse:
    event = parse_event(raw_body)
    decision = classify(event)
    logger.bind(
        object_type=event.object_type,
        object_id=event.object_id,
        owner_id=event.owner_id,
        aspect_type=event.aspect_type,
        decision=decision.value,
    ).info("Webhook event received")

    if decision is RouteDecision.UPSERT:
        background.add_task(run_action, decision, event.object_id, sync.upsert, event.object_id, event.owner_id)
    elif decision is RouteDecision.DELETE:
        background.add_task(run_action, decision, event.object_id, sync.delete, event.object_id)
    return PlainTextResponse("OK", background=background)


@router.get("")
async def verify_strava(request: Request, settings: Settings = Depends(get_settings)):
    return handle_verification(request.query_params, settings)


@router.post("")
async def receive_event(
    request: Request,
    background: BackgroundTasks,
    sync: ActivitySync = Depends(get_sync),
):
    return handle_event(await request.body(), sync, background)
