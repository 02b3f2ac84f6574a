# activity_relay/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

class ObjectType(str, Enum):
    ACTIVITY = "activity"
    ATHLETE = "athlete"

class AspectType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

class RouteDecision(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"
    IGNORED = "ignored"

class SubscriptionChallenge(BaseModel):
    """Query of the subscription handshake. Missing keys stay None."""
    mode: str | None = None
    verify_token: str | None = None
    challenge: str | None = None

    @classmethod
    def from_query(cls, params: Mapping[str, str]) -> "SubscriptionChallenge":
        return cls(
            mode=params.get("hub.mode"),
            verify_token=params.get("hub.verify_token"),
            challenge=params.get("hub.challenge"),
        )

class SubscriptionAck(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    challenge: str = Field(serialization_alias="hub.challenge")

class ActivityChangeEvent(BaseModel):
    # Strava sends {object_type, object_id, aspect_type, owner_id, subscription_id, event_time, updates}
    object_type: StrictStr
    object_id: StrictInt
    aspect_type: StrictStr
    owner_id: StrictInt
    subscription_id: StrictInt
    event_time: StrictInt
    updates: dict[str, Any] | None = None

class ActivityRecord(BaseModel):
    """Flattened activity summary as the read endpoint serves it."""
    model_config = ConfigDict(extra="allow")
    id: int
    name: str
    type: str
    distance: float
    moving_time: int
    elapsed_time: int
    total_elevation_gain: float
    start_date: str
    average_speed: float | None = None
    max_speed: float | None = None
    average_heartrate: float | None = None
    max_heartrate: int | None = None
    calories: int | None = None

class AthleteTokens(BaseModel):
    model_config = ConfigDict(extra="ignore")
    access_token: str | None = None
    refresh_token: str | None = None
    token_expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.token_expires_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        expires = self.token_expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return expires <= now
