# activity_relay/security.py
import hmac

from fastapi import Depends, Header, HTTPException, status

from .config import Settings
from .deps import get_settings
from .models import SubscriptionChallenge

def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))

def verify_subscription(query: SubscriptionChallenge, expected_token: str) -> bool:
    if query.mode != "subscribe" or query.challenge is None or query.verify_token is None:
        return False
    return _same(query.verify_token, expected_token)

def require_admin(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
):
    expected = f"Bearer {settings.ADMIN_TOKEN}"
    if authorization is None or not _same(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
