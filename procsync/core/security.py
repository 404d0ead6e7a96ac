from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import logging

from fastapi import Request
import jwt

from procsync.core.config import settings
from procsync.core.schemas import AppCheckData, AuthData, CallableRequest

logger = logging.getLogger(__name__)

APP_CHECK_HEADER = "X-Firebase-AppCheck"


def create_access_token(data: dict, expires_minutes: Optional[int] = None):
    """
    Sign a token the way the guards expect one.
    procsync only verifies tokens; this exists for tests and local development
    (e.g. a bearer token with ``sub`` or an App Check token with ``app_id``).
    """
    to_encode = data.copy()

    expire_time = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    to_encode.update({"exp": expire_time})

    encoded_jwt = jwt.encode(
        to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM
    )

    return encoded_jwt


def _decode(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    # Expired, tampered or just garbage
    except jwt.PyJWTError as error:
        logger.info(f"Rejected token: {error}")
        return None


# Decode the bearer token and see who is the user
def decode_auth(token: Optional[str]) -> Optional[AuthData]:
    if not token:
        return None

    payload = _decode(token)
    if payload is None:
        return None

    uid = payload.get("sub") or payload.get("user_id")
    if uid is None:
        return None

    return AuthData(uid=str(uid), token=payload)


def decode_app_check(token: Optional[str]) -> Optional[AppCheckData]:
    if not token:
        return None

    payload = _decode(token)
    if payload is None or not payload.get("app_id"):
        return None

    return AppCheckData(app_id=str(payload["app_id"]), token=payload)


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):]


def build_callable_request(request: Request, data: Dict[str, Any]) -> CallableRequest:
    """
    Turn an HTTP request into the context the guard pipeline sees.
    Missing or invalid tokens leave ``auth``/``app`` unset; the guards decide.
    """
    return CallableRequest(
        data=data,
        auth=decode_auth(bearer_token(request)),
        app=decode_app_check(request.headers.get(APP_CHECK_HEADER)),
    )
