"""WHOOP OAuth routes: authorization redirect and callback."""

import base64
import binascii
import json
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from vitalsync.config import Settings, get_settings
from vitalsync.dependencies import get_store
from vitalsync.exceptions import ConfigurationError
from vitalsync.services.crypto_service import get_crypto_service
from vitalsync.services.health_store import PROVIDER, HealthStore
from vitalsync.services.whoop_client import WhoopClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

_redis_client: aioredis.Redis | None = None


async def _get_redis(settings: Settings) -> aioredis.Redis:
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


async def _store_oauth_state(nonce: str, user_id: str, settings: Settings) -> None:
    """Remember which user started the flow, with a TTL."""
    r = await _get_redis(settings)
    await r.set(f"oauth_state:{nonce}", user_id, ex=settings.oauth_state_ttl_seconds)


async def _pop_oauth_state(nonce: str, settings: Settings) -> str | None:
    """Atomically retrieve and delete a pending OAuth state."""
    r = await _get_redis(settings)
    key = f"oauth_state:{nonce}"
    pipe = r.pipeline()
    pipe.get(key)
    pipe.delete(key)
    results = await pipe.execute()
    return results[0]


def encode_state(user_id: str, nonce: str) -> str:
    raw = json.dumps({"user_id": user_id, "nonce": nonce}).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_state(state: str) -> dict | None:
    """Decode a base64url JSON state; None when it is malformed."""
    try:
        padded = state + "=" * (-len(state) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(data, dict) or not data.get("user_id") or not data.get("nonce"):
        return None
    return data


def _dashboard_redirect(settings: Settings, **params: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.dashboard_url}?{urlencode(params)}")


@router.get("/whoop")
async def whoop_authorize(
    user_id: str | None = Query(default=None),
    settings: Settings = Depends(get_settings),
):
    """Redirect the user to WHOOP's authorization page."""
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id is required")
    try:
        uuid.UUID(user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="user_id must be a UUID")

    nonce = secrets.token_hex(16)
    await _store_oauth_state(nonce, user_id, settings)

    try:
        auth_url = WhoopClient.get_authorization_url(encode_state(user_id, nonce), settings)
    except ConfigurationError as e:
        logger.error("WHOOP OAuth not configured: %s", e)
        raise HTTPException(status_code=500, detail="WHOOP integration is not configured")

    return RedirectResponse(auth_url)


@router.get("/whoop/callback")
async def whoop_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    store: HealthStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
):
    """Exchange the code, store the encrypted connection and return to the dashboard."""
    if error:
        logger.warning("WHOOP OAuth error: %s", error)
        return _dashboard_redirect(settings, error="oauth_denied")

    if not code or not state:
        return _dashboard_redirect(settings, error="missing_params")

    state_data = decode_state(state)
    if state_data is None:
        return _dashboard_redirect(settings, error="invalid_state")

    pending_user = await _pop_oauth_state(state_data["nonce"], settings)
    if pending_user is None or pending_user != state_data["user_id"]:
        logger.warning("OAuth state nonce missing or mismatched")
        return _dashboard_redirect(settings, error="invalid_state")

    user_id = uuid.UUID(pending_user)

    try:
        crypto = get_crypto_service(settings)
        tokens = await WhoopClient.exchange_code(code, settings)

        async with WhoopClient(tokens.access_token, tokens.refresh_token, user_id, settings=settings) as client:
            whoop_user = await client.get_user()

        await store.save_connection(
            user_id,
            access_token_encrypted=crypto.serialize_token(tokens.access_token),
            refresh_token_encrypted=(
                crypto.serialize_token(tokens.refresh_token) if tokens.refresh_token else None
            ),
            token_expires_at=datetime.now(timezone.utc) + timedelta(seconds=tokens.expires_in),
            scopes=tokens.scopes,
            external_user_id=str(whoop_user.user_id),
        )
    except Exception as e:
        logger.error("WHOOP OAuth callback failed for user=%s: %s", user_id, e)
        return _dashboard_redirect(settings, error="oauth_failed")

    logger.info("WHOOP connected for user=%s", user_id)
    return _dashboard_redirect(settings, connected=PROVIDER)
