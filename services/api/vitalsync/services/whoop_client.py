"""WHOOP API client: OAuth code exchange, token refresh and paginated reads."""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from urllib.parse import urlencode

import httpx

from vitalsync.config import Settings
from vitalsync.exceptions import (
    NoConnectionError,
    RequestError,
    TokenExchangeError,
    TokenRefreshError,
)
from vitalsync.metrics import token_refresh_total
from vitalsync.schemas.whoop import Page, WhoopTokenResponse, WhoopUser
from vitalsync.services.crypto_service import CryptoService
from vitalsync.services.health_store import PROVIDER, HealthStore

logger = logging.getLogger(__name__)

SCOPES = [
    "offline",
    "read:profile",
    "read:recovery",
    "read:cycles",
    "read:sleep",
    "read:workout",
    "read:body_measurement",
]

DEFAULT_MAX_PAGES = 10

PageFetcher = Callable[[str | None], Awaitable[Page]]


def _format_bound(value: datetime | str | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class WhoopClient:
    """HTTP wrapper for the WHOOP developer API on behalf of one user.

    On a 401 the client refreshes its tokens and retries exactly once; a
    second 401 is fatal so a revoked grant cannot cause a retry storm.
    """

    def __init__(
        self,
        access_token: str,
        refresh_token: str | None,
        user_id: uuid.UUID,
        *,
        settings: Settings,
        store: HealthStore | None = None,
        crypto: CryptoService | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._user_id = user_id
        self._settings = settings
        self._store = store
        self._crypto = crypto
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.whoop_http_timeout_seconds)

    async def __aenter__(self) -> "WhoopClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    @property
    def access_token(self) -> str:
        return self._access_token

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    # --- OAuth ---

    @staticmethod
    def get_authorization_url(state: str, settings: Settings) -> str:
        """Build the provider authorize redirect. Pure; no I/O."""
        settings.require_oauth_client()
        params = {
            "client_id": settings.whoop_client_id,
            "redirect_uri": settings.whoop_redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "state": state,
        }
        return f"{settings.whoop_auth_url}?{urlencode(params)}"

    @staticmethod
    async def exchange_code(
        code: str,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> WhoopTokenResponse:
        """Exchange an authorization code for an access/refresh token pair."""
        settings.require_oauth_client()
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": settings.whoop_client_id,
            "client_secret": settings.whoop_client_secret.get_secret_value(),
            "redirect_uri": settings.whoop_redirect_uri,
        }
        try:
            if http_client is not None:
                response = await http_client.post(settings.whoop_token_url, data=data)
            else:
                async with httpx.AsyncClient(timeout=settings.whoop_http_timeout_seconds) as client:
                    response = await client.post(settings.whoop_token_url, data=data)
        except httpx.HTTPError as e:
            raise TokenExchangeError(str(e)) from e

        if not response.is_success:
            logger.error("WHOOP token exchange failed: status=%s", response.status_code)
            raise TokenExchangeError(response.text)

        return WhoopTokenResponse.model_validate(response.json())

    async def refresh_access_token(self) -> None:
        """Swap the refresh token for a new pair and persist it encrypted."""
        self._settings.require_oauth_client()
        if not self._refresh_token:
            token_refresh_total.labels(status="failure").inc()
            raise TokenRefreshError("no refresh token stored for this connection")

        try:
            response = await self._http.post(
                self._settings.whoop_token_url,
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self._refresh_token,
                    "client_id": self._settings.whoop_client_id,
                    "client_secret": self._settings.whoop_client_secret.get_secret_value(),
                    "scope": "offline",
                },
            )
        except httpx.HTTPError as e:
            token_refresh_total.labels(status="failure").inc()
            raise TokenRefreshError(str(e)) from e

        if not response.is_success:
            token_refresh_total.labels(status="failure").inc()
            logger.warning("WHOOP token refresh rejected for user=%s status=%s", self._user_id, response.status_code)
            raise TokenRefreshError(response.text)

        tokens = WhoopTokenResponse.model_validate(response.json())
        # Some grants do not rotate the refresh token
        new_refresh = tokens.refresh_token or self._refresh_token
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=tokens.expires_in)

        if self._store is not None and self._crypto is not None:
            await self._store.update_tokens(
                self._user_id,
                access_token_encrypted=self._crypto.serialize_token(tokens.access_token),
                refresh_token_encrypted=self._crypto.serialize_token(new_refresh),
                token_expires_at=expires_at,
            )

        self._access_token = tokens.access_token
        self._refresh_token = new_refresh
        token_refresh_total.labels(status="success").inc()
        logger.info("Refreshed WHOOP tokens for user=%s", self._user_id)

    # --- API ---

    async def _send(self, method: str, url: str, params: dict[str, Any] | None) -> httpx.Response:
        try:
            return await self._http.request(
                method,
                url,
                params=params,
                headers={
                    "Authorization": f"Bearer {self._access_token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise RequestError(0, str(e)) from e

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Authenticated request with a single refresh-and-retry on 401."""
        url = f"{self._settings.whoop_api_base}{endpoint}"
        response = await self._send(method, url, params)

        if response.status_code == 401:
            logger.info("WHOOP returned 401 for user=%s, refreshing token", self._user_id)
            await self.refresh_access_token()
            response = await self._send(method, url, params)

        if not response.is_success:
            raise RequestError(response.status_code, response.text)

        return response.json()

    async def get_user(self) -> WhoopUser:
        return WhoopUser.model_validate(await self.request("/v1/user/profile/basic"))

    async def _get_page(
        self,
        endpoint: str,
        start: datetime | str | None,
        end: datetime | str | None,
        next_token: str | None,
    ) -> Page:
        params: dict[str, Any] = {}
        if start is not None:
            params["start"] = _format_bound(start)
        if end is not None:
            params["end"] = _format_bound(end)
        if next_token:
            params["nextToken"] = next_token
        return Page.model_validate(await self.request(endpoint, params=params or None))

    async def get_cycles(self, start=None, end=None, next_token: str | None = None) -> Page:
        return await self._get_page("/v1/cycle", start, end, next_token)

    async def get_recovery(self, start=None, end=None, next_token: str | None = None) -> Page:
        return await self._get_page("/v1/recovery", start, end, next_token)

    async def get_sleep(self, start=None, end=None, next_token: str | None = None) -> Page:
        return await self._get_page("/v1/activity/sleep", start, end, next_token)

    async def get_workouts(self, start=None, end=None, next_token: str | None = None) -> Page:
        return await self._get_page("/v1/activity/workout", start, end, next_token)

    # Single records, addressed by the id a webhook event carries

    async def get_cycle_by_id(self, cycle_id: int | str) -> dict[str, Any]:
        return await self.request(f"/v1/cycle/{cycle_id}")

    async def get_recovery_for_cycle(self, cycle_id: int | str) -> dict[str, Any]:
        return await self.request(f"/v1/cycle/{cycle_id}/recovery")

    async def get_sleep_by_id(self, sleep_id: int | str) -> dict[str, Any]:
        return await self.request(f"/v1/activity/sleep/{sleep_id}")

    async def get_workout_by_id(self, workout_id: int | str) -> dict[str, Any]:
        return await self.request(f"/v1/activity/workout/{workout_id}")

    @staticmethod
    async def fetch_all_pages(fetcher: PageFetcher, max_pages: int = DEFAULT_MAX_PAGES) -> list[dict[str, Any]]:
        """Drive a paginated getter until the cursor runs out or max_pages is hit."""
        records: list[dict[str, Any]] = []
        next_token: str | None = None
        pages = 0
        while True:
            page = await fetcher(next_token)
            records.extend(page.records)
            pages += 1
            next_token = page.next_token
            if not next_token:
                break
            if pages >= max_pages:
                logger.warning("Stopped pagination at max_pages=%d with cursor still open", max_pages)
                break
        return records


async def get_client_for_user(
    user_id: uuid.UUID,
    store: HealthStore,
    crypto: CryptoService,
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> WhoopClient:
    """Build a client from the stored, encrypted connection for a user."""
    connection = await store.get_connection(user_id, PROVIDER)
    if connection is None:
        raise NoConnectionError(user_id)

    access_token = crypto.deserialize_token(connection.access_token_encrypted)
    refresh_token = (
        crypto.deserialize_token(connection.refresh_token_encrypted)
        if connection.refresh_token_encrypted
        else None
    )
    return WhoopClient(
        access_token,
        refresh_token,
        user_id,
        settings=settings,
        store=store,
        crypto=crypto,
        http_client=http_client,
    )
