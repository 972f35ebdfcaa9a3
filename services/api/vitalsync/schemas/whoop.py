"""WHOOP API payload schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class WhoopTokenResponse(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_in: int = 3600
    token_type: str = "bearer"
    scope: str = ""

    @property
    def scopes(self) -> list[str]:
        return [s for s in self.scope.split(" ") if s]


class WhoopUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    user_id: int
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class Page(BaseModel):
    """One page of a paginated collection endpoint.

    Records are kept as raw dicts so the untouched provider payload can be
    stored alongside the normalised row.
    """

    records: list[dict[str, Any]] = []
    next_token: str | None = None


class WhoopWebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    user_id: int
    id: int | str
    trace_id: str | None = None
