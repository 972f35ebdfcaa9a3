"""Sync trigger request/response schemas."""

from datetime import datetime

from pydantic import BaseModel


class ManualSyncResponse(BaseModel):
    success: bool
    message: str


class SweepReportResponse(BaseModel):
    message: str = "Sync completed"
    total: int
    success: int
    failed: int
    errors: list[str]


class SyncStatusResponse(BaseModel):
    provider: str
    connected: bool
    sync_state: str | None = None
    last_successful_sync: datetime | None = None
    last_sync_attempt: datetime | None = None
    last_error: str | None = None


class DisconnectResponse(BaseModel):
    success: bool
    message: str
