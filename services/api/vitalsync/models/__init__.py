"""vitalsync database models."""

from vitalsync.models.health_metric import HealthMetric
from vitalsync.models.health_recovery import HealthRecovery
from vitalsync.models.health_sleep import HealthSleep
from vitalsync.models.health_workout import HealthWorkout
from vitalsync.models.oauth_connection import OAuthConnection
from vitalsync.models.sync_status import SyncState, SyncStatus

__all__ = [
    "OAuthConnection",
    "SyncStatus",
    "SyncState",
    "HealthRecovery",
    "HealthSleep",
    "HealthWorkout",
    "HealthMetric",
]
