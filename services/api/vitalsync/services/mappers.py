"""Normalise WHOOP payloads into row dicts for the health tables.

Every mapper takes the raw provider record and returns the column values
for one upsert. Callers must check ``is_scored`` first; mappers assume a
``score`` object is present.
"""

import math
from datetime import datetime, timezone
from typing import Any

SOURCE = "whoop"
SCORED = "SCORED"
KJ_TO_KCAL = 0.239006
MS_PER_MINUTE = 60_000


def is_scored(record: dict[str, Any]) -> bool:
    """True only for fully scored records; PENDING_SCORE and UNSCORABLE are skipped."""
    return record.get("score_state") == SCORED and bool(record.get("score"))


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def ms_to_minutes(milli: float | None) -> int | None:
    if milli is None:
        return None
    return round_half_up(milli / MS_PER_MINUTE)


def kj_to_kcal(kilojoule: float | None) -> int | None:
    if kilojoule is None:
        return None
    return round_half_up(kilojoule * KJ_TO_KCAL)


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def map_recovery(record: dict[str, Any]) -> dict[str, Any]:
    score = record["score"]
    recorded_at = parse_timestamp(record.get("created_at")) or datetime.now(timezone.utc)
    return {
        "source": SOURCE,
        "external_id": str(record["cycle_id"]),
        "recorded_at": recorded_at,
        "recovery_score": score["recovery_score"],
        "hrv_rmssd": score.get("hrv_rmssd_milli"),
        "resting_heart_rate": score.get("resting_heart_rate"),
        "spo2": score.get("spo2_percentage"),
        "skin_temp_celsius": score.get("skin_temp_celsius"),
        "metadata": {"raw": record},
    }


def map_sleep(record: dict[str, Any]) -> dict[str, Any]:
    score = record["score"]
    stages = score["stage_summary"]
    in_bed = stages["total_in_bed_time_milli"]
    awake = stages.get("total_awake_time_milli") or 0
    return {
        "source": SOURCE,
        "external_id": str(record["id"]),
        "started_at": parse_timestamp(record["start"]),
        "ended_at": parse_timestamp(record["end"]),
        # WHOOP has no asleep total; derive it from time in bed
        "total_sleep_minutes": round_half_up((in_bed - awake) / MS_PER_MINUTE),
        "rem_minutes": ms_to_minutes(stages.get("total_rem_sleep_time_milli")),
        "deep_minutes": ms_to_minutes(stages.get("total_slow_wave_sleep_time_milli")),
        "light_minutes": ms_to_minutes(stages.get("total_light_sleep_time_milli")),
        "awake_minutes": ms_to_minutes(awake),
        "sleep_score": score.get("sleep_performance_percentage"),
        "sleep_efficiency": score.get("sleep_efficiency_percentage"),
        "respiratory_rate": score.get("respiratory_rate"),
        "metadata": {"raw": record},
    }


def map_workout(record: dict[str, Any]) -> dict[str, Any]:
    score = record["score"]
    return {
        "source": SOURCE,
        "external_id": str(record["id"]),
        "activity_type": str(record["sport_id"]),
        "started_at": parse_timestamp(record["start"]),
        "ended_at": parse_timestamp(record.get("end")),
        "strain_score": score.get("strain"),
        "avg_heart_rate": score.get("average_heart_rate"),
        "max_heart_rate": score.get("max_heart_rate"),
        "calories_burned": kj_to_kcal(score.get("kilojoule")),
        "distance_meters": score.get("distance_meter"),
        "metadata": {"raw": record},
    }


def map_cycle(record: dict[str, Any]) -> dict[str, Any]:
    score = record["score"]
    return {
        "source": SOURCE,
        "metric_type": "strain",
        "external_id": str(record["id"]),
        "value": score["strain"],
        "recorded_at": parse_timestamp(record["start"]),
        "metadata": {"cycle_id": record["id"], "raw": record},
    }
