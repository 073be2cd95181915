"""Stats cache reader — loads the periodically precomputed aggregate (stats-cache.json).

The snapshot is one structured document written by an external process. A
missing file means no snapshot yet; a file that exists but does not decode is a
hard error, unlike the per-line tolerance applied to session logs.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path

from usagelens.models import DailyActivity, LongestSession, ModelTokens, StatsSnapshot

SNAPSHOT_FILENAME = "stats-cache.json"


class SnapshotError(Exception):
    """The snapshot file exists but is not a valid stats document."""


def load_snapshot(path: Path) -> StatsSnapshot:
    """Read the snapshot at path, or an empty snapshot when the file is absent."""
    path = Path(path)
    if not path.is_file():
        return StatsSnapshot.empty()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SnapshotError(f"Cannot read stats snapshot {path}: {exc}") from exc

    try:
        return snapshot_from_dict(data)
    except (TypeError, ValueError, AttributeError, KeyError) as exc:
        raise SnapshotError(f"Malformed stats snapshot {path}: {exc}") from exc


def snapshot_from_dict(data: dict) -> StatsSnapshot:
    """Convert the camelCase stats document into a StatsSnapshot.

    Raises TypeError/ValueError on shapes that do not match.
    """
    if not isinstance(data, dict):
        raise TypeError("snapshot root is not an object")

    daily_activity: dict[str, DailyActivity] = {}
    for item in data.get("dailyActivity") or []:
        daily_activity[_date(item)] = DailyActivity(
            message_count=_count(item.get("messageCount")),
            session_count=_count(item.get("sessionCount")),
            tool_call_count=_count(item.get("toolCallCount")),
        )

    daily_model_tokens: dict[str, dict[str, int]] = {}
    for item in data.get("dailyModelTokens") or []:
        tokens_by_model = item.get("tokensByModel") or {}
        daily_model_tokens[_date(item)] = {
            str(model): _count(tokens) for model, tokens in tokens_by_model.items()
        }

    model_usage: dict[str, ModelTokens] = {}
    for model, usage in (data.get("modelUsage") or {}).items():
        model_usage[str(model)] = ModelTokens(
            input_tokens=_count(usage.get("inputTokens")),
            output_tokens=_count(usage.get("outputTokens")),
            cache_read_tokens=_count(usage.get("cacheReadInputTokens")),
            cache_write_tokens=_count(usage.get("cacheCreationInputTokens")),
        )

    hour_counts = {
        normalize_hour(hour): _count(count)
        for hour, count in (data.get("hourCounts") or {}).items()
    }

    last_computed = data.get("lastComputedDate") or ""
    if last_computed:
        # Must be a calendar day; the reconciler compares it against event dates
        last_computed = date.fromisoformat(last_computed).isoformat()

    longest = data.get("longestSession") or {}
    return StatsSnapshot(
        last_computed_date=last_computed,
        daily_activity=daily_activity,
        daily_model_tokens=daily_model_tokens,
        model_usage=model_usage,
        hour_counts=hour_counts,
        total_sessions=_count(data.get("totalSessions")),
        total_messages=_count(data.get("totalMessages")),
        first_session_date=str(data.get("firstSessionDate") or ""),
        longest_session=LongestSession(
            session_id=str(longest.get("sessionId") or ""),
            duration=_count(longest.get("duration")),
            message_count=_count(longest.get("messageCount")),
            timestamp=str(longest.get("timestamp") or ""),
        ),
    )


def normalize_hour(hour: object) -> str:
    """Hour-of-day key in the snapshot's unpadded form: '07' -> '7'."""
    value = int(str(hour))
    if not 0 <= value <= 23:
        raise ValueError(f"hour out of range: {hour!r}")
    return str(value)


def _date(item: dict) -> str:
    value = item["date"]
    if not isinstance(value, str) or not value:
        raise ValueError(f"bad date: {value!r}")
    return value


def _count(value: object) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {value!r}")
    return int(value)
