"""Incremental reconciler — brings a stale stats snapshot up to date.

The snapshot covers everything up to and including its last_computed_date.
compute_delta re-reads only session files modified after that day and keeps
only events whose own UTC day is strictly later, since an appended file mixes
old (already counted) and new events. merge_stats adds the delta to the
snapshot key by key.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path

from usagelens.cache import SingleSlotCache
from usagelens.cost import estimate_cost
from usagelens.models import (
    AssistantEvent,
    DailyActivity,
    Event,
    LongestSession,
    ModelTokens,
    ModelUsageCost,
    ReconciledStats,
    StatsDelta,
    StatsSnapshot,
    UserEvent,
)
from usagelens.parser import iter_events
from usagelens.scanner import discover_session_files
from usagelens.snapshot import normalize_hour
from usagelens.summarizer import UNKNOWN_MODEL, CostFn

logger = logging.getLogger(__name__)


def cutoff_timestamp(cutoff_date: str) -> float:
    """POSIX time of the last second of cutoff_date (UTC); 0 when there is no cutoff."""
    if not cutoff_date:
        return 0.0
    end_of_day = datetime.fromisoformat(cutoff_date).replace(
        hour=23, minute=59, second=59, tzinfo=timezone.utc,
    )
    return end_of_day.timestamp()


def recent_session_files(projects_dir: Path, cutoff_date: str) -> list[Path]:
    """Session files modified strictly after the end of cutoff_date."""
    cutoff = cutoff_timestamp(cutoff_date)
    files: list[Path] = []
    for path in discover_session_files(projects_dir):
        try:
            mtime = path.stat().st_mtime
        except OSError:
            continue
        if mtime > cutoff:
            files.append(path)
    return files


class _FileTally:
    """Per-file state for one pass over a candidate file."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.first_day = ""
        self.first_ts = ""
        self.first_time: datetime | None = None
        self.last_time: datetime | None = None
        self.messages = 0


def _qualifies(event: Event, cutoff_date: str) -> bool:
    if event.time is None:
        return False
    return not cutoff_date or event.time.date().isoformat() > cutoff_date


def _tally_event(event: Event, tally: _FileTally, delta: StatsDelta, cost: CostFn) -> None:
    day = event.time.date().isoformat()

    # Session is counted once, on its first qualifying event
    if not tally.first_day:
        tally.first_day = day
        tally.first_ts = event.timestamp
        tally.first_time = event.time
        delta.total_sessions += 1
    tally.last_time = event.time

    if isinstance(event, (UserEvent, AssistantEvent)):
        tally.messages += 1
        delta.total_messages += 1
        delta.daily_activity.setdefault(day, DailyActivity()).message_count += 1

    if not isinstance(event, AssistantEvent):
        return

    usage = event.usage
    if usage is not None:
        model = event.model or UNKNOWN_MODEL
        delta.total_tokens += usage.total
        delta.estimated_cost += cost(
            event.model,
            usage.input_tokens,
            usage.output_tokens,
            usage.cache_write_tokens,
            usage.cache_read_tokens,
        )

        tokens = delta.model_usage.setdefault(model, ModelTokens())
        tokens.input_tokens += usage.input_tokens
        tokens.output_tokens += usage.output_tokens
        tokens.cache_read_tokens += usage.cache_read_tokens
        tokens.cache_write_tokens += usage.cache_write_tokens

        by_model = delta.daily_model_tokens.setdefault(day, {})
        by_model[model] = by_model.get(model, 0) + usage.total

        hour = str(event.time.hour)
        delta.hour_counts[hour] = delta.hour_counts.get(hour, 0) + 1

    tool_calls = len(event.tool_uses)
    if tool_calls:
        delta.daily_activity.setdefault(day, DailyActivity()).tool_call_count += tool_calls


def _finish_file(tally: _FileTally, delta: StatsDelta) -> None:
    if not tally.first_day:
        return
    delta.daily_activity.setdefault(tally.first_day, DailyActivity()).session_count += 1

    if not delta.first_session_date or tally.first_day < delta.first_session_date:
        delta.first_session_date = tally.first_day

    duration = 0
    if tally.first_time is not None and tally.last_time is not None:
        duration = max(0, int((tally.last_time - tally.first_time).total_seconds() * 1000))
    if duration > delta.longest_session.duration:
        delta.longest_session = LongestSession(
            session_id=tally.session_id,
            duration=duration,
            message_count=tally.messages,
            timestamp=tally.first_ts,
        )


def compute_delta(
    projects_dir: Path,
    cutoff_date: str,
    cost: CostFn = estimate_cost,
) -> StatsDelta:
    """Statistics for events dated strictly after cutoff_date.

    An empty cutoff_date means no snapshot: every event counts. Files that
    cannot be read contribute nothing.
    """
    started = time.monotonic()
    delta = StatsDelta(cutoff_date=cutoff_date)

    for file_path in recent_session_files(projects_dir, cutoff_date):
        file_delta = StatsDelta(cutoff_date=cutoff_date)
        tally = _FileTally(session_id=file_path.stem)
        try:
            for event in iter_events(file_path):
                if _qualifies(event, cutoff_date):
                    _tally_event(event, tally, file_delta, cost)
        except OSError as exc:
            logger.warning("Skipping unreadable session file %s: %s", file_path, exc)
            continue
        _finish_file(tally, file_delta)
        _accumulate(delta, file_delta)
        delta.files_scanned += 1

    logger.info(
        "Reconciled %d files after %s: %d sessions, %d messages in %.2fs",
        delta.files_scanned,
        cutoff_date or "(no snapshot)",
        delta.total_sessions,
        delta.total_messages,
        time.monotonic() - started,
    )
    return delta


def _accumulate(into: StatsDelta, part: StatsDelta) -> None:
    """Add one file's figures to the running delta.

    A file that fails mid-read is dropped whole, so per-file figures are kept
    apart until the file has been read to the end.
    """
    for day, activity in part.daily_activity.items():
        target = into.daily_activity.setdefault(day, DailyActivity())
        target.message_count += activity.message_count
        target.session_count += activity.session_count
        target.tool_call_count += activity.tool_call_count
    for day, by_model in part.daily_model_tokens.items():
        target_day = into.daily_model_tokens.setdefault(day, {})
        for model, tokens in by_model.items():
            target_day[model] = target_day.get(model, 0) + tokens
    for model, tokens in part.model_usage.items():
        _add_tokens(into.model_usage.setdefault(model, ModelTokens()), tokens)
    for hour, count in part.hour_counts.items():
        into.hour_counts[hour] = into.hour_counts.get(hour, 0) + count
    into.total_sessions += part.total_sessions
    into.total_messages += part.total_messages
    into.total_tokens += part.total_tokens
    into.estimated_cost += part.estimated_cost
    if part.first_session_date and (
        not into.first_session_date or part.first_session_date < into.first_session_date
    ):
        into.first_session_date = part.first_session_date
    if part.longest_session.duration > into.longest_session.duration:
        into.longest_session = part.longest_session


def _add_tokens(target: ModelTokens, source: ModelTokens) -> None:
    target.input_tokens += source.input_tokens
    target.output_tokens += source.output_tokens
    target.cache_read_tokens += source.cache_read_tokens
    target.cache_write_tokens += source.cache_write_tokens


def cache_key(cutoff_date: str, root_id: str) -> str:
    return f"{cutoff_date}:{root_id}"


def cached_delta(
    cache: SingleSlotCache,
    projects_dir: Path,
    cutoff_date: str,
    root_id: str,
    cost: CostFn = estimate_cost,
) -> StatsDelta:
    """compute_delta memoized in cache under (cutoff_date, root_id)."""
    return cache.get_or_compute(
        cache_key(cutoff_date, root_id),
        lambda: compute_delta(projects_dir, cutoff_date, cost),
    )


def merge_stats(
    snapshot: StatsSnapshot,
    delta: StatsDelta,
    cost: CostFn = estimate_cost,
) -> ReconciledStats:
    """Snapshot plus delta. Neither input is modified.

    Per-model cost is priced from the summed token counts, so both halves are
    valued with the current pricing table.
    """
    daily_activity: dict[str, DailyActivity] = {}
    for source in (snapshot.daily_activity, delta.daily_activity):
        for day, activity in source.items():
            target = daily_activity.setdefault(day, DailyActivity())
            target.message_count += activity.message_count
            target.session_count += activity.session_count
            target.tool_call_count += activity.tool_call_count

    daily_model_tokens: dict[str, dict[str, int]] = {}
    for source in (snapshot.daily_model_tokens, delta.daily_model_tokens):
        for day, by_model in source.items():
            target_day = daily_model_tokens.setdefault(day, {})
            for model, tokens in by_model.items():
                target_day[model] = target_day.get(model, 0) + tokens

    summed: dict[str, ModelTokens] = {}
    for source in (snapshot.model_usage, delta.model_usage):
        for model, tokens in source.items():
            _add_tokens(summed.setdefault(model, ModelTokens()), tokens)

    model_usage: dict[str, ModelUsageCost] = {}
    total_tokens = 0
    estimated = 0.0
    for model, tokens in summed.items():
        model_cost = cost(
            "" if model == UNKNOWN_MODEL else model,
            tokens.input_tokens,
            tokens.output_tokens,
            tokens.cache_write_tokens,
            tokens.cache_read_tokens,
        )
        model_usage[model] = ModelUsageCost(
            input_tokens=tokens.input_tokens,
            output_tokens=tokens.output_tokens,
            cache_read_tokens=tokens.cache_read_tokens,
            cache_write_tokens=tokens.cache_write_tokens,
            estimated_cost=model_cost,
        )
        total_tokens += tokens.total
        estimated += model_cost

    hour_counts: dict[str, int] = {}
    for source in (snapshot.hour_counts, delta.hour_counts):
        for hour, count in source.items():
            key = normalize_hour(hour)
            hour_counts[key] = hour_counts.get(key, 0) + count

    first_dates = [d for d in (snapshot.first_session_date, delta.first_session_date) if d]
    longest = snapshot.longest_session
    if delta.longest_session.duration > longest.duration:
        longest = delta.longest_session

    return ReconciledStats(
        daily_activity=daily_activity,
        daily_model_tokens=daily_model_tokens,
        model_usage=model_usage,
        hour_counts=hour_counts,
        total_sessions=snapshot.total_sessions + delta.total_sessions,
        total_messages=snapshot.total_messages + delta.total_messages,
        total_tokens=total_tokens,
        estimated_cost=estimated,
        first_session_date=min(first_dates) if first_dates else "",
        longest_session=longest,
    )
