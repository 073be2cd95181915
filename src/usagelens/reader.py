"""Read operations for the presentation layer.

StatsReader answers every query against one data root:

    <root>/stats-cache.json          precomputed snapshot (optional)
    <root>/projects/<id>/<sid>.jsonl session logs

Dashboard totals are the snapshot plus a delta reconciled from recently
modified logs; the delta is memoized in a SingleSlotCache shared across
requests. Listings, search and session detail scan the logs directly.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from usagelens.cache import SingleSlotCache, TTLPolicy
from usagelens.config import UsageLensConfig
from usagelens.cost import estimate_cost, model_display_name
from usagelens.datasource import active_data_root
from usagelens.models import (
    DailyActivityPoint,
    DailyModelTokensPoint,
    DashboardStats,
    ProjectInfo,
    SessionDetail,
    SessionSummary,
)
from usagelens.parser import read_events
from usagelens.reconcile import cached_delta, merge_stats
from usagelens.scanner import (
    discover_session_files,
    find_session_file,
    list_project_dirs,
    project_id_to_name,
    project_id_to_path,
    project_session_files,
    search_session_files,
    summarize_file,
    summarize_files,
)
from usagelens.snapshot import SNAPSHOT_FILENAME, load_snapshot
from usagelens.summarizer import CostFn, build_transcript, summarize_session

DEFAULT_RECENT_LIMIT = 10


class StatsReader:
    def __init__(
        self,
        root: Path,
        cache: SingleSlotCache | None = None,
        cost: CostFn = estimate_cost,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
    ):
        self.root = Path(root)
        self.cache = cache if cache is not None else SingleSlotCache()
        self.cost = cost
        self.recent_limit = recent_limit

    @property
    def projects_dir(self) -> Path:
        return self.root / "projects"

    @property
    def snapshot_path(self) -> Path:
        return self.root / SNAPSHOT_FILENAME

    def get_dashboard_stats(self) -> DashboardStats:
        """Snapshot merged with fresh activity, plus project count and recent sessions.

        Raises SnapshotError when stats-cache.json exists but is malformed.
        """
        snapshot = load_snapshot(self.snapshot_path)
        delta = cached_delta(
            self.cache,
            self.projects_dir,
            snapshot.last_computed_date,
            str(self.root),
            self.cost,
        )
        merged = merge_stats(snapshot, delta, self.cost)

        return DashboardStats(
            total_sessions=merged.total_sessions,
            total_messages=merged.total_messages,
            total_tokens=merged.total_tokens,
            estimated_cost=merged.estimated_cost,
            daily_activity=[
                DailyActivityPoint(
                    date=day,
                    message_count=a.message_count,
                    session_count=a.session_count,
                    tool_call_count=a.tool_call_count,
                )
                for day, a in sorted(merged.daily_activity.items())
            ],
            daily_model_tokens=[
                DailyModelTokensPoint(date=day, tokens_by_model=by_model)
                for day, by_model in sorted(merged.daily_model_tokens.items())
            ],
            model_usage=merged.model_usage,
            hour_counts=merged.hour_counts,
            first_session_date=merged.first_session_date,
            longest_session=merged.longest_session,
            project_count=len(list_project_dirs(self.projects_dir)),
            recent_sessions=self.get_sessions(limit=self.recent_limit),
        )

    def get_projects(self) -> list[ProjectInfo]:
        """Per-project rollups, most recently active first."""
        projects: list[ProjectInfo] = []
        for project_dir in list_project_dirs(self.projects_dir):
            files = project_session_files(self.projects_dir, project_dir.name)
            summaries: list[SessionSummary] = []
            last_mtime = 0.0
            for f in files:
                try:
                    last_mtime = max(last_mtime, f.stat().st_mtime)
                except OSError:
                    continue
                summary = summarize_file(f, self.cost)
                if summary is not None:
                    summaries.append(summary)

            models: list[str] = []
            for s in summaries:
                for m in s.models:
                    if m not in models:
                        models.append(m)

            projects.append(ProjectInfo(
                id=project_dir.name,
                name=project_id_to_name(project_dir.name),
                path=project_id_to_path(project_dir.name),
                session_count=len(files),
                total_messages=sum(s.message_count for s in summaries),
                total_tokens=sum(s.total_tokens for s in summaries),
                estimated_cost=sum(s.estimated_cost for s in summaries),
                last_active=datetime.fromtimestamp(last_mtime, tz=timezone.utc).isoformat(),
                models=[model_display_name(m) for m in models],
            ))

        projects.sort(key=lambda p: p.last_active, reverse=True)
        return projects

    def get_sessions(self, limit: int = 50, offset: int = 0) -> list[SessionSummary]:
        """All sessions newest first, paginated."""
        summaries = summarize_files(discover_session_files(self.projects_dir), self.cost)
        return summaries[offset:offset + limit]

    def get_project_sessions(self, project_id: str) -> list[SessionSummary]:
        return summarize_files(
            project_session_files(self.projects_dir, project_id), self.cost,
        )

    def search_sessions(self, query: str, limit: int = 50) -> list[SessionSummary]:
        """Sessions whose prompt or reply text contains query; blank query lists all."""
        if not query.strip():
            return self.get_sessions(limit=limit)
        return search_session_files(self.projects_dir, query, limit, self.cost)

    def get_session_detail(self, session_id: str) -> SessionDetail | None:
        """Summary and transcript of one session, or None if no file has that id."""
        file_path = find_session_file(self.projects_dir, session_id)
        if file_path is None:
            return None
        try:
            events = read_events(file_path)
        except OSError:
            return None
        project_id = file_path.parent.name
        summary = summarize_session(
            events,
            project_id=project_id,
            project_name=project_id_to_name(project_id),
            session_id=session_id,
            cost=self.cost,
        )
        return SessionDetail(summary=summary, messages=build_transcript(events))


def make_cache(config: UsageLensConfig) -> SingleSlotCache:
    return SingleSlotCache(TTLPolicy(ttl_seconds=config.cache_ttl_seconds))


def reader_for_config(config: UsageLensConfig, cache: SingleSlotCache) -> StatsReader:
    """A reader on the currently active data root."""
    return StatsReader(
        active_data_root(config),
        cache=cache,
        recent_limit=config.recent_sessions_limit,
    )
