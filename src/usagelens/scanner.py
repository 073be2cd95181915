"""Corpus scanner — finds session files under a projects directory.

Layout: <projects_dir>/<project-id>/<session-id>.jsonl, where project-id is the
project's absolute path with separators replaced by dashes. A missing
projects_dir is an empty corpus, not an error.
"""

from __future__ import annotations

import logging
from pathlib import Path

from usagelens.cost import estimate_cost
from usagelens.models import SessionSummary
from usagelens.parser import read_events
from usagelens.summarizer import CostFn, event_text, summarize_session

logger = logging.getLogger(__name__)

SESSION_SUFFIX = ".jsonl"


def project_id_to_path(project_id: str) -> str:
    """'-Users-me-code-app' -> '/Users/me/code/app'."""
    return project_id.replace("-", "/")


def project_id_to_name(project_id: str) -> str:
    """Last path segment of the decoded project id, e.g. 'app'."""
    parts = project_id_to_path(project_id).split("/")
    return parts[-1] or project_id


def _session_files_in(project_dir: Path) -> list[Path]:
    try:
        return sorted(
            p for p in project_dir.iterdir()
            if p.suffix == SESSION_SUFFIX and p.is_file()
        )
    except OSError as exc:
        logger.warning("Cannot list %s: %s", project_dir, exc)
        return []


def list_project_dirs(projects_dir: Path) -> list[Path]:
    """Project directories holding at least one session file."""
    projects_dir = Path(projects_dir)
    if not projects_dir.is_dir():
        return []
    return [
        entry for entry in sorted(projects_dir.iterdir())
        if entry.is_dir() and _session_files_in(entry)
    ]


def discover_session_files(projects_dir: Path) -> list[Path]:
    """Every session file across every project directory."""
    projects_dir = Path(projects_dir)
    if not projects_dir.is_dir():
        return []
    results: list[Path] = []
    for entry in sorted(projects_dir.iterdir()):
        if entry.is_dir():
            results.extend(_session_files_in(entry))
    return results


def project_session_files(projects_dir: Path, project_id: str) -> list[Path]:
    project_dir = Path(projects_dir) / project_id
    if not project_dir.is_dir():
        return []
    return _session_files_in(project_dir)


def find_session_file(projects_dir: Path, session_id: str) -> Path | None:
    """Locate <session_id>.jsonl in any project directory; first match wins.

    An id that is not a bare file name (separators, "..") matches nothing.
    """
    if not session_id or Path(session_id).name != session_id:
        return None
    projects_dir = Path(projects_dir)
    if not projects_dir.is_dir():
        return None
    for entry in sorted(projects_dir.iterdir()):
        if not entry.is_dir():
            continue
        candidate = entry / f"{session_id}{SESSION_SUFFIX}"
        if candidate.is_file():
            return candidate
    return None


def summarize_file(file_path: Path, cost: CostFn = estimate_cost) -> SessionSummary | None:
    """Summarize one session file, or None when it cannot be read."""
    file_path = Path(file_path)
    try:
        events = read_events(file_path)
    except OSError as exc:
        logger.warning("Skipping unreadable session file %s: %s", file_path, exc)
        return None
    project_id = file_path.parent.name
    return summarize_session(
        events,
        project_id=project_id,
        project_name=project_id_to_name(project_id),
        session_id=file_path.stem,
        cost=cost,
    )


def summarize_files(files: list[Path], cost: CostFn = estimate_cost) -> list[SessionSummary]:
    """Summaries of the readable files, newest first."""
    summaries = [s for s in (summarize_file(f, cost) for f in files) if s is not None]
    summaries.sort(key=lambda s: s.timestamp, reverse=True)
    return summaries


def file_matches(file_path: Path, query: str) -> bool:
    """True if any user or assistant text in the file contains query (case-insensitive)."""
    needle = query.lower()
    try:
        events = read_events(file_path)
    except OSError as exc:
        logger.warning("Skipping unreadable session file %s: %s", file_path, exc)
        return False
    return any(needle in event_text(e).lower() for e in events)


def search_session_files(
    projects_dir: Path,
    query: str,
    limit: int = 50,
    cost: CostFn = estimate_cost,
) -> list[SessionSummary]:
    """Full-text search over every session; matching summaries, newest first."""
    matches = [f for f in discover_session_files(projects_dir) if file_matches(f, query)]
    return summarize_files(matches, cost)[:limit]
