"""Shared test fixtures for usagelens tests."""

import json
import os
from datetime import datetime, timezone
from pathlib import Path

import pytest

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fixtures_dir():
    """Path to test fixtures directory."""
    return FIXTURES_DIR


@pytest.fixture
def sample_jsonl():
    """Path to sample JSONL file (session-001, 10 lines incl. compactions)."""
    return FIXTURES_DIR / "sample.jsonl"


class Corpus:
    """Builds a data root (<root>/projects/<project>/<session>.jsonl) in tmp_path."""

    def __init__(self, root: Path):
        self.root = root
        self.projects_dir = root / "projects"

    # -- line builders ------------------------------------------------------

    @staticmethod
    def user(ts, text="hello", session_id="s", **extra):
        line = {
            "type": "user",
            "sessionId": session_id,
            "timestamp": ts,
            "message": {"role": "user", "content": text},
        }
        line.update(extra)
        return line

    @staticmethod
    def assistant(
        ts,
        model="claude-sonnet-4-5-20250929",
        usage=(100, 50, 0, 0),
        tools=(),
        text="ok",
        session_id="s",
    ):
        """usage is (input, output, cache_read, cache_write) or None."""
        content = [{"type": "text", "text": text}] if text else []
        content += [
            {"type": "tool_use", "id": f"toolu_{i}", "name": name, "input": {}}
            for i, name in enumerate(tools)
        ]
        message = {"role": "assistant", "model": model, "content": content}
        if usage is not None:
            message["usage"] = {
                "input_tokens": usage[0],
                "output_tokens": usage[1],
                "cache_read_input_tokens": usage[2],
                "cache_creation_input_tokens": usage[3],
            }
        return {
            "type": "assistant",
            "sessionId": session_id,
            "timestamp": ts,
            "message": message,
        }

    @staticmethod
    def system(ts, session_id="s"):
        return {"type": "system", "subtype": "turn_duration", "sessionId": session_id,
                "timestamp": ts, "durationMs": 1000}

    # -- files ----------------------------------------------------------------

    def write(self, project_id, session_id, lines, mtime=None):
        """Write a session file; lines are dicts (JSON-encoded) or raw strings.

        mtime is an ISO timestamp or a POSIX float.
        """
        project_dir = self.projects_dir / project_id
        project_dir.mkdir(parents=True, exist_ok=True)
        path = project_dir / f"{session_id}.jsonl"
        path.write_text(
            "\n".join(l if isinstance(l, str) else json.dumps(l) for l in lines) + "\n",
            encoding="utf-8",
        )
        if mtime is not None:
            set_mtime(path, mtime)
        return path

    def write_snapshot(self, data):
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / "stats-cache.json"
        path.write_text(json.dumps(data) if not isinstance(data, str) else data)
        return path


def set_mtime(path, mtime):
    if isinstance(mtime, str):
        mtime = datetime.fromisoformat(mtime).replace(tzinfo=timezone.utc).timestamp()
    os.utime(path, (mtime, mtime))


@pytest.fixture
def corpus(tmp_path):
    """An empty data root under tmp_path with line/file builders."""
    return Corpus(tmp_path / "claude")
