"""JSONL parser — decodes session log lines into typed Event objects."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path

from usagelens.models import (
    AssistantEvent,
    CompactionEvent,
    ContentBlock,
    Event,
    MicrocompactionEvent,
    OtherEvent,
    TokenUsage,
    UserEvent,
)

logger = logging.getLogger(__name__)


class ParseError(ValueError):
    """A log line could not be decoded into an Event. Callers skip the line."""


def parse_line(line: str) -> Event | None:
    """Decode one JSONL line.

    Returns None for blank lines. Raises ParseError for invalid JSON or for a
    document missing the fields needed to tell which event it is.
    """
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line, parse_constant=_reject_constant, parse_float=_finite_float)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise ParseError(f"invalid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ParseError("line is not a JSON object")

    msg_type = data.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise ParseError("missing 'type'")

    common = _common_fields(data)

    # Compaction markers are system lines identified by their metadata block
    micro_meta = data.get("microcompactMetadata")
    if isinstance(micro_meta, dict):
        compacted = micro_meta.get("compactedToolIds") or []
        return MicrocompactionEvent(
            **common,
            trigger=_str(micro_meta.get("trigger")),
            tokens_saved=_int(micro_meta.get("tokensSaved")),
            compacted_tool_ids=[str(i) for i in compacted if i],
        )
    compact_meta = data.get("compactMetadata")
    if isinstance(compact_meta, dict):
        return CompactionEvent(
            **common,
            trigger=_str(compact_meta.get("trigger")),
            pre_tokens=_int(compact_meta.get("preTokens")),
        )

    if msg_type not in ("user", "assistant"):
        return OtherEvent(**common, type=msg_type)

    message_data = data.get("message")
    if not isinstance(message_data, dict):
        raise ParseError(f"{msg_type} line without 'message'")

    content = message_data.get("content")

    if msg_type == "user":
        if isinstance(content, list):
            return UserEvent(**common, content=_parse_blocks(content))
        return UserEvent(**common, content=content if isinstance(content, str) else "")

    usage_data = message_data.get("usage")
    usage = None
    if isinstance(usage_data, dict):
        usage = TokenUsage(
            input_tokens=_int(usage_data.get("input_tokens")),
            output_tokens=_int(usage_data.get("output_tokens")),
            cache_read_tokens=_int(usage_data.get("cache_read_input_tokens")),
            cache_write_tokens=_int(usage_data.get("cache_creation_input_tokens")),
        )

    return AssistantEvent(
        **common,
        model=_str(message_data.get("model")),
        blocks=_parse_blocks(content) if isinstance(content, list) else [],
        usage=usage,
    )


def iter_events(file_path: Path) -> Iterator[Event]:
    """Yield the events of one JSONL file in order, skipping malformed lines.

    OSError from opening or reading the file propagates to the caller.
    """
    file_path = Path(file_path)
    with open(file_path, encoding="utf-8", errors="replace") as f:
        for line_no, line in enumerate(f, start=1):
            try:
                event = parse_line(line)
            except ParseError as exc:
                logger.debug("Skipping %s:%d: %s", file_path.name, line_no, exc)
                continue
            if event is not None:
                yield event


def read_events(file_path: Path) -> list[Event]:
    """All events of a file as a list (the whole file is read before returning)."""
    return list(iter_events(file_path))


def parse_timestamp(ts: str) -> datetime | None:
    """Parse an ISO 8601 timestamp string into an aware UTC datetime."""
    if not ts:
        return None
    # Handle Z suffix
    ts = ts.replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(ts)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _common_fields(data: dict) -> dict:
    timestamp = _str(data.get("timestamp"))
    return {
        "session_id": _str(data.get("sessionId")),
        "uuid": _str(data.get("uuid")),
        "timestamp": timestamp,
        "time": parse_timestamp(timestamp),
        "cwd": _str(data.get("cwd")),
        "version": _str(data.get("version")),
        "git_branch": _str(data.get("gitBranch")),
    }


def _parse_blocks(content: list) -> list[ContentBlock]:
    blocks: list[ContentBlock] = []
    for item in content:
        if not isinstance(item, dict):
            continue
        kind = _str(item.get("type"))
        if kind == "text":
            blocks.append(ContentBlock(kind=kind, text=_str(item.get("text"))))
        elif kind == "tool_use":
            name = item.get("name")
            blocks.append(
                ContentBlock(
                    kind=kind,
                    name=name if isinstance(name, str) and name else None,
                    id=_str(item.get("id")),
                )
            )
        elif kind == "tool_result":
            blocks.append(ContentBlock(kind=kind, text="[Tool Result]"))
        elif kind:
            blocks.append(ContentBlock(kind=kind))
    return blocks


def _reject_constant(name: str) -> float:
    raise ParseError(f"non-finite number {name}")


def _finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ParseError(f"number out of range: {text[:20]}")
    return value


def _str(value: object) -> str:
    return value if isinstance(value, str) else ""


def _int(value: object) -> int:
    # bool is an int subclass; a stray true must not count as one token
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return int(value)
