"""Session summarizer — folds one session's events into a SessionSummary."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from usagelens.cost import estimate_cost, model_display_name
from usagelens.models import (
    AssistantEvent,
    CompactionEvent,
    CompactionInfo,
    Event,
    MicrocompactionEvent,
    SessionSummary,
    ToolCallRef,
    TranscriptMessage,
    UserEvent,
)

UNKNOWN_TOOL = "unknown"
UNKNOWN_MODEL = "unknown"

CostFn = Callable[[str, int, int, int, int], float]


def summarize_session(
    events: Iterable[Event],
    project_id: str,
    project_name: str,
    session_id: str,
    cost: CostFn = estimate_cost,
) -> SessionSummary:
    """Scan a session's events top to bottom and build its summary.

    session_id comes from the file name, not from the events.
    """
    first_ts = ""
    raw_first_ts = ""
    first_time: datetime | None = None
    last_time: datetime | None = None
    git_branch = ""
    cwd = ""
    version = ""

    user_count = 0
    assistant_count = 0
    tool_call_count = 0
    total_input = 0
    total_output = 0
    total_cache_read = 0
    total_cache_write = 0
    estimated = 0.0
    models: list[str] = []
    tools_used: dict[str, int] = {}
    compaction = CompactionInfo()

    for event in events:
        raw_first_ts = raw_first_ts or event.timestamp
        # Unparseable timestamps do not bound the session
        if event.time is not None:
            if first_time is None:
                first_time = event.time
                first_ts = event.timestamp
            last_time = event.time

        # First non-empty value wins
        git_branch = git_branch or event.git_branch
        cwd = cwd or event.cwd
        version = version or event.version

        if isinstance(event, MicrocompactionEvent):
            compaction.micro_count += 1
            compaction.total_tokens_saved += event.tokens_saved
            if event.timestamp:
                compaction.timestamps.append(event.timestamp)
        elif isinstance(event, CompactionEvent):
            compaction.full_count += 1
            if event.timestamp:
                compaction.timestamps.append(event.timestamp)
        elif isinstance(event, UserEvent):
            user_count += 1
        elif isinstance(event, AssistantEvent):
            assistant_count += 1
            if event.model and event.model not in models:
                models.append(event.model)
            usage = event.usage
            if usage is not None:
                total_input += usage.input_tokens
                total_output += usage.output_tokens
                total_cache_read += usage.cache_read_tokens
                total_cache_write += usage.cache_write_tokens
                estimated += cost(
                    event.model,
                    usage.input_tokens,
                    usage.output_tokens,
                    usage.cache_write_tokens,
                    usage.cache_read_tokens,
                )
            for block in event.tool_uses:
                tool_call_count += 1
                name = block.name or UNKNOWN_TOOL
                tools_used[name] = tools_used.get(name, 0) + 1

    duration = 0
    if first_time is not None and last_time is not None:
        duration = max(0, int((last_time - first_time).total_seconds() * 1000))

    return SessionSummary(
        id=session_id,
        project_id=project_id,
        project_name=project_name,
        timestamp=first_ts or raw_first_ts or datetime.now(tz=timezone.utc).isoformat(),
        duration=duration,
        message_count=user_count + assistant_count,
        user_message_count=user_count,
        assistant_message_count=assistant_count,
        tool_call_count=tool_call_count,
        total_input_tokens=total_input,
        total_output_tokens=total_output,
        total_cache_read_tokens=total_cache_read,
        total_cache_write_tokens=total_cache_write,
        estimated_cost=estimated,
        model=models[0] if models else UNKNOWN_MODEL,
        models=models,
        model_names=[model_display_name(m) for m in models],
        git_branch=git_branch,
        cwd=cwd,
        version=version,
        tools_used=tools_used,
        compaction=compaction,
    )


def build_transcript(events: Iterable[Event]) -> list[TranscriptMessage]:
    """Reconstruct the readable conversation: prompts, replies and tool-call markers."""
    messages: list[TranscriptMessage] = []
    for event in events:
        if isinstance(event, UserEvent):
            text = event.plain_text
            if text and not event.is_tool_result:
                messages.append(
                    TranscriptMessage(role="user", content=text, timestamp=event.timestamp)
                )
        elif isinstance(event, AssistantEvent):
            tool_calls = [
                ToolCallRef(name=b.name or UNKNOWN_TOOL, id=b.id or "")
                for b in event.tool_uses
            ]
            text = event.plain_text.strip()
            if not text and not tool_calls:
                continue
            if not text:
                names = ", ".join(tc.name for tc in tool_calls)
                text = f"[Used {len(tool_calls)} tool(s): {names}]"
            messages.append(
                TranscriptMessage(
                    role="assistant",
                    content=text,
                    timestamp=event.timestamp,
                    model=event.model or None,
                    usage=event.usage,
                    tool_calls=tool_calls,
                )
            )
    return messages


def event_text(event: Event) -> str:
    """Searchable text of an event: user prompt text and assistant text blocks."""
    if isinstance(event, (UserEvent, AssistantEvent)):
        return event.plain_text
    return ""
