"""Shared data models — the contract between parser, summarizer, reconciler and consumers.

Parser produces Event objects. The summarizer folds them into SessionSummary,
the reconciler into StatsDelta. Snapshot and delta are merged into ReconciledStats,
which the reader turns into DashboardStats for the presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

# ---------------------------------------------------------------------------
# Events (one per JSONL line)
# ---------------------------------------------------------------------------


@dataclass
class TokenUsage:
    """Token usage reported on an assistant message."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0

    @property
    def total(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_write_tokens
        )


@dataclass
class ContentBlock:
    """One item of a message's structured content."""

    kind: str  # text, tool_use, tool_result, thinking, ...
    text: str = ""
    name: str | None = None  # tool_use only
    id: str | None = None  # tool_use only


@dataclass
class Event:
    """Fields common to every decoded log line."""

    session_id: str = ""
    uuid: str = ""
    timestamp: str = ""  # raw ISO-8601 text as written in the log
    time: datetime | None = None  # parsed, UTC
    cwd: str = ""
    version: str = ""
    git_branch: str = ""


@dataclass
class UserEvent(Event):
    content: str | list[ContentBlock] = ""

    @property
    def plain_text(self) -> str:
        """Message text with tool-result placeholders left out."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(b.text for b in self.content if b.kind == "text" and b.text)

    @property
    def is_tool_result(self) -> bool:
        """True when the message is a tool-result echo rather than a prompt."""
        if isinstance(self.content, str):
            return False
        return bool(self.content) and self.content[0].kind == "tool_result"


@dataclass
class AssistantEvent(Event):
    model: str = ""
    blocks: list[ContentBlock] = field(default_factory=list)
    usage: TokenUsage | None = None

    @property
    def tool_uses(self) -> list[ContentBlock]:
        return [b for b in self.blocks if b.kind == "tool_use"]

    @property
    def plain_text(self) -> str:
        return "\n".join(b.text for b in self.blocks if b.kind == "text" and b.text)


@dataclass
class CompactionEvent(Event):
    """Full context compaction boundary."""

    trigger: str = ""
    pre_tokens: int = 0


@dataclass
class MicrocompactionEvent(Event):
    """Partial compaction — some tool results were cleared from context."""

    trigger: str = ""
    tokens_saved: int = 0
    compacted_tool_ids: list[str] = field(default_factory=list)


@dataclass
class OtherEvent(Event):
    """Any line type the stats do not look into (progress, system, snapshots)."""

    type: str = ""


# ---------------------------------------------------------------------------
# Session summaries
# ---------------------------------------------------------------------------


@dataclass
class CompactionInfo:
    full_count: int = 0
    micro_count: int = 0
    total_tokens_saved: int = 0
    timestamps: list[str] = field(default_factory=list)


@dataclass
class SessionSummary:
    """Fixed-shape rollup of one session file. Derived, never stored."""

    id: str
    project_id: str
    project_name: str
    timestamp: str  # session start
    duration: int  # milliseconds
    message_count: int
    user_message_count: int
    assistant_message_count: int
    tool_call_count: int
    total_input_tokens: int
    total_output_tokens: int
    total_cache_read_tokens: int
    total_cache_write_tokens: int
    estimated_cost: float
    model: str  # primary (first seen) model id
    models: list[str] = field(default_factory=list)  # distinct ids, first-seen order
    model_names: list[str] = field(default_factory=list)  # display names
    git_branch: str = ""
    cwd: str = ""
    version: str = ""
    tools_used: dict[str, int] = field(default_factory=dict)
    compaction: CompactionInfo = field(default_factory=CompactionInfo)

    @property
    def total_tokens(self) -> int:
        return (
            self.total_input_tokens
            + self.total_output_tokens
            + self.total_cache_read_tokens
            + self.total_cache_write_tokens
        )


@dataclass
class ToolCallRef:
    name: str
    id: str


@dataclass
class TranscriptMessage:
    """One entry of a reconstructed conversation."""

    role: str  # user, assistant
    content: str
    timestamp: str
    model: str | None = None
    usage: TokenUsage | None = None
    tool_calls: list[ToolCallRef] = field(default_factory=list)


@dataclass
class SessionDetail:
    summary: SessionSummary
    messages: list[TranscriptMessage] = field(default_factory=list)


@dataclass
class ProjectInfo:
    id: str  # encoded directory name, e.g. "-Users-me-code-app"
    name: str
    path: str
    session_count: int
    total_messages: int
    total_tokens: int
    estimated_cost: float
    last_active: str  # ISO timestamp of the newest session file
    models: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Aggregates: snapshot, delta, merged
# ---------------------------------------------------------------------------


@dataclass
class DailyActivity:
    message_count: int = 0
    session_count: int = 0
    tool_call_count: int = 0


@dataclass
class ModelTokens:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0

    @property
    def total(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_write_tokens
        )


@dataclass
class LongestSession:
    session_id: str = ""
    duration: int = 0  # milliseconds
    message_count: int = 0
    timestamp: str = ""


@dataclass
class StatsSnapshot:
    """Precomputed aggregate written by an external process.

    last_computed_date is an inclusive cutoff: activity on that day and before
    is already in the figures.
    """

    last_computed_date: str = ""
    daily_activity: dict[str, DailyActivity] = field(default_factory=dict)
    daily_model_tokens: dict[str, dict[str, int]] = field(default_factory=dict)
    model_usage: dict[str, ModelTokens] = field(default_factory=dict)
    hour_counts: dict[str, int] = field(default_factory=dict)
    total_sessions: int = 0
    total_messages: int = 0
    first_session_date: str = ""
    longest_session: LongestSession = field(default_factory=LongestSession)

    @classmethod
    def empty(cls) -> StatsSnapshot:
        return cls()


@dataclass
class StatsDelta:
    """Statistics from events strictly newer than a snapshot's cutoff."""

    cutoff_date: str = ""
    daily_activity: dict[str, DailyActivity] = field(default_factory=dict)
    daily_model_tokens: dict[str, dict[str, int]] = field(default_factory=dict)
    model_usage: dict[str, ModelTokens] = field(default_factory=dict)
    hour_counts: dict[str, int] = field(default_factory=dict)
    total_sessions: int = 0
    total_messages: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    first_session_date: str = ""
    longest_session: LongestSession = field(default_factory=LongestSession)
    files_scanned: int = 0


@dataclass
class ModelUsageCost:
    input_tokens: int
    output_tokens: int
    cache_read_tokens: int
    cache_write_tokens: int
    estimated_cost: float


@dataclass
class ReconciledStats:
    daily_activity: dict[str, DailyActivity]
    daily_model_tokens: dict[str, dict[str, int]]
    model_usage: dict[str, ModelUsageCost]
    hour_counts: dict[str, int]
    total_sessions: int
    total_messages: int
    total_tokens: int
    estimated_cost: float
    first_session_date: str
    longest_session: LongestSession


@dataclass
class DailyActivityPoint:
    date: str
    message_count: int
    session_count: int
    tool_call_count: int


@dataclass
class DailyModelTokensPoint:
    date: str
    tokens_by_model: dict[str, int]


@dataclass
class DashboardStats:
    """Response object for the overview page."""

    total_sessions: int
    total_messages: int
    total_tokens: int
    estimated_cost: float
    daily_activity: list[DailyActivityPoint]
    daily_model_tokens: list[DailyModelTokensPoint]
    model_usage: dict[str, ModelUsageCost]
    hour_counts: dict[str, int]
    first_session_date: str
    longest_session: LongestSession
    project_count: int
    recent_sessions: list[SessionSummary]
