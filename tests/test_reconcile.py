"""Tests for the incremental reconciler: delta computation, merge and caching."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from usagelens.cache import SingleSlotCache, TTLPolicy
from usagelens.cost import estimate_cost
from usagelens.models import DailyActivity, LongestSession, ModelTokens, StatsDelta, StatsSnapshot
from usagelens.reconcile import (
    cache_key,
    cached_delta,
    compute_delta,
    cutoff_timestamp,
    merge_stats,
    recent_session_files,
)
from usagelens.snapshot import load_snapshot

SONNET = "claude-sonnet-4-5-20250929"
OPUS = "claude-opus-4-6"


def _snapshot(cutoff="2024-01-10", **kwargs):
    defaults = dict(last_computed_date=cutoff, total_sessions=4, total_messages=100)
    defaults.update(kwargs)
    return StatsSnapshot(**defaults)


# ---------------------------------------------------------------------------
# Candidate selection
# ---------------------------------------------------------------------------


class TestCandidateFiles:
    def test_cutoff_timestamp(self):
        expected = datetime(2024, 1, 10, 23, 59, 59, tzinfo=timezone.utc).timestamp()
        assert cutoff_timestamp("2024-01-10") == expected
        assert cutoff_timestamp("") == 0.0

    def test_only_files_modified_after_cutoff_day(self, corpus):
        corpus.write("-p", "old", [corpus.user("2024-01-09T10:00:00Z")], mtime="2024-01-10T23:00:00")
        corpus.write("-p", "edge", [corpus.user("2024-01-10T10:00:00Z")], mtime="2024-01-10T23:59:59")
        corpus.write("-p", "new", [corpus.user("2024-01-11T10:00:00Z")], mtime="2024-01-11T00:00:01")
        files = recent_session_files(corpus.projects_dir, "2024-01-10")
        assert [f.stem for f in files] == ["new"]

    def test_no_cutoff_takes_everything(self, corpus):
        corpus.write("-p", "old", [corpus.user("2020-01-01T00:00:00Z")], mtime="2020-01-01T00:00:00")
        assert len(recent_session_files(corpus.projects_dir, "")) == 1


# ---------------------------------------------------------------------------
# compute_delta
# ---------------------------------------------------------------------------


class TestComputeDelta:
    def test_end_to_end_scenario(self, corpus):
        """3 events before the cutoff are ignored, 5 after are counted: 100 + 5."""
        corpus.write_snapshot({"lastComputedDate": "2024-01-10", "totalMessages": 100})
        corpus.write("-Users-me-app", "mixed", [
            corpus.user("2024-01-09T08:00:00Z"),
            corpus.assistant("2024-01-09T08:00:05Z"),
            corpus.user("2024-01-09T08:01:00Z"),
            corpus.user("2024-01-11T09:00:00Z"),
            corpus.assistant("2024-01-11T09:00:05Z"),
            corpus.user("2024-01-11T09:01:00Z"),
            corpus.assistant("2024-01-11T09:01:05Z"),
            corpus.user("2024-01-11T09:02:00Z"),
        ], mtime="2024-01-12T12:00:00")

        snapshot = load_snapshot(corpus.root / "stats-cache.json")
        delta = compute_delta(corpus.projects_dir, snapshot.last_computed_date)
        merged = merge_stats(snapshot, delta)

        assert delta.total_messages == 5
        assert merged.total_messages == 105
        assert merged.total_sessions == 1
        assert "2024-01-09" not in delta.daily_activity

    def test_events_on_cutoff_day_excluded(self, corpus):
        corpus.write("-p", "s", [
            corpus.user("2024-01-10T23:59:59Z"),
            corpus.user("2024-01-11T00:00:00Z"),
        ], mtime="2024-01-11T01:00:00")
        delta = compute_delta(corpus.projects_dir, "2024-01-10")
        assert delta.total_messages == 1
        assert list(delta.daily_activity) == ["2024-01-11"]

    def test_per_day_counters(self, corpus):
        corpus.write("-p", "s1", [
            corpus.user("2024-01-11T10:00:00Z"),
            corpus.assistant("2024-01-11T10:00:05Z", tools=("Read", "Edit")),
            corpus.user("2024-01-12T10:00:00Z"),
            corpus.assistant("2024-01-12T10:00:05Z", tools=("Bash",)),
        ], mtime="2024-01-12T11:00:00")
        corpus.write("-p", "s2", [
            corpus.system("2024-01-12T07:00:00Z"),
            corpus.user("2024-01-12T08:00:00Z"),
        ], mtime="2024-01-12T11:00:00")
        delta = compute_delta(corpus.projects_dir, "2024-01-10")

        assert delta.total_sessions == 2
        assert delta.total_messages == 5
        assert delta.daily_activity["2024-01-11"] == DailyActivity(
            message_count=2, session_count=1, tool_call_count=2,
        )
        # s2 is credited to the day of its first qualifying event
        assert delta.daily_activity["2024-01-12"] == DailyActivity(
            message_count=3, session_count=1, tool_call_count=1,
        )

    def test_session_credited_to_first_day_after_cutoff(self, corpus):
        corpus.write("-p", "long", [
            corpus.user("2024-01-09T10:00:00Z"),
            corpus.user("2024-01-13T10:00:00Z"),
            corpus.user("2024-01-14T10:00:00Z"),
        ], mtime="2024-01-14T11:00:00")
        delta = compute_delta(corpus.projects_dir, "2024-01-10")
        assert delta.total_sessions == 1
        assert delta.daily_activity["2024-01-13"].session_count == 1
        assert delta.daily_activity["2024-01-14"].session_count == 0

    def test_tokens_models_and_hours(self, corpus):
        corpus.write("-p", "s", [
            corpus.assistant("2024-01-11T09:15:00Z", model=SONNET, usage=(100, 10, 1000, 50)),
            corpus.assistant("2024-01-11T14:15:00Z", model=OPUS, usage=(200, 20, 0, 0)),
            corpus.assistant("2024-01-12T09:30:00Z", model=SONNET, usage=(300, 30, 0, 0)),
            corpus.assistant("2024-01-12T10:00:00Z", model=SONNET, usage=None),
        ], mtime="2024-01-12T11:00:00")
        delta = compute_delta(corpus.projects_dir, "2024-01-10")

        assert delta.model_usage[SONNET] == ModelTokens(400, 40, 1000, 50)
        assert delta.model_usage[OPUS] == ModelTokens(200, 20, 0, 0)
        assert delta.daily_model_tokens == {
            "2024-01-11": {SONNET: 1160, OPUS: 220},
            "2024-01-12": {SONNET: 330},
        }
        # Only assistant events with usage count toward the hour histogram
        assert delta.hour_counts == {"9": 2, "14": 1}
        assert delta.total_tokens == 1160 + 220 + 330
        expected_cost = (
            estimate_cost(SONNET, 100, 10, 50, 1000)
            + estimate_cost(OPUS, 200, 20, 0, 0)
            + estimate_cost(SONNET, 300, 30, 0, 0)
        )
        assert delta.estimated_cost == pytest.approx(expected_cost)

    def test_usage_without_model_is_bucketed(self, corpus):
        corpus.write("-p", "s", [
            corpus.assistant("2024-01-11T09:00:00Z", model="", usage=(10, 0, 0, 0)),
        ], mtime="2024-01-12T00:00:00")
        delta = compute_delta(corpus.projects_dir, "2024-01-10")
        assert delta.model_usage["unknown"].input_tokens == 10

    def test_untimestamped_events_ignored(self, corpus):
        corpus.write("-p", "s", [
            {"type": "user", "message": {"role": "user", "content": "no time"}},
        ], mtime="2024-01-12T00:00:00")
        delta = compute_delta(corpus.projects_dir, "2024-01-10")
        assert delta.total_sessions == 0
        assert delta.total_messages == 0
        assert delta.files_scanned == 1

    def test_no_snapshot_counts_everything(self, corpus):
        corpus.write("-p", "s", [
            corpus.user("2019-05-01T00:00:00Z"),
            corpus.user("2024-01-11T00:00:00Z"),
        ], mtime="2019-05-02T00:00:00")
        delta = compute_delta(corpus.projects_dir, "")
        assert delta.total_messages == 2
        assert delta.first_session_date == "2019-05-01"

    def test_longest_session(self, corpus):
        corpus.write("-p", "short", [
            corpus.user("2024-01-11T10:00:00Z"),
            corpus.user("2024-01-11T10:01:00Z"),
        ], mtime="2024-01-12T00:00:00")
        corpus.write("-p", "long", [
            corpus.user("2024-01-09T10:00:00Z"),
            corpus.user("2024-01-11T10:00:00Z"),
            corpus.assistant("2024-01-11T12:00:00Z"),
        ], mtime="2024-01-12T00:00:00")
        delta = compute_delta(corpus.projects_dir, "2024-01-10")
        # Duration only spans qualifying events
        assert delta.longest_session == LongestSession(
            session_id="long",
            duration=2 * 3600 * 1000,
            message_count=2,
            timestamp="2024-01-11T10:00:00Z",
        )

    def test_malformed_lines_and_empty_root(self, corpus, tmp_path):
        corpus.write("-p", "s", [
            "{garbage",
            corpus.user("2024-01-11T10:00:00Z"),
        ], mtime="2024-01-12T00:00:00")
        assert compute_delta(corpus.projects_dir, "2024-01-10").total_messages == 1
        assert compute_delta(tmp_path / "missing", "").total_messages == 0

    def test_out_of_range_token_count_skips_only_that_line(self, corpus):
        corpus.write("-p", "s", [
            corpus.user("2024-01-11T10:00:00Z"),
            '{"type": "assistant", "timestamp": "2024-01-11T10:00:01Z", '
            '"message": {"model": "claude-opus-4-6", "usage": {"output_tokens": 1e400}}}',
            corpus.assistant("2024-01-11T10:00:02Z", usage=(10, 5, 0, 0)),
        ], mtime="2024-01-12T00:00:00")
        delta = compute_delta(corpus.projects_dir, "2024-01-10")
        assert delta.total_messages == 2
        assert delta.total_tokens == 15

    def test_unreadable_file_contributes_nothing(self, corpus, monkeypatch):
        corpus.write("-p", "good", [corpus.user("2024-01-11T10:00:00Z")], mtime="2024-01-12T00:00:00")
        bad = corpus.write("-p", "bad", [
            corpus.user("2024-01-11T10:00:00Z"),
            corpus.user("2024-01-11T10:00:01Z"),
        ], mtime="2024-01-12T00:00:00")

        from usagelens import reconcile

        real_iter = reconcile.iter_events

        def flaky(path):
            if path == bad:
                yield from list(real_iter(path))[:1]
                raise OSError("disk went away")
            yield from real_iter(path)

        monkeypatch.setattr(reconcile, "iter_events", flaky)
        delta = compute_delta(corpus.projects_dir, "2024-01-10")
        assert delta.total_sessions == 1
        assert delta.total_messages == 1
        assert delta.files_scanned == 1


# ---------------------------------------------------------------------------
# merge_stats
# ---------------------------------------------------------------------------


class TestMerge:
    def _delta(self, corpus):
        corpus.write("-p", "s", [
            corpus.user("2024-01-10T10:00:00Z"),
            corpus.assistant("2024-01-11T09:00:00Z", model=OPUS, usage=(100, 200, 300, 400), tools=("Read",)),
            corpus.user("2024-01-11T09:05:00Z"),
        ], mtime="2024-01-12T00:00:00")
        return compute_delta(corpus.projects_dir, "2024-01-10")

    def _snap(self):
        return _snapshot(
            daily_activity={
                "2024-01-10": DailyActivity(10, 1, 3),
                "2024-01-11": DailyActivity(1, 1, 1),
            },
            daily_model_tokens={"2024-01-11": {OPUS: 7}},
            model_usage={
                OPUS: ModelTokens(1000, 2000, 3000, 4000),
                SONNET: ModelTokens(1, 1, 1, 1),
            },
            hour_counts={"9": 5, "23": 1},
            first_session_date="2023-06-01T00:00:00.000Z",
            longest_session=LongestSession("old", 10_000, 4, "2023-06-01T00:00:00.000Z"),
        )

    def test_counters_sum(self, corpus):
        merged = merge_stats(self._snap(), self._delta(corpus))
        assert merged.total_sessions == 5
        assert merged.total_messages == 102
        assert merged.daily_activity["2024-01-10"] == DailyActivity(10, 1, 3)
        assert merged.daily_activity["2024-01-11"] == DailyActivity(3, 2, 2)
        assert merged.daily_model_tokens["2024-01-11"] == {OPUS: 1007}
        assert merged.hour_counts == {"9": 6, "23": 1}

    def test_model_tokens_sum_and_cost_recomputed(self, corpus):
        merged = merge_stats(self._snap(), self._delta(corpus))
        opus = merged.model_usage[OPUS]
        assert (opus.input_tokens, opus.output_tokens) == (1100, 2200)
        assert (opus.cache_read_tokens, opus.cache_write_tokens) == (3300, 4400)
        assert opus.estimated_cost == pytest.approx(estimate_cost(OPUS, 1100, 2200, 4400, 3300))
        assert merged.model_usage[SONNET].input_tokens == 1
        assert merged.total_tokens == 11000 + 4
        assert merged.estimated_cost == pytest.approx(
            opus.estimated_cost + merged.model_usage[SONNET].estimated_cost
        )

    def test_cost_priced_from_summed_tokens(self):
        """A non-linear pricing function shows the merge prices the sum, not each half."""
        def tiered(model, i, o, cw, cr):
            return float((i + o + cw + cr) ** 2)

        snapshot = _snapshot(model_usage={OPUS: ModelTokens(1, 0, 0, 0)})
        delta = StatsDelta(model_usage={OPUS: ModelTokens(2, 0, 0, 0)})
        merged = merge_stats(snapshot, delta, cost=tiered)
        assert merged.model_usage[OPUS].estimated_cost == 9.0
        assert merged.estimated_cost == 9.0

    def test_first_date_and_longest(self, corpus):
        merged = merge_stats(self._snap(), self._delta(corpus))
        assert merged.first_session_date == "2023-06-01T00:00:00.000Z"
        assert merged.longest_session.session_id == "old"

    def test_empty_snapshot(self, corpus):
        delta = self._delta(corpus)
        merged = merge_stats(StatsSnapshot.empty(), delta)
        assert merged.total_messages == delta.total_messages
        assert merged.first_session_date == "2024-01-11"

    def test_inputs_not_mutated_and_idempotent(self, corpus):
        snapshot = self._snap()
        delta = self._delta(corpus)
        first = merge_stats(snapshot, delta)
        second = merge_stats(snapshot, delta)
        assert first == second
        assert snapshot.daily_activity["2024-01-11"] == DailyActivity(1, 1, 1)
        assert snapshot.model_usage[OPUS] == ModelTokens(1000, 2000, 3000, 4000)

    def test_reconcile_twice_identical(self, corpus):
        self._delta(corpus)
        one = merge_stats(self._snap(), compute_delta(corpus.projects_dir, "2024-01-10"))
        two = merge_stats(self._snap(), compute_delta(corpus.projects_dir, "2024-01-10"))
        assert one == two


# ---------------------------------------------------------------------------
# cached_delta
# ---------------------------------------------------------------------------


class TestCachedDelta:
    @pytest.fixture
    def counting(self, monkeypatch):
        from usagelens import reconcile

        calls = []
        real = reconcile.compute_delta

        def wrapper(*args, **kwargs):
            calls.append(args)
            return real(*args, **kwargs)

        monkeypatch.setattr(reconcile, "compute_delta", wrapper)
        return calls

    def test_key(self):
        assert cache_key("2024-01-10", "/data/live") == "2024-01-10:/data/live"

    def test_hit_within_ttl_skips_scan(self, corpus, counting):
        corpus.write("-p", "s", [corpus.user("2024-01-11T10:00:00Z")], mtime="2024-01-12T00:00:00")
        now = [0.0]
        cache = SingleSlotCache(TTLPolicy(30), clock=lambda: now[0])

        first = cached_delta(cache, corpus.projects_dir, "2024-01-10", "live")
        now[0] = 29.0
        second = cached_delta(cache, corpus.projects_dir, "2024-01-10", "live")
        assert first is second
        assert len(counting) == 1

    def test_recompute_after_ttl_or_key_change(self, corpus, counting):
        corpus.write("-p", "s", [corpus.user("2024-01-11T10:00:00Z")], mtime="2024-01-12T00:00:00")
        now = [0.0]
        cache = SingleSlotCache(TTLPolicy(30), clock=lambda: now[0])

        cached_delta(cache, corpus.projects_dir, "2024-01-10", "live")
        now[0] = 31.0
        cached_delta(cache, corpus.projects_dir, "2024-01-10", "live")
        assert len(counting) == 2

        cached_delta(cache, corpus.projects_dir, "2024-01-09", "live")
        cached_delta(cache, corpus.projects_dir, "2024-01-09", "imported")
        assert len(counting) == 4
