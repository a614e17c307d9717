"""
Tests for the ingestion pipeline: cursor handling, filtering, dedup,
queue hand-off and transport error semantics.
"""

import sqlite3
from datetime import timedelta

import pytest

from dedup.engine import DedupEngine
from errors import RateLimitedError, SourceBlockedError, TransientError
from ingestion.pipeline import IngestionPipeline, truncate_at_cursor
from ingestion.queue import InMemoryQueue
from models import Cursor, RunStatus

from fakes import BASE_TIME, FakeSource, make_post

CHANNEL = "smallbusiness"


def _pipeline(storage, config, source):
    queue = InMemoryQueue()
    pipeline = IngestionPipeline(storage, source, DedupEngine(storage, config), queue, config)
    return pipeline, queue


# ──────────────────────────────────────────────
# Cursor truncation
# ──────────────────────────────────────────────

class TestTruncateAtCursor:
    def test_no_cursor_keeps_everything(self):
        posts = [make_post("b", minutes=2), make_post("a", minutes=1)]
        assert truncate_at_cursor(posts, None) == posts

    def test_stops_at_cursor_time(self):
        posts = [make_post("c", minutes=3), make_post("b", minutes=2), make_post("a", minutes=1)]
        cursor = Cursor(CHANNEL, "zzz", BASE_TIME + timedelta(minutes=2))
        assert [p.external_id for p in truncate_at_cursor(posts, cursor)] == ["c"]

    def test_stops_at_cursor_id(self):
        # Same id wins even if its timestamp looks newer (edited clock, etc.)
        posts = [make_post("c", minutes=30), make_post("b", minutes=20)]
        cursor = Cursor(CHANNEL, "c", BASE_TIME)
        assert truncate_at_cursor(posts, cursor) == []

    def test_everything_after_boundary_dropped(self):
        posts = [make_post("c", minutes=3), make_post("b", minutes=1), make_post("a", minutes=5)]
        cursor = Cursor(CHANNEL, "zzz", BASE_TIME + timedelta(minutes=2))
        assert [p.external_id for p in truncate_at_cursor(posts, cursor)] == ["c"]


# ──────────────────────────────────────────────
# Runs
# ──────────────────────────────────────────────

class TestIngestionRun:
    def test_first_run_stores_posts_above_floor(self, tmp_storage, config):
        posts = [
            make_post("newest", minutes=30, title="Need a booking system for my salon"),
            make_post("middle", minutes=20, title="How do I track inventory across two shops"),
            make_post("oldest", minutes=10, title="Anyone else hate payroll", score=1),
        ]
        pipeline, queue = _pipeline(tmp_storage, config, FakeSource({CHANNEL: posts}))

        result = pipeline.run(CHANNEL)

        assert result.status == RunStatus.OK
        assert result.fetched == 3
        assert result.filtered_out == 1
        assert result.new_items == 2
        assert result.skip_reasons == {"filtered: low engagement": 1}
        assert tmp_storage.get_stats()["total_items"] == 2

        cursor = tmp_storage.get_cursor(CHANNEL)
        assert cursor.last_external_id == "newest"
        assert cursor.last_created_at == BASE_TIME + timedelta(minutes=30)
        assert cursor.items_processed == 3

        assert queue.drain() == [result.new_item_ids]

    def test_rerun_same_page_stores_nothing(self, tmp_storage, config):
        posts = [make_post("b", minutes=2, title="Second post title"), make_post("a", minutes=1)]
        pipeline, queue = _pipeline(tmp_storage, config, FakeSource({CHANNEL: posts}))

        pipeline.run(CHANNEL)
        queue.drain()
        second = pipeline.run(CHANNEL)

        assert second.after_cursor == 0
        assert second.new_items == 0
        assert len(queue) == 0
        assert tmp_storage.get_stats()["total_items"] == 2

    def test_only_posts_newer_than_cursor_are_stored(self, tmp_storage, config):
        source = FakeSource({CHANNEL: [make_post("a", minutes=1)]})
        pipeline, _ = _pipeline(tmp_storage, config, source)
        pipeline.run(CHANNEL)

        source.pages[CHANNEL] = [make_post("b", minutes=5, title="Brand new question here"), make_post("a", minutes=1)]
        result = pipeline.run(CHANNEL)

        assert result.after_cursor == 1
        assert result.new_items == 1
        assert tmp_storage.get_cursor(CHANNEL).last_external_id == "b"

    def test_unsorted_page_is_sorted_first(self, tmp_storage, config):
        posts = [make_post("old", minutes=1), make_post("new", minutes=9, title="Newer question title")]
        pipeline, _ = _pipeline(tmp_storage, config, FakeSource({CHANNEL: posts}))
        pipeline.run(CHANNEL)
        assert tmp_storage.get_cursor(CHANNEL).last_external_id == "new"

    def test_cursor_advances_when_nothing_stored(self, tmp_storage, config):
        posts = [make_post("low", minutes=7, score=0)]
        pipeline, queue = _pipeline(tmp_storage, config, FakeSource({CHANNEL: posts}))

        result = pipeline.run(CHANNEL)

        assert result.new_items == 0
        assert result.cursor_advanced
        assert tmp_storage.get_cursor(CHANNEL).last_external_id == "low"
        assert len(queue) == 0

    def test_empty_channel_leaves_cursor_alone(self, tmp_storage, config):
        pipeline, _ = _pipeline(tmp_storage, config, FakeSource({CHANNEL: []}))
        result = pipeline.run(CHANNEL)
        assert not result.cursor_advanced
        assert tmp_storage.get_cursor(CHANNEL) is None

    def test_exact_id_duplicate_updates_engagement(self, tmp_storage, config):
        source = FakeSource({CHANNEL: [make_post("a", minutes=1, score=10)]})
        pipeline, _ = _pipeline(tmp_storage, config, source)
        first = pipeline.run(CHANNEL)

        source.pages[CHANNEL] = [make_post("a", minutes=1, score=250, num_comments=80)]
        second = pipeline.run(CHANNEL, backfill=True)

        assert second.updated == 1
        assert second.new_items == 0
        stored = tmp_storage.get_item(first.new_item_ids[0])
        assert stored.score == 250
        assert stored.num_comments == 80

    def test_title_author_duplicate_is_skipped(self, tmp_storage, config):
        posts = [
            make_post("x2", minutes=2, title="Same question", author="amy"),
            make_post("x1", minutes=1, title="same QUESTION", author="Amy"),
        ]
        pipeline, _ = _pipeline(tmp_storage, config, FakeSource({CHANNEL: posts}))
        result = pipeline.run(CHANNEL)
        assert result.new_items == 1
        assert result.skipped == 1
        assert result.skip_reasons == {"title+author match": 1}

    def test_backfill_ignores_and_keeps_cursor(self, tmp_storage, config):
        source = FakeSource({CHANNEL: [make_post("b", minutes=5)]})
        pipeline, _ = _pipeline(tmp_storage, config, source)
        pipeline.run(CHANNEL)
        before = tmp_storage.get_cursor(CHANNEL)

        source.pages[CHANNEL] = [
            make_post("b", minutes=5),
            make_post("a", minutes=1, title="An older post we missed"),
        ]
        result = pipeline.run(CHANNEL, backfill=True)

        assert result.new_items == 1
        assert not result.cursor_advanced
        after = tmp_storage.get_cursor(CHANNEL)
        assert (after.last_external_id, after.items_processed) == (before.last_external_id, before.items_processed)

    def test_sort_and_limit_passed_through(self, tmp_storage, config):
        source = FakeSource({CHANNEL: []})
        pipeline, _ = _pipeline(tmp_storage, config, source)
        pipeline.run(CHANNEL, sort="top", limit=25)
        pipeline.run(CHANNEL)
        assert source.calls == [(CHANNEL, "top", 25), (CHANNEL, "new", 100)]


# ──────────────────────────────────────────────
# Failure semantics
# ──────────────────────────────────────────────

class TestIngestionFailures:
    def test_blocked_channel_is_a_result(self, tmp_storage, config):
        source = FakeSource(error=SourceBlockedError("r/private is private", status_code=403))
        pipeline, queue = _pipeline(tmp_storage, config, source)

        result = pipeline.run("private")

        assert result.status == RunStatus.BLOCKED
        assert result.backoff_seconds == 86400
        assert "private" in result.message
        assert tmp_storage.get_cursor("private") is None
        assert len(queue) == 0

    def test_rate_limit_propagates(self, tmp_storage, config):
        source = FakeSource(error=RateLimitedError("slow down", retry_after=60))
        pipeline, _ = _pipeline(tmp_storage, config, source)
        with pytest.raises(RateLimitedError) as exc:
            pipeline.run(CHANNEL)
        assert exc.value.retry_after == 60
        assert tmp_storage.get_cursor(CHANNEL) is None

    def test_transient_propagates(self, tmp_storage, config):
        pipeline, _ = _pipeline(tmp_storage, config, FakeSource(error=TransientError("timeout")))
        with pytest.raises(TransientError):
            pipeline.run(CHANNEL)

    def test_one_storage_failure_does_not_abort_run(self, tmp_storage, config, monkeypatch):
        posts = [
            make_post("c", minutes=3, title="Third distinct question"),
            make_post("b", minutes=2, title="Second distinct question here"),
            make_post("a", minutes=1, title="First entirely separate topic"),
        ]
        real_insert = tmp_storage.insert_item

        def flaky_insert(item):
            if item.external_id == "b":
                raise sqlite3.OperationalError("database is locked")
            return real_insert(item)

        monkeypatch.setattr(tmp_storage, "insert_item", flaky_insert)
        pipeline, queue = _pipeline(tmp_storage, config, FakeSource({CHANNEL: posts}))

        result = pipeline.run(CHANNEL)

        assert result.failed == 1
        assert result.new_items == 2
        assert tmp_storage.find_item_by_external_id(CHANNEL, "b") is None
        assert tmp_storage.get_cursor(CHANNEL).last_external_id == "c"
        assert queue.drain() == [result.new_item_ids]
