"""
Ingestion pipeline: one run for one channel.

    read cursor -> fetch -> truncate at cursor -> quality filter
        -> dedup + store (per item) -> enqueue new items -> advance cursor

Contract:
- Re-running over the same page stores nothing new.
- The cursor only moves forward, to the newest post fetched in the run
  (stored or not). Backfill runs ignore and never move the cursor.
- One item's storage failure is logged and counted; the run continues.
- A blocked channel is a normal result with a long back-off hint.
  Rate limits and transient transport errors propagate for the retry policy.
"""

import logging
import sqlite3

from collectors.base import SourceClient
from config.settings import Config
from dedup.engine import DedupEngine, REASON_EXACT_ID
from errors import SourceBlockedError
from filters.quality import filter_posts
from ingestion.queue import WorkQueue
from models import Cursor, IngestionResult, RawPost, RunStatus, SourceItem
from storage.db import Storage

log = logging.getLogger(__name__)


def truncate_at_cursor(posts: list[RawPost], cursor: Cursor | None) -> list[RawPost]:
    """
    Keep the posts before the first already-seen one. `posts` must be
    newest first; everything from the boundary on was seen by an
    earlier run.
    """
    if cursor is None:
        return list(posts)
    fresh = []
    for post in posts:
        if post.created_at <= cursor.last_created_at or post.external_id == cursor.last_external_id:
            break
        fresh.append(post)
    return fresh


class IngestionPipeline:
    def __init__(
        self,
        storage: Storage,
        source: SourceClient,
        dedup: DedupEngine,
        queue: WorkQueue,
        config: Config,
    ):
        self.storage = storage
        self.source = source
        self.dedup = dedup
        self.queue = queue
        self.config = config

    def run(
        self,
        channel: str,
        sort: str | None = None,
        limit: int | None = None,
        backfill: bool = False,
    ) -> IngestionResult:
        result = IngestionResult(channel=channel)
        sort = sort or self.config.fetch_sort
        limit = limit or self.config.fetch_limit

        cursor = None if backfill else self.storage.get_cursor(channel)

        try:
            posts = self.source.fetch(channel, sort=sort, limit=limit)
        except SourceBlockedError as e:
            log.warning(f"r/{channel} blocked: {e}. Backing off.")
            result.status = RunStatus.BLOCKED
            result.backoff_seconds = self.config.blocked_backoff_seconds
            result.message = str(e)
            return result

        # Sources promise newest first; don't bet the cursor on it
        posts = sorted(posts, key=lambda p: p.created_at, reverse=True)
        result.fetched = len(posts)

        fresh = truncate_at_cursor(posts, cursor)
        result.after_cursor = len(fresh)

        kept, rejected = filter_posts(
            fresh,
            min_score=self.config.min_post_score,
            min_comments=self.config.min_post_comments,
        )
        result.filtered_out = len(rejected)
        for _, reason in rejected:
            key = f"filtered: {reason}"
            result.skip_reasons[key] = result.skip_reasons.get(key, 0) + 1

        for post in kept:
            self._store(post, result)

        if result.new_item_ids:
            self.queue.enqueue_analysis(result.new_item_ids)

        if posts and not backfill:
            newest = posts[0]
            updated = self.storage.advance_cursor(
                channel, newest.external_id, newest.created_at, processed=len(posts),
            )
            result.cursor_advanced = True
            log.info(
                f"r/{channel} cursor -> {updated.last_external_id} "
                f"@ {updated.last_created_at:%Y-%m-%d %H:%M:%S} ({updated.items_processed} total)"
            )

        log.info(
            f"r/{channel}: fetched {result.fetched}, {result.after_cursor} past cursor, "
            f"{result.filtered_out} filtered, {result.new_items} new, {result.updated} updated, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    def _store(self, post: RawPost, result: IngestionResult):
        item = SourceItem.from_post(post)
        try:
            check = self.dedup.check_item(item)
            if check.is_duplicate:
                if check.reason == REASON_EXACT_ID:
                    self.storage.update_item_engagement(
                        check.matched_id, post.score, post.upvotes, post.downvotes, post.num_comments,
                    )
                    result.updated += 1
                else:
                    result.skipped += 1
                    result.skip_reasons[check.reason] = result.skip_reasons.get(check.reason, 0) + 1
                return

            item_id = self.storage.insert_item(item)
            if item_id is None:
                # Lost a race with a concurrent run for the same channel
                result.skipped += 1
                result.skip_reasons[REASON_EXACT_ID] = result.skip_reasons.get(REASON_EXACT_ID, 0) + 1
                return
            result.new_item_ids.append(item_id)
        except sqlite3.Error as e:
            result.failed += 1
            log.error(f"Storing r/{post.channel}/{post.external_id} failed: {e}")
