"""
SQLite storage. One file, one connection, no ORM.

Tables:
- source_items: ingested posts, unique per (channel, external_id)
- channel_cursors: per-channel watermark
- opportunities: scored opportunity records
- opportunity_sources: item -> opportunity links, unique per pair
- demand_clusters: embedded demand signals grouped by niche
- cluster_opportunities: cluster -> opportunity links, unique per pair

Timestamps are stored as fixed-width UTC ISO strings so that string
comparison in SQL is chronological.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone, timedelta
from pathlib import Path

from models import (
    Cursor,
    DeltaComparison,
    DemandCluster,
    ItemStatus,
    MarketValidation,
    Opportunity,
    SourceItem,
    utcnow,
)

log = logging.getLogger(__name__)


def _ts(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class Storage:
    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._migrate()

    def _migrate(self):
        """Create tables if they don't exist. No migration framework needed."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS source_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                external_id TEXT NOT NULL,
                channel TEXT NOT NULL,
                title TEXT NOT NULL,
                body TEXT NOT NULL DEFAULT '',
                author TEXT NOT NULL DEFAULT '',
                score INTEGER NOT NULL DEFAULT 0,
                upvotes INTEGER NOT NULL DEFAULT 0,
                downvotes INTEGER NOT NULL DEFAULT 0,
                num_comments INTEGER NOT NULL DEFAULT 0,
                url TEXT NOT NULL DEFAULT '',
                permalink TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                inserted_at TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'unprocessed',
                processed_at TEXT,
                is_opportunity INTEGER,
                ai_confidence REAL,
                rejection_reasons TEXT NOT NULL DEFAULT '[]',
                processing_error TEXT,
                UNIQUE (channel, external_id)
            );

            CREATE INDEX IF NOT EXISTS idx_items_channel_inserted
                ON source_items(channel, inserted_at);
            CREATE INDEX IF NOT EXISTS idx_items_processed
                ON source_items(processed_at);
            CREATE INDEX IF NOT EXISTS idx_items_title_author
                ON source_items(title COLLATE NOCASE, author COLLATE NOCASE);

            CREATE TABLE IF NOT EXISTS channel_cursors (
                channel TEXT PRIMARY KEY,
                last_external_id TEXT NOT NULL,
                last_created_at TEXT NOT NULL,
                items_processed INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS opportunities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                description TEXT NOT NULL,
                current_solution TEXT NOT NULL DEFAULT '',
                proposed_solution TEXT NOT NULL,
                market_context TEXT NOT NULL DEFAULT '',
                implementation_notes TEXT NOT NULL DEFAULT '',
                scores TEXT NOT NULL,
                reasoning TEXT NOT NULL DEFAULT '{}',
                overall_score REAL NOT NULL,
                viable INTEGER NOT NULL,
                market_size TEXT NOT NULL DEFAULT 'Unknown',
                complexity TEXT NOT NULL DEFAULT 'Medium',
                success_probability TEXT NOT NULL DEFAULT 'Medium',
                niche TEXT NOT NULL DEFAULT 'Unknown',
                categories TEXT NOT NULL DEFAULT '{}',
                market_validation TEXT NOT NULL DEFAULT '{}',
                delta_comparison TEXT,
                channel TEXT NOT NULL DEFAULT '',
                source_count INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_opportunities_created
                ON opportunities(created_at);
            CREATE INDEX IF NOT EXISTS idx_opportunities_score
                ON opportunities(overall_score);
            CREATE INDEX IF NOT EXISTS idx_opportunities_niche
                ON opportunities(niche);

            CREATE TABLE IF NOT EXISTS opportunity_sources (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                opportunity_id INTEGER NOT NULL,
                item_id INTEGER NOT NULL,
                link_type TEXT NOT NULL DEFAULT 'post',
                confidence REAL NOT NULL DEFAULT 0.9,
                created_at TEXT NOT NULL,
                UNIQUE (opportunity_id, item_id),
                FOREIGN KEY (opportunity_id) REFERENCES opportunities(id) ON DELETE CASCADE,
                FOREIGN KEY (item_id) REFERENCES source_items(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_sources_item
                ON opportunity_sources(item_id);

            CREATE TABLE IF NOT EXISTS demand_clusters (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                niche TEXT NOT NULL,
                demand_signal TEXT NOT NULL,
                embedding TEXT NOT NULL,
                embedding_dim INTEGER NOT NULL,
                occurrence_count INTEGER NOT NULL DEFAULT 1,
                channels TEXT NOT NULL DEFAULT '[]',
                last_seen TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_clusters_niche
                ON demand_clusters(niche, occurrence_count);
            CREATE INDEX IF NOT EXISTS idx_clusters_last_seen
                ON demand_clusters(last_seen);

            CREATE TABLE IF NOT EXISTS cluster_opportunities (
                cluster_id INTEGER NOT NULL,
                opportunity_id INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                PRIMARY KEY (cluster_id, opportunity_id),
                FOREIGN KEY (cluster_id) REFERENCES demand_clusters(id) ON DELETE CASCADE,
                FOREIGN KEY (opportunity_id) REFERENCES opportunities(id) ON DELETE CASCADE
            );
        """)
        self._conn.commit()

    # ── Source items ──

    def insert_item(self, item: SourceItem) -> int | None:
        """
        Insert an item. Returns the new row id, or None when the
        (channel, external_id) pair already exists.
        """
        cursor = self._conn.execute(
            """INSERT OR IGNORE INTO source_items
               (external_id, channel, title, body, author, score, upvotes,
                downvotes, num_comments, url, permalink, created_at, inserted_at, status)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                item.external_id,
                item.channel,
                item.title,
                item.body or "",
                item.author,
                item.score,
                item.upvotes,
                item.downvotes,
                item.num_comments,
                item.url,
                item.permalink,
                _ts(item.created_at),
                _ts(item.inserted_at),
                item.status.value,
            ),
        )
        self._conn.commit()
        if cursor.rowcount == 0:
            return None
        item.id = cursor.lastrowid
        return item.id

    def get_item(self, item_id: int) -> SourceItem | None:
        row = self._conn.execute(
            "SELECT * FROM source_items WHERE id = ?", (item_id,)
        ).fetchone()
        return self._row_to_item(row) if row else None

    def find_item_by_external_id(self, channel: str, external_id: str) -> SourceItem | None:
        row = self._conn.execute(
            "SELECT * FROM source_items WHERE channel = ? AND external_id = ?",
            (channel, external_id),
        ).fetchone()
        return self._row_to_item(row) if row else None

    def find_item_by_title_author(self, title: str, author: str) -> SourceItem | None:
        """Case-insensitive (title, author) lookup across all channels."""
        row = self._conn.execute(
            "SELECT * FROM source_items "
            "WHERE LOWER(title) = LOWER(?) AND LOWER(author) = LOWER(?) "
            "ORDER BY id LIMIT 1",
            (title, author),
        ).fetchone()
        return self._row_to_item(row) if row else None

    def recent_items(self, channel: str, days: int, limit: int) -> list[SourceItem]:
        """Newest-first window of items from one channel, for fuzzy dedup."""
        since = utcnow() - timedelta(days=days)
        rows = self._conn.execute(
            "SELECT * FROM source_items "
            "WHERE channel = ? AND inserted_at >= ? "
            "ORDER BY inserted_at DESC LIMIT ?",
            (channel, _ts(since), limit),
        ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def update_item_engagement(
        self, item_id: int, score: int, upvotes: int, downvotes: int, num_comments: int,
    ):
        self._conn.execute(
            "UPDATE source_items SET score = ?, upvotes = ?, downvotes = ?, num_comments = ? "
            "WHERE id = ?",
            (score, upvotes, downvotes, num_comments, item_id),
        )
        self._conn.commit()

    def get_unprocessed_items(self, limit: int = 500) -> list[SourceItem]:
        """Oldest-first items that have neither a terminal outcome nor an error."""
        rows = self._conn.execute(
            "SELECT * FROM source_items "
            "WHERE processed_at IS NULL AND processing_error IS NULL "
            "ORDER BY inserted_at ASC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def mark_item_processed(
        self,
        item_id: int,
        is_opportunity: bool,
        confidence: float,
        reasons: list[str] | None = None,
    ) -> bool:
        """
        Record the terminal analysis outcome. Returns False when the item
        already had one (another worker won, or this is a re-delivery).
        """
        cursor = self._conn.execute(
            "UPDATE source_items SET status = ?, processed_at = ?, is_opportunity = ?, "
            "ai_confidence = ?, rejection_reasons = ? "
            "WHERE id = ? AND processed_at IS NULL AND status != ?",
            (
                ItemStatus.PROCESSED.value,
                _ts(utcnow()),
                int(is_opportunity),
                confidence,
                json.dumps(reasons or []),
                item_id,
                ItemStatus.FAILED.value,
            ),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def mark_item_failed(self, item_id: int, error: str, reasons: list[str]) -> bool:
        """Record a non-retryable failure. The item drops out of the unprocessed set."""
        cursor = self._conn.execute(
            "UPDATE source_items SET status = ?, processing_error = ?, rejection_reasons = ? "
            "WHERE id = ? AND processed_at IS NULL",
            (ItemStatus.FAILED.value, error, json.dumps(reasons), item_id),
        )
        self._conn.commit()
        return cursor.rowcount > 0

    def is_item_linked(self, item_id: int) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM opportunity_sources WHERE item_id = ? LIMIT 1", (item_id,)
        ).fetchone()
        return row is not None

    # ── Cursors ──

    def get_cursor(self, channel: str) -> Cursor | None:
        row = self._conn.execute(
            "SELECT * FROM channel_cursors WHERE channel = ?", (channel,)
        ).fetchone()
        if not row:
            return None
        return Cursor(
            channel=row["channel"],
            last_external_id=row["last_external_id"],
            last_created_at=_parse_ts(row["last_created_at"]),
            items_processed=row["items_processed"],
            updated_at=_parse_ts(row["updated_at"]),
        )

    def advance_cursor(
        self, channel: str, external_id: str, created_at: datetime, processed: int,
    ) -> Cursor:
        """
        Atomic upsert. The watermark only moves forward and the processed
        count is incremented in place, so interleaved runs for the same
        channel cannot regress it.
        """
        self._conn.execute(
            """INSERT INTO channel_cursors
                   (channel, last_external_id, last_created_at, items_processed, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(channel) DO UPDATE SET
                   last_external_id = CASE
                       WHEN excluded.last_created_at >= channel_cursors.last_created_at
                       THEN excluded.last_external_id
                       ELSE channel_cursors.last_external_id END,
                   last_created_at = MAX(channel_cursors.last_created_at, excluded.last_created_at),
                   items_processed = channel_cursors.items_processed + excluded.items_processed,
                   updated_at = excluded.updated_at""",
            (channel, external_id, _ts(created_at), processed, _ts(utcnow())),
        )
        self._conn.commit()
        return self.get_cursor(channel)

    # ── Opportunities ──

    def create_opportunity(
        self, opp: Opportunity, item_id: int, confidence: float, link_type: str = "post",
    ) -> int:
        """Insert a new opportunity together with its first source link."""
        now = _ts(utcnow())
        with self._conn:
            cursor = self._conn.execute(
                """INSERT INTO opportunities
                   (title, description, current_solution, proposed_solution,
                    market_context, implementation_notes, scores, reasoning,
                    overall_score, viable, market_size, complexity,
                    success_probability, niche, categories, market_validation,
                    delta_comparison, channel, source_count, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)""",
                (
                    opp.title,
                    opp.description,
                    opp.current_solution,
                    opp.proposed_solution,
                    opp.market_context,
                    opp.implementation_notes,
                    json.dumps(opp.scores),
                    json.dumps(opp.reasoning),
                    opp.overall_score,
                    int(opp.viable),
                    opp.market_size,
                    opp.complexity,
                    opp.success_probability,
                    opp.niche,
                    json.dumps(opp.categories),
                    json.dumps(opp.market_validation.to_dict()),
                    json.dumps(opp.delta_comparison.to_dict()) if opp.delta_comparison else None,
                    opp.channel,
                    _ts(opp.created_at),
                    now,
                ),
            )
            opp_id = cursor.lastrowid
            self._conn.execute(
                "INSERT INTO opportunity_sources "
                "(opportunity_id, item_id, link_type, confidence, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (opp_id, item_id, link_type, confidence, now),
            )
        opp.id = opp_id
        opp.source_count = 1
        return opp_id

    def merge_opportunity(
        self,
        opportunity_id: int,
        item_id: int,
        confidence: float,
        link_type: str = "post",
        override: Opportunity | None = None,
    ) -> bool:
        """
        Link another source item to an existing opportunity.

        The link insert and the source_count increment share one
        transaction, and the increment only runs when the link is new.
        `override` replaces the stored scores and viability.
        Returns True when a new link was created.
        """
        now = _ts(utcnow())
        with self._conn:
            cursor = self._conn.execute(
                "INSERT OR IGNORE INTO opportunity_sources "
                "(opportunity_id, item_id, link_type, confidence, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (opportunity_id, item_id, link_type, confidence, now),
            )
            linked = cursor.rowcount > 0
            if linked:
                self._conn.execute(
                    "UPDATE opportunities SET source_count = source_count + 1, updated_at = ? "
                    "WHERE id = ?",
                    (now, opportunity_id),
                )
                if override is not None:
                    self._conn.execute(
                        "UPDATE opportunities SET scores = ?, reasoning = ?, "
                        "overall_score = ?, viable = ? WHERE id = ?",
                        (
                            json.dumps(override.scores),
                            json.dumps(override.reasoning),
                            override.overall_score,
                            int(override.viable),
                            opportunity_id,
                        ),
                    )
        return linked

    def get_opportunity(self, opportunity_id: int) -> Opportunity | None:
        row = self._conn.execute(
            "SELECT * FROM opportunities WHERE id = ?", (opportunity_id,)
        ).fetchone()
        return self._row_to_opportunity(row) if row else None

    def find_opportunity_by_title(self, title: str, niche: str | None = None) -> Opportunity | None:
        query = "SELECT * FROM opportunities WHERE LOWER(title) = LOWER(?)"
        params: list = [title]
        if niche:
            query += " AND LOWER(niche) = LOWER(?)"
            params.append(niche)
        row = self._conn.execute(query + " ORDER BY id LIMIT 1", params).fetchone()
        return self._row_to_opportunity(row) if row else None

    def recent_opportunities(self, days: int, limit: int) -> list[Opportunity]:
        since = utcnow() - timedelta(days=days)
        rows = self._conn.execute(
            "SELECT * FROM opportunities WHERE created_at >= ? "
            "ORDER BY created_at DESC LIMIT ?",
            (_ts(since), limit),
        ).fetchall()
        return [self._row_to_opportunity(r) for r in rows]

    def count_opportunity_sources(self, opportunity_id: int) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM opportunity_sources WHERE opportunity_id = ?",
            (opportunity_id,),
        ).fetchone()[0]

    def count_opportunities(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM opportunities").fetchone()[0]

    def top_opportunities(self, limit: int = 200) -> list[Opportunity]:
        rows = self._conn.execute(
            "SELECT * FROM opportunities ORDER BY overall_score DESC, id LIMIT ?", (limit,)
        ).fetchall()
        return [self._row_to_opportunity(r) for r in rows]

    def opportunity_items(self, opportunity_id: int) -> list[SourceItem]:
        """Source items linked to an opportunity, oldest link first."""
        rows = self._conn.execute(
            "SELECT i.* FROM opportunity_sources s JOIN source_items i ON i.id = s.item_id "
            "WHERE s.opportunity_id = ? ORDER BY s.id",
            (opportunity_id,),
        ).fetchall()
        return [self._row_to_item(r) for r in rows]

    # ── Demand clusters ──

    def embedding_dimension(self) -> int | None:
        """Dimensionality of stored vectors, or None for an empty store."""
        row = self._conn.execute(
            "SELECT embedding_dim FROM demand_clusters LIMIT 1"
        ).fetchone()
        return row[0] if row else None

    def clusters_for_niche(self, niche: str, limit: int = 10) -> list[DemandCluster]:
        """Most frequent clusters in one niche, embeddings included."""
        rows = self._conn.execute(
            "SELECT * FROM demand_clusters WHERE niche = ? "
            "ORDER BY occurrence_count DESC, id ASC LIMIT ?",
            (niche, limit),
        ).fetchall()
        return [self._row_to_cluster(r) for r in rows]

    def create_cluster(self, cluster: DemandCluster, opportunity_id: int | None = None) -> int:
        with self._conn:
            cursor = self._conn.execute(
                """INSERT INTO demand_clusters
                   (niche, demand_signal, embedding, embedding_dim, occurrence_count,
                    channels, last_seen, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    cluster.niche,
                    cluster.demand_signal,
                    json.dumps(cluster.embedding),
                    len(cluster.embedding),
                    cluster.occurrence_count,
                    json.dumps(sorted(set(cluster.channels))),
                    _ts(cluster.last_seen),
                    _ts(cluster.created_at),
                ),
            )
            cluster_id = cursor.lastrowid
            if opportunity_id is not None:
                self._link_cluster(cluster_id, opportunity_id)
        cluster.id = cluster_id
        return cluster_id

    def touch_cluster(
        self,
        cluster_id: int,
        channel: str,
        seen_at: datetime,
        opportunity_id: int | None = None,
    ):
        """Count one more occurrence: increment in place, union the channel, refresh last_seen."""
        with self._conn:
            row = self._conn.execute(
                "SELECT channels FROM demand_clusters WHERE id = ?", (cluster_id,)
            ).fetchone()
            if row is None:
                raise KeyError(f"cluster {cluster_id} not found")
            channels = set(json.loads(row["channels"]))
            if channel:
                channels.add(channel)
            self._conn.execute(
                "UPDATE demand_clusters SET occurrence_count = occurrence_count + 1, "
                "channels = ?, last_seen = MAX(last_seen, ?) WHERE id = ?",
                (json.dumps(sorted(channels)), _ts(seen_at), cluster_id),
            )
            if opportunity_id is not None:
                self._link_cluster(cluster_id, opportunity_id)

    def _link_cluster(self, cluster_id: int, opportunity_id: int):
        self._conn.execute(
            "INSERT OR IGNORE INTO cluster_opportunities (cluster_id, opportunity_id, created_at) "
            "VALUES (?, ?, ?)",
            (cluster_id, opportunity_id, _ts(utcnow())),
        )

    def get_cluster(self, cluster_id: int) -> DemandCluster | None:
        row = self._conn.execute(
            "SELECT * FROM demand_clusters WHERE id = ?", (cluster_id,)
        ).fetchone()
        return self._row_to_cluster(row) if row else None

    def cluster_opportunity_ids(self, cluster_id: int) -> list[int]:
        rows = self._conn.execute(
            "SELECT opportunity_id FROM cluster_opportunities WHERE cluster_id = ? "
            "ORDER BY opportunity_id",
            (cluster_id,),
        ).fetchall()
        return [r[0] for r in rows]

    def top_clusters(self, limit: int = 20) -> list[DemandCluster]:
        rows = self._conn.execute(
            "SELECT * FROM demand_clusters ORDER BY occurrence_count DESC, last_seen DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._row_to_cluster(r) for r in rows]

    def trending_clusters(self, days: int = 7, limit: int = 20) -> list[DemandCluster]:
        since = utcnow() - timedelta(days=days)
        rows = self._conn.execute(
            "SELECT * FROM demand_clusters WHERE last_seen >= ? "
            "ORDER BY occurrence_count DESC, last_seen DESC LIMIT ?",
            (_ts(since), limit),
        ).fetchall()
        return [self._row_to_cluster(r) for r in rows]

    def reap_stale_clusters(self, older_than: datetime, min_occurrences: int) -> int:
        """Delete clusters last seen before `older_than` with fewer than `min_occurrences`."""
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM demand_clusters WHERE last_seen < ? AND occurrence_count < ?",
                (_ts(older_than), min_occurrences),
            )
        return cursor.rowcount

    # ── Maintenance ──

    def cleanup_duplicate_items(self) -> dict:
        """
        Sweep for items sharing (title, author) case-insensitively. Keeps the
        earliest of each group and deletes the rest. Links to the deleted
        items go with them; each affected opportunity loses one source and
        is deleted once it has none left.
        """
        groups = self._conn.execute(
            "SELECT LOWER(title) AS t, LOWER(author) AS a, MIN(id) AS keep_id "
            "FROM source_items GROUP BY LOWER(title), LOWER(author) HAVING COUNT(*) > 1"
        ).fetchall()

        removed_items = 0
        removed_opportunities = 0
        with self._conn:
            for g in groups:
                dupes = [
                    r["id"] for r in self._conn.execute(
                        "SELECT id FROM source_items "
                        "WHERE LOWER(title) = ? AND LOWER(author) = ? AND id != ?",
                        (g["t"], g["a"], g["keep_id"]),
                    )
                ]
                for item_id in dupes:
                    opp_ids = [
                        r[0] for r in self._conn.execute(
                            "SELECT opportunity_id FROM opportunity_sources WHERE item_id = ?",
                            (item_id,),
                        )
                    ]
                    self._conn.execute("DELETE FROM source_items WHERE id = ?", (item_id,))
                    removed_items += 1
                    for opp_id in opp_ids:
                        self._conn.execute(
                            "UPDATE opportunities SET source_count = source_count - 1 WHERE id = ?",
                            (opp_id,),
                        )
                        cursor = self._conn.execute(
                            "DELETE FROM opportunities WHERE id = ? AND source_count <= 0",
                            (opp_id,),
                        )
                        removed_opportunities += cursor.rowcount

        if removed_items:
            log.info(
                f"Duplicate cleanup: removed {removed_items} items, "
                f"{removed_opportunities} orphaned opportunities"
            )
        return {"items_removed": removed_items, "opportunities_removed": removed_opportunities}

    def get_stats(self) -> dict:
        """Counts for the CLI `stats` command and for debugging."""
        def count(sql: str, params: tuple = ()) -> int:
            return self._conn.execute(sql, params).fetchone()[0]

        by_channel = {}
        for row in self._conn.execute(
            "SELECT channel, COUNT(*) AS cnt FROM source_items GROUP BY channel"
        ):
            by_channel[row["channel"]] = row["cnt"]

        total_opps = count("SELECT COUNT(*) FROM opportunities")
        total_links = count("SELECT COUNT(*) FROM opportunity_sources")
        return {
            "total_items": count("SELECT COUNT(*) FROM source_items"),
            "unprocessed_items": count(
                "SELECT COUNT(*) FROM source_items "
                "WHERE processed_at IS NULL AND processing_error IS NULL"
            ),
            "processed_items": count("SELECT COUNT(*) FROM source_items WHERE processed_at IS NOT NULL"),
            "failed_items": count(
                "SELECT COUNT(*) FROM source_items WHERE status = ?", (ItemStatus.FAILED.value,)
            ),
            "by_channel": by_channel,
            "total_opportunities": total_opps,
            "viable_opportunities": count("SELECT COUNT(*) FROM opportunities WHERE viable = 1"),
            "multi_source_opportunities": count(
                "SELECT COUNT(*) FROM opportunities WHERE source_count > 1"
            ),
            "total_source_links": total_links,
            "avg_sources_per_opportunity": round(total_links / total_opps, 2) if total_opps else 0.0,
            "total_clusters": count("SELECT COUNT(*) FROM demand_clusters"),
        }

    # ── Row mapping ──

    def _row_to_item(self, row: sqlite3.Row) -> SourceItem:
        return SourceItem(
            id=row["id"],
            external_id=row["external_id"],
            channel=row["channel"],
            title=row["title"],
            body=row["body"],
            author=row["author"],
            score=row["score"],
            upvotes=row["upvotes"],
            downvotes=row["downvotes"],
            num_comments=row["num_comments"],
            url=row["url"],
            permalink=row["permalink"],
            created_at=_parse_ts(row["created_at"]),
            inserted_at=_parse_ts(row["inserted_at"]),
            status=ItemStatus(row["status"]),
            processed_at=_parse_ts(row["processed_at"]),
            is_opportunity=None if row["is_opportunity"] is None else bool(row["is_opportunity"]),
            ai_confidence=row["ai_confidence"],
            rejection_reasons=json.loads(row["rejection_reasons"]),
            processing_error=row["processing_error"],
        )

    def _row_to_opportunity(self, row: sqlite3.Row) -> Opportunity:
        delta = json.loads(row["delta_comparison"]) if row["delta_comparison"] else None
        return Opportunity(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            current_solution=row["current_solution"],
            proposed_solution=row["proposed_solution"],
            market_context=row["market_context"],
            implementation_notes=row["implementation_notes"],
            scores=json.loads(row["scores"]),
            reasoning=json.loads(row["reasoning"]),
            overall_score=row["overall_score"],
            viable=bool(row["viable"]),
            market_size=row["market_size"],
            complexity=row["complexity"],
            success_probability=row["success_probability"],
            categories=json.loads(row["categories"]),
            market_validation=MarketValidation(**json.loads(row["market_validation"])),
            delta_comparison=DeltaComparison(**delta) if delta else None,
            channel=row["channel"],
            source_count=row["source_count"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    def _row_to_cluster(self, row: sqlite3.Row) -> DemandCluster:
        return DemandCluster(
            id=row["id"],
            niche=row["niche"],
            demand_signal=row["demand_signal"],
            embedding=json.loads(row["embedding"]),
            occurrence_count=row["occurrence_count"],
            channels=json.loads(row["channels"]),
            last_seen=_parse_ts(row["last_seen"]),
            created_at=_parse_ts(row["created_at"]),
        )

    def close(self):
        self._conn.close()
