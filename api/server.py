"""
Read-only API server over the delta-scout database.
Reads from the existing SQLite database. Never writes.

Run: python main.py serve
"""

import json
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

from flask import Flask, jsonify, request

MAX_LIMIT = 200

_OPPORTUNITY_JSON_FIELDS = ("scores", "reasoning", "categories", "market_validation", "delta_comparison")


def _parse_int(value: str | None, default: int, name: str) -> tuple[int, str | None]:
    """Parse an integer query param. Returns (value, error_message)."""
    if value is None:
        return default, None
    try:
        return int(value), None
    except (ValueError, TypeError):
        return default, f"Invalid value for '{name}': expected integer, got '{value}'"


def _parse_float(value: str | None, default: float, name: str) -> tuple[float, str | None]:
    if value is None:
        return default, None
    try:
        return float(value), None
    except (ValueError, TypeError):
        return default, f"Invalid value for '{name}': expected number, got '{value}'"


def _parse_bool(value: str | None, name: str) -> tuple[bool | None, str | None]:
    if value is None:
        return None, None
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes"):
        return True, None
    if lowered in ("0", "false", "no"):
        return False, None
    return None, f"Invalid value for '{name}': expected true/false, got '{value}'"


def _opportunity_row(row: sqlite3.Row) -> dict:
    data = dict(row)
    for key in _OPPORTUNITY_JSON_FIELDS:
        if data.get(key) is not None:
            data[key] = json.loads(data[key])
    data["viable"] = bool(data["viable"])
    return data


def _cluster_row(row: sqlite3.Row) -> dict:
    return {
        "id": row["id"],
        "niche": row["niche"],
        "demand_signal": row["demand_signal"],
        "occurrence_count": row["occurrence_count"],
        "channels": json.loads(row["channels"]),
        "last_seen": row["last_seen"],
        "created_at": row["created_at"],
    }


def create_app(db_path: Path):
    app = Flask(__name__)

    # ── CORS for development ──
    @app.after_request
    def add_cors(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        response.headers["Access-Control-Allow-Methods"] = "GET, OPTIONS"
        return response

    def get_db():
        """Open a read-only connection."""
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
        conn.row_factory = sqlite3.Row
        return conn

    # ── Opportunity Routes ──

    @app.route("/api/opportunities")
    def list_opportunities():
        """List opportunities, best first, with filters."""
        min_score, err = _parse_float(request.args.get("min_score"), 0.0, "min_score")
        if err:
            return jsonify({"error": err}), 400
        if not (0 <= min_score <= 10):
            return jsonify({"error": "min_score must be between 0 and 10"}), 400

        viable, err = _parse_bool(request.args.get("viable"), "viable")
        if err:
            return jsonify({"error": err}), 400

        limit_raw, err = _parse_int(request.args.get("limit"), 50, "limit")
        if err:
            return jsonify({"error": err}), 400
        limit = min(limit_raw, MAX_LIMIT)

        offset, err = _parse_int(request.args.get("offset"), 0, "offset")
        if err:
            return jsonify({"error": err}), 400
        if limit < 1 or offset < 0:
            return jsonify({"error": "limit must be positive and offset non-negative"}), 400

        niche = request.args.get("niche")

        conn = get_db()
        try:
            conditions = ["overall_score >= ?"]
            params: list = [min_score]

            if viable is not None:
                conditions.append("viable = ?")
                params.append(1 if viable else 0)
            if niche:
                conditions.append("LOWER(niche) = ?")
                params.append(niche.lower())

            where = " AND ".join(conditions)

            total = conn.execute(
                f"SELECT COUNT(*) as cnt FROM opportunities WHERE {where}", params
            ).fetchone()["cnt"]

            rows = conn.execute(
                f"SELECT * FROM opportunities WHERE {where} "
                f"ORDER BY overall_score DESC, source_count DESC, created_at DESC "
                f"LIMIT ? OFFSET ?",
                params + [limit, offset],
            ).fetchall()

            return jsonify({
                "opportunities": [_opportunity_row(r) for r in rows],
                "total": total,
                "limit": limit,
                "offset": offset,
            })
        finally:
            conn.close()

    @app.route("/api/opportunities/<int:opportunity_id>")
    def get_opportunity(opportunity_id):
        """One opportunity with the posts that support it."""
        conn = get_db()
        try:
            row = conn.execute(
                "SELECT * FROM opportunities WHERE id = ?", (opportunity_id,)
            ).fetchone()
            if not row:
                return jsonify({"error": "Opportunity not found"}), 404

            source_rows = conn.execute(
                "SELECT s.link_type, s.confidence, i.id AS item_id, i.channel, "
                "i.external_id, i.title, i.author, i.score, i.num_comments, i.permalink "
                "FROM opportunity_sources s JOIN source_items i ON i.id = s.item_id "
                "WHERE s.opportunity_id = ? ORDER BY s.created_at ASC",
                (opportunity_id,),
            ).fetchall()

            data = _opportunity_row(row)
            data["sources"] = [dict(r) for r in source_rows]
            return jsonify(data)
        finally:
            conn.close()

    # ── Cluster Routes ──

    @app.route("/api/clusters")
    def list_clusters():
        """Demand clusters, most frequent first. `days` restricts to recently seen."""
        limit_raw, err = _parse_int(request.args.get("limit"), 20, "limit")
        if err:
            return jsonify({"error": err}), 400
        limit = min(limit_raw, MAX_LIMIT)

        days, err = _parse_int(request.args.get("days"), 0, "days")
        if err:
            return jsonify({"error": err}), 400
        if days < 0:
            return jsonify({"error": "days must be non-negative"}), 400

        niche = request.args.get("niche")

        conn = get_db()
        try:
            conditions = ["1 = 1"]
            params: list = []
            if niche:
                conditions.append("LOWER(niche) = ?")
                params.append(niche.lower())
            if days:
                since = datetime.now(timezone.utc) - timedelta(days=days)
                conditions.append("last_seen >= ?")
                params.append(since.isoformat(timespec="microseconds"))

            rows = conn.execute(
                f"SELECT * FROM demand_clusters WHERE {' AND '.join(conditions)} "
                f"ORDER BY occurrence_count DESC, last_seen DESC LIMIT ?",
                params + [limit],
            ).fetchall()
            return jsonify({"clusters": [_cluster_row(r) for r in rows]})
        finally:
            conn.close()

    @app.route("/api/stats")
    def get_stats():
        conn = get_db()
        try:
            def count(sql: str) -> int:
                return conn.execute(sql).fetchone()[0]

            by_channel = {}
            for row in conn.execute(
                "SELECT channel, COUNT(*) as cnt FROM source_items GROUP BY channel"
            ):
                by_channel[row["channel"]] = row["cnt"]

            by_niche = {}
            for row in conn.execute(
                "SELECT niche, COUNT(*) as cnt FROM opportunities GROUP BY niche"
            ):
                by_niche[row["niche"]] = row["cnt"]

            latest = conn.execute("SELECT MAX(inserted_at) FROM source_items").fetchone()[0]

            return jsonify({
                "total_items": count("SELECT COUNT(*) FROM source_items"),
                "unprocessed_items": count(
                    "SELECT COUNT(*) FROM source_items "
                    "WHERE processed_at IS NULL AND processing_error IS NULL"
                ),
                "failed_items": count("SELECT COUNT(*) FROM source_items WHERE status = 'failed'"),
                "by_channel": by_channel,
                "total_opportunities": count("SELECT COUNT(*) FROM opportunities"),
                "viable_opportunities": count("SELECT COUNT(*) FROM opportunities WHERE viable = 1"),
                "opportunities_by_niche": by_niche,
                "total_clusters": count("SELECT COUNT(*) FROM demand_clusters"),
                "latest_collection": latest,
            })
        finally:
            conn.close()

    @app.route("/")
    def index():
        return jsonify({
            "message": "delta-scout API",
            "endpoints": [
                "/api/opportunities",
                "/api/opportunities/<id>",
                "/api/clusters",
                "/api/stats",
            ],
        })

    return app
