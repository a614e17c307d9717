#!/usr/bin/env python3
"""
delta-scout: business opportunity discovery from Reddit discussions.

Usage:
    python main.py collect              # Fetch new posts from every configured channel
    python main.py collect --channel X  # Fetch one channel (--backfill ignores the cursor)
    python main.py analyze              # Analyze unprocessed items (--batch for batch mode)
    python main.py run                  # collect + analyze what was queued (for cron)
    python main.py reap                 # Drop stale, rarely-seen demand clusters
    python main.py cleanup              # Remove duplicate posts left by older runs
    python main.py stats                # Show store stats
    python main.py ideas                # Group similar opportunities, rank the most requested
    python main.py serve                # Start the read-only API
"""

import argparse
import logging
import sys
from pathlib import Path

from analysis import Analyzer, AnalysisPipeline, merge_runs
from clustering import ClusteringEngine
from collectors import RedditClient
from config import load_config
from dedup import DedupEngine
from delivery import report_analysis, report_clusters, report_ideas, report_ingestion, report_stats
from errors import ConfigurationError, ScoutError
from ingestion import IngestionPipeline, InMemoryQueue
from llm import create_embedder, create_provider
from models import AnalysisRunResult, IngestionResult
from retry import run_with_retry
from storage import Storage

log = logging.getLogger("scout")


def setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _retrying(config, fn, label: str):
    return run_with_retry(
        fn,
        max_attempts=config.retry_max_attempts,
        base_delay=config.retry_base_delay,
        max_delay=config.retry_max_delay,
        label=label,
    )


def build_clusterer(config, storage, with_embedder: bool = False) -> ClusteringEngine:
    """Read and maintenance calls need no embedder; clustering and grouping do."""
    return ClusteringEngine(
        storage,
        create_embedder(config) if with_embedder else None,
        threshold=config.cluster_similarity_threshold,
        top_k=config.cluster_top_k,
    )


def build_analysis(config, storage) -> AnalysisPipeline:
    analyzer = Analyzer(create_provider(config), viability_threshold=config.viability_threshold)
    clusterer = None
    if config.openai_api_key:
        clusterer = build_clusterer(config, storage, with_embedder=True)
    else:
        log.warning("OPENAI_API_KEY not set: demand clustering disabled")
    return AnalysisPipeline(storage, analyzer, DedupEngine(storage, config), config, clusterer)


def cmd_collect(config, storage, queue, channels=None, sort=None, limit=None, backfill=False):
    """Run ingestion for each channel. Returns the per-channel results."""
    source = RedditClient(config)
    pipeline = IngestionPipeline(storage, source, DedupEngine(storage, config), queue, config)

    results: list[IngestionResult] = []
    for channel in channels or config.channels:
        try:
            result = _retrying(
                config,
                lambda: pipeline.run(channel, sort=sort, limit=limit, backfill=backfill),
                label=f"collect r/{channel}",
            )
        except ConfigurationError:
            raise
        except ScoutError as e:
            log.error(f"Collecting r/{channel} failed: {e}")
            continue
        results.append(result)

    report_ingestion(results)
    return results


def cmd_analyze(config, storage, limit=None, use_batch=False):
    """Sweep every unprocessed item through the analysis pipeline."""
    pipeline = build_analysis(config, storage)
    run = pipeline.process_unprocessed(limit=limit, use_batch=use_batch)
    report_analysis(run)
    return run


def cmd_run(config, storage):
    """Full pipeline: collect, then analyze what collection queued. Meant for cron."""
    queue = InMemoryQueue()
    results = cmd_collect(config, storage, queue)
    if not any(r.new_items for r in results):
        print("Nothing new to analyze.")
        return

    pipeline = build_analysis(config, storage)
    total = AnalysisRunResult()
    for batch in queue.drain():
        try:
            run = _retrying(
                config,
                lambda: pipeline.process_items(batch),
                label=f"analyze {len(batch)} items",
            )
        except ConfigurationError:
            raise
        except ScoutError as e:
            # Items stay unprocessed; the next `analyze` sweep picks them up
            log.error(f"Analysis batch failed: {e}")
            continue
        merge_runs(total, run)

    report_analysis(total)
    if pipeline.clusterer:
        report_clusters(pipeline.clusterer.top_clusters(limit=10))


def cmd_reap(config, storage):
    """Delete clusters not seen recently that never gathered enough occurrences."""
    removed = build_clusterer(config, storage).reap_stale(
        days=config.cluster_stale_days, min_occurrences=config.cluster_min_occurrences,
    )
    print(f"Reaped {removed} stale clusters "
          f"(unseen for {config.cluster_stale_days} days, < {config.cluster_min_occurrences} occurrences)")


def cmd_cleanup(config, storage):
    removed = storage.cleanup_duplicate_items()
    print(f"Removed {removed['items_removed']} duplicate items "
          f"and {removed['opportunities_removed']} orphaned opportunities")


def cmd_stats(config, storage, niche=None, days=7):
    """Print store stats, then the top, trending (or one niche's) demand clusters."""
    clusterer = build_clusterer(config, storage)
    report_stats(storage.get_stats())
    if niche:
        report_clusters(clusterer.clusters_by_niche(niche, limit=20), title=f"CLUSTERS IN {niche.upper()}")
        return
    report_clusters(clusterer.top_clusters(limit=10))
    report_clusters(clusterer.trending_clusters(days=days, limit=10), title=f"TRENDING ({days} DAYS)")


def cmd_ideas(config, storage, limit=20):
    """Group similar opportunities and rank the most-requested ideas."""
    clusterer = build_clusterer(config, storage, with_embedder=True)
    groups, summary = _retrying(
        config,
        lambda: clusterer.top_requested_ideas(
            limit=limit,
            min_sources=config.idea_min_sources,
            threshold=config.idea_similarity_threshold,
            candidates=config.idea_candidate_limit,
        ),
        label="group ideas",
    )
    report_ideas(groups, summary)
    return groups, summary


def cmd_serve(config, args):
    """Start the read-only API server."""
    from api.server import create_app

    if not Path(config.db_path).exists():
        print(f"No database at {config.db_path}. Run 'scout collect' first.", file=sys.stderr)
        sys.exit(1)

    app = create_app(db_path=config.db_path)
    print(f"Starting server at http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.verbose)


def cli():
    parser = argparse.ArgumentParser(
        prog="scout",
        description="Business opportunity discovery from community discussions",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    sub = parser.add_subparsers(dest="command", help="Command to run")

    collect_parser = sub.add_parser("collect", parents=[common], help="Fetch new posts")
    collect_parser.add_argument(
        "--channel", action="append", default=None,
        help="Subreddit to fetch (repeatable). Defaults to every configured channel.",
    )
    collect_parser.add_argument("--sort", choices=["hot", "new", "top", "rising"], default=None)
    collect_parser.add_argument("--limit", type=int, default=None, help="Posts per page (max 100)")
    collect_parser.add_argument(
        "--backfill", action="store_true",
        help="Ignore the channel cursor and leave it untouched",
    )

    analyze_parser = sub.add_parser("analyze", parents=[common], help="Analyze unprocessed items")
    analyze_parser.add_argument("--limit", type=int, default=None, help="Max items to analyze")
    analyze_parser.add_argument(
        "--batch", action="store_true",
        help="Send several posts per model request",
    )

    sub.add_parser("run", parents=[common], help="Collect + analyze (for cron)")
    sub.add_parser("reap", parents=[common], help="Remove stale demand clusters")
    sub.add_parser("cleanup", parents=[common], help="Remove duplicate posts")
    stats_parser = sub.add_parser("stats", parents=[common], help="Show store stats and demand clusters")
    stats_parser.add_argument("--niche", default=None, help="Only show clusters in this niche")
    stats_parser.add_argument("--days", type=int, default=7, help="Trending window in days (default 7)")

    ideas_parser = sub.add_parser("ideas", parents=[common], help="Rank the most-requested ideas")
    ideas_parser.add_argument("--limit", type=int, default=20, help="Max ideas to show")

    serve_parser = sub.add_parser("serve", parents=[common], help="Start the read-only API")
    serve_parser.add_argument("--port", type=int, default=5002, help="Port (default 5002)")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Host (default 127.0.0.1)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)
    config = load_config()

    # serve opens its own read-only connections
    if args.command == "serve":
        cmd_serve(config, args)
        return

    storage = Storage(config.db_path)

    try:
        match args.command:
            case "collect":
                cmd_collect(
                    config, storage, InMemoryQueue(),
                    channels=args.channel, sort=args.sort,
                    limit=args.limit, backfill=args.backfill,
                )
            case "analyze":
                cmd_analyze(config, storage, limit=args.limit, use_batch=args.batch)
            case "run":
                cmd_run(config, storage)
            case "reap":
                cmd_reap(config, storage)
            case "cleanup":
                cmd_cleanup(config, storage)
            case "stats":
                cmd_stats(config, storage, niche=args.niche, days=args.days)
            case "ideas":
                cmd_ideas(config, storage, limit=args.limit)
            case _:
                parser.print_help()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)
    finally:
        storage.close()


if __name__ == "__main__":
    cli()
