"""
Output delivery. CLI (stdout) run reports.

CLI is the primary interface; the API serves everything else.
"""

from models import AnalysisRunResult, DemandCluster, IdeaGroup, IngestionResult, RunStatus

SEPARATOR = "─" * 60


def report_ingestion(results: list[IngestionResult]):
    """One line per channel plus a total."""
    print(f"\n{SEPARATOR}")
    print("  INGESTION")
    print(SEPARATOR)
    total_new = 0
    for r in results:
        if r.status == RunStatus.BLOCKED:
            hours = (r.backoff_seconds or 0) / 3600
            print(f"  r/{r.channel:<24} BLOCKED (back off {hours:.0f}h): {r.message}")
            continue
        total_new += r.new_items
        print(
            f"  r/{r.channel:<24} fetched {r.fetched:>3}  new {r.new_items:>3}  "
            f"updated {r.updated:>3}  filtered {r.filtered_out:>3}  "
            f"skipped {r.skipped:>3}  failed {r.failed:>3}"
        )
        for reason, count in sorted(r.skip_reasons.items()):
            print(f"      {reason}: {count}")
    print(SEPARATOR)
    print(f"  {total_new} new items across {len(results)} channels")
    print(SEPARATOR)


def report_analysis(run: AnalysisRunResult):
    print(f"\n{SEPARATOR}")
    print("  ANALYSIS")
    print(SEPARATOR)
    print(f"  analyzed           {run.analyzed}")
    print(f"  new opportunities  {run.created}")
    print(f"  merged             {run.merged}")
    print(f"  not opportunities  {run.rejected}")
    print(f"  failed             {run.failed}")
    print(f"  already processed  {run.already_processed}")
    print(f"  demand signals     {run.signals} ({run.new_clusters} new clusters)")
    if run.errors:
        print("  errors:")
        for item_id, message in run.errors[:10]:
            print(f"    #{item_id}: {message[:120]}")
        if len(run.errors) > 10:
            print(f"    ... and {len(run.errors) - 10} more")
    print(SEPARATOR)


def report_clusters(clusters: list[DemandCluster], title: str = "TOP DEMAND CLUSTERS"):
    print(f"\n{SEPARATOR}")
    print(f"  {title}")
    print(SEPARATOR)
    if not clusters:
        print("  (none yet)")
    for c in clusters:
        channels = ", ".join(c.channels[:3])
        print(f"  {c.occurrence_count:>4}x  [{c.niche}] {c.demand_signal[:60]}  ({channels})")
    print(SEPARATOR)


def report_stats(stats: dict):
    print(f"Items: {stats['total_items']} "
          f"({stats['unprocessed_items']} unprocessed, {stats['processed_items']} processed, "
          f"{stats['failed_items']} failed)")
    for channel, count in sorted(stats["by_channel"].items()):
        print(f"  r/{channel}: {count}")
    print(f"Opportunities: {stats['total_opportunities']} "
          f"({stats['viable_opportunities']} viable, "
          f"{stats['multi_source_opportunities']} multi-source)")
    print(f"Source links: {stats['total_source_links']} "
          f"(avg {stats['avg_sources_per_opportunity']} per opportunity)")
    print(f"Demand clusters: {stats['total_clusters']}")


def report_ideas(groups: list[IdeaGroup], summary: dict):
    print(f"\n{SEPARATOR}")
    print("  TOP REQUESTED IDEAS")
    print(SEPARATOR)
    if not groups:
        print("  (no idea is backed by enough sources yet)")
    for rank, g in enumerate(groups, start=1):
        print(f"  {rank:>2}. {g.title}")
        print(f"      {g.source_count} sources, {len(g.opportunities)} opportunities, "
              f"avg score {g.avg_score:.2f}, {g.viable_count} viable, "
              f"trending {g.trending_score:.0f}")
        if g.channels:
            print(f"      channels: {', '.join(g.channels)}")
        for opp in g.opportunities[:3]:
            print(f"      - #{opp.id} {opp.title[:70]} ({opp.overall_score:.2f})")
    print(SEPARATOR)
    print(f"  {summary['total_groups']} groups over {summary['total_opportunities']} opportunities "
          f"(avg size {summary['avg_group_size']}), "
          f"{summary['cross_channel_groups']} cross-channel, "
          f"{summary['high_viability_groups']} mostly viable")
    for niche in summary["top_niches"][:5]:
        print(f"    {niche['niche']}: {niche['count']} (avg {niche['avg_score']})")
    print(SEPARATOR)
