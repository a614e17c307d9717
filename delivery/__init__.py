from delivery.output import (
    report_analysis,
    report_clusters,
    report_ideas,
    report_ingestion,
    report_stats,
)

__all__ = ["report_analysis", "report_clusters", "report_ideas", "report_ingestion", "report_stats"]
