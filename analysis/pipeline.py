"""
Analysis pipeline: analyzed item -> opportunity store + demand clusters.

Units of work arrive at-least-once, so every step re-checks state:
- an item that already has a terminal outcome is skipped;
- an item already linked to an opportunity never creates another one;
- the terminal mark is a conditional update, and only the caller that
  wins it goes on to cluster the item's demand signals;
- only items that produced or joined an opportunity are clustered.
"""

import logging
import sqlite3
from collections import defaultdict

from analysis.analyzer import Analyzer
from clustering.engine import ClusteringEngine
from clustering.signals import extract_demand_signals
from config.settings import Config
from dedup.engine import DedupEngine
from errors import ConfigurationError, FatalError, SchemaViolationError, ScoutError
from models import AnalysisResult, AnalysisRunResult, ItemStatus, SourceItem
from storage.db import Storage

log = logging.getLogger(__name__)


class AnalysisPipeline:
    def __init__(
        self,
        storage: Storage,
        analyzer: Analyzer,
        dedup: DedupEngine,
        config: Config,
        clusterer: ClusteringEngine | None = None,
    ):
        self.storage = storage
        self.analyzer = analyzer
        self.dedup = dedup
        self.config = config
        self.clusterer = clusterer

    def process_item(self, item_id: int) -> AnalysisRunResult:
        return self.process_items([item_id], use_batch=False)

    def process_items(
        self,
        item_ids: list[int],
        use_batch: bool = True,
        batch_size: int | None = None,
    ) -> AnalysisRunResult:
        """
        Analyze the given items and record one terminal outcome per item.
        One item's failure never fails its siblings; failures are
        collected in the returned run result.
        """
        run = AnalysisRunResult()
        pending: list[SourceItem] = []
        for item_id in item_ids:
            item = self.storage.get_item(item_id)
            if item is None:
                log.warning(f"Item #{item_id} not found, skipping")
                continue
            if self._is_terminal(item):
                run.already_processed += 1
                continue
            pending.append(item)

        if not pending:
            return run

        if use_batch:
            outcomes = self.analyzer.analyze_batch(
                pending, batch_size=batch_size or self.config.analysis_batch_size,
            )
        else:
            outcomes = [self.analyzer.analyze_one(item) for item in pending]

        by_id = {item.id: item for item in pending}
        for outcome in outcomes:
            item = by_id[outcome.item_id]
            if outcome.error is not None:
                self._record_failure(item, outcome.error, run)
                continue
            try:
                self._apply(item, outcome.result, run)
            except ConfigurationError:
                raise
            except (ScoutError, sqlite3.Error) as e:
                log.error(f"Storing analysis for #{item.id} failed: {e}")
                run.failed += 1
                run.errors.append((item.id, str(e)))

        log.info(
            f"Analysis: {run.analyzed} analyzed, {run.created} created, {run.merged} merged, "
            f"{run.rejected} rejected, {run.failed} failed, {run.already_processed} already done"
        )
        return run

    def process_unprocessed(
        self,
        limit: int | None = None,
        use_batch: bool = True,
        batch_size: int | None = None,
    ) -> AnalysisRunResult:
        """Sweep items with no outcome yet, grouped by channel so batches share heuristics."""
        items = self.storage.get_unprocessed_items(limit=limit or self.config.analysis_limit)
        if not items:
            log.info("No unprocessed items")
            return AnalysisRunResult()

        by_channel: dict[str, list[int]] = defaultdict(list)
        for item in items:
            by_channel[item.channel].append(item.id)

        total = AnalysisRunResult()
        for channel, ids in by_channel.items():
            log.info(f"Analyzing {len(ids)} unprocessed items from r/{channel}")
            merge_runs(total, self.process_items(ids, use_batch=use_batch, batch_size=batch_size))
        return total

    # ── Internals ──

    @staticmethod
    def _is_terminal(item: SourceItem) -> bool:
        return item.processed_at is not None or item.status == ItemStatus.FAILED

    def _apply(self, item: SourceItem, result: AnalysisResult, run: AnalysisRunResult):
        current = self.storage.get_item(item.id)
        if current is None or self._is_terminal(current):
            run.already_processed += 1
            return

        run.analyzed += 1
        opportunity_id = None
        confidence = min(max(result.confidence, 0.0), 1.0)

        if result.is_opportunity and result.opportunity:
            if self.storage.is_item_linked(item.id):
                log.info(f"#{item.id} already linked to an opportunity; not creating another")
            else:
                opportunity_id = self._store_opportunity(item, result, confidence, run)
        else:
            run.rejected += 1

        won = self.storage.mark_item_processed(
            item.id, result.is_opportunity, confidence, result.reasons,
        )
        if not won:
            log.info(f"#{item.id} was finished by another worker")
            return

        if self.clusterer is not None and opportunity_id is not None:
            self._cluster(item, opportunity_id, run)

    def _store_opportunity(
        self, item: SourceItem, result: AnalysisResult, confidence: float, run: AnalysisRunResult,
    ) -> int:
        opp = result.opportunity
        opp.channel = item.channel
        check = self.dedup.check_opportunity(opp)

        if not check.is_duplicate:
            opp_id = self.storage.create_opportunity(opp, item.id, confidence=confidence)
            run.created += 1
            log.info(f"#{item.id} -> new opportunity #{opp_id} {opp.title!r}")
            return opp_id

        # Only a near-certain re-analysis may replace the stored scores
        override = opp if confidence > self.config.score_override_confidence else None
        linked = self.storage.merge_opportunity(
            check.matched_id, item.id, confidence=confidence, override=override,
        )
        if linked:
            run.merged += 1
            log.info(
                f"#{item.id} -> merged into opportunity #{check.matched_id} "
                f"({check.reason}, sim={check.similarity:.2f}"
                f"{', scores replaced' if override else ''})"
            )
        return check.matched_id

    def _cluster(self, item: SourceItem, opportunity_id: int, run: AnalysisRunResult):
        for signal in extract_demand_signals(item):
            try:
                outcome = self.clusterer.process_signal(signal, opportunity_id=opportunity_id)
            except ConfigurationError:
                raise
            except (ScoutError, ValueError, sqlite3.Error) as e:
                log.warning(f"Clustering signal {signal.text!r} from #{item.id} failed: {e}")
                continue
            run.signals += 1
            if outcome.is_new_cluster:
                run.new_clusters += 1

    def _record_failure(self, item: SourceItem, error: Exception, run: AnalysisRunResult):
        run.failed += 1
        run.errors.append((item.id, str(error)))

        if isinstance(error, FatalError):
            reasons = list(error.errors) if isinstance(error, SchemaViolationError) and error.errors else [str(error)]
            self.storage.mark_item_failed(item.id, f"{type(error).__name__}: {error}", reasons)
            log.error(f"#{item.id} failed permanently: {error}")
        else:
            log.warning(f"#{item.id} left unprocessed for retry: {error}")


def merge_runs(total: AnalysisRunResult, part: AnalysisRunResult):
    total.analyzed += part.analyzed
    total.created += part.created
    total.merged += part.merged
    total.rejected += part.rejected
    total.failed += part.failed
    total.already_processed += part.already_processed
    total.signals += part.signals
    total.new_clusters += part.new_clusters
    total.errors.extend(part.errors)
