"""
Incremental semantic clustering of demand signals.

Each signal is embedded and compared against the top-K most frequent
clusters in its niche only. Scoping by niche keeps the comparison set
small and the cost predictable; a near-identical signal filed under a
different niche will not be matched. That is the intended policy.

The same engine groups stored opportunities into ideas (see
clustering.ideas) and runs the stale-cluster sweep. Read and
maintenance calls work without an embedding provider.
"""

import logging
from datetime import timedelta

from clustering.ideas import (
    IDEA_SIMILARITY_THRESHOLD,
    MIN_SOURCES,
    build_group,
    group_by_similarity,
    opportunity_text,
    summarize,
)
from clustering.vectors import cosine_similarity
from errors import ConfigurationError, EmbeddingDimensionError
from llm.embeddings import EmbeddingProvider
from models import ClusterResult, DemandCluster, DemandSignal, IdeaGroup, utcnow
from storage.db import Storage

log = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.85
TOP_K = 100
STALE_DAYS = 60
MIN_OCCURRENCES = 3


def best_match(
    embedding: list[float], clusters: list[DemandCluster],
) -> tuple[DemandCluster, float] | None:
    """Highest-similarity cluster, or None for an empty list. Ties keep the first (most frequent)."""
    best: tuple[DemandCluster, float] | None = None
    for cluster in clusters:
        sim = cosine_similarity(embedding, cluster.embedding)
        if best is None or sim > best[1]:
            best = (cluster, sim)
    return best


class ClusteringEngine:
    def __init__(
        self,
        storage: Storage,
        embedder: EmbeddingProvider | None = None,
        threshold: float = SIMILARITY_THRESHOLD,
        top_k: int = TOP_K,
    ):
        self.storage = storage
        self.embedder = embedder
        self.threshold = threshold
        self.top_k = top_k

    def process_signal(self, signal: DemandSignal, opportunity_id: int | None = None) -> ClusterResult:
        """
        Fold one signal into the cluster store.

        Augments the best cluster in the signal's niche when similarity
        reaches the threshold, otherwise seeds a new cluster. Links
        `opportunity_id` to whichever cluster is used.
        """
        embedding = self._embedder().embed(signal.text)
        self._check_dimension(embedding)

        candidates = self.storage.clusters_for_niche(signal.niche, limit=self.top_k)
        match = best_match(embedding, candidates)

        if match and match[1] >= self.threshold:
            cluster, similarity = match
            self.storage.touch_cluster(
                cluster.id, signal.channel, signal.seen_at, opportunity_id=opportunity_id,
            )
            log.debug(
                f"Signal {signal.text!r} -> cluster #{cluster.id} "
                f"({cluster.demand_signal!r}, sim={similarity:.3f})"
            )
            return ClusterResult(is_new_cluster=False, cluster_id=cluster.id, similarity=similarity)

        cluster = DemandCluster(
            niche=signal.niche,
            demand_signal=signal.text,
            embedding=embedding,
            channels=[signal.channel] if signal.channel else [],
            last_seen=signal.seen_at,
        )
        cluster_id = self.storage.create_cluster(cluster, opportunity_id=opportunity_id)
        log.debug(f"Signal {signal.text!r} -> new cluster #{cluster_id} in {signal.niche!r}")
        return ClusterResult(
            is_new_cluster=True,
            cluster_id=cluster_id,
            similarity=match[1] if match else None,
        )

    def _check_dimension(self, embedding: list[float]):
        expected = self.storage.embedding_dimension()
        if expected is not None and len(embedding) != expected:
            raise EmbeddingDimensionError(
                f"Embedding has {len(embedding)} dims, store holds {expected}-dim vectors "
                f"({self._embedder().name()}). Changing embedding models needs a fresh cluster table."
            )

    def _embedder(self) -> EmbeddingProvider:
        if self.embedder is None:
            raise ConfigurationError("No embedding provider configured (set OPENAI_API_KEY)")
        return self.embedder

    # ── Idea grouping ──

    def group_opportunities(
        self,
        threshold: float = IDEA_SIMILARITY_THRESHOLD,
        candidates: int = 200,
    ) -> list[IdeaGroup]:
        """
        Group the `candidates` best-scored opportunities by embedding
        similarity. Best ranked first (trending score and combined sources).
        """
        opportunities = self.storage.top_opportunities(limit=candidates)
        if len(opportunities) < 2:
            return []

        embedder = self._embedder()
        embeddings = {opp.id: embedder.embed(opportunity_text(opp)) for opp in opportunities}
        dims = {len(v) for v in embeddings.values()}
        if len(dims) > 1:
            raise EmbeddingDimensionError(f"{embedder.name()} returned vectors of sizes {sorted(dims)}")

        now = utcnow()
        groups = []
        for members in group_by_similarity(opportunities, embeddings, threshold):
            items = {opp.id: self.storage.opportunity_items(opp.id) for opp in members}
            groups.append(build_group(members, items, now))
        groups.sort(key=lambda g: g.rank, reverse=True)

        log.info(
            f"Grouped {len(opportunities)} opportunities into {len(groups)} ideas "
            f"(threshold {threshold})"
        )
        return groups

    def top_requested_ideas(
        self,
        limit: int = 20,
        min_sources: int = MIN_SOURCES,
        threshold: float = IDEA_SIMILARITY_THRESHOLD,
        candidates: int = 200,
    ) -> tuple[list[IdeaGroup], dict]:
        """
        The most-requested ideas: groups backed by at least `min_sources`
        posts, in rank order, plus a summary over every group found.
        """
        groups = self.group_opportunities(threshold=threshold, candidates=candidates)
        top = [g for g in groups if g.source_count >= min_sources][:limit]
        return top, summarize(groups)

    # ── Maintenance ──

    def reap_stale(self, days: int = STALE_DAYS, min_occurrences: int = MIN_OCCURRENCES) -> int:
        """Drop clusters not seen for `days` AND seen fewer than `min_occurrences` times."""
        cutoff = utcnow() - timedelta(days=days)
        removed = self.storage.reap_stale_clusters(cutoff, min_occurrences)
        log.info(f"Reaped {removed} stale clusters (last seen before {cutoff:%Y-%m-%d}, <{min_occurrences} hits)")
        return removed

    # ── Read helpers ──

    def top_clusters(self, limit: int = 20) -> list[DemandCluster]:
        return self.storage.top_clusters(limit=limit)

    def clusters_by_niche(self, niche: str, limit: int = 10) -> list[DemandCluster]:
        return self.storage.clusters_for_niche(niche, limit=limit)

    def trending_clusters(self, days: int = 7, limit: int = 20) -> list[DemandCluster]:
        return self.storage.trending_clusters(days=days, limit=limit)
