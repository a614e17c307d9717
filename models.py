"""
Core data types. No behavior, just shapes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemStatus(Enum):
    UNPROCESSED = "unprocessed"
    PROCESSED = "processed"
    FAILED = "failed"


class RunStatus(Enum):
    OK = "ok"
    BLOCKED = "blocked"


@dataclass
class RawPost:
    """One post exactly as the source API handed it over (pre-filter)."""
    external_id: str
    channel: str
    title: str
    body: str                # empty for link posts
    author: str
    score: int
    upvotes: int
    downvotes: int
    num_comments: int
    url: str
    permalink: str
    created_at: datetime
    stickied: bool = False
    locked: bool = False
    over_18: bool = False
    is_self: bool = True

    def __repr__(self) -> str:
        return f"RawPost({self.channel}/{self.external_id}, {self.title[:40]!r}, score={self.score})"


@dataclass
class SourceItem:
    """A stored post."""
    external_id: str
    channel: str
    title: str
    body: str
    author: str
    score: int = 0
    upvotes: int = 0
    downvotes: int = 0
    num_comments: int = 0
    url: str = ""
    permalink: str = ""
    created_at: datetime = field(default_factory=utcnow)
    inserted_at: datetime = field(default_factory=utcnow)
    status: ItemStatus = ItemStatus.UNPROCESSED
    processed_at: datetime | None = None
    is_opportunity: bool | None = None
    ai_confidence: float | None = None
    rejection_reasons: list[str] = field(default_factory=list)
    processing_error: str | None = None
    id: int | None = None

    @classmethod
    def from_post(cls, post: RawPost) -> "SourceItem":
        return cls(
            external_id=post.external_id,
            channel=post.channel,
            title=post.title,
            body=post.body or "",
            author=post.author,
            score=post.score,
            upvotes=post.upvotes,
            downvotes=post.downvotes,
            num_comments=post.num_comments,
            url=post.url,
            permalink=post.permalink,
            created_at=post.created_at,
        )

    def __repr__(self) -> str:
        return f"SourceItem(#{self.id} {self.channel}/{self.external_id}, {self.status.value})"


@dataclass
class Cursor:
    """Per-channel watermark."""
    channel: str
    last_external_id: str
    last_created_at: datetime
    items_processed: int = 0
    updated_at: datetime | None = None


@dataclass
class MarketValidation:
    score: float = 0.0                       # 0-10
    engagement_level: str = "Unknown"
    problem_frequency: str = "Unknown"
    customer_type: str = "Unknown"
    payment_willingness: str = "Unknown"
    competitive_analysis: str = "Unknown"
    validation_tier: str = "Unknown"

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "engagement_level": self.engagement_level,
            "problem_frequency": self.problem_frequency,
            "customer_type": self.customer_type,
            "payment_willingness": self.payment_willingness,
            "competitive_analysis": self.competitive_analysis,
            "validation_tier": self.validation_tier,
        }


@dataclass
class DeltaComparison:
    """Makeshift (what people do today) vs software, per dimension."""
    makeshift: dict[str, float]
    software: dict[str, float]
    improvement: dict[str, float]
    total_delta: float
    biggest_improvements: list[str] = field(default_factory=list)
    reasons_for_software: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "makeshift": self.makeshift,
            "software": self.software,
            "improvement": self.improvement,
            "total_delta": self.total_delta,
            "biggest_improvements": self.biggest_improvements,
            "reasons_for_software": self.reasons_for_software,
        }


@dataclass
class Opportunity:
    """A scored business opportunity. `id` is None until stored."""
    title: str
    description: str
    proposed_solution: str
    scores: dict[str, float]                 # dimension -> 0-10
    overall_score: float                     # always recomputed locally
    viable: bool
    reasoning: dict[str, str] = field(default_factory=dict)
    current_solution: str = ""
    market_context: str = ""
    implementation_notes: str = ""
    market_size: str = "Unknown"
    complexity: str = "Medium"
    success_probability: str = "Medium"
    categories: dict[str, str] = field(default_factory=dict)
    market_validation: MarketValidation = field(default_factory=MarketValidation)
    delta_comparison: DeltaComparison | None = None
    channel: str = ""
    source_count: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime | None = None
    id: int | None = None

    @property
    def niche(self) -> str:
        return self.categories.get("niche", "") or "Unknown"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "current_solution": self.current_solution,
            "proposed_solution": self.proposed_solution,
            "market_context": self.market_context,
            "implementation_notes": self.implementation_notes,
            "scores": self.scores,
            "reasoning": self.reasoning,
            "overall_score": self.overall_score,
            "viable": self.viable,
            "market_size": self.market_size,
            "complexity": self.complexity,
            "success_probability": self.success_probability,
            "categories": self.categories,
            "market_validation": self.market_validation.to_dict(),
            "delta_comparison": self.delta_comparison.to_dict() if self.delta_comparison else None,
            "channel": self.channel,
            "source_count": self.source_count,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class AnalysisResult:
    """Output of one analysis. A negative result is a result, not an error."""
    is_opportunity: bool
    confidence: float                        # 0-1
    opportunity: Opportunity | None = None
    reasons: list[str] = field(default_factory=list)


@dataclass
class BatchOutcome:
    """Per-item outcome inside a batch analysis."""
    item_id: int
    result: AnalysisResult | None = None
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.result is not None


@dataclass
class DuplicationCheck:
    is_duplicate: bool
    matched_id: int | None = None
    similarity: float | None = None
    reason: str = ""


@dataclass
class DemandSignal:
    """A short phrase expressing an unmet need, pulled out of a post."""
    text: str
    niche: str
    channel: str
    item_id: int | None = None
    author: str = ""
    engagement: int = 0
    seen_at: datetime = field(default_factory=utcnow)


@dataclass
class DemandCluster:
    niche: str
    demand_signal: str
    embedding: list[float]
    occurrence_count: int = 1
    channels: list[str] = field(default_factory=list)
    last_seen: datetime = field(default_factory=utcnow)
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "niche": self.niche,
            "demand_signal": self.demand_signal,
            "occurrence_count": self.occurrence_count,
            "channels": self.channels,
            "last_seen": self.last_seen.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ClusterResult:
    is_new_cluster: bool
    cluster_id: int
    similarity: float | None = None


@dataclass
class IdeaGroup:
    """Stored opportunities that describe the same idea, with their combined demand."""
    title: str
    description: str
    opportunities: list[Opportunity]
    source_count: int                        # sum over the member opportunities
    avg_score: float
    viable_count: int
    channels: list[str]
    first_seen: datetime
    last_seen: datetime
    trending_score: float                    # 0-100

    @property
    def rank(self) -> float:
        return self.trending_score * 0.6 + self.source_count * 0.4

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "opportunity_ids": [o.id for o in self.opportunities],
            "source_count": self.source_count,
            "avg_score": round(self.avg_score, 2),
            "viable_count": self.viable_count,
            "channels": self.channels,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "trending_score": round(self.trending_score, 2),
        }


@dataclass
class IngestionResult:
    """Summary of one ingestion run for one channel."""
    channel: str
    status: RunStatus = RunStatus.OK
    fetched: int = 0
    after_cursor: int = 0
    filtered_out: int = 0
    new_item_ids: list[int] = field(default_factory=list)
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    cursor_advanced: bool = False
    backoff_seconds: int | None = None
    skip_reasons: dict[str, int] = field(default_factory=dict)
    message: str = ""

    @property
    def new_items(self) -> int:
        return len(self.new_item_ids)


@dataclass
class AnalysisRunResult:
    """Summary of one analysis pass over a set of items."""
    analyzed: int = 0
    created: int = 0
    merged: int = 0
    rejected: int = 0
    failed: int = 0
    already_processed: int = 0
    signals: int = 0
    new_clusters: int = 0
    errors: list[tuple[int, str]] = field(default_factory=list)
