"""
Idea grouping: stored opportunities that describe the same idea.

Dedup merges near-identical write-ups at analysis time. Grouping is a
read-time pass over what survived: opportunities whose embeddings sit
close together are reported as one idea, ranked by combined demand
(summed source counts) and a recency/engagement trending score.

The functions here are pure. `ClusteringEngine.group_opportunities`
supplies embeddings and linked items from storage.
"""

from collections import Counter
from datetime import datetime

from clustering.vectors import cosine_similarity
from models import IdeaGroup, Opportunity, SourceItem, utcnow

IDEA_SIMILARITY_THRESHOLD = 0.80
MIN_GROUP_SIZE = 2
MIN_SOURCES = 3

MIN_TITLE_WORD_LENGTH = 4
MIN_THEME_LENGTH = 21


def opportunity_text(opp: Opportunity) -> str:
    return f"{opp.title} {opp.description} {opp.proposed_solution}"


def group_by_similarity(
    opportunities: list[Opportunity],
    embeddings: dict[int, list[float]],
    threshold: float = IDEA_SIMILARITY_THRESHOLD,
) -> list[list[Opportunity]]:
    """
    Greedy single pass. Each not-yet-grouped opportunity seeds a group
    and pulls in every later ungrouped one at or above `threshold` to
    the seed. Groups smaller than MIN_GROUP_SIZE are dropped.
    Input order decides the seeds, so pass the best-scored first.
    """
    grouped: set[int] = set()
    groups = []
    for i, seed in enumerate(opportunities):
        if seed.id in grouped:
            continue
        grouped.add(seed.id)
        members = [seed]
        for other in opportunities[i + 1:]:
            if other.id in grouped:
                continue
            if cosine_similarity(embeddings[seed.id], embeddings[other.id]) >= threshold:
                members.append(other)
                grouped.add(other.id)
        if len(members) >= MIN_GROUP_SIZE:
            groups.append(members)
    return groups


def trending_score(
    opportunities: list[Opportunity],
    items: list[SourceItem],
    first_seen: datetime,
    last_seen: datetime,
    now: datetime | None = None,
) -> float:
    """
    0-100 blend of recency (.3), engagement velocity (.3), channel
    spread (.2) and combined sources (.2).
    """
    now = now or utcnow()
    days_since_first = (now - first_seen).total_seconds() / 86400
    days_since_last = (now - last_seen).total_seconds() / 86400

    if days_since_last < 1:
        recency = 1.0
    elif days_since_last < 7:
        recency = 0.8
    elif days_since_last < 30:
        recency = 0.5
    else:
        recency = 0.2

    engagement = sum(item.score for item in items)
    velocity = min(engagement / max(days_since_first, 1) / 100, 1.0)
    spread = min(len({item.channel for item in items}) / 5, 1.0)
    sources = min(sum(o.source_count for o in opportunities) / 10, 1.0)

    return (recency * 0.3 + velocity * 0.3 + spread * 0.2 + sources * 0.2) * 100


def representative_title(opportunities: list[Opportunity]) -> str:
    words = Counter(
        word
        for opp in opportunities
        for word in opp.title.lower().split()
        if len(word) >= MIN_TITLE_WORD_LENGTH
    )
    common = [word for word, count in words.most_common() if count >= 2][:3]
    if common:
        return f"{' '.join(common)} solutions ({len(opportunities)} similar opportunities)"
    return f"Similar opportunities: {opportunities[0].title} ({len(opportunities)} variations)"


def representative_description(opportunities: list[Opportunity]) -> str:
    best = max(opportunities, key=lambda o: o.overall_score)
    themes = dict.fromkeys(
        sentence.strip()
        for opp in opportunities
        for sentence in opp.description.split(".")
        if len(sentence.strip()) >= MIN_THEME_LENGTH
    )
    niche = best.categories.get("niche") or "automation solutions"
    return (
        f"This group represents {len(opportunities)} similar opportunities focusing on {niche}. "
        f"Common themes: {'. '.join(list(themes)[:3])}."
    )


def build_group(
    opportunities: list[Opportunity],
    items_by_opportunity: dict[int, list[SourceItem]],
    now: datetime | None = None,
) -> IdeaGroup:
    items = [item for opp in opportunities for item in items_by_opportunity.get(opp.id, [])]
    dates = [opp.created_at for opp in opportunities] + [item.created_at for item in items]
    first_seen, last_seen = min(dates), max(dates)
    return IdeaGroup(
        title=representative_title(opportunities),
        description=representative_description(opportunities),
        opportunities=opportunities,
        source_count=sum(o.source_count for o in opportunities),
        avg_score=sum(o.overall_score for o in opportunities) / len(opportunities),
        viable_count=sum(1 for o in opportunities if o.viable),
        channels=sorted({item.channel for item in items}),
        first_seen=first_seen,
        last_seen=last_seen,
        trending_score=trending_score(opportunities, items, first_seen, last_seen, now),
    )


def summarize(groups: list[IdeaGroup]) -> dict:
    """Totals across every group, for the `ideas` report."""
    total_opportunities = sum(len(g.opportunities) for g in groups)

    niches: dict[str, list[float]] = {}
    for group in groups:
        for opp in group.opportunities:
            niches.setdefault(opp.niche, []).append(opp.overall_score)
    top_niches = sorted(
        (
            {"niche": niche, "count": len(scores), "avg_score": round(sum(scores) / len(scores), 2)}
            for niche, scores in niches.items()
        ),
        key=lambda n: n["count"],
        reverse=True,
    )[:10]

    return {
        "total_groups": len(groups),
        "total_opportunities": total_opportunities,
        "avg_group_size": round(total_opportunities / len(groups), 2) if groups else 0.0,
        "top_niches": top_niches,
        "cross_channel_groups": sum(1 for g in groups if len(g.channels) > 1),
        "high_viability_groups": sum(
            1 for g in groups if g.viable_count / len(g.opportunities) > 0.5
        ),
    }
