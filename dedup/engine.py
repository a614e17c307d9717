"""
Dedup engine for source items and derived opportunities.

The comparison logic is pure: `check_item_duplication` and
`check_opportunity_duplication` take the candidate plus an explicit,
already-bounded history list. `DedupEngine` only does the bounded
lookups against Storage and hands the results to the pure functions.

"Not a duplicate" is a normal result. Storage errors propagate.
"""

import logging

from config.settings import Config
from dedup.similarity import text_similarity
from models import DuplicationCheck, Opportunity, SourceItem
from storage.db import Storage

log = logging.getLogger(__name__)

REASON_EXACT_ID = "exact id"
REASON_TITLE_AUTHOR = "title+author match"
REASON_CONTENT = "content similarity"
REASON_EXACT_TITLE = "exact title"
REASON_OPPORTUNITY = "opportunity similarity"

ITEM_SIMILARITY_THRESHOLD = 0.9
OPPORTUNITY_SIMILARITY_THRESHOLD = 0.85

# Secondary fields count for less than the title
CONTENT_WEIGHT = 0.8
DESCRIPTION_WEIGHT = 0.8
SOLUTION_WEIGHT = 0.9

NOT_DUPLICATE = DuplicationCheck(is_duplicate=False)


def item_similarity(a: SourceItem, b: SourceItem) -> float:
    title_sim = text_similarity(a.title, b.title)
    content_sim = 0.0
    if a.body and b.body:
        content_sim = text_similarity(a.body, b.body)
    return max(title_sim, content_sim * CONTENT_WEIGHT)


def opportunity_similarity(a: Opportunity, b: Opportunity) -> float:
    return max(
        text_similarity(a.title, b.title),
        text_similarity(a.description, b.description) * DESCRIPTION_WEIGHT,
        text_similarity(a.proposed_solution, b.proposed_solution) * SOLUTION_WEIGHT,
    )


def check_item_duplication(
    candidate: SourceItem,
    history: list[SourceItem],
    threshold: float = ITEM_SIMILARITY_THRESHOLD,
) -> DuplicationCheck:
    """
    Decide whether `candidate` duplicates anything in `history`.

    Priority: exact external id, then case-insensitive (title, author),
    then the best fuzzy match at or above `threshold`. The caller is
    responsible for bounding `history` (channel, window, cap).
    """
    for existing in history:
        if existing.external_id == candidate.external_id and existing.channel == candidate.channel:
            return DuplicationCheck(True, existing.id, 1.0, REASON_EXACT_ID)

    title = candidate.title.lower()
    author = candidate.author.lower()
    for existing in history:
        if existing.title.lower() == title and existing.author.lower() == author:
            return DuplicationCheck(True, existing.id, 1.0, REASON_TITLE_AUTHOR)

    best: tuple[float, SourceItem] | None = None
    for existing in history:
        sim = item_similarity(candidate, existing)
        if sim >= threshold and (best is None or sim > best[0]):
            best = (sim, existing)

    if best:
        return DuplicationCheck(True, best[1].id, best[0], REASON_CONTENT)
    return NOT_DUPLICATE


def check_opportunity_duplication(
    candidate: Opportunity,
    history: list[Opportunity],
    threshold: float = OPPORTUNITY_SIMILARITY_THRESHOLD,
    niche_scoped: bool = False,
) -> DuplicationCheck:
    """
    Exact title (optionally within the same niche) first, then the
    best fuzzy match over title / description / solution.
    """
    title = candidate.title.strip().lower()
    for existing in history:
        if existing.title.strip().lower() != title:
            continue
        if niche_scoped and existing.niche.lower() != candidate.niche.lower():
            continue
        return DuplicationCheck(True, existing.id, 1.0, REASON_EXACT_TITLE)

    matches = []
    for existing in history:
        sim = opportunity_similarity(candidate, existing)
        if sim >= threshold:
            matches.append((sim, existing))

    if not matches:
        return NOT_DUPLICATE
    matches.sort(key=lambda m: m[0], reverse=True)
    sim, best = matches[0]
    return DuplicationCheck(True, best.id, sim, REASON_OPPORTUNITY)


class DedupEngine:
    """Runs the bounded history lookups and applies the pure checks."""

    def __init__(self, storage: Storage, config: Config):
        self.storage = storage
        self.config = config

    def check_item(self, candidate: SourceItem) -> DuplicationCheck:
        existing = self.storage.find_item_by_external_id(candidate.channel, candidate.external_id)
        if existing:
            return self._logged(candidate.external_id, DuplicationCheck(True, existing.id, 1.0, REASON_EXACT_ID))

        existing = self.storage.find_item_by_title_author(candidate.title, candidate.author)
        if existing:
            return self._logged(candidate.external_id, DuplicationCheck(True, existing.id, 1.0, REASON_TITLE_AUTHOR))

        window = self.storage.recent_items(
            candidate.channel,
            days=self.config.item_dedup_days,
            limit=self.config.item_dedup_sample,
        )
        result = check_item_duplication(
            candidate, window, threshold=self.config.item_similarity_threshold,
        )
        return self._logged(candidate.external_id, result)

    def check_opportunity(self, candidate: Opportunity, niche_scoped: bool = False) -> DuplicationCheck:
        existing = self.storage.find_opportunity_by_title(
            candidate.title, niche=candidate.niche if niche_scoped else None,
        )
        if existing:
            return self._logged(candidate.title, DuplicationCheck(True, existing.id, 1.0, REASON_EXACT_TITLE))

        window = self.storage.recent_opportunities(
            days=self.config.opportunity_dedup_days,
            limit=self.config.opportunity_dedup_sample,
        )
        result = check_opportunity_duplication(
            candidate, window,
            threshold=self.config.opportunity_similarity_threshold,
            niche_scoped=niche_scoped,
        )
        return self._logged(candidate.title, result)

    def _logged(self, label: str, result: DuplicationCheck) -> DuplicationCheck:
        if result.is_duplicate:
            sim = f"{result.similarity:.2f}" if result.similarity is not None else "-"
            log.debug(f"Duplicate {label!r}: {result.reason} (match #{result.matched_id}, sim={sim})")
        return result
