"""
Analyzer. Takes source items + LLM provider, produces scored analyses.

Single-item flow: prompt -> parse -> (one repair prompt) -> result.
Batch flow: up to `batch_size` items per call, responses matched by id
then by position, anything missing or broken retried as a single item.

Error policy:
- ConfigurationError (bad key, unknown model) always propagates: every
  other item would fail the same way.
- SchemaViolationError after repair is final for that item.
- RetryableError on a single item is reported in its BatchOutcome so the
  caller can leave the item for a later attempt.
"""

import logging

from analysis.prompts import (
    ANALYSIS_SYSTEM, ANALYSIS_USER,
    BATCH_SYSTEM, BATCH_USER, BATCH_POST,
    REPAIR_USER,
    heuristics_for,
)
from analysis.scoring import VIABILITY_THRESHOLD
from analysis.schema import analysis_from_dict, parse_analysis, parse_batch
from errors import ConfigurationError, RetryableError, SchemaViolationError, ScoutError
from llm.provider import LLMProvider, LLMResponse
from models import AnalysisResult, BatchOutcome, SourceItem

log = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 8
MAX_BODY_CHARS = 4000
SINGLE_MAX_TOKENS = 3000
BATCH_MAX_TOKENS = 16000


def _post_fields(item: SourceItem) -> dict:
    body = (item.body or "").strip() or "(no body: link post)"
    return {
        "title": item.title,
        "body": body[:MAX_BODY_CHARS],
        "channel": item.channel,
        "author": item.author or "[deleted]",
        "score": item.score,
        "num_comments": item.num_comments,
        "heuristics": heuristics_for(item.channel),
    }


def build_analysis_prompt(item: SourceItem) -> str:
    return ANALYSIS_USER.format(**_post_fields(item))


def build_batch_prompt(items: list[SourceItem]) -> str:
    posts = "\n".join(BATCH_POST.format(id=item.id, **_post_fields(item)) for item in items)
    return BATCH_USER.format(count=len(items), posts=posts)


def build_repair_prompt(item: SourceItem, raw_text: str, error: SchemaViolationError) -> str:
    problems = list(error.errors) or [str(error)]
    return REPAIR_USER.format(
        request=build_analysis_prompt(item),
        errors="\n".join(f"- {p}" for p in problems),
        raw=raw_text,
    )


class Analyzer:
    def __init__(
        self,
        llm: LLMProvider,
        temperature: float = 0.2,
        viability_threshold: float = VIABILITY_THRESHOLD,
    ):
        self._llm = llm
        self._temperature = temperature
        self._viability_threshold = viability_threshold

    def analyze(self, item: SourceItem) -> AnalysisResult:
        """
        Analyze one item. A negative result is a result.

        Raises:
            SchemaViolationError: output unusable even after one repair.
            RetryableError / ConfigurationError: from the provider.
        """
        response = self._llm.complete(
            system_prompt=ANALYSIS_SYSTEM,
            user_prompt=build_analysis_prompt(item),
            temperature=self._temperature,
            max_tokens=SINGLE_MAX_TOKENS,
        )
        self._log_usage(f"Analysis #{item.id}", response)

        try:
            result = parse_analysis(
                response.text, channel=item.channel, viability_threshold=self._viability_threshold,
            )
        except SchemaViolationError as first_error:
            log.warning(f"Analysis #{item.id} parse failed: {first_error}. Attempting repair.")
            result = self._repair(item, response.text, first_error)

        self._log_outcome(item, result)
        return result

    def _repair(self, item: SourceItem, raw_text: str, error: SchemaViolationError) -> AnalysisResult:
        repair_response = self._llm.complete(
            system_prompt=ANALYSIS_SYSTEM,
            user_prompt=build_repair_prompt(item, raw_text, error),
            temperature=0.0,
            max_tokens=SINGLE_MAX_TOKENS,
        )
        self._log_usage(f"Repair #{item.id}", repair_response)
        try:
            result = parse_analysis(
                repair_response.text, channel=item.channel,
                viability_threshold=self._viability_threshold,
            )
        except SchemaViolationError as second_error:
            log.error(
                f"Analysis #{item.id} failed after repair: {second_error}\n"
                f"Raw output (first 300 chars): {raw_text[:300]}"
            )
            raise SchemaViolationError(
                f"Schema violation after repair: {second_error}",
                errors=second_error.errors,
            ) from second_error
        log.info(f"Repair succeeded for #{item.id}")
        return result

    def analyze_batch(
        self, items: list[SourceItem], batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> list[BatchOutcome]:
        """
        Analyze many items, `batch_size` per model call. Returns one
        outcome per input item, in input order.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")

        outcomes: list[BatchOutcome] = []
        for start in range(0, len(items), batch_size):
            chunk = items[start:start + batch_size]
            outcomes.extend(self._analyze_chunk(chunk))
        return outcomes

    def analyze_one(self, item: SourceItem) -> BatchOutcome:
        """Single-item analysis with item-level errors captured in the outcome."""
        try:
            return BatchOutcome(item_id=item.id, result=self.analyze(item))
        except ConfigurationError:
            raise
        except ScoutError as e:
            return BatchOutcome(item_id=item.id, error=e)

    def _analyze_chunk(self, chunk: list[SourceItem]) -> list[BatchOutcome]:
        if len(chunk) == 1:
            return [self.analyze_one(chunk[0])]

        try:
            response = self._llm.complete(
                system_prompt=BATCH_SYSTEM,
                user_prompt=build_batch_prompt(chunk),
                temperature=self._temperature,
                max_tokens=min(SINGLE_MAX_TOKENS * len(chunk), BATCH_MAX_TOKENS),
            )
            self._log_usage(f"Batch of {len(chunk)}", response)
            entries = parse_batch(response.text)
        except ConfigurationError:
            raise
        except (RetryableError, SchemaViolationError) as e:
            log.warning(f"Batch of {len(chunk)} failed ({e}); falling back to single-item analysis")
            return [self.analyze_one(item) for item in chunk]

        if len(entries) != len(chunk):
            log.warning(f"Batch returned {len(entries)} entries for {len(chunk)} posts")

        matched = match_batch_entries(chunk, entries)
        outcomes = []
        for item in chunk:
            entry = matched.get(item.id)
            if entry is None:
                log.warning(f"No usable batch entry for #{item.id}; analyzing individually")
                outcomes.append(self.analyze_one(item))
                continue
            try:
                result = analysis_from_dict(
                    entry, channel=item.channel, viability_threshold=self._viability_threshold,
                )
            except SchemaViolationError as e:
                log.warning(f"Batch entry for #{item.id} invalid ({e}); analyzing individually")
                outcomes.append(self.analyze_one(item))
                continue
            self._log_outcome(item, result)
            outcomes.append(BatchOutcome(item_id=item.id, result=result))
        return outcomes

    def _log_usage(self, label: str, response: LLMResponse):
        log.info(
            f"{label}: {response.input_tokens} in, "
            f"{response.output_tokens} out ({response.model})"
        )

    def _log_outcome(self, item: SourceItem, result: AnalysisResult):
        if result.is_opportunity and result.opportunity:
            opp = result.opportunity
            log.info(
                f"#{item.id} opportunity {opp.title!r}: score={opp.overall_score:.2f} "
                f"viable={opp.viable} confidence={result.confidence:.2f}"
            )
        else:
            log.info(f"#{item.id} no opportunity: {'; '.join(result.reasons)}")


def match_batch_entries(chunk: list[SourceItem], entries: list) -> dict[int, dict]:
    """
    Pair batch response entries with request items.

    An entry's "id" (or "postId") wins; entries without a recognisable id
    fall back to their position. Duplicates, non-objects and entries that
    report an error are dropped, so their items get retried singly.
    """
    by_id = {str(item.id): item for item in chunk}
    matched: dict[int, dict] = {}
    positional: list[tuple[int, dict]] = []

    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict) or entry.get("error"):
            continue
        entry_id = entry.get("id", entry.get("postId"))
        item = by_id.get(str(entry_id)) if entry_id is not None else None
        if item is None:
            positional.append((idx, entry))
            continue
        if item.id in matched:
            log.warning(f"Duplicate batch entry for #{item.id} ignored")
            continue
        matched[item.id] = entry

    for idx, entry in positional:
        if idx < len(chunk) and chunk[idx].id not in matched:
            matched[chunk[idx].id] = entry

    return matched
