"""
Tests for model-output handling and the analyzer:
- JSON extraction from free text
- schema validation and mapping
- single-item repair flow
- batch matching and fallback
"""

import json

import pytest

from analysis.analyzer import Analyzer, build_analysis_prompt, build_batch_prompt, match_batch_entries
from analysis.prompts import GENERIC_HEURISTICS, heuristics_for
from analysis.schema import (
    NO_OPPORTUNITY_REASON,
    extract_json_array,
    extract_json_object,
    normalize_categories,
    parse_analysis,
    parse_batch,
    validate_analysis_dict,
)
from errors import ConfigurationError, SchemaViolationError
from llm.provider import LLMConfigError, LLMRateLimitError

from fakes import FakeLLM, make_item, opportunity_payload, rejection_payload


def _items(*ids):
    items = []
    for n, external_id in enumerate(ids, start=1):
        item = make_item(external_id, title=f"Post {external_id}")
        item.id = n
        items.append(item)
    return items


# ──────────────────────────────────────────────
# Extraction
# ──────────────────────────────────────────────

class TestExtractJson:
    def test_plain_object(self):
        assert extract_json_object('{"a": 1}') == '{"a": 1}'

    def test_with_markdown_fences(self):
        text = '```json\n{"a": 1}\n```'
        assert extract_json_object(text) == '{"a": 1}'

    def test_with_surrounding_text(self):
        text = 'Here is my analysis:\n{"a": {"b": 2}}\nHope that helps!'
        assert extract_json_object(text) == '{"a": {"b": 2}}'

    def test_braces_inside_strings(self):
        text = '{"title": "Use {curly} and ] brackets", "n": 1} trailing }'
        assert json.loads(extract_json_object(text)) == {"title": "Use {curly} and ] brackets", "n": 1}

    def test_escaped_quote_inside_string(self):
        text = r'{"t": "say \"hi\" {"}'
        assert json.loads(extract_json_object(text)) == {"t": 'say "hi" {'}

    def test_array(self):
        assert extract_json_array('Result: [{"a": 1}, {"b": [2]}] done') == '[{"a": 1}, {"b": [2]}]'

    def test_nothing_found(self):
        with pytest.raises(ValueError):
            extract_json_object("no json here")

    def test_unbalanced(self):
        with pytest.raises(ValueError):
            extract_json_object('{"a": {"b": 1}')


# ──────────────────────────────────────────────
# Validation and mapping
# ──────────────────────────────────────────────

class TestValidateAnalysis:
    def test_valid_opportunity(self):
        assert validate_analysis_dict(opportunity_payload()) == []

    def test_valid_rejection(self):
        assert validate_analysis_dict(rejection_payload()) == []

    def test_not_an_object(self):
        assert validate_analysis_dict([1, 2]) == ["expected object, got list"]

    def test_confidence_out_of_range(self):
        errors = validate_analysis_dict(rejection_payload(confidence=1.5))
        assert any("confidence" in e for e in errors)

    def test_confidence_not_number(self):
        data = rejection_payload()
        data["confidence"] = "high"
        assert any("confidence" in e for e in validate_analysis_dict(data))

    def test_flag_must_be_bool(self):
        data = rejection_payload()
        data["isOpportunity"] = "no"
        assert any("isOpportunity" in e for e in validate_analysis_dict(data))

    def test_opportunity_required_when_flagged(self):
        data = {"isOpportunity": True, "confidence": 0.9}
        assert any("opportunity object required" in e for e in validate_analysis_dict(data))

    def test_missing_sub_score(self):
        data = opportunity_payload()
        del data["opportunity"]["delta4Scores"]["uiUx"]
        assert any("uiUx" in e for e in validate_analysis_dict(data))

    def test_sub_score_must_be_numeric(self):
        data = opportunity_payload()
        data["opportunity"]["delta4Scores"]["speed"] = "fast"
        assert any("speed" in e for e in validate_analysis_dict(data))

    def test_closed_enum(self):
        data = opportunity_payload(marketSize="Gigantic")
        assert any("marketSize" in e for e in validate_analysis_dict(data))

    def test_enum_case_insensitive(self):
        assert validate_analysis_dict(opportunity_payload(complexity="low")) == []

    def test_market_validation_enum(self):
        data = opportunity_payload()
        data["opportunity"]["marketValidation"]["customerType"] = "Aliens"
        assert any("customerType" in e for e in validate_analysis_dict(data))


class TestParseAnalysis:
    def test_scores_recomputed_locally(self):
        data = opportunity_payload()
        data["opportunity"]["overallScore"] = 9.99
        result = parse_analysis(json.dumps(data), channel="smallbusiness")

        opp = result.opportunity
        assert result.is_opportunity
        assert opp.overall_score == 7.47
        assert opp.viable is True
        assert opp.scores["ui_ux"] == 8
        assert opp.channel == "smallbusiness"

    def test_sub_scores_clamped(self):
        scores = {k: 50 for k in ("speed", "convenience", "trust", "price", "status",
                                  "predictability", "uiUx", "easeOfUse", "legalFriction",
                                  "emotionalComfort")}
        result = parse_analysis(json.dumps(opportunity_payload(scores=scores)))
        assert result.opportunity.scores["speed"] == 10.0
        assert result.opportunity.overall_score == 10.0

    def test_low_scores_not_viable(self):
        scores = {k: 3 for k in ("speed", "convenience", "trust", "price", "status",
                                 "predictability", "uiUx", "easeOfUse", "legalFriction",
                                 "emotionalComfort")}
        result = parse_analysis(json.dumps(opportunity_payload(scores=scores)))
        assert result.opportunity.overall_score == 3.0
        assert result.opportunity.viable is False

    def test_rejection_default_reason(self):
        result = parse_analysis(json.dumps(rejection_payload()))
        assert not result.is_opportunity
        assert result.opportunity is None
        assert result.reasons == [NO_OPPORTUNITY_REASON]

    def test_rejection_keeps_reasons(self):
        result = parse_analysis(json.dumps(rejection_payload(reasons=["Just a rant"])))
        assert result.reasons == ["Just a rant"]

    def test_prose_around_json(self):
        text = "Sure! Here you go:\n```json\n" + json.dumps(rejection_payload()) + "\n```"
        assert parse_analysis(text).confidence == 0.8

    def test_garbage_raises(self):
        with pytest.raises(SchemaViolationError):
            parse_analysis("I could not analyze this post.")

    def test_invalid_raises_with_errors(self):
        with pytest.raises(SchemaViolationError) as exc:
            parse_analysis(json.dumps({"isOpportunity": True, "confidence": 2}))
        assert exc.value.errors

    def test_delta_comparison(self):
        makeshift = {k: 3 for k in ("speed", "convenience", "trust", "price", "status",
                                    "predictability", "uiUx", "easeOfUse", "legalFriction",
                                    "emotionalComfort")}
        software = dict(makeshift, speed=9, price=1)
        data = opportunity_payload(deltaComparison={
            "makeshiftDelta4": makeshift,
            "softwareDelta4": software,
            "biggestImprovements": ["speed"],
        })
        delta = parse_analysis(json.dumps(data)).opportunity.delta_comparison
        assert delta.improvement["speed"] == 6
        assert delta.improvement["price"] == -2
        assert delta.total_delta == 6.0
        assert delta.biggest_improvements == ["speed"]

    def test_malformed_delta_comparison_dropped(self):
        data = opportunity_payload(deltaComparison={"makeshiftDelta4": "n/a"})
        assert parse_analysis(json.dumps(data)).opportunity.delta_comparison is None

    def test_market_validation_mapped(self):
        mv = parse_analysis(json.dumps(opportunity_payload())).opportunity.market_validation
        assert mv.score == 7
        assert mv.engagement_level == "High"
        assert mv.validation_tier == "Tier 1 (Build Now)"
        assert mv.customer_type == "Unknown"


class TestCategories:
    def test_snake_case_keys(self):
        cats = normalize_categories({"industryVertical": "Legal", "niche": "Contract review"})
        assert cats == {"industry_vertical": "Legal", "niche": "Contract review"}

    def test_allow_listed_canonicalized(self):
        assert normalize_categories({"platform": "web app"}) == {"platform": "Web App"}

    def test_unknown_allow_listed_becomes_other(self):
        assert normalize_categories({"platform": "Smart Fridge"}) == {"platform": "Other"}

    def test_free_form_kept(self):
        assert normalize_categories({"geography": "Nordics"}) == {"geography": "Nordics"}

    def test_blank_and_unknown_fields_dropped(self):
        assert normalize_categories({"niche": "  ", "favouriteColour": "blue"}) == {}


class TestParseBatch:
    def test_array(self):
        entries = parse_batch(json.dumps([rejection_payload(), rejection_payload()]))
        assert len(entries) == 2

    def test_garbage(self):
        with pytest.raises(SchemaViolationError):
            parse_batch("no array")


# ──────────────────────────────────────────────
# Prompts
# ──────────────────────────────────────────────

class TestPrompts:
    def test_channel_heuristics_case_insensitive(self):
        assert heuristics_for("PromptEngineering") == heuristics_for("promptengineering")
        assert heuristics_for("PromptEngineering") != GENERIC_HEURISTICS

    def test_unknown_channel_gets_generic(self):
        assert heuristics_for("knitting") == GENERIC_HEURISTICS

    def test_single_prompt_contains_post(self):
        item = make_item("p1", title="Need {curly} help", body="Body text", channel="webdev")
        prompt = build_analysis_prompt(item)
        assert "Need {curly} help" in prompt
        assert "r/webdev" in prompt
        assert heuristics_for("webdev") in prompt

    def test_link_post_placeholder(self):
        prompt = build_analysis_prompt(make_item("p1", body=""))
        assert "(no body: link post)" in prompt

    def test_batch_prompt_carries_ids(self):
        prompt = build_batch_prompt(_items("a", "b"))
        assert "id=1" in prompt
        assert "id=2" in prompt
        assert "2 posts" in prompt


# ──────────────────────────────────────────────
# Analyzer: single item
# ──────────────────────────────────────────────

class TestAnalyzeSingle:
    def test_success(self):
        llm = FakeLLM([opportunity_payload()])
        result = Analyzer(llm).analyze(_items("a")[0])
        assert result.opportunity.overall_score == 7.47
        assert len(llm.calls) == 1
        assert llm.calls[0]["temperature"] == 0.2

    def test_viability_threshold_configurable(self):
        strict = Analyzer(FakeLLM([opportunity_payload()]), viability_threshold=8.0)
        result = strict.analyze(_items("a")[0])
        assert result.opportunity.overall_score == 7.47
        assert not result.opportunity.viable

        lenient = Analyzer(FakeLLM([opportunity_payload()]), viability_threshold=7.47)
        assert lenient.analyze(_items("b")[0]).opportunity.viable

    def test_repair_once(self):
        llm = FakeLLM(["Sorry, here's a summary instead.", opportunity_payload()])
        result = Analyzer(llm).analyze(_items("a")[0])
        assert result.is_opportunity
        assert len(llm.calls) == 2
        assert llm.calls[1]["temperature"] == 0.0
        assert "could not be used" in llm.calls[1]["user"]

    def test_repair_carries_post_and_all_problems(self):
        broken = opportunity_payload(description="")
        del broken["opportunity"]["delta4Scores"]["trust"]
        raw = json.dumps(broken)
        llm = FakeLLM([raw, opportunity_payload()])
        item = make_item("a", title="Chasing late invoices every Friday")
        item.id = 7

        Analyzer(llm).analyze(item)

        repair_prompt = llm.calls[1]["user"]
        assert "Chasing late invoices every Friday" in repair_prompt
        assert "r/smallbusiness" in repair_prompt
        assert "- opportunity.delta4Scores.trust missing" in repair_prompt
        assert "- opportunity.description missing or empty" in repair_prompt
        assert raw in repair_prompt

    def test_repair_fails(self):
        llm = FakeLLM(["nope", '{"isOpportunity": "maybe"}'])
        with pytest.raises(SchemaViolationError) as exc:
            Analyzer(llm).analyze(_items("a")[0])
        assert "after repair" in str(exc.value)
        assert exc.value.errors
        assert len(llm.calls) == 2

    def test_provider_errors_propagate(self):
        llm = FakeLLM([LLMRateLimitError("quota", retry_after=30)])
        with pytest.raises(LLMRateLimitError):
            Analyzer(llm).analyze(_items("a")[0])

    def test_analyze_one_captures_retryable(self):
        llm = FakeLLM([LLMRateLimitError("quota")])
        outcome = Analyzer(llm).analyze_one(_items("a")[0])
        assert not outcome.success
        assert isinstance(outcome.error, LLMRateLimitError)

    def test_analyze_one_raises_config_errors(self):
        llm = FakeLLM([LLMConfigError("bad key")])
        with pytest.raises(ConfigurationError):
            Analyzer(llm).analyze_one(_items("a")[0])


# ──────────────────────────────────────────────
# Analyzer: batch
# ──────────────────────────────────────────────

def _with_id(payload: dict, item_id) -> dict:
    return dict(payload, id=item_id)


class TestMatchBatchEntries:
    def test_by_id_out_of_order(self):
        chunk = _items("a", "b")
        entries = [_with_id(rejection_payload(0.2), 2), _with_id(rejection_payload(0.1), 1)]
        matched = match_batch_entries(chunk, entries)
        assert matched[1]["confidence"] == 0.1
        assert matched[2]["confidence"] == 0.2

    def test_by_position_without_ids(self):
        chunk = _items("a", "b")
        matched = match_batch_entries(chunk, [rejection_payload(0.1), rejection_payload(0.2)])
        assert matched[1]["confidence"] == 0.1
        assert matched[2]["confidence"] == 0.2

    def test_post_id_alias_and_string_ids(self):
        chunk = _items("a", "b")
        matched = match_batch_entries(chunk, [dict(rejection_payload(0.3), postId="2")])
        assert list(matched) == [2]

    def test_duplicates_and_errors_dropped(self):
        chunk = _items("a", "b", "c")
        entries = [
            _with_id(rejection_payload(0.1), 1),
            _with_id(rejection_payload(0.9), 1),
            {"id": 2, "error": "could not analyze"},
            "not an object",
        ]
        matched = match_batch_entries(chunk, entries)
        assert matched == {1: entries[0]}

    def test_fewer_entries(self):
        chunk = _items("a", "b", "c")
        assert set(match_batch_entries(chunk, [rejection_payload()])) == {1}


class TestAnalyzeBatch:
    def test_one_call_per_chunk(self):
        chunk = _items("a", "b", "c")
        llm = FakeLLM([
            [_with_id(rejection_payload(), 1), _with_id(opportunity_payload(), 2)],
            rejection_payload(),
        ])
        outcomes = Analyzer(llm).analyze_batch(chunk, batch_size=2)

        assert [o.item_id for o in outcomes] == [1, 2, 3]
        assert all(o.success for o in outcomes)
        assert outcomes[1].result.is_opportunity
        # Second chunk has a single item and goes through the single-item prompt
        assert len(llm.calls) == 2
        assert "JSON array" in llm.calls[0]["user"]

    def test_missing_entry_falls_back_to_single(self):
        chunk = _items("a", "b")
        llm = FakeLLM([
            [_with_id(rejection_payload(), 1)],
            opportunity_payload(),
        ])
        outcomes = Analyzer(llm).analyze_batch(chunk)
        assert all(o.success for o in outcomes)
        assert outcomes[1].result.is_opportunity
        assert len(llm.calls) == 2

    def test_invalid_entry_falls_back_to_single(self):
        chunk = _items("a", "b")
        llm = FakeLLM([
            [_with_id(rejection_payload(), 1), {"id": 2, "isOpportunity": True, "confidence": 0.9}],
            rejection_payload(reasons=["Second look: no"]),
        ])
        outcomes = Analyzer(llm).analyze_batch(chunk)
        assert outcomes[1].result.reasons == ["Second look: no"]

    def test_unparseable_batch_degrades_to_singles(self):
        chunk = _items("a", "b")
        llm = FakeLLM(["total garbage", rejection_payload(), rejection_payload()])
        outcomes = Analyzer(llm).analyze_batch(chunk)
        assert all(o.success for o in outcomes)
        assert len(llm.calls) == 3

    def test_retryable_batch_error_degrades_to_singles(self):
        chunk = _items("a", "b")
        llm = FakeLLM([LLMRateLimitError("busy"), rejection_payload(), LLMRateLimitError("still busy")])
        outcomes = Analyzer(llm).analyze_batch(chunk)
        assert outcomes[0].success
        assert not outcomes[1].success
        assert isinstance(outcomes[1].error, LLMRateLimitError)

    def test_single_item_failure_isolated(self):
        chunk = _items("a", "b")
        llm = FakeLLM([
            [_with_id(rejection_payload(), 1)],
            "bad", "still bad",
        ])
        outcomes = Analyzer(llm).analyze_batch(chunk)
        assert outcomes[0].success
        assert isinstance(outcomes[1].error, SchemaViolationError)

    def test_config_error_aborts(self):
        llm = FakeLLM([LLMConfigError("invalid model")])
        with pytest.raises(ConfigurationError):
            Analyzer(llm).analyze_batch(_items("a", "b"))

    def test_bad_batch_size(self):
        with pytest.raises(ValueError):
            Analyzer(FakeLLM([])).analyze_batch(_items("a"), batch_size=0)
