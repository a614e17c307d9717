"""
Output contract for the analysis model: extraction, validation, mapping.

Model output is untrusted input. We pull the JSON out of whatever prose
surrounds it, validate it into a list of errors (empty = valid), clamp
the sub-scores and recompute every derived number locally.

Wire keys are camelCase (what the model is told to produce); everything
past this module is snake_case.
"""

import json
import logging
import re

from analysis.scoring import (
    DIMENSIONS,
    VIABILITY_THRESHOLD,
    clamp_score,
    compute_improvements,
    compute_overall_score,
    compute_total_delta,
    is_viable,
)
from errors import SchemaViolationError
from models import AnalysisResult, DeltaComparison, MarketValidation, Opportunity

log = logging.getLogger(__name__)

NO_OPPORTUNITY_REASON = "No significant opportunity identified"

CATEGORY_FIELDS = (
    "businessType", "businessModel", "revenueModel", "pricingModel", "platform",
    "mobileSupport", "deploymentType", "developmentType", "targetAudience",
    "userType", "technicalLevel", "ageGroup", "geography", "marketType",
    "economicLevel", "industryVertical", "niche", "developmentComplexity",
    "teamSize", "capitalRequirement", "developmentTime", "marketSizeCategory",
    "competitionLevel", "marketTrend", "growthPotential", "acquisitionStrategy",
    "scalabilityType",
)

# Closed enums. A value outside these is a schema violation.
MARKET_SIZES = ("Small", "Medium", "Large", "Unknown")
LEVELS = ("Low", "Medium", "High")
VALIDATION_ENUMS = {
    "engagementLevel": ("Low", "Medium", "High", "Unknown"),
    "problemFrequency": ("Rare", "Occasional", "Frequent", "Very Frequent", "Unknown"),
    "customerType": ("Individual", "Business", "Both", "Unknown"),
    "paymentWillingness": ("Low", "Medium", "High", "Unknown"),
    "competitiveAnalysis": (
        "No Competition", "Low Competition", "Medium Competition", "High Competition", "Unknown",
    ),
    "validationTier": (
        "Tier 1 (Build Now)", "Tier 2 (Validate Further)", "Tier 3 (Monitor)", "Unknown",
    ),
}

# Category allow-lists. The taxonomy drifts with the model, so this is data,
# not code: edit freely. Fields not listed here are free-form. A value outside
# a listed field's allow-list is kept as "Other".
TAXONOMY: dict[str, tuple[str, ...]] = {
    "businessType": ("AI-Powered", "Traditional Software", "Hybrid", "Other"),
    "revenueModel": (
        "SaaS", "Subscription", "Freemium", "Marketplace", "Transaction Fee",
        "Usage-Based", "One-Time Purchase", "Advertising", "Licensing", "Other",
    ),
    "platform": (
        "Web App", "Mobile App", "Desktop App", "API", "Browser Extension",
        "Platform", "Cross-Platform", "Other",
    ),
    "targetAudience": (
        "Small Business", "Enterprise", "Consumers", "Developers", "Freelancers",
        "Startups", "Professionals", "Students", "Other",
    ),
    "technicalLevel": ("Non-Technical", "Semi-Technical", "Technical", "Other"),
    "capitalRequirement": ("Low", "Medium", "High", "Other"),
}

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")
_FENCE = re.compile(r"```(?:json)?\s*\n?")


def to_snake(key: str) -> str:
    return _CAMEL.sub("_", key).lower()


def to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


WIRE_DIMENSIONS = tuple(to_camel(d) for d in DIMENSIONS)


# ──────────────────────────────────────────────
# Extraction
# ──────────────────────────────────────────────

def _extract_json(text: str, open_ch: str, close_ch: str) -> str:
    """
    Extract the first balanced JSON value opened by `open_ch`.
    Handles markdown code fences, leading/trailing prose, and brackets
    inside string literals.
    """
    text = _FENCE.sub("", text).strip()

    start = text.find(open_ch)
    if start == -1:
        kind = "object" if open_ch == "{" else "array"
        raise ValueError(f"No JSON {kind} found in response")

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    raise ValueError(f"Unbalanced '{open_ch}{close_ch}' in JSON response")


def extract_json_object(text: str) -> str:
    return _extract_json(text, "{", "}")


def extract_json_array(text: str) -> str:
    return _extract_json(text, "[", "]")


# ──────────────────────────────────────────────
# Validation
# ──────────────────────────────────────────────

def _is_number(v) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _match_enum(value, allowed: tuple[str, ...]) -> str | None:
    """Case-insensitive enum match returning the canonical spelling."""
    if not isinstance(value, str):
        return None
    lowered = value.strip().lower()
    for option in allowed:
        if option.lower() == lowered:
            return option
    return None


def _validate_scores(scores, path: str) -> list[str]:
    if not isinstance(scores, dict):
        return [f"{path} must be an object"]
    errors = []
    for dim in WIRE_DIMENSIONS:
        if dim not in scores:
            errors.append(f"{path}.{dim} missing")
        elif not _is_number(scores[dim]):
            errors.append(f"{path}.{dim} must be a number, got {type(scores[dim]).__name__}")
    return errors


def validate_analysis_dict(d) -> list[str]:
    """Validate one analysis object. Returns list of error messages."""
    if not isinstance(d, dict):
        return [f"expected object, got {type(d).__name__}"]

    errors = []
    if not isinstance(d.get("isOpportunity"), bool):
        errors.append("isOpportunity must be a boolean")

    confidence = d.get("confidence")
    if not _is_number(confidence):
        errors.append("confidence must be a number")
    elif not (0 <= confidence <= 1):
        errors.append(f"confidence must be 0-1, got {confidence}")

    if "reasons" in d and not isinstance(d["reasons"], list):
        errors.append("reasons must be an array")

    if d.get("isOpportunity") is not True:
        return errors

    opp = d.get("opportunity")
    if not isinstance(opp, dict):
        errors.append("opportunity object required when isOpportunity is true")
        return errors

    for field in ("title", "description", "proposedSolution"):
        if not isinstance(opp.get(field), str) or not opp[field].strip():
            errors.append(f"opportunity.{field} missing or empty")

    errors.extend(_validate_scores(opp.get("delta4Scores"), "opportunity.delta4Scores"))

    if "marketSize" in opp and _match_enum(opp["marketSize"], MARKET_SIZES) is None:
        errors.append(f"opportunity.marketSize must be one of {MARKET_SIZES}, got {opp['marketSize']!r}")
    for field in ("complexity", "successProbability"):
        if field in opp and _match_enum(opp[field], LEVELS) is None:
            errors.append(f"opportunity.{field} must be one of {LEVELS}, got {opp[field]!r}")

    if "categories" in opp and not isinstance(opp["categories"], dict):
        errors.append("opportunity.categories must be an object")
    if "reasoning" in opp and not isinstance(opp["reasoning"], dict):
        errors.append("opportunity.reasoning must be an object")

    mv = opp.get("marketValidation")
    if mv is not None:
        if not isinstance(mv, dict):
            errors.append("opportunity.marketValidation must be an object")
        else:
            if "marketValidationScore" in mv and not _is_number(mv["marketValidationScore"]):
                errors.append("opportunity.marketValidation.marketValidationScore must be a number")
            for field, allowed in VALIDATION_ENUMS.items():
                if field in mv and _match_enum(mv[field], allowed) is None:
                    errors.append(
                        f"opportunity.marketValidation.{field} must be one of {allowed}, "
                        f"got {mv[field]!r}"
                    )

    return errors


# ──────────────────────────────────────────────
# Mapping
# ──────────────────────────────────────────────

def normalize_categories(raw: dict | None) -> dict[str, str]:
    """camelCase wire categories -> snake_case, allow-listed fields canonicalized."""
    raw = raw or {}
    out: dict[str, str] = {}
    for field in CATEGORY_FIELDS:
        value = raw.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        value = str(value).strip()
        allowed = TAXONOMY.get(field)
        if allowed is not None:
            value = _match_enum(value, allowed) or "Other"
        out[to_snake(field)] = value
    return out


def _scores_from_wire(raw: dict) -> dict[str, float]:
    return {dim: clamp_score(raw.get(to_camel(dim), 0)) for dim in DIMENSIONS}


def _market_validation(raw: dict | None) -> MarketValidation:
    raw = raw or {}
    return MarketValidation(
        score=clamp_score(raw.get("marketValidationScore", 0)),
        engagement_level=_match_enum(raw.get("engagementLevel"), VALIDATION_ENUMS["engagementLevel"]) or "Unknown",
        problem_frequency=_match_enum(raw.get("problemFrequency"), VALIDATION_ENUMS["problemFrequency"]) or "Unknown",
        customer_type=_match_enum(raw.get("customerType"), VALIDATION_ENUMS["customerType"]) or "Unknown",
        payment_willingness=_match_enum(raw.get("paymentWillingness"), VALIDATION_ENUMS["paymentWillingness"]) or "Unknown",
        competitive_analysis=_match_enum(raw.get("competitiveAnalysis"), VALIDATION_ENUMS["competitiveAnalysis"]) or "Unknown",
        validation_tier=_match_enum(raw.get("validationTier"), VALIDATION_ENUMS["validationTier"]) or "Unknown",
    )


def _delta_comparison(raw) -> DeltaComparison | None:
    """Optional. A malformed comparison is dropped, not fatal."""
    if not isinstance(raw, dict):
        return None
    makeshift_raw = raw.get("makeshiftDelta4")
    software_raw = raw.get("softwareDelta4")
    if _validate_scores(makeshift_raw, "makeshiftDelta4") or _validate_scores(software_raw, "softwareDelta4"):
        log.debug("Dropping malformed deltaComparison")
        return None

    makeshift = _scores_from_wire(makeshift_raw)
    software = _scores_from_wire(software_raw)
    improvement = compute_improvements(makeshift, software)
    return DeltaComparison(
        makeshift=makeshift,
        software=software,
        improvement=improvement,
        total_delta=compute_total_delta(improvement),
        biggest_improvements=[str(s) for s in raw.get("biggestImprovements") or []],
        reasons_for_software=[str(s) for s in raw.get("reasonsForSoftware") or []],
    )


def analysis_from_dict(
    d: dict, channel: str = "", viability_threshold: float = VIABILITY_THRESHOLD,
) -> AnalysisResult:
    """
    Build an AnalysisResult from a validated dict.
    Raises SchemaViolationError if `d` does not validate.
    """
    errors = validate_analysis_dict(d)
    if errors:
        raise SchemaViolationError(f"Analysis failed validation: {'; '.join(errors)}", errors)

    confidence = float(d["confidence"])
    if not d["isOpportunity"]:
        reasons = [str(r) for r in d.get("reasons") or []] or [NO_OPPORTUNITY_REASON]
        return AnalysisResult(is_opportunity=False, confidence=confidence, reasons=reasons)

    opp = d["opportunity"]
    scores = _scores_from_wire(opp["delta4Scores"])
    overall = compute_overall_score(scores)
    reasoning_raw = opp.get("reasoning") or {}

    opportunity = Opportunity(
        title=opp["title"].strip(),
        description=opp["description"].strip(),
        proposed_solution=opp["proposedSolution"].strip(),
        current_solution=str(opp.get("currentSolution") or ""),
        market_context=str(opp.get("marketContext") or ""),
        implementation_notes=str(opp.get("implementationNotes") or ""),
        scores=scores,
        overall_score=overall,
        viable=is_viable(overall, viability_threshold),
        reasoning={dim: str(reasoning_raw.get(to_camel(dim), "")) for dim in DIMENSIONS},
        market_size=_match_enum(opp.get("marketSize"), MARKET_SIZES) or "Unknown",
        complexity=_match_enum(opp.get("complexity"), LEVELS) or "Medium",
        success_probability=_match_enum(opp.get("successProbability"), LEVELS) or "Medium",
        categories=normalize_categories(opp.get("categories")),
        market_validation=_market_validation(opp.get("marketValidation")),
        delta_comparison=_delta_comparison(opp.get("deltaComparison")),
        channel=channel,
    )
    return AnalysisResult(
        is_opportunity=True,
        confidence=confidence,
        opportunity=opportunity,
        reasons=[str(r) for r in d.get("reasons") or []],
    )


def parse_analysis(
    raw_text: str, channel: str = "", viability_threshold: float = VIABILITY_THRESHOLD,
) -> AnalysisResult:
    """
    Parse one model response into an AnalysisResult.
    Raises SchemaViolationError with a descriptive message on failure.
    """
    try:
        data = json.loads(extract_json_object(raw_text))
    except (ValueError, json.JSONDecodeError) as e:
        raise SchemaViolationError(f"Unparseable analysis: {e}", [str(e)]) from e
    return analysis_from_dict(data, channel=channel, viability_threshold=viability_threshold)


def parse_batch(raw_text: str) -> list:
    """
    Parse a batch response into its raw entries. Entries are validated
    one by one by the caller so one bad entry cannot sink its siblings.
    """
    try:
        data = json.loads(extract_json_array(raw_text))
    except (ValueError, json.JSONDecodeError) as e:
        raise SchemaViolationError(f"Unparseable batch response: {e}", [str(e)]) from e
    if not isinstance(data, list):
        raise SchemaViolationError(f"Expected JSON array, got {type(data).__name__}")
    return data
