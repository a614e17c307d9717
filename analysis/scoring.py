"""
Delta-4 scoring model. Pure functions, no I/O.

The overall score is ALWAYS computed here from the sub-scores. A score
reported by the model is ignored.
"""

# Dimension -> weight. Weights sum to 1.0.
WEIGHTS: dict[str, float] = {
    "speed": 0.15,
    "convenience": 0.15,
    "trust": 0.12,
    "price": 0.10,
    "status": 0.08,
    "predictability": 0.10,
    "ui_ux": 0.10,
    "ease_of_use": 0.10,
    "legal_friction": 0.05,
    "emotional_comfort": 0.05,
}

DIMENSIONS: tuple[str, ...] = tuple(WEIGHTS)

VIABILITY_THRESHOLD = 4.0
MIN_SCORE = 0.0
MAX_SCORE = 10.0


def clamp_score(value) -> float:
    """Coerce to float and clamp into [0, 10]. Non-numeric values become 0."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return MIN_SCORE
    if v != v:  # NaN
        return MIN_SCORE
    return max(MIN_SCORE, min(MAX_SCORE, v))


def compute_overall_score(scores: dict[str, float]) -> float:
    """Weighted sum of clamped sub-scores, rounded to 2 decimals. Missing dimensions count as 0."""
    total = sum(clamp_score(scores.get(dim, 0)) * weight for dim, weight in WEIGHTS.items())
    return round(total, 2)


def is_viable(overall_score: float, threshold: float = VIABILITY_THRESHOLD) -> bool:
    return overall_score >= threshold


def compute_improvements(makeshift: dict[str, float], software: dict[str, float]) -> dict[str, float]:
    """Per-dimension software-minus-makeshift, clamped inputs."""
    return {
        dim: round(clamp_score(software.get(dim, 0)) - clamp_score(makeshift.get(dim, 0)), 2)
        for dim in DIMENSIONS
    }


def compute_total_delta(improvements: dict[str, float]) -> float:
    """Sum of positive improvements only. A dimension where software is worse adds nothing."""
    return round(sum(v for v in improvements.values() if v > 0), 2)
