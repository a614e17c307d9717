"""
Pre-dedup quality filters. No LLM. No storage. Just cheap rejections.

Rejected posts never reach storage and are not counted as duplicates.
Every rejection carries a short reason so the filters can be tuned.
"""

import re

from models import RawPost

REASON_FLAGGED = "pinned/locked/nsfw"
REASON_EMPTY = "empty"
REASON_LOW_ENGAGEMENT = "low engagement"

MIN_SCORE = 5
MIN_COMMENTS = 3

# Recurring-thread markers. Matched on the title, whole words only.
NOISE_MARKERS: list[str] = [
    "weekly thread",
    "daily thread",
    "megathread",
    "announcement",
    "reminder",
    "rules",
    "meta",
]

_NOISE_PATTERNS: list[tuple[str, re.Pattern]] = [
    (marker, re.compile(rf"\b{re.escape(marker)}\b", re.IGNORECASE)) for marker in NOISE_MARKERS
]


def rejection_reason(
    post: RawPost, min_score: int = MIN_SCORE, min_comments: int = MIN_COMMENTS,
) -> str | None:
    """Why `post` should be dropped, or None to keep it."""
    if post.stickied or post.locked or post.over_18:
        return REASON_FLAGGED
    if not (post.title or "").strip() and not (post.body or "").strip():
        return REASON_EMPTY
    if post.score < min_score or post.num_comments < min_comments:
        return REASON_LOW_ENGAGEMENT
    for marker, pattern in _NOISE_PATTERNS:
        if pattern.search(post.title or ""):
            return f"noise: {marker}"
    return None


def filter_posts(
    posts: list[RawPost], min_score: int = MIN_SCORE, min_comments: int = MIN_COMMENTS,
) -> tuple[list[RawPost], list[tuple[RawPost, str]]]:
    """Split into (kept, rejected-with-reason). Order is preserved."""
    kept: list[RawPost] = []
    rejected: list[tuple[RawPost, str]] = []
    for post in posts:
        reason = rejection_reason(post, min_score, min_comments)
        if reason is None:
            kept.append(post)
        else:
            rejected.append((post, reason))
    return kept, rejected
