"""
Text similarity for dedup. Jaccard over normalized word sets.

Cheap, deterministic and explainable. Runs on every ingested item
against a sliding window, so no embeddings here.
"""

import re

_PUNCT = re.compile(r"[^\w\s]")


def normalize(text: str) -> str:
    """Lowercase, drop punctuation, trim."""
    return _PUNCT.sub("", (text or "").lower()).strip()


def text_similarity(a: str, b: str) -> float:
    """
    Jaccard similarity |A∩B| / |A∪B| of the two token sets, in [0, 1].

    An empty input scores 0.0. Identical normalized strings score 1.0,
    even when nothing survives normalization.
    """
    if not a or not b:
        return 0.0
    na, nb = normalize(a), normalize(b)
    if na == nb:
        return 1.0
    if not na or not nb:
        return 0.0

    words_a = set(na.split())
    words_b = set(nb.split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)
