"""
Demand-signal extraction. No LLM. No embeddings. Just pattern matching.

A demand signal is the short phrase after an unmet-need marker
("how do I ...", "looking for ...", "struggling with ..."). Each phrase
gets a coarse niche from a keyword table, falling back to the channel's
default niche, falling back to GENERAL_NICHE.
"""

import re

from models import DemandSignal, SourceItem

# Applied per sentence of the lowercased text. Group 1 is the phrase.
DEMAND_PATTERNS: list[re.Pattern] = [
    re.compile(p) for p in (
        r"how (?:do i|can i|to) (.+?)[\?\.]?$",
        r"looking for (?:a )?(.+?)[\?\.]?$",
        r"need (?:help with |a |an )?(.+?)[\?\.]?$",
        r"anyone (?:know|found) (?:a |an )?(.+?)[\?\.]?$",
        r"best way to (.+?)[\?\.]?$",
        r"struggling with (.+?)[\?\.]?$",
        r"is there (?:a |an )?(.+?)[\?\.]?$",
        r"want(?:ing)? to (.+?)[\?\.]?$",
        r"trying to (.+?)[\?\.]?$",
        r"(?:i |we )?wish(?:ed)? (?:there was |i had |we had )?(.+?)[\?\.]?$",
    )
]

_SENTENCE_SPLIT = re.compile(r"[.!?]+")

MIN_PHRASE_LENGTH = 3

# First niche whose keyword appears in the phrase wins. Order matters.
NICHE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("AI prompt automation", ("prompt", "chatgpt", "automate", "gpt", "llm")),
    ("Developer tools", ("debug", "code", "development", "programming", "git")),
    ("Business automation", ("workflow", "process", "automate", "efficiency")),
    ("Content creation", ("content", "write", "blog", "article", "seo")),
    ("Healthcare tech", ("patient", "medical", "health", "doctor", "appointment")),
    ("Legal automation", ("legal", "contract", "lawyer", "compliance", "document")),
    ("Education tools", ("learn", "teach", "course", "student", "education")),
    ("Marketing tools", ("marketing", "social", "campaign", "advertise", "growth")),
    ("Financial tools", ("finance", "accounting", "invoice", "payment", "budget")),
    ("E-commerce", ("sell", "shop", "product", "customer", "order")),
]

CHANNEL_NICHES = {
    "promptengineering": "AI prompt automation",
    "programming": "Developer tools",
    "entrepreneur": "Business automation",
    "startups": "Startup tools",
    "smallbusiness": "Small business tools",
    "healthcare": "Healthcare tech",
    "legaladvice": "Legal automation",
    "webdev": "Web development tools",
}

GENERAL_NICHE = "General automation"


def determine_niche(text: str, channel: str) -> str:
    lowered = text.lower()
    for niche, keywords in NICHE_KEYWORDS:
        if any(k in lowered for k in keywords):
            return niche
    return CHANNEL_NICHES.get((channel or "").lower(), GENERAL_NICHE)


def extract_phrases(text: str) -> list[str]:
    """All demand phrases in `text`, first-seen order, no repeats."""
    phrases: list[str] = []
    seen: set[str] = set()
    for sentence in _SENTENCE_SPLIT.split(text.lower()):
        sentence = " ".join(sentence.split())
        if not sentence:
            continue
        for pattern in DEMAND_PATTERNS:
            m = pattern.search(sentence)
            if not m or not m.group(1):
                continue
            phrase = m.group(1).strip()
            if len(phrase) < MIN_PHRASE_LENGTH or phrase in seen:
                continue
            seen.add(phrase)
            phrases.append(phrase)
    return phrases


def extract_demand_signals(item: SourceItem) -> list[DemandSignal]:
    """Demand signals from an item's title and body, one per distinct phrase."""
    text = f"{item.title} {item.body or ''}"
    return [
        DemandSignal(
            text=phrase,
            niche=determine_niche(phrase, item.channel),
            channel=item.channel,
            item_id=item.id,
            author=item.author,
            engagement=item.score,
        )
        for phrase in extract_phrases(text)
    ]
