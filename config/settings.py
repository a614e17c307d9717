"""
Configuration. All settings from env vars or a single config file.
No YAML. No TOML parsing. Just a Python dict you edit.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

# Auto-load .env file so you don't need `export $(grep ...)` every time
from dotenv import load_dotenv
load_dotenv()


@dataclass
class Config:
    # LLM provider: "claude" | "openai" | "openrouter"
    llm_provider: str = os.environ.get("SCOUT_LLM_PROVIDER", "openrouter")

    # API keys, read from env only
    anthropic_api_key: str = os.environ.get("ANTHROPIC_API_KEY", "")
    openai_api_key: str = os.environ.get("OPENAI_API_KEY", "")
    openrouter_api_key: str = os.environ.get("OPENROUTER_API_KEY", "")

    # Models
    anthropic_model: str = os.environ.get("SCOUT_ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
    openai_model: str = os.environ.get("SCOUT_OPENAI_MODEL", "gpt-4o")
    openrouter_model: str = os.environ.get("SCOUT_OPENROUTER_MODEL", "anthropic/claude-sonnet-4")

    # Embeddings always go through the OpenAI embeddings endpoint
    embedding_model: str = os.environ.get("SCOUT_EMBEDDING_MODEL", "text-embedding-3-small")

    # Storage
    db_path: Path = Path(os.environ.get("SCOUT_DB_PATH", "data/scout.db"))

    # ── Reddit ──
    # Without OAuth credentials the public JSON listing is used (tighter limits).
    reddit_client_id: str = os.environ.get("REDDIT_CLIENT_ID", "")
    reddit_client_secret: str = os.environ.get("REDDIT_CLIENT_SECRET", "")
    reddit_username: str = os.environ.get("REDDIT_USERNAME", "")
    reddit_password: str = os.environ.get("REDDIT_PASSWORD", "")
    reddit_user_agent: str = os.environ.get(
        "REDDIT_USER_AGENT", "python:delta-scout:v0.1 (opportunity research)"
    )
    request_timeout: float = float(os.environ.get("SCOUT_REQUEST_TIMEOUT", "30"))

    # ── Channels (subreddits) to watch ──
    channels: list[str] = field(default_factory=lambda: [
        "entrepreneur",
        "startups",
        "smallbusiness",
        "business",
        "accounting",
        "finance",
        "investing",
        "legaladvice",
        "lawyers",
        "medicine",
        "healthcare",
        "programming",
        "webdev",
        "datascience",
        "MachineLearning",
        "artificialintelligence",
        "PromptEngineering",
    ])
    fetch_sort: str = os.environ.get("SCOUT_FETCH_SORT", "new")
    fetch_limit: int = int(os.environ.get("SCOUT_FETCH_LIMIT", "100"))

    # ── Quality floors (pre-dedup) ──
    min_post_score: int = int(os.environ.get("SCOUT_MIN_POST_SCORE", "5"))
    min_post_comments: int = int(os.environ.get("SCOUT_MIN_POST_COMMENTS", "3"))

    # ── Dedup windows ──
    # Bounded on purpose: a duplicate older than the window or past the cap
    # is not caught. Widen these rather than scanning the whole table.
    item_dedup_days: int = int(os.environ.get("SCOUT_ITEM_DEDUP_DAYS", "30"))
    item_dedup_sample: int = int(os.environ.get("SCOUT_ITEM_DEDUP_SAMPLE", "100"))
    item_similarity_threshold: float = float(os.environ.get("SCOUT_ITEM_SIMILARITY", "0.9"))
    opportunity_dedup_days: int = int(os.environ.get("SCOUT_OPP_DEDUP_DAYS", "60"))
    opportunity_dedup_sample: int = int(os.environ.get("SCOUT_OPP_DEDUP_SAMPLE", "200"))
    opportunity_similarity_threshold: float = float(os.environ.get("SCOUT_OPP_SIMILARITY", "0.85"))
    # A merged analysis only overwrites the stored score above this confidence
    score_override_confidence: float = float(os.environ.get("SCOUT_SCORE_OVERRIDE_CONFIDENCE", "0.95"))

    # ── Analysis ──
    analysis_batch_size: int = int(os.environ.get("SCOUT_ANALYSIS_BATCH_SIZE", "8"))
    analysis_limit: int = int(os.environ.get("SCOUT_ANALYSIS_LIMIT", "500"))
    viability_threshold: float = float(os.environ.get("SCOUT_VIABILITY_THRESHOLD", "4.0"))

    # ── Clustering ──
    cluster_similarity_threshold: float = float(os.environ.get("SCOUT_CLUSTER_SIMILARITY", "0.85"))
    cluster_top_k: int = int(os.environ.get("SCOUT_CLUSTER_TOP_K", "100"))
    cluster_stale_days: int = int(os.environ.get("SCOUT_CLUSTER_STALE_DAYS", "60"))
    cluster_min_occurrences: int = int(os.environ.get("SCOUT_CLUSTER_MIN_OCCURRENCES", "3"))
    # Opportunity grouping for `scout ideas`
    idea_similarity_threshold: float = float(os.environ.get("SCOUT_IDEA_SIMILARITY", "0.80"))
    idea_min_sources: int = int(os.environ.get("SCOUT_IDEA_MIN_SOURCES", "3"))
    idea_candidate_limit: int = int(os.environ.get("SCOUT_IDEA_CANDIDATES", "200"))

    # ── Retry (CLI runner only; queues apply their own policy) ──
    retry_max_attempts: int = int(os.environ.get("SCOUT_RETRY_MAX_ATTEMPTS", "3"))
    retry_base_delay: float = float(os.environ.get("SCOUT_RETRY_BASE_DELAY", "2"))
    retry_max_delay: float = float(os.environ.get("SCOUT_RETRY_MAX_DELAY", "60"))

    # Blocked channels are left alone this long (hint for the scheduler)
    blocked_backoff_seconds: int = int(os.environ.get("SCOUT_BLOCKED_BACKOFF", str(24 * 3600)))


def load_config() -> Config:
    return Config()
