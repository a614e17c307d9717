import sys
import tempfile
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import Config
from storage.db import Storage


@pytest.fixture
def tmp_storage():
    """Create a temporary Storage instance for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        storage = Storage(db_path)
        yield storage
        storage.close()


@pytest.fixture
def config():
    """Defaults with no credentials, independent of the local environment."""
    return Config(
        llm_provider="openrouter",
        anthropic_api_key="",
        openai_api_key="",
        openrouter_api_key="",
        reddit_client_id="",
        reddit_client_secret="",
        reddit_username="",
        reddit_password="",
        min_post_score=5,
        min_post_comments=3,
        item_dedup_days=30,
        item_dedup_sample=100,
        item_similarity_threshold=0.9,
        opportunity_dedup_days=60,
        opportunity_dedup_sample=200,
        opportunity_similarity_threshold=0.85,
        score_override_confidence=0.95,
        analysis_batch_size=8,
        fetch_sort="new",
        fetch_limit=100,
        analysis_limit=500,
        viability_threshold=4.0,
        cluster_stale_days=60,
        cluster_min_occurrences=3,
        idea_similarity_threshold=0.80,
        idea_min_sources=3,
        idea_candidate_limit=200,
        blocked_backoff_seconds=86400,
    )
