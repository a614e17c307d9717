"""
Provider factory. Reads config, returns the right LLMProvider / EmbeddingProvider.
"""

from config.settings import Config
from llm.embeddings import EmbeddingProvider
from llm.provider import LLMProvider, LLMConfigError


def create_provider(config: Config) -> LLMProvider:
    """Create LLM provider based on config. Provider selected at runtime."""
    provider = config.llm_provider.lower()

    if provider == "claude":
        from llm.claude_provider import ClaudeProvider
        return ClaudeProvider(
            api_key=config.anthropic_api_key,
            model=config.anthropic_model,
        )
    elif provider == "openai":
        from llm.openai_provider import OpenAIProvider
        return OpenAIProvider(
            api_key=config.openai_api_key,
            model=config.openai_model,
        )
    elif provider == "openrouter":
        from llm.openrouter_provider import OpenRouterProvider
        return OpenRouterProvider(
            api_key=config.openrouter_api_key,
            model=config.openrouter_model,
        )
    else:
        raise LLMConfigError(
            f"Unknown LLM provider: '{provider}'. "
            f"Set SCOUT_LLM_PROVIDER to 'claude', 'openai', or 'openrouter'."
        )


def create_embedder(config: Config) -> EmbeddingProvider:
    from llm.embeddings import OpenAIEmbeddingProvider
    return OpenAIEmbeddingProvider(
        api_key=config.openai_api_key,
        model=config.embedding_model,
    )
