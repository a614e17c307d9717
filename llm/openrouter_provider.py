"""
OpenRouter LLM provider implementation.

OpenRouter exposes an OpenAI-compatible API at https://openrouter.ai/api/v1.
Uses the OpenAI SDK with a custom base_url. No extra dependencies.
"""

from llm.openai_provider import OpenAIProvider


class OpenRouterProvider(OpenAIProvider):
    label = "openrouter"
    key_env = "OPENROUTER_API_KEY"
    base_url = "https://openrouter.ai/api/v1"

    def __init__(self, api_key: str, model: str = "anthropic/claude-sonnet-4"):
        super().__init__(api_key=api_key, model=model)
