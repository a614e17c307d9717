"""
OpenAI LLM provider implementation.

Also the base for any OpenAI-compatible endpoint (see openrouter_provider).
"""

from llm.provider import LLMProvider, LLMResponse, LLMConfigError, classify_error


class OpenAIProvider(LLMProvider):
    label = "openai"
    key_env = "OPENAI_API_KEY"
    base_url: str | None = None

    def __init__(self, api_key: str, model: str = "gpt-4o"):
        if not api_key:
            raise LLMConfigError(f"{self.key_env} not set")
        import openai
        if self.base_url:
            self._client = openai.OpenAI(api_key=api_key, base_url=self.base_url)
        else:
            self._client = openai.OpenAI(api_key=api_key)
        self._model = model

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> LLMResponse:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
        except Exception as e:
            raise classify_error(e, f"{self.label} API error") from e

        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            text=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
        )

    def name(self) -> str:
        return f"{self.label}/{self._model}"
