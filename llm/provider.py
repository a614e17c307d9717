"""
LLMProvider interface. This is the only abstraction that matters.

Every generative call in the system goes through this interface.
Implementations live in separate modules. No provider-specific
logic exists outside of llm/*.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from errors import ConfigurationError, RateLimitedError, ScoutError, TransientError


@dataclass
class LLMResponse:
    """What comes back from any LLM call."""
    text: str
    input_tokens: int
    output_tokens: int
    model: str


class LLMProvider(ABC):
    """
    Single interface for all LLM providers.

    Design notes:
    - One method: `complete`. That's it.
    - System prompt + user prompt. No chat history management.
      This is a batch tool, not a chatbot.
    - Temperature exposed because analysis wants low (0.2)
      and schema repair wants zero.
    - Max tokens to bound cost. A batch of 8 analyses needs far more
      room than a single one.
    """

    @abstractmethod
    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> LLMResponse:
        """
        Send a prompt to the LLM and get a response.

        Args:
            system_prompt: Sets the LLM's behavior/role.
            user_prompt: The actual content to process.
            temperature: 0.0-1.0, lower = more deterministic.
            max_tokens: Upper bound on response length.

        Returns:
            LLMResponse with text and usage stats.

        Raises:
            LLMRateLimitError: quota or rate limit, retry later.
            LLMTransientError: timeouts, 5xx, dropped connections.
            LLMConfigError: bad key, unknown model, malformed request.
        """
        ...

    @abstractmethod
    def name(self) -> str:
        """Return provider name for logging."""
        ...


class LLMError(ScoutError):
    """Raised when an LLM call fails."""
    pass


class LLMRateLimitError(LLMError, RateLimitedError):
    pass


class LLMTransientError(LLMError, TransientError):
    pass


class LLMConfigError(LLMError, ConfigurationError):
    pass


# Matched against the lowercased SDK message when no status code is available
_CONFIG_MARKERS = (
    "api key", "api_key", "unauthorized", "forbidden", "bad request",
    "invalid model", "model not found", "does not exist", "malformed",
)
_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "quota", "too many requests")


def classify_error(e: Exception, prefix: str) -> LLMError:
    """
    Map an SDK exception onto the error taxonomy.

    Status code wins when the SDK exposes one; otherwise fall back to
    the message text. Anything unrecognised is treated as transient.
    """
    message = f"{prefix}: {e}"
    status = getattr(e, "status_code", None)
    retry_after = _retry_after_from(e)

    if status == 429:
        return LLMRateLimitError(message, retry_after=retry_after)
    if status in (400, 401, 403, 404, 422):
        return LLMConfigError(message)
    if isinstance(status, int) and status >= 500:
        return LLMTransientError(message, retry_after=retry_after)

    lowered = str(e).lower()
    if any(m in lowered for m in _RATE_LIMIT_MARKERS):
        return LLMRateLimitError(message, retry_after=retry_after)
    if any(m in lowered for m in _CONFIG_MARKERS):
        return LLMConfigError(message)
    return LLMTransientError(message, retry_after=retry_after)


def _retry_after_from(e: Exception) -> float | None:
    response = getattr(e, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
