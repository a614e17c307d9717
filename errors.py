"""
Error taxonomy shared by every stage.

Two families matter to whoever runs the work:
- RetryableError: try again later (optionally after `retry_after` seconds).
- FatalError: retrying with the same input cannot help. Fail fast.

"Not a duplicate", "not an opportunity" and "no similar cluster" are
normal results, never exceptions.
"""


class ScoutError(Exception):
    """Base class for all delta-scout errors."""
    pass


class RetryableError(ScoutError):
    """Transient failure. Safe to re-run the unit of work from scratch."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class RateLimitedError(RetryableError):
    """Source or model said slow down."""
    pass


class TransientError(RetryableError):
    """Timeouts, 5xx, dropped connections."""
    pass


class FatalError(ScoutError):
    """Non-retryable. Surface to the caller without burning retry budget."""
    pass


class ConfigurationError(FatalError):
    """Missing credentials, unknown provider, invalid model id."""
    pass


class SchemaViolationError(FatalError):
    """Model output did not satisfy the output schema, even after repair."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class EmbeddingDimensionError(FatalError):
    """Embedding length differs from the vectors already in the store."""
    pass


class SourceBlockedError(ScoutError):
    """
    Channel is forbidden, private or gone. Not retried by the generic
    policy: the ingestion pipeline turns this into a `blocked` run status
    and the caller backs off for a long interval.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, RetryableError)
