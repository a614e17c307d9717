"""
Base source-client interface. All source clients must implement this.
"""

from abc import ABC, abstractmethod

from models import RawPost


class SourceClient(ABC):
    """
    A source client pulls one page of posts from one channel.

    Contract:
    - fetch() returns RawPost records sorted newest first.
    - Clients hold no cursor state; the ingestion pipeline owns cursors.
    - Clients never call LLMs and never filter on quality.
    - Transport failures are raised with their kind:
      SourceBlockedError (forbidden / gone), RateLimitedError (with
      retry_after), TransientError (timeouts, 5xx, network).
    """

    @abstractmethod
    def fetch(self, channel: str, sort: str = "new", limit: int = 100) -> list[RawPost]:
        ...

    @abstractmethod
    def name(self) -> str:
        """Client name, used in logs."""
        ...
