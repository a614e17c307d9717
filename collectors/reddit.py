"""
Reddit client. Fetches subreddit listings as RawPosts.

OAuth (script app, password grant) when credentials are configured,
otherwise the public .json listing. Same response shape either way.
"""

import logging
import time
from datetime import datetime, timezone

import requests

from collectors.base import SourceClient
from config.settings import Config
from errors import ConfigurationError, RateLimitedError, SourceBlockedError, TransientError
from models import RawPost

log = logging.getLogger(__name__)

OAUTH_BASE = "https://oauth.reddit.com"
PUBLIC_BASE = "https://www.reddit.com"
TOKEN_URL = "https://www.reddit.com/api/v1/access_token"

VALID_SORTS = ("hot", "new", "top", "rising")
MAX_LIMIT = 100

DEFAULT_RATE_LIMIT_WAIT = 60.0
UNAVAILABLE_WAIT = 300.0
# Refresh the token this long before Reddit says it expires
TOKEN_SAFETY_MARGIN = 600
LOW_REMAINING_WARNING = 10


def format_permalink(permalink: str) -> str:
    """Relative Reddit permalinks -> absolute URLs. Absolute ones pass through."""
    if not permalink:
        return ""
    if permalink.startswith(("http://", "https://")):
        return permalink
    if not permalink.startswith("/"):
        permalink = "/" + permalink
    return f"https://reddit.com{permalink}"


def parse_listing(data: dict, channel: str) -> list[RawPost]:
    """Listing JSON -> RawPosts, newest first. Non-post children are skipped."""
    posts = []
    for child in (data.get("data") or {}).get("children") or []:
        if child.get("kind") not in (None, "t3"):
            continue
        p = child.get("data") or {}
        if not p.get("id"):
            continue
        posts.append(RawPost(
            external_id=p["id"],
            channel=p.get("subreddit") or channel,
            title=p.get("title") or "",
            body=p.get("selftext") or "",
            author=p.get("author") or "[deleted]",
            score=int(p.get("score") or 0),
            upvotes=int(p.get("ups") or 0),
            downvotes=int(p.get("downs") or 0),
            num_comments=int(p.get("num_comments") or 0),
            url=p.get("url") or "",
            permalink=p.get("permalink") or "",
            created_at=datetime.fromtimestamp(float(p.get("created_utc") or 0), tz=timezone.utc),
            stickied=bool(p.get("stickied")),
            locked=bool(p.get("locked")),
            over_18=bool(p.get("over_18")),
            is_self=bool(p.get("is_self", True)),
        ))
    posts.sort(key=lambda post: post.created_at, reverse=True)
    return posts


class RedditClient(SourceClient):
    def __init__(self, config: Config, session: requests.Session | None = None):
        self._session = session or requests.Session()
        self._session.headers["User-Agent"] = config.reddit_user_agent
        self._session.headers["Accept"] = "application/json"
        self._timeout = config.request_timeout
        self._client_id = config.reddit_client_id
        self._client_secret = config.reddit_client_secret
        self._username = config.reddit_username
        self._password = config.reddit_password
        self._token: str | None = None
        self._token_expiry = 0.0

    def name(self) -> str:
        return "reddit"

    @property
    def uses_oauth(self) -> bool:
        return all((self._client_id, self._client_secret, self._username, self._password))

    def fetch(self, channel: str, sort: str = "new", limit: int = 100) -> list[RawPost]:
        if sort not in VALID_SORTS:
            raise ValueError(f"Unknown sort '{sort}'. Use one of {VALID_SORTS}.")
        limit = max(1, min(limit, MAX_LIMIT))

        if self.uses_oauth:
            url = f"{OAUTH_BASE}/r/{channel}/{sort}"
            headers = {"Authorization": f"bearer {self._access_token()}"}
        else:
            url = f"{PUBLIC_BASE}/r/{channel}/{sort}.json"
            headers = {}

        log.info(f"Fetching {sort} posts from r/{channel} (limit {limit})")
        try:
            resp = self._session.get(
                url, params={"limit": limit, "raw_json": 1},
                headers=headers, timeout=self._timeout,
            )
        except requests.Timeout as e:
            raise TransientError(f"Timed out fetching r/{channel} after {self._timeout}s") from e
        except requests.RequestException as e:
            raise TransientError(f"Network error fetching r/{channel}: {e}") from e

        self._log_rate_limit(resp, channel)
        self._raise_for_status(resp, channel)

        try:
            data = resp.json()
        except ValueError as e:
            raise TransientError(f"Malformed listing from r/{channel}: {e}") from e

        posts = parse_listing(data, channel)
        log.debug(f"r/{channel}: {len(posts)} posts in listing")
        return posts

    def _access_token(self) -> str:
        if self._token and time.time() < self._token_expiry:
            return self._token

        try:
            resp = self._session.post(
                TOKEN_URL,
                auth=(self._client_id, self._client_secret),
                data={
                    "grant_type": "password",
                    "username": self._username,
                    "password": self._password,
                },
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransientError(f"Reddit OAuth request failed: {e}") from e

        if resp.status_code in (400, 401, 403):
            raise ConfigurationError(f"Reddit OAuth rejected credentials (HTTP {resp.status_code})")
        self._raise_for_status(resp, "oauth")

        payload = resp.json()
        token = payload.get("access_token")
        if not token:
            raise TransientError(f"Reddit OAuth response had no access_token: {payload}")

        expires_in = int(payload.get("expires_in", 3600))
        self._token = token
        self._token_expiry = time.time() + max(expires_in - TOKEN_SAFETY_MARGIN, 0)
        log.info(f"Got Reddit access token, expires in {expires_in}s")
        return token

    def _log_rate_limit(self, resp: requests.Response, channel: str):
        used = resp.headers.get("X-Ratelimit-Used")
        remaining = resp.headers.get("X-Ratelimit-Remaining")
        reset = resp.headers.get("X-Ratelimit-Reset")
        if not (used or remaining or reset):
            return

        log.debug(f"Rate limit r/{channel}: used={used} remaining={remaining} reset={reset}")
        try:
            if remaining is not None and float(remaining) < LOW_REMAINING_WARNING:
                log.warning(f"Only {remaining} Reddit requests left before rate limit (reset in {reset}s)")
        except ValueError:
            pass

    def _raise_for_status(self, resp: requests.Response, channel: str):
        status = resp.status_code
        if 200 <= status < 300:
            return

        if status == 403:
            raise SourceBlockedError(
                f"Access blocked to r/{channel} (private, restricted or request refused)",
                status_code=status,
            )
        if status == 404:
            raise SourceBlockedError(f"r/{channel} not found or private", status_code=status)
        if status == 429:
            retry_after = DEFAULT_RATE_LIMIT_WAIT
            header = resp.headers.get("Retry-After")
            if header:
                try:
                    retry_after = float(header)
                except ValueError:
                    pass
            raise RateLimitedError(
                f"Rate limited on r/{channel}; retry after {retry_after:.0f}s",
                retry_after=retry_after,
            )
        if status == 503:
            raise TransientError(
                "Reddit service unavailable (503)", retry_after=UNAVAILABLE_WAIT,
            )
        raise TransientError(f"Unexpected Reddit response for r/{channel}: HTTP {status}")
