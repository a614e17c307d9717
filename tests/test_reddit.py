"""
Tests for the Reddit client. The HTTP session is mocked; nothing
touches the network.
"""

from dataclasses import replace
from unittest.mock import MagicMock

import pytest
import requests

from collectors.reddit import (
    OAUTH_BASE,
    PUBLIC_BASE,
    TOKEN_URL,
    RedditClient,
    format_permalink,
    parse_listing,
)
from errors import ConfigurationError, RateLimitedError, SourceBlockedError, TransientError


def _child(post_id: str, created: float, **fields) -> dict:
    data = {
        "id": post_id,
        "subreddit": "smallbusiness",
        "title": f"Title {post_id}",
        "selftext": "Body",
        "author": "amy",
        "score": 12,
        "ups": 14,
        "downs": 2,
        "num_comments": 5,
        "url": f"https://reddit.com/{post_id}",
        "permalink": f"/r/smallbusiness/comments/{post_id}/",
        "created_utc": created,
    }
    data.update(fields)
    return {"kind": "t3", "data": data}


def _listing(*children) -> dict:
    return {"kind": "Listing", "data": {"children": list(children)}}


def _response(status: int = 200, payload=None, headers: dict | None = None):
    resp = MagicMock()
    resp.status_code = status
    resp.headers = headers or {}
    resp.json.return_value = payload if payload is not None else _listing()
    return resp


def _session(*responses, token_response=None):
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = list(responses)
    if token_response is not None:
        session.post.return_value = token_response
    return session


@pytest.fixture
def oauth_config(config):
    return replace(
        config,
        reddit_client_id="id",
        reddit_client_secret="secret",
        reddit_username="bot",
        reddit_password="pw",
    )


# ──────────────────────────────────────────────
# Parsing
# ──────────────────────────────────────────────

class TestParseListing:
    def test_fields_mapped(self):
        posts = parse_listing(_listing(_child("a1", 1700000000, stickied=True, over_18=True)), "fallback")
        post = posts[0]
        assert post.external_id == "a1"
        assert post.channel == "smallbusiness"
        assert (post.score, post.upvotes, post.downvotes, post.num_comments) == (12, 14, 2, 5)
        assert post.created_at.timestamp() == 1700000000
        assert post.created_at.tzinfo is not None
        assert post.stickied and post.over_18 and not post.locked

    def test_sorted_newest_first(self):
        posts = parse_listing(_listing(_child("old", 100), _child("new", 300), _child("mid", 200)), "x")
        assert [p.external_id for p in posts] == ["new", "mid", "old"]

    def test_non_posts_and_missing_ids_skipped(self):
        data = _listing({"kind": "t1", "data": {"id": "c1"}}, {"kind": "t3", "data": {}}, _child("p", 1))
        assert [p.external_id for p in parse_listing(data, "x")] == ["p"]

    def test_missing_optional_fields(self):
        data = _listing({"kind": "t3", "data": {"id": "p", "created_utc": 5}})
        post = parse_listing(data, "fallback")[0]
        assert post.channel == "fallback"
        assert post.author == "[deleted]"
        assert post.body == ""
        assert post.score == 0

    def test_empty(self):
        assert parse_listing({}, "x") == []


class TestFormatPermalink:
    def test_relative(self):
        assert format_permalink("/r/x/comments/1/") == "https://reddit.com/r/x/comments/1/"

    def test_missing_slash(self):
        assert format_permalink("r/x/") == "https://reddit.com/r/x/"

    def test_absolute(self):
        assert format_permalink("https://old.reddit.com/r/x") == "https://old.reddit.com/r/x"

    def test_empty(self):
        assert format_permalink("") == ""


# ──────────────────────────────────────────────
# Fetching
# ──────────────────────────────────────────────

class TestPublicFetch:
    def test_public_listing(self, config):
        session = _session(_response(payload=_listing(_child("a", 1), _child("b", 2))))
        client = RedditClient(config, session=session)

        posts = client.fetch("smallbusiness", sort="top", limit=25)

        assert [p.external_id for p in posts] == ["b", "a"]
        assert not client.uses_oauth
        args, kwargs = session.get.call_args
        assert args[0] == f"{PUBLIC_BASE}/r/smallbusiness/top.json"
        assert kwargs["params"] == {"limit": 25, "raw_json": 1}
        assert kwargs["headers"] == {}
        assert session.headers["User-Agent"] == config.reddit_user_agent
        session.post.assert_not_called()

    def test_limit_capped(self, config):
        session = _session(_response())
        RedditClient(config, session=session).fetch("x", limit=500)
        assert session.get.call_args.kwargs["params"]["limit"] == 100

    def test_invalid_sort(self, config):
        with pytest.raises(ValueError):
            RedditClient(config, session=_session()).fetch("x", sort="controversial")


class TestOAuthFetch:
    def test_token_fetched_once_and_reused(self, oauth_config):
        token = _response(payload={"access_token": "tok", "expires_in": 3600})
        session = _session(_response(), _response(), token_response=token)
        client = RedditClient(oauth_config, session=session)

        client.fetch("startups")
        client.fetch("webdev")

        assert client.uses_oauth
        assert session.post.call_count == 1
        assert session.post.call_args.args[0] == TOKEN_URL
        args, kwargs = session.get.call_args
        assert args[0] == f"{OAUTH_BASE}/r/webdev/new"
        assert kwargs["headers"] == {"Authorization": "bearer tok"}

    @pytest.mark.parametrize("status", [400, 401, 403])
    def test_rejected_credentials(self, oauth_config, status):
        session = _session(token_response=_response(status=status))
        with pytest.raises(ConfigurationError):
            RedditClient(oauth_config, session=session).fetch("startups")

    def test_token_missing_from_response(self, oauth_config):
        session = _session(token_response=_response(payload={"error": "nope"}))
        with pytest.raises(TransientError):
            RedditClient(oauth_config, session=session).fetch("startups")


# ──────────────────────────────────────────────
# Error mapping
# ──────────────────────────────────────────────

class TestErrorMapping:
    @pytest.mark.parametrize("status", [403, 404])
    def test_blocked(self, config, status):
        session = _session(_response(status=status))
        with pytest.raises(SourceBlockedError) as exc:
            RedditClient(config, session=session).fetch("private")
        assert exc.value.status_code == status

    def test_rate_limited_with_header(self, config):
        session = _session(_response(status=429, headers={"Retry-After": "42"}))
        with pytest.raises(RateLimitedError) as exc:
            RedditClient(config, session=session).fetch("x")
        assert exc.value.retry_after == 42

    def test_rate_limited_default_wait(self, config):
        session = _session(_response(status=429))
        with pytest.raises(RateLimitedError) as exc:
            RedditClient(config, session=session).fetch("x")
        assert exc.value.retry_after == 60

    def test_service_unavailable(self, config):
        session = _session(_response(status=503))
        with pytest.raises(TransientError) as exc:
            RedditClient(config, session=session).fetch("x")
        assert exc.value.retry_after == 300

    def test_other_5xx(self, config):
        session = _session(_response(status=502))
        with pytest.raises(TransientError) as exc:
            RedditClient(config, session=session).fetch("x")
        assert exc.value.retry_after is None

    def test_timeout(self, config):
        session = _session(requests.Timeout("slow"))
        with pytest.raises(TransientError):
            RedditClient(config, session=session).fetch("x")

    def test_connection_error(self, config):
        session = _session(requests.ConnectionError("reset"))
        with pytest.raises(TransientError):
            RedditClient(config, session=session).fetch("x")

    def test_malformed_json(self, config):
        resp = _response()
        resp.json.side_effect = ValueError("not json")
        with pytest.raises(TransientError):
            RedditClient(config, session=_session(resp)).fetch("x")
