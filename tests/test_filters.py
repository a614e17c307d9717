"""
Tests for the pre-dedup quality filters.
"""

import pytest

from filters.quality import filter_posts, rejection_reason

from fakes import make_post


class TestRejectionReason:
    def test_good_post_kept(self):
        assert rejection_reason(make_post("a")) is None

    @pytest.mark.parametrize("flag", ["stickied", "locked", "over_18"])
    def test_flagged(self, flag):
        assert rejection_reason(make_post("a", **{flag: True})) == "pinned/locked/nsfw"

    def test_empty(self):
        assert rejection_reason(make_post("a", title="  ", body="")) == "empty"

    def test_title_only_is_not_empty(self):
        assert rejection_reason(make_post("a", title="Link post", body="")) is None

    def test_low_score(self):
        assert rejection_reason(make_post("a", score=4)) == "low engagement"

    def test_low_comments(self):
        assert rejection_reason(make_post("a", num_comments=2)) == "low engagement"

    def test_floor_is_inclusive(self):
        assert rejection_reason(make_post("a", score=5, num_comments=3)) is None

    def test_custom_floor(self):
        post = make_post("a", score=5, num_comments=3)
        assert rejection_reason(post, min_score=10) == "low engagement"
        assert rejection_reason(post, min_score=0, min_comments=0) is None

    @pytest.mark.parametrize("title,marker", [
        ("Weekly Thread: share your wins", "weekly thread"),
        ("The official MEGATHREAD for tools", "megathread"),
        ("Subreddit rules update", "rules"),
    ])
    def test_noise_markers(self, title, marker):
        assert rejection_reason(make_post("a", title=title)) == f"noise: {marker}"

    def test_noise_needs_whole_word(self):
        # "metadata" and "rulesets" must not trip "meta" / "rules"
        assert rejection_reason(make_post("a", title="Managing metadata and rulesets")) is None


class TestFilterPosts:
    def test_split_preserves_order(self):
        posts = [
            make_post("a"),
            make_post("b", score=0),
            make_post("c"),
            make_post("d", locked=True),
        ]
        kept, rejected = filter_posts(posts)
        assert [p.external_id for p in kept] == ["a", "c"]
        assert [(p.external_id, reason) for p, reason in rejected] == [
            ("b", "low engagement"),
            ("d", "pinned/locked/nsfw"),
        ]

    def test_empty_input(self):
        assert filter_posts([]) == ([], [])
