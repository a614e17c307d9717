from collectors.reddit import RedditClient

__all__ = [
    "RedditClient",
]
