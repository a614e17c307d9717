from dedup.engine import DedupEngine

__all__ = ["DedupEngine"]
