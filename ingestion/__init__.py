from ingestion.pipeline import IngestionPipeline
from ingestion.queue import InMemoryQueue

__all__ = ["IngestionPipeline", "InMemoryQueue"]
