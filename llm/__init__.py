from llm.factory import create_embedder, create_provider

__all__ = ["create_embedder", "create_provider"]
