from clustering.engine import ClusteringEngine

__all__ = ["ClusteringEngine"]
