from analysis.analyzer import Analyzer
from analysis.pipeline import AnalysisPipeline, merge_runs

__all__ = ["Analyzer", "AnalysisPipeline", "merge_runs"]
