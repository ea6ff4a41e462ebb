"""Text-to-diagnostic pipeline: classification and ranking."""

from devmonitor.pipeline.classifier import LogClassifier
from devmonitor.pipeline.ranker import SeverityRanker

__all__ = ["LogClassifier", "SeverityRanker"]
