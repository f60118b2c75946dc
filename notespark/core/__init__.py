"""
Pipeline orchestration: routing, batch fan-out and the hybrid pipeline.
"""

from .router import ComplexityRouter, RoutingDecision
from .batch import ParallelBatchProcessor, BatchOutcome, merge_pages
from .pipeline import HybridExtractionPipeline, PipelineConfig, create_pipeline

__all__ = [
    "ComplexityRouter",
    "RoutingDecision",
    "ParallelBatchProcessor",
    "BatchOutcome",
    "merge_pages",
    "HybridExtractionPipeline",
    "PipelineConfig",
    "create_pipeline",
]
