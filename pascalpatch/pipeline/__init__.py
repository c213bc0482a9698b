"""Concurrent five-stage extraction pipeline."""

from pascalpatch.pipeline.orchestrator import PipelineOrchestrator, PipelineResult
from pascalpatch.pipeline.progress import ProgressReporter

__all__ = ["PipelineOrchestrator", "PipelineResult", "ProgressReporter"]
