"""Pipeline orchestration module."""

from .graph import (
    InputError,
    analyze_transaction,
    build_pipeline,
    create_pipeline_app,
    run_analysis,
    run_pipeline,
)
from .progress import ProgressEvent, ProgressHandle
from .runtime import PipelineServices, build_default_services
from .state import PipelineState

__all__ = [
    "PipelineState",
    "PipelineServices",
    "ProgressEvent",
    "ProgressHandle",
    "InputError",
    "build_default_services",
    "build_pipeline",
    "create_pipeline_app",
    "run_pipeline",
    "run_analysis",
    "analyze_transaction",
]
