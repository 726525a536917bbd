"""
CLI control surface.

Provides the `swc` console command:
- run: schedule one job per source and wait for all outcomes
- probe: show source metadata without downloading
"""

from .commands import (
    EXIT_SUCCESS,
    EXIT_VALIDATION_ERROR,
    EXIT_JOB_FAILED,
    EXIT_SYSTEM_ERROR,
    build_pipeline,
    run_sources,
    probe_source,
)
from .errors import CLIError, ValidationError
from .main import main, configure_logging

__all__ = [
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_JOB_FAILED",
    "EXIT_SYSTEM_ERROR",
    "build_pipeline",
    "run_sources",
    "probe_source",
    "CLIError",
    "ValidationError",
    "main",
    "configure_logging",
]
