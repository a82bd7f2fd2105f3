"""
Job Module for eventdigest

Contains:
- The per-project processor (event-triggered and sweep checks)
- The scheduled sweep

Uses APScheduler for background scheduling.
"""

from eventdigest.jobs.processor import ProcessResult, ProjectEventProcessor
from eventdigest.jobs.sweep import SweepResult, SweepScheduler, run_sweep

__all__ = [
    "ProcessResult",
    "ProjectEventProcessor",
    "SweepResult",
    "SweepScheduler",
    "run_sweep",
]
