"""Core support modules for glmmscan.

This package contains configuration and runtime helpers:
- config: Score test configuration dataclass
- threading: Splitting the thread budget between scan workers and BLAS
- progress: Progress display for scans
"""

from glmmscan.core.config import ScoreConfig
from glmmscan.core.threading import ThreadPlan, limit_blas, plan_threads, thread_budget

__all__ = [
    "ScoreConfig",
    "ThreadPlan",
    "limit_blas",
    "plan_threads",
    "thread_budget",
]
