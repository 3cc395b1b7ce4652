"""Thread planning for scans.

A scan spends threads in two places: the worker threads that each score a
block of variants on their own ModelContext fork, and the BLAS pool that
numpy calls into for every projection. The products are k-by-n with small k,
so a plan hands the budget to workers first and gives each worker an equal
share of what is left for BLAS. A single-threaded scan is a plan with one
worker and the whole budget in BLAS.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass

import psutil
from loguru import logger
from threadpoolctl import threadpool_limits

ENV_THREADS = "GLMMSCAN_THREADS"


@dataclass(frozen=True)
class ThreadPlan:
    """How a scan divides its thread budget.

    Attributes:
        n_workers: Worker threads, each scoring with its own context fork.
        blas_per_worker: BLAS threads available inside each worker.
        budget: Thread budget the plan was drawn from.
    """

    n_workers: int
    blas_per_worker: int
    budget: int

    @property
    def n_threads(self) -> int:
        """Threads in use when every worker is inside a BLAS call."""
        return self.n_workers * self.blas_per_worker


def thread_budget() -> int:
    """Threads a scan may use.

    GLMMSCAN_THREADS when set to an integer, otherwise the physical core
    count; either way clamped to [1, os.cpu_count()].
    """
    n_cpu = os.cpu_count() or 1

    requested = os.environ.get(ENV_THREADS)
    if requested is not None:
        try:
            return min(max(int(requested), 1), n_cpu)
        except ValueError:
            logger.warning(f"Ignoring {ENV_THREADS}={requested!r}: not an integer")

    return min(psutil.cpu_count(logical=False) or n_cpu, n_cpu)


def plan_threads(
    n_variants: int,
    n_workers: int | None = None,
    budget: int | None = None,
) -> ThreadPlan:
    """Split a thread budget between scan workers and BLAS.

    Args:
        n_variants: Variants in the scan; there are never more workers.
        n_workers: Requested workers. None uses the whole budget.
        budget: Thread budget. None uses thread_budget().

    Returns:
        ThreadPlan with at least one worker and one BLAS thread per worker.

    Raises:
        ValueError: If n_workers or budget is below one.
    """
    if budget is None:
        budget = thread_budget()
    elif budget < 1:
        raise ValueError(f"budget must be >= 1, got {budget}")

    if n_workers is None:
        n_workers = budget
    elif n_workers < 1:
        raise ValueError(f"n_workers must be >= 1, got {n_workers}")

    n_workers = min(n_workers, max(n_variants, 1))
    return ThreadPlan(
        n_workers=n_workers,
        blas_per_worker=max(budget // n_workers, 1),
        budget=budget,
    )


@contextmanager
def limit_blas(plan: ThreadPlan) -> Generator[ThreadPlan, None, None]:
    """Cap the BLAS pool at the plan's per-worker share while scoring.

    Example:
        >>> plan = plan_threads(n_variants=50_000, n_workers=8)
        >>> with limit_blas(plan):
        ...     ...  # run plan.n_workers workers
    """
    logger.debug(
        f"{plan.n_workers} scan workers x {plan.blas_per_worker} BLAS threads "
        f"(budget {plan.budget})"
    )
    with threadpool_limits(limits=plan.blas_per_worker, user_api="blas"):
        yield plan
