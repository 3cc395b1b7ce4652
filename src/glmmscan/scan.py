"""Variant scans over dosage matrices and PLINK files.

Each scan calls the per-variant score test once per variant; nothing is
batched across variants. The parallel scan splits the variant range into
contiguous blocks, one per worker thread, each with its own ModelContext
fork over the shared read-only model.

Example:
    >>> from glmmscan.scan import scan_plink
    >>> scan = scan_plink(context, "data/my_study")
    >>> print(f"{scan.n_tested} of {scan.n_variants} variants tested")
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from loguru import logger

from glmmscan.core.progress import ScanProgress
from glmmscan.core.threading import limit_blas, plan_threads
from glmmscan.io.plink import align_samples, get_plink_metadata, stream_dosage_chunks
from glmmscan.score import score_test
from glmmscan.score.model import ModelContext
from glmmscan.score.results import ScoreResult
from glmmscan.score.spa import TailProbabilitySolver
from glmmscan.utils.logging import log_checkpoint, scan_log


@dataclass
class ScanResult:
    """Result of a variant scan.

    Attributes:
        results: (variant_index, ScoreResult) for every variant that passed
            the MAF/MAC gate, in variant order.
        n_variants: Number of variants visited.
        n_recalibrated: Binary variants whose p-value came from the tail
            solver.
        timing: Timing breakdown with keys 'scan_s' and 'total_s'.
    """

    results: list[tuple[int, ScoreResult]]
    n_variants: int
    n_recalibrated: int = 0
    timing: dict[str, float] = field(default_factory=dict)

    @property
    def n_tested(self) -> int:
        return len(self.results)

    @property
    def n_filtered(self) -> int:
        """Variants excluded by the MAF/MAC gate."""
        return self.n_variants - self.n_tested

    @property
    def n_unconverged(self) -> int:
        return sum(1 for _, r in self.results if r.converged is False)

    @property
    def n_nonfinite(self) -> int:
        """Tested variants with a degenerate (non-finite) p-value."""
        return sum(1 for _, r in self.results if not np.isfinite(r.pval))


def _check_dosages(context: ModelContext, dosages: np.ndarray) -> np.ndarray:
    dosages = np.asarray(dosages)
    if dosages.ndim != 2 or dosages.shape[0] != context.model.n_samples:
        raise ValueError(
            f"Dosage matrix must have shape (n_samples={context.model.n_samples}, "
            f"n_variants), got {dosages.shape}"
        )
    return dosages


def _score_columns(
    context: ModelContext,
    dosages: np.ndarray,
    offset: int,
    solver: TailProbabilitySolver | None,
    progress: ScanProgress | None,
) -> list[tuple[int, ScoreResult]]:
    results = []
    for j in range(dosages.shape[1]):
        result = score_test(context, dosages[:, j], solver=solver)
        if result is not None:
            results.append((offset + j, result))
        if progress is not None:
            progress.advance(tested=result is not None)
    return results


def _count_recalibrated(
    context: ModelContext, results: list[tuple[int, ScoreResult]]
) -> int:
    threshold = context.config.spa_pval_threshold
    return sum(
        1
        for _, r in results
        if r.pval_noadj is not None
        and np.isfinite(r.pval_noadj)
        and r.pval_noadj <= threshold
    )


def _log_summary(scan: ScanResult) -> None:
    logger.info(
        f"Scan complete: {scan.n_tested}/{scan.n_variants} variants tested "
        f"({scan.n_filtered} filtered) in {scan.timing.get('total_s', 0.0):.1f}s"
    )
    if scan.n_recalibrated:
        logger.info(f"Saddle-point recalibration applied to {scan.n_recalibrated} variants")
    if scan.n_unconverged:
        logger.warning(f"Tail solver did not converge for {scan.n_unconverged} variants")
    if scan.n_nonfinite:
        logger.warning(f"{scan.n_nonfinite} variants have non-finite p-values")


def scan_dosages(
    context: ModelContext,
    dosages: np.ndarray,
    solver: TailProbabilitySolver | None = None,
    show_progress: bool = True,
    log_file: Path | str | None = None,
) -> ScanResult:
    """Score every column of a dosage matrix on one thread.

    Args:
        context: Null model and scratch buffers.
        dosages: Matrix (n_samples, n_variants) in model sample order;
            missing values allowed.
        solver: Tail-probability solver for binary outcomes.
        show_progress: Whether to show a progress bar.
        log_file: Optional JSON-lines log of this scan.

    Returns:
        ScanResult with the tested variants.

    Raises:
        ValueError: If the matrix does not have n_samples rows.
    """
    t_start = time.perf_counter()
    dosages = _check_dosages(context, dosages)
    n_variants = dosages.shape[1]
    plan = plan_threads(n_variants, n_workers=1)

    with scan_log(log_file, scan="dosages", trait=context.model.trait.value):
        logger.info(f"Scoring {n_variants} variants ({context.model.trait.value} trait)")
        log_checkpoint("scan", "start", n_variants=n_variants)
        with limit_blas(plan):
            with ScanProgress(n_variants, desc="Scoring", enabled=show_progress) as progress:
                results = _score_columns(context, dosages, 0, solver, progress)

        elapsed = time.perf_counter() - t_start
        scan = ScanResult(
            results=results,
            n_variants=n_variants,
            n_recalibrated=_count_recalibrated(context, results),
            timing={"scan_s": elapsed, "total_s": elapsed},
        )
        log_checkpoint("scan", "end", n_tested=scan.n_tested)
        _log_summary(scan)
    return scan


def scan_dosages_parallel(
    context: ModelContext,
    dosages: np.ndarray,
    n_workers: int | None = None,
    solver: TailProbabilitySolver | None = None,
    log_file: Path | str | None = None,
) -> ScanResult:
    """Score every column of a dosage matrix on a pool of worker threads.

    The matrix is split into contiguous column blocks, one per worker. Each
    worker scores its block with context.fork(), so no scratch buffer is
    shared, and the thread budget left over after the workers is divided
    among them for BLAS. Results are identical to scan_dosages and returned
    in variant order.

    Args:
        context: Null model; its own buffers are not used.
        dosages: Matrix (n_samples, n_variants) in model sample order.
        n_workers: Worker threads; None uses the thread budget.
        solver: Tail-probability solver; must be thread-safe.
        log_file: Optional JSON-lines log of this scan.

    Returns:
        ScanResult with the tested variants.

    Raises:
        ValueError: If the matrix has the wrong shape or n_workers < 1.
    """
    t_start = time.perf_counter()
    dosages = _check_dosages(context, dosages)
    n_variants = dosages.shape[1]
    plan = plan_threads(n_variants, n_workers=n_workers)
    bounds = np.linspace(0, n_variants, plan.n_workers + 1).astype(int)

    def work(block: int) -> list[tuple[int, ScoreResult]]:
        start, end = bounds[block], bounds[block + 1]
        return _score_columns(
            context.fork(), dosages[:, start:end], int(start), solver, None
        )

    with scan_log(log_file, scan="dosages_parallel", trait=context.model.trait.value):
        logger.info(
            f"Scoring {n_variants} variants on {plan.n_workers} worker threads "
            f"({plan.blas_per_worker} BLAS threads each)"
        )
        log_checkpoint("scan", "start", n_variants=n_variants, n_workers=plan.n_workers)
        with limit_blas(plan), ThreadPoolExecutor(max_workers=plan.n_workers) as pool:
            blocks = list(pool.map(work, range(plan.n_workers)))

        results = [item for block in blocks for item in block]
        elapsed = time.perf_counter() - t_start
        scan = ScanResult(
            results=results,
            n_variants=n_variants,
            n_recalibrated=_count_recalibrated(context, results),
            timing={"scan_s": elapsed, "total_s": elapsed},
        )
        log_checkpoint("scan", "end", n_tested=scan.n_tested)
        _log_summary(scan)
    return scan


def scan_plink(
    context: ModelContext,
    bfile: Path | str,
    chunk_size: int = 10_000,
    solver: TailProbabilitySolver | None = None,
    show_progress: bool = True,
    log_file: Path | str | None = None,
) -> ScanResult:
    """Score every variant of a PLINK fileset.

    When the model carries sample IDs the .fam samples are matched to them
    (IID column) and reordered into model order; extra samples in the file
    are ignored. Without sample IDs the file must have exactly the model's
    samples, in model order.

    Args:
        context: Null model and scratch buffers.
        bfile: Path prefix for PLINK files (without extension).
        chunk_size: Variants read per disk window.
        solver: Tail-probability solver for binary outcomes.
        show_progress: Whether to show progress bars.
        log_file: Optional JSON-lines log of this scan.

    Returns:
        ScanResult; variant indices refer to .bim order.

    Raises:
        FileNotFoundError: If the .bed file does not exist.
        ValueError: If the file's samples cannot be matched to the model.
    """
    t_start = time.perf_counter()
    model = context.model
    meta = get_plink_metadata(bfile)

    with scan_log(log_file, scan="plink", trait=model.trait.value):
        sample_index = None
        if model.sample_ids is not None:
            log_checkpoint("align", "start", n_samples=int(meta["n_samples"]))
            iids = [str(s) for s in meta["iid"]]
            sample_index = align_samples(model.sample_ids, iids)
            log_checkpoint("align", "end", n_samples=len(sample_index))
        elif meta["n_samples"] != model.n_samples:
            raise ValueError(
                f"PLINK file has {meta['n_samples']} samples but the null model has "
                f"{model.n_samples}; store sample IDs in the model to align them"
            )

        plan = plan_threads(meta["n_variants"], n_workers=1)
        log_checkpoint("scan", "start", n_variants=int(meta["n_variants"]))
        results: list[tuple[int, ScoreResult]] = []
        chunks = stream_dosage_chunks(
            bfile, chunk_size=chunk_size, sample_index=sample_index, show_progress=show_progress
        )
        with limit_blas(plan):
            for dosages, start, _end in chunks:
                results.extend(_score_columns(context, dosages, start, solver, None))
        t_scan = time.perf_counter()

        scan = ScanResult(
            results=results,
            n_variants=meta["n_variants"],
            n_recalibrated=_count_recalibrated(context, results),
            timing={"scan_s": t_scan - t_start, "total_s": time.perf_counter() - t_start},
        )
        log_checkpoint("scan", "end", n_tested=scan.n_tested)
        _log_summary(scan)
    return scan
