"""PLINK binary dosage streaming using bed-reader.

Reads .bed/.bim/.fam filesets in windows of variants, with the sample axis
reordered to match the null model so every dosage vector is indexed like the
model's residuals and projection matrices.
"""

from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import numpy as np
from bed_reader import open_bed
from loguru import logger

from glmmscan.core.progress import progress_iterator


def _bed_path(bfile: Path | str) -> Path:
    bed_path = Path(f"{bfile}.bed")
    if not bed_path.exists():
        raise FileNotFoundError(f"PLINK .bed file not found: {bed_path}")
    return bed_path


def get_plink_metadata(bfile: Path | str) -> dict[str, Any]:
    """Get PLINK file metadata without loading genotypes.

    Args:
        bfile: Path prefix for PLINK files (without .bed/.bim/.fam extension).

    Returns:
        Dictionary with keys n_samples, n_variants, iid, sid, chromosome,
        bp_position, allele_1, allele_2.

    Raises:
        FileNotFoundError: If the .bed file does not exist.
    """
    with open_bed(_bed_path(bfile)) as bed:
        return {
            "n_samples": bed.iid_count,
            "n_variants": bed.sid_count,
            "iid": bed.iid,
            "sid": bed.sid,
            "chromosome": bed.chromosome,
            "bp_position": bed.bp_position,
            "allele_1": bed.allele_1,
            "allele_2": bed.allele_2,
        }


def align_samples(model_ids: Sequence[str], file_ids: Sequence[str]) -> np.ndarray:
    """Indices into file_ids that put the file's samples in model order.

    Args:
        model_ids: Sample IDs in null-model order.
        file_ids: Sample IDs in file order (e.g. the .fam IID column).

    Returns:
        Integer array r with file_ids[r[i]] == model_ids[i].

    Raises:
        ValueError: If file_ids has duplicates or lacks a model sample.
    """
    position: dict[str, int] = {}
    for i, sample in enumerate(file_ids):
        sample = str(sample)
        if sample in position:
            raise ValueError(f"Duplicate sample ID in genotype file: {sample!r}")
        position[sample] = i

    absent = [str(s) for s in model_ids if str(s) not in position]
    if absent:
        preview = ", ".join(absent[:5])
        raise ValueError(
            f"{len(absent)} null-model samples not found in genotype file "
            f"(first: {preview})"
        )
    return np.array([position[str(s)] for s in model_ids], dtype=np.intp)


def stream_dosage_chunks(
    bfile: Path | str,
    chunk_size: int = 10_000,
    sample_index: np.ndarray | None = None,
    show_progress: bool = True,
) -> Iterator[tuple[np.ndarray, int, int]]:
    """Stream dosage chunks from disk without a full matrix load.

    The .bed file is opened once and read in windows of variants. Missing
    calls come back as NaN, which the score test imputes.

    Args:
        bfile: Path prefix for PLINK files.
        chunk_size: Number of variants per chunk.
        sample_index: Optional sample order (from align_samples); None reads
            all samples in file order.
        show_progress: Whether to show a chunk progress bar.

    Yields:
        Tuple of (dosages, start, end): dosages has shape
        (n_samples, end - start), float64; start/end are variant indices.

    Raises:
        FileNotFoundError: If the .bed file does not exist.
        ValueError: If chunk_size is not positive.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    with open_bed(_bed_path(bfile)) as bed:
        n_variants = bed.sid_count
        n_chunks = (n_variants + chunk_size - 1) // chunk_size
        rows = slice(None) if sample_index is None else sample_index

        logger.info(
            f"Reading {n_variants} variants in {n_chunks} chunks of {chunk_size} "
            f"({bed.iid_count} samples in file)"
        )

        starts = progress_iterator(
            range(0, n_variants, chunk_size),
            total=n_chunks,
            desc="Reading dosages",
            enabled=show_progress,
        )
        for start in starts:
            end = min(start + chunk_size, n_variants)
            chunk = bed.read(index=np.s_[rows, start:end], dtype=np.float64)
            yield chunk, start, end
