"""Null-model bundle I/O.

A bundle is an uncompressed or compressed .npz archive whose member names are
the SAIGE null-model keys (see glmmscan.score.model). Null-model fitting is
done elsewhere; this module only moves the fitted quantities in and out.
"""

from pathlib import Path

import numpy as np
from loguru import logger

from glmmscan.score.model import NullModel, Trait


def load_null_model(path: Path | str, trait: Trait | str | None = None) -> NullModel:
    """Read and validate a null model from an .npz bundle.

    Args:
        path: Path to the .npz file.
        trait: Outcome type. When None, the bundle's "trait.type" member is
            used.

    Returns:
        Validated, read-only NullModel.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If fields are missing or dimensions are inconsistent.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Null model file not found: {path}")

    logger.info(f"Loading null model from {path}")
    with np.load(path, allow_pickle=False) as npz:
        bundle = {key: npz[key] for key in npz.files}
    return NullModel.from_bundle(bundle, trait=trait)


def save_null_model(model: NullModel, path: Path | str, compress: bool = True) -> Path:
    """Write a null model as an .npz bundle readable by load_null_model.

    Args:
        model: Model to save.
        path: Output path; parent directories are created if needed.
        compress: Use np.savez_compressed.

    Returns:
        Path of the written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    bundle = {key: np.asarray(value) for key, value in model.to_bundle().items()}
    with open(path, "wb") as f:
        if compress:
            np.savez_compressed(f, **bundle)
        else:
            np.savez(f, **bundle)

    logger.info(f"Null model saved to {path}")
    return path
