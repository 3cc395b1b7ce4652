"""I/O modules for glmmscan.

- model: null-model .npz bundles
- plink: PLINK binary dosage streaming aligned to the model's samples
"""

from glmmscan.io.model import load_null_model, save_null_model
from glmmscan.io.plink import align_samples, get_plink_metadata, stream_dosage_chunks

__all__ = [
    "align_samples",
    "get_plink_metadata",
    "load_null_model",
    "save_null_model",
    "stream_dosage_chunks",
]
