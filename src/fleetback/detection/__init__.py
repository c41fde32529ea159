"""
Change detection: sampled fingerprints and new/changed/unchanged/removed classification.
"""

from fleetback.detection.detector import ChangeDetector, Detection, FileState, detect_removed
from fleetback.detection.fingerprint import (
    Fingerprint,
    compute_fingerprint,
    hash_full,
    hash_window,
    sample_offsets,
)

__all__ = [
    "ChangeDetector",
    "Detection",
    "FileState",
    "detect_removed",
    "Fingerprint",
    "compute_fingerprint",
    "hash_window",
    "hash_full",
    "sample_offsets",
]
