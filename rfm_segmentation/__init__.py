"""RFM scoring and k-means customer segmentation."""

from .errors import (
    ConvergenceWarning,
    DegenerateInputError,
    InvalidClusterCountError,
    RFMSegmentationError,
    ValidationError,
)
from .pipeline import SegmentationConfig, SegmentationResult, run_segmentation

__version__ = "0.1.0"

__all__ = [
    "ConvergenceWarning",
    "DegenerateInputError",
    "InvalidClusterCountError",
    "RFMSegmentationError",
    "ValidationError",
    "SegmentationConfig",
    "SegmentationResult",
    "run_segmentation",
]
