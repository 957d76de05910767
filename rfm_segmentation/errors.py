"""Exception and warning types raised by the segmentation toolkit.

Every error subclasses ``ValueError`` as well as :class:`RFMSegmentationError`
so callers can catch either the toolkit-specific base or the broad
``ValueError`` they would catch for any other bad input.
"""

from __future__ import annotations


class RFMSegmentationError(Exception):
    """Base class for all toolkit errors."""


class ValidationError(RFMSegmentationError, ValueError):
    """Input is malformed or temporally inconsistent."""


class DegenerateInputError(RFMSegmentationError, ValueError):
    """A dimension carries too little variation to be scored or scaled.

    Attributes
    ----------
    dimension:
        Name of the offending dimension (``"recency_days"``, ``"frequency"``
        or ``"monetary"``), or ``None`` when the whole population is unusable.
    """

    def __init__(self, message: str, dimension: str | None = None) -> None:
        super().__init__(message)
        self.dimension = dimension


class InvalidClusterCountError(RFMSegmentationError, ValueError):
    """Requested cluster count is outside ``[1, n_points]``."""

    def __init__(self, k: object, n_points: int) -> None:
        super().__init__(
            f"Cluster count must be an integer in [1, {n_points}], got {k!r}"
        )
        self.k = k
        self.n_points = n_points


class ConvergenceWarning(UserWarning):
    """k-means stopped at the iteration cap before assignments stabilised."""
