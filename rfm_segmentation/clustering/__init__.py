"""k-means segmentation of scaled RFM features."""

from .kmeans import ClusterResult, KMeansConfig, run_kmeans
from .profiling import SegmentProfile, profile_clusters
from .selection import DEFAULT_K_VALUES, DispersionCurve, compute_dispersion_curve

__all__ = [
    "ClusterResult",
    "KMeansConfig",
    "run_kmeans",
    "DEFAULT_K_VALUES",
    "DispersionCurve",
    "compute_dispersion_curve",
    "SegmentProfile",
    "profile_clusters",
]
