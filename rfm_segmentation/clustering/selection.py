"""Dispersion curve for choosing the number of segments.

Runs k-means over a range of candidate cluster counts and reports the
within-cluster inertia for each. Picking the operating k from the curve
(the "elbow") is left to the analyst.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from rfm_segmentation.clustering.kmeans import (
    ClusterResult,
    FeatureInput,
    KMeansConfig,
    run_kmeans,
)
from rfm_segmentation.errors import InvalidClusterCountError

logger = logging.getLogger(__name__)

DEFAULT_K_VALUES: tuple[int, ...] = tuple(range(1, 11))


@dataclass(frozen=True)
class DispersionCurve:
    """Inertia per candidate cluster count.

    Attributes
    ----------
    points:
        ``(k, inertia)`` pairs in the order the k values were requested
    results:
        Full clustering result for each k that ran
    errors:
        k -> error message for cluster counts that could not run
    """

    points: tuple[tuple[int, float], ...]
    results: Mapping[int, ClusterResult] = field(default_factory=dict)
    errors: Mapping[int, str] = field(default_factory=dict)

    @property
    def k_values(self) -> list[int]:
        return [k for k, _ in self.points]

    @property
    def inertias(self) -> list[float]:
        return [inertia for _, inertia in self.points]

    def inertia_for(self, k: int) -> float:
        return self.results[k].inertia

    def as_records(self) -> list[dict[str, float]]:
        return [{"k": k, "inertia": inertia} for k, inertia in self.points]


def compute_dispersion_curve(
    features: FeatureInput,
    k_values: Iterable[int] = DEFAULT_K_VALUES,
    config: Optional[KMeansConfig] = None,
) -> DispersionCurve:
    """Run k-means for each candidate k and collect the inertias.

    A k outside ``[1, N]`` is recorded in :attr:`DispersionCurve.errors`
    and skipped; the remaining candidates still run.

    Examples
    --------
    >>> curve = compute_dispersion_curve(features, range(1, 8))
    >>> for k, inertia in curve.points:
    ...     print(k, round(inertia, 1))
    """
    config = config or KMeansConfig()
    points: list[tuple[int, float]] = []
    results: dict[int, ClusterResult] = {}
    errors: dict[int, str] = {}

    for k in k_values:
        if k in results or k in errors:
            continue
        try:
            result = run_kmeans(features, k, config)
        except InvalidClusterCountError as exc:
            logger.warning(f"Skipping k={k} in dispersion curve: {exc}")
            errors[k] = str(exc)
            continue
        results[k] = result
        points.append((k, result.inertia))

    logger.info(f"Dispersion curve computed for {len(points)} cluster counts")
    return DispersionCurve(points=tuple(points), results=results, errors=errors)
