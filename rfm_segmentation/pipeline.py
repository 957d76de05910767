"""End-to-end RFM segmentation run.

Chains the pure stages of the toolkit over one immutable snapshot of
transactions::

    transactions -> aggregates -> scores
                              -> scaled features -> dispersion curve
                                                 -> k-means (chosen k)
                                                 -> segment profiles
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional, Sequence

from rfm_segmentation.clustering.kmeans import ClusterResult, KMeansConfig, run_kmeans
from rfm_segmentation.clustering.profiling import SegmentProfile, profile_clusters
from rfm_segmentation.clustering.selection import (
    DEFAULT_K_VALUES,
    DispersionCurve,
    compute_dispersion_curve,
)
from rfm_segmentation.errors import ValidationError
from rfm_segmentation.foundation.rfm import (
    MAX_BINS,
    CustomerAggregate,
    RFMScore,
    calculate_customer_aggregates,
    calculate_rfm_scores,
)
from rfm_segmentation.foundation.scaling import ScaledFeatures, scale_features
from rfm_segmentation.foundation.transactions import Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentationConfig:
    """Configuration for a segmentation run.

    Attributes
    ----------
    bins:
        Score levels per RFM dimension (default: 5 for quintiles)
    allow_merged_bins:
        Accept dimensions with fewer distinct values than ``bins``
    drop_degenerate_dimensions:
        Drop zero-variance dimensions from clustering instead of failing
    n_clusters:
        Cluster count for the final segmentation, normally read off the
        dispersion curve of a previous run
    k_values:
        Candidate cluster counts for the dispersion curve. Empty to skip it.
    kmeans:
        Restart, iteration, seed and parallelism settings shared by every
        k-means run
    """

    bins: int = 5
    allow_merged_bins: bool = True
    drop_degenerate_dimensions: bool = False
    n_clusters: int = 4
    k_values: Sequence[int] = DEFAULT_K_VALUES
    kmeans: KMeansConfig = field(default_factory=KMeansConfig)

    def __post_init__(self) -> None:
        if not 1 <= self.bins <= MAX_BINS:
            raise ValueError(f"bins must be between 1 and {MAX_BINS}: {self.bins}")
        if self.n_clusters < 1:
            raise ValueError(f"n_clusters must be at least 1: {self.n_clusters}")
        # Stored as a tuple
        object.__setattr__(self, "k_values", tuple(self.k_values))


@dataclass(frozen=True)
class SegmentationResult:
    """Everything a completed run produces.

    Attributes
    ----------
    analysis_date:
        Reference date for recency
    aggregates:
        Per-customer RFM aggregates, sorted by customer_id
    scores:
        Per-customer RFM scores, aligned with ``aggregates``
    features:
        Scaled clustering features
    dispersion_curve:
        Inertia for every candidate k
    clusters:
        k-means result for ``config.n_clusters``
    profiles:
        One profile per cluster of ``clusters``
    config:
        Configuration the run used
    """

    analysis_date: date
    aggregates: tuple[CustomerAggregate, ...]
    scores: tuple[RFMScore, ...]
    features: ScaledFeatures
    dispersion_curve: DispersionCurve
    clusters: ClusterResult
    profiles: tuple[SegmentProfile, ...]
    config: SegmentationConfig

    def customer_table(self) -> list[dict[str, Any]]:
        """One record per customer joining aggregates, scores and cluster."""
        scores = {s.customer_id: s for s in self.scores}
        rows = []
        for agg in self.aggregates:
            score = scores[agg.customer_id]
            rows.append(
                {
                    "customer_id": agg.customer_id,
                    "recency_days": agg.recency_days,
                    "frequency": agg.frequency,
                    "monetary": agg.monetary,
                    "last_invoice_date": agg.last_invoice_date,
                    "recency_score": score.recency_score,
                    "frequency_score": score.frequency_score,
                    "monetary_score": score.monetary_score,
                    "rfm_score": score.rfm_score,
                    "cluster": self.clusters.assignment[agg.customer_id],
                }
            )
        return rows

    def as_dict(self) -> dict[str, Any]:
        """Return JSON-serialisable representation of the run."""

        def serialise_row(row: dict[str, Any]) -> dict[str, Any]:
            return {
                **row,
                "monetary": str(row["monetary"]),
                "last_invoice_date": row["last_invoice_date"].isoformat(),
            }

        return {
            "analysis_date": self.analysis_date.isoformat(),
            "config": {
                "bins": self.config.bins,
                "n_clusters": self.config.n_clusters,
                "k_values": list(self.config.k_values),
                "n_init": self.config.kmeans.n_init,
                "max_iter": self.config.kmeans.max_iter,
                "seed": self.config.kmeans.seed,
                "init": self.config.kmeans.init,
            },
            "customers": [serialise_row(row) for row in self.customer_table()],
            "dispersion_curve": self.dispersion_curve.as_records(),
            "clusters": {
                "k": self.clusters.k,
                "dimensions": list(self.clusters.dimensions),
                "centroids": [list(c) for c in self.clusters.centroids],
                "inertia": self.clusters.inertia,
                "converged": self.clusters.converged,
                "n_iter": self.clusters.n_iter,
            },
            "profiles": [
                {
                    "cluster": p.cluster,
                    "customer_count": p.customer_count,
                    "share_of_customers": p.share_of_customers,
                    "mean_recency_days": p.mean_recency_days,
                    "mean_frequency": p.mean_frequency,
                    "mean_monetary": str(p.mean_monetary),
                }
                for p in self.profiles
            ],
        }


def run_segmentation(
    transactions: Iterable[Transaction],
    config: Optional[SegmentationConfig] = None,
    analysis_date: Optional[date] = None,
) -> SegmentationResult:
    """Run the full RFM segmentation pipeline.

    Parameters
    ----------
    transactions:
        Cleaned invoice lines
    config:
        Run configuration (defaults to :class:`SegmentationConfig`)
    analysis_date:
        Recency reference date. Defaults to the latest invoice date.

    Returns
    -------
    SegmentationResult

    Raises
    ------
    ValidationError
        If there are no transactions or an invoice post-dates analysis_date.
    DegenerateInputError
        If a dimension cannot be scored or scaled.
    InvalidClusterCountError
        If ``config.n_clusters`` exceeds the number of customers.

    Examples
    --------
    >>> result = run_segmentation(transactions, SegmentationConfig(n_clusters=4))
    >>> result.dispersion_curve.points[:3]
    ((1, 1500.0), (2, 910.2), (3, 604.8))
    """
    config = config or SegmentationConfig()

    aggregates = calculate_customer_aggregates(transactions, analysis_date)
    if not aggregates:
        raise ValidationError("No transactions to segment")
    analysis_date = aggregates[0].analysis_date

    logger.info(f"Scoring {len(aggregates)} customers into {config.bins} bins")
    scores = calculate_rfm_scores(
        aggregates, bins=config.bins, allow_merged_bins=config.allow_merged_bins
    )

    features = scale_features(
        aggregates, drop_degenerate=config.drop_degenerate_dimensions
    )

    curve = compute_dispersion_curve(features, config.k_values, config.kmeans)

    if config.n_clusters in curve.results:
        clusters = curve.results[config.n_clusters]
    else:
        clusters = run_kmeans(features, config.n_clusters, config.kmeans)

    profiles = profile_clusters(clusters, aggregates)
    logger.info(
        f"Segmented {len(aggregates)} customers into {clusters.k} clusters "
        f"(sizes={clusters.cluster_sizes()})"
    )

    return SegmentationResult(
        analysis_date=analysis_date,
        aggregates=tuple(aggregates),
        scores=tuple(scores),
        features=features,
        dispersion_curve=curve,
        clusters=clusters,
        profiles=tuple(profiles),
        config=config,
    )
