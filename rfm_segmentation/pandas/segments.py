"""Pandas DataFrame adapters for scaled features and clustering output."""

from typing import Sequence

import pandas as pd  # type: ignore

from rfm_segmentation.clustering.kmeans import ClusterResult
from rfm_segmentation.clustering.profiling import SegmentProfile
from rfm_segmentation.clustering.selection import DispersionCurve
from rfm_segmentation.foundation.scaling import ScaledFeatures
from rfm_segmentation.pipeline import SegmentationResult
from ._utils import decimal_to_float

FEATURE_COLUMNS = ["customer_id", "recency_feat", "frequency_feat", "monetary_feat"]

PROFILE_COLUMNS = [
    "cluster",
    "customer_count",
    "share_of_customers",
    "mean_recency_days",
    "mean_frequency",
    "mean_monetary",
]


def features_to_dataframe(features: ScaledFeatures) -> pd.DataFrame:
    """One row per customer with the three scaled features.

    Dropped dimensions appear as a column of zeros.
    """
    rows = [
        {
            "customer_id": v.customer_id,
            "recency_feat": v.recency_feat,
            "frequency_feat": v.frequency_feat,
            "monetary_feat": v.monetary_feat,
        }
        for v in features.vectors()
    ]
    return pd.DataFrame(rows, columns=FEATURE_COLUMNS)


def assignment_to_dataframe(result: ClusterResult) -> pd.DataFrame:
    """customer_id / cluster pairs in input order."""
    return pd.DataFrame(
        {
            "customer_id": list(result.assignment.keys()),
            "cluster": list(result.assignment.values()),
        }
    )


def centroids_to_dataframe(result: ClusterResult) -> pd.DataFrame:
    """k rows, one column per feature dimension, indexed by cluster."""
    df = pd.DataFrame(list(result.centroids), columns=list(result.dimensions))
    df.index.name = "cluster"
    return df


def profiles_to_dataframe(profiles: Sequence[SegmentProfile]) -> pd.DataFrame:
    """Convert segment profiles to a DataFrame ordered by cluster.

    Example:
        >>> profiles_df = profiles_to_dataframe(result.profiles)
        >>> profiles_df.sort_values('mean_monetary', ascending=False).head(1)
    """
    rows = [
        {
            "cluster": p.cluster,
            "customer_count": p.customer_count,
            "share_of_customers": p.share_of_customers,
            "mean_recency_days": p.mean_recency_days,
            "mean_frequency": p.mean_frequency,
            "mean_monetary": decimal_to_float(p.mean_monetary),
        }
        for p in profiles
    ]
    return pd.DataFrame(rows, columns=PROFILE_COLUMNS)


def dispersion_curve_to_dataframe(curve: DispersionCurve) -> pd.DataFrame:
    """Two columns, ``k`` and ``inertia``, ready for an elbow plot."""
    return pd.DataFrame(curve.as_records(), columns=["k", "inertia"])


def customer_table_to_dataframe(result: SegmentationResult) -> pd.DataFrame:
    """Per-customer aggregates, scores and cluster label in one frame."""
    df = pd.DataFrame(result.customer_table())
    if not df.empty:
        df["monetary"] = df["monetary"].map(decimal_to_float)
    return df
