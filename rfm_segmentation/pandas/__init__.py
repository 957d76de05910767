"""Pandas DataFrame adapters for RFM segmentation components."""

from .rfm import (
    aggregates_to_dataframe,
    calculate_customer_aggregates_df,
    dataframe_to_aggregates,
    dataframe_to_transactions,
    scores_to_dataframe,
)
from .segments import (
    assignment_to_dataframe,
    centroids_to_dataframe,
    customer_table_to_dataframe,
    dispersion_curve_to_dataframe,
    features_to_dataframe,
    profiles_to_dataframe,
)

__all__ = [
    # RFM adapters
    "dataframe_to_transactions",
    "aggregates_to_dataframe",
    "dataframe_to_aggregates",
    "scores_to_dataframe",
    "calculate_customer_aggregates_df",
    # Segmentation adapters
    "features_to_dataframe",
    "assignment_to_dataframe",
    "centroids_to_dataframe",
    "profiles_to_dataframe",
    "dispersion_curve_to_dataframe",
    "customer_table_to_dataframe",
]
