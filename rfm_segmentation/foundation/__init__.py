"""Foundational building blocks for RFM segmentation.

This package exposes the cleaned transaction record along with
per-customer RFM aggregation, quantile scoring and feature scaling.
"""

from .rfm import (
    CustomerAggregate,
    RFMScore,
    calculate_customer_aggregates,
    calculate_rfm_scores,
    quantile_bin,
)
from .scaling import DIMENSIONS, ScaledFeatures, ScaledFeatureVector, scale_features
from .transactions import Transaction, transactions_from_records

__all__ = [
    "Transaction",
    "transactions_from_records",
    "CustomerAggregate",
    "RFMScore",
    "calculate_customer_aggregates",
    "calculate_rfm_scores",
    "quantile_bin",
    "DIMENSIONS",
    "ScaledFeatures",
    "ScaledFeatureVector",
    "scale_features",
]
