"""Synthetic transaction logs.

Produces realistic-but-fake invoice data to exercise the segmentation
pipeline without accessing production data.
"""

from .generator import (
    Customer,
    ScenarioConfig,
    generate_customers,
    generate_transactions,
)

__all__ = [
    "Customer",
    "ScenarioConfig",
    "generate_customers",
    "generate_transactions",
]
