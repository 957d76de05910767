"""Shared fixtures for segmentation tests."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from rfm_segmentation.clustering.kmeans import KMeansConfig
from rfm_segmentation.foundation.transactions import Transaction
from rfm_segmentation.pipeline import SegmentationConfig, run_segmentation


@pytest.fixture
def small_transactions():
    """Eight customers ranging from lapsed one-off buyers to frequent spenders."""
    start = date(2023, 1, 1)
    # customer_id, invoices, days between invoices, unit price
    profiles = [
        ("C1", 12, 28, "45.00"),
        ("C2", 10, 30, "60.00"),
        ("C3", 6, 20, "20.00"),
        ("C4", 5, 25, "15.50"),
        ("C5", 2, 15, "9.99"),
        ("C6", 1, 1, "12.00"),
        ("C7", 1, 1, "150.00"),
        ("C8", 3, 40, "30.00"),
    ]
    offsets = {"C1": 20, "C2": 30, "C3": 150, "C4": 120, "C5": 5, "C6": 10, "C7": 200, "C8": 60}

    transactions = []
    for customer_id, invoices, gap, price in profiles:
        for n in range(invoices):
            invoice_date = start + timedelta(days=offsets[customer_id] + n * gap)
            transactions.append(
                Transaction(
                    customer_id=customer_id,
                    invoice_id=f"{customer_id}-INV-{n}",
                    quantity=1 + n % 3,
                    unit_price=Decimal(price),
                    invoice_date=invoice_date,
                )
            )
    return transactions


@pytest.fixture
def segmentation_result(small_transactions):
    config = SegmentationConfig(
        n_clusters=3,
        k_values=range(1, 5),
        kmeans=KMeansConfig(n_init=5, seed=3),
    )
    return run_segmentation(small_transactions, config)
