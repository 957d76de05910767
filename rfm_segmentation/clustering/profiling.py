"""Describe clusters in the units of the raw RFM aggregates."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from rfm_segmentation.clustering.kmeans import ClusterResult
from rfm_segmentation.errors import ValidationError
from rfm_segmentation.foundation.rfm import CustomerAggregate


@dataclass(frozen=True)
class SegmentProfile:
    """Summary of one cluster.

    Attributes
    ----------
    cluster:
        Cluster index
    customer_count:
        Number of customers assigned to the cluster
    share_of_customers:
        customer_count as a fraction of all clustered customers
    mean_recency_days:
        Average days since last purchase
    mean_frequency:
        Average number of invoices
    mean_monetary:
        Average total spend, rounded to cents
    """

    cluster: int
    customer_count: int
    share_of_customers: float
    mean_recency_days: float
    mean_frequency: float
    mean_monetary: Decimal


def profile_clusters(
    result: ClusterResult,
    aggregates: Sequence[CustomerAggregate],
) -> list[SegmentProfile]:
    """Average the unscaled RFM values of each cluster's members.

    Returns
    -------
    list[SegmentProfile]
        One profile per cluster index ``0..k-1``

    Raises
    ------
    ValidationError
        If a clustered customer has no aggregate.
    """
    by_customer = {agg.customer_id: agg for agg in aggregates}
    missing = [cid for cid in result.assignment if cid not in by_customer]
    if missing:
        raise ValidationError(
            f"{len(missing)} clustered customers have no aggregate (e.g. {missing[0]})"
        )

    members: list[list[CustomerAggregate]] = [[] for _ in range(result.k)]
    for customer_id, cluster in result.assignment.items():
        members[cluster].append(by_customer[customer_id])

    total = len(result.assignment)
    profiles: list[SegmentProfile] = []
    for cluster, group in enumerate(members):
        count = len(group)
        if count == 0:
            profiles.append(
                SegmentProfile(cluster, 0, 0.0, 0.0, 0.0, Decimal("0.00"))
            )
            continue
        mean_monetary = sum((a.monetary for a in group), Decimal("0")) / count
        profiles.append(
            SegmentProfile(
                cluster=cluster,
                customer_count=count,
                share_of_customers=count / total,
                mean_recency_days=sum(a.recency_days for a in group) / count,
                mean_frequency=sum(a.frequency for a in group) / count,
                mean_monetary=mean_monetary.quantize(
                    Decimal("0.01"), rounding=ROUND_HALF_UP
                ),
            )
        )
    return profiles
