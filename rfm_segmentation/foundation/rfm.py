"""RFM (Recency-Frequency-Monetary) aggregation and scoring.

RFM analysis describes each customer along three dimensions:
- Recency: How many days ago did the customer last purchase?
- Frequency: How many distinct invoices did they place?
- Monetary: How much did they spend in total?

The aggregates produced here feed both the ordinal RFM scores used for
reporting and the scaled features used for k-means segmentation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence

import numpy as np

from rfm_segmentation.errors import DegenerateInputError, ValidationError
from rfm_segmentation.foundation.transactions import Transaction

logger = logging.getLogger(__name__)

MAX_BINS = 9


@dataclass(frozen=True)
class CustomerAggregate:
    """RFM aggregates for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency_days:
        Whole days between the customer's latest invoice and analysis_date
    frequency:
        Number of distinct invoices
    monetary:
        Total spend (sum of quantity x unit_price over all invoice lines)
    last_invoice_date:
        Date of the customer's most recent invoice
    analysis_date:
        Reference date recency is measured from
    """

    customer_id: str
    recency_days: int
    frequency: int
    monetary: Decimal
    last_invoice_date: date
    analysis_date: date

    def __post_init__(self) -> None:
        """Validate aggregate values."""
        if self.recency_days < 0:
            raise ValidationError(
                f"Recency cannot be negative: {self.recency_days} (customer_id={self.customer_id})"
            )
        if self.frequency <= 0:
            raise ValidationError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )
        if self.monetary < 0:
            raise ValidationError(
                f"Monetary value cannot be negative: {self.monetary} (customer_id={self.customer_id})"
            )


def calculate_customer_aggregates(
    transactions: Iterable[Transaction],
    analysis_date: Optional[date] = None,
) -> list[CustomerAggregate]:
    """Collapse a transaction log into one RFM aggregate per customer.

    Parameters
    ----------
    transactions:
        Cleaned invoice lines. May contain several lines per invoice.
    analysis_date:
        Date recency is measured from. Defaults to the latest invoice date
        in ``transactions``.

    Returns
    -------
    list[CustomerAggregate]
        One aggregate per distinct customer_id, sorted by customer_id

    Raises
    ------
    ValidationError
        If any invoice is dated after ``analysis_date``.

    Examples
    --------
    >>> from datetime import date
    >>> from decimal import Decimal
    >>> txns = [
    ...     Transaction("C1", "INV-1", 2, Decimal("5.00"), date(2023, 3, 1)),
    ...     Transaction("C1", "INV-1", 1, Decimal("3.50"), date(2023, 3, 1)),
    ...     Transaction("C1", "INV-2", 1, Decimal("10.00"), date(2023, 3, 20)),
    ... ]
    >>> agg = calculate_customer_aggregates(txns, date(2023, 3, 31))
    >>> agg[0].frequency, agg[0].monetary, agg[0].recency_days
    (2, Decimal('23.50'), 11)
    """
    transactions = list(transactions)
    if not transactions:
        return []

    if isinstance(analysis_date, datetime):
        analysis_date = analysis_date.date()

    # Group by customer_id
    customer_data: dict[str, dict] = {}
    for txn in transactions:
        day = txn.day
        data = customer_data.get(txn.customer_id)
        if data is None:
            data = customer_data[txn.customer_id] = {
                "last_invoice_date": day,
                "invoices": set(),
                "monetary": Decimal("0"),
            }
        if day > data["last_invoice_date"]:
            data["last_invoice_date"] = day
        data["invoices"].add(txn.invoice_id)
        data["monetary"] += txn.line_total

    if analysis_date is None:
        analysis_date = max(data["last_invoice_date"] for data in customer_data.values())

    aggregates: list[CustomerAggregate] = []
    for customer_id, data in customer_data.items():
        last_invoice_date = data["last_invoice_date"]
        if last_invoice_date > analysis_date:
            raise ValidationError(
                f"Invoice date ({last_invoice_date}) cannot be after "
                f"analysis_date ({analysis_date}) for customer {customer_id}"
            )
        aggregates.append(
            CustomerAggregate(
                customer_id=customer_id,
                recency_days=(analysis_date - last_invoice_date).days,
                frequency=len(data["invoices"]),
                monetary=data["monetary"],
                last_invoice_date=last_invoice_date,
                analysis_date=analysis_date,
            )
        )

    aggregates.sort(key=lambda a: a.customer_id)
    logger.info(
        f"Aggregated {len(transactions)} transactions into {len(aggregates)} customers "
        f"(analysis_date={analysis_date})"
    )
    return aggregates


@dataclass(frozen=True)
class RFMScore:
    """Ordinal RFM scores for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency_score:
        1..bins, where the highest score is the most recent customer
    frequency_score:
        1..bins, where the highest score is the most frequent customer
    monetary_score:
        1..bins, where the highest score is the biggest spender
    rfm_score:
        Concatenated score string (e.g. "555" for the best customers)
    bins:
        Bin count the scores were computed with
    """

    customer_id: str
    recency_score: int
    frequency_score: int
    monetary_score: int
    rfm_score: str
    bins: int = 5

    def __post_init__(self) -> None:
        """Validate RFM scores."""
        for score_name, score_value in [
            ("recency_score", self.recency_score),
            ("frequency_score", self.frequency_score),
            ("monetary_score", self.monetary_score),
        ]:
            if not 1 <= score_value <= self.bins:
                raise ValueError(
                    f"{score_name} must be between 1 and {self.bins}: {score_value} "
                    f"(customer_id={self.customer_id})"
                )
        expected_rfm = f"{self.recency_score}{self.frequency_score}{self.monetary_score}"
        if self.rfm_score != expected_rfm:
            raise ValueError(
                f"rfm_score ({self.rfm_score}) does not match r/f/m scores ({expected_rfm}) "
                f"(customer_id={self.customer_id})"
            )

    @property
    def composite(self) -> int:
        """Weighted 100/10/1 composite of the three scores."""
        return 100 * self.recency_score + 10 * self.frequency_score + self.monetary_score


def _quantile_inner_edges(arr: np.ndarray, bins: int) -> np.ndarray:
    edges = np.quantile(arr, np.linspace(0.0, 1.0, bins + 1))
    return np.unique(edges[1:-1])


def quantile_bin(values: Sequence[float], bins: int) -> np.ndarray:
    """Assign zero-based quantile bin indices to ``values``.

    Bin edges are the population quantiles at ``i / bins`` (linear
    interpolation between order statistics). Duplicate inner edges are
    merged, and each value lands in the number of inner edges strictly below
    it, so intervals are right-closed and the lowest one is closed on both
    sides. Equal values always share a bin and the index never decreases as
    the value increases.

    Returns
    -------
    numpy.ndarray
        Integer bin index per value, each in ``[0, bins - 1]``
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return np.empty(0, dtype=int)
    inner_edges = _quantile_inner_edges(arr, bins)
    return np.searchsorted(inner_edges, arr, side="left").astype(int)


def _score_dimension(
    name: str,
    values: Sequence[float],
    bins: int,
    reverse: bool,
    allow_merged_bins: bool,
) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    unique_count = len(np.unique(arr))

    if unique_count < bins and not allow_merged_bins:
        raise DegenerateInputError(
            f"{name} has {unique_count} distinct values, fewer than the {bins} requested bins",
            dimension=name,
        )

    if unique_count == 1:
        # All values identical - assign middle score
        return np.full(arr.size, (bins + 1) // 2, dtype=int)

    inner_edges = _quantile_inner_edges(arr, bins)
    categories = np.searchsorted(inner_edges, arr, side="left")
    top = arr.max()
    if inner_edges.size and inner_edges[-1] == top:
        # Top interval is empty; the block of maximum values takes it
        categories[arr == top] = inner_edges.size

    used, ranks = np.unique(categories, return_inverse=True)
    if used.size < bins:
        if not allow_merged_bins:
            raise DegenerateInputError(
                f"{name} fills only {used.size} of the {bins} requested bins "
                f"({unique_count} distinct values)",
                dimension=name,
            )
        logger.debug(
            f"{name}: {used.size} of {bins} quantile bins survive, spreading over 1..{bins}"
        )
        # Surviving bins are spread over the full range; the ends stay at 0 and bins - 1
        categories = np.floor(ranks * (bins - 1) / (used.size - 1) + 0.5).astype(int)
    else:
        categories = ranks.astype(int)

    if reverse:
        # Lowest raw value (most recent) always receives the top score
        return bins - categories
    return categories + 1


def calculate_rfm_scores(
    aggregates: Sequence[CustomerAggregate],
    bins: int = 5,
    allow_merged_bins: bool = True,
) -> list[RFMScore]:
    """Score each customer 1..bins per RFM dimension.

    Customers are split into ``bins`` groups of roughly equal size with
    :func:`quantile_bin`. For recency, lower values (more recent) get higher
    scores. For frequency and monetary, higher values get higher scores.

    **Note on Small Datasets**: When a dimension has heavy ties or fewer
    distinct values than ``bins``, neighbouring quantile edges coincide and
    bins merge. The surviving bins are spread over ``1..bins`` so the lowest
    value still scores 1 and the highest scores ``bins`` (reversed for
    recency), but some scores in between go unused. Scores stay monotone
    with the underlying metric. Pass ``allow_merged_bins=False`` to reject
    such populations with :class:`DegenerateInputError` instead.

    Parameters
    ----------
    aggregates:
        Per-customer RFM aggregates
    bins:
        Number of score levels per dimension (1-9, default: 5 for quintiles)
    allow_merged_bins:
        Accept dimensions whose quantile edges merge into fewer than ``bins`` bins

    Returns
    -------
    list[RFMScore]
        RFM scores for each customer, sorted by customer_id

    Examples
    --------
    >>> scores = calculate_rfm_scores(aggregates)
    >>> best = [s for s in scores if s.rfm_score == "555"]
    """
    if not 1 <= bins <= MAX_BINS:
        raise ValueError(f"bins must be between 1 and {MAX_BINS}: {bins}")
    if not aggregates:
        return []

    recency = _score_dimension(
        "recency_days",
        [a.recency_days for a in aggregates],
        bins,
        reverse=True,
        allow_merged_bins=allow_merged_bins,
    )
    frequency = _score_dimension(
        "frequency",
        [a.frequency for a in aggregates],
        bins,
        reverse=False,
        allow_merged_bins=allow_merged_bins,
    )
    monetary = _score_dimension(
        "monetary",
        [float(a.monetary) for a in aggregates],
        bins,
        reverse=False,
        allow_merged_bins=allow_merged_bins,
    )

    rfm_scores: list[RFMScore] = []
    for agg, r, f, m in zip(aggregates, recency, frequency, monetary):
        rfm_scores.append(
            RFMScore(
                customer_id=agg.customer_id,
                recency_score=int(r),
                frequency_score=int(f),
                monetary_score=int(m),
                rfm_score=f"{int(r)}{int(f)}{int(m)}",
                bins=bins,
            )
        )

    # Sort by customer_id for consistency
    rfm_scores.sort(key=lambda s: s.customer_id)
    return rfm_scores
