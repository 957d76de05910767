"""Standardise RFM aggregates into clustering features.

Each raw dimension is z-scored against the customer population. Recency is
then sign-flipped so that, like frequency and monetary, a larger feature
value always means a more valuable customer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Mapping, Sequence

import numpy as np

from rfm_segmentation.errors import DegenerateInputError
from rfm_segmentation.foundation.rfm import CustomerAggregate

logger = logging.getLogger(__name__)

DIMENSIONS: tuple[str, ...] = ("recency_days", "frequency", "monetary")

# Sign applied after z-scoring so every feature grows with customer value
_FEATURE_SIGNS: Mapping[str, float] = {
    "recency_days": -1.0,
    "frequency": 1.0,
    "monetary": 1.0,
}


@dataclass(frozen=True)
class ScaledFeatureVector:
    """Standardised RFM features for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency_feat:
        Negated z-score of recency_days (higher = more recent)
    frequency_feat:
        z-score of frequency
    monetary_feat:
        z-score of monetary
    """

    customer_id: str
    recency_feat: float
    frequency_feat: float
    monetary_feat: float


@dataclass(frozen=True, eq=False)
class ScaledFeatures:
    """Feature matrix handed to the clusterer.

    Attributes
    ----------
    customer_ids:
        Row labels, in the order of the input aggregates
    dimensions:
        Names of the raw dimensions kept as columns of ``values``
    values:
        ``len(customer_ids) x len(dimensions)`` array of scaled features
    means:
        Population mean per kept dimension
    stds:
        Population standard deviation per kept dimension
    dropped_dimensions:
        Zero-variance dimensions removed at the caller's request
    """

    customer_ids: tuple[str, ...]
    dimensions: tuple[str, ...]
    values: np.ndarray
    means: Mapping[str, float]
    stds: Mapping[str, float]
    dropped_dimensions: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.customer_ids)

    def vectors(self) -> Iterator[ScaledFeatureVector]:
        """Yield one :class:`ScaledFeatureVector` per customer.

        Dropped dimensions are reported as ``0.0``, the population mean.
        """
        columns = {name: idx for idx, name in enumerate(self.dimensions)}
        for row, customer_id in enumerate(self.customer_ids):
            feats = {
                name: float(self.values[row, columns[name]]) if name in columns else 0.0
                for name in DIMENSIONS
            }
            yield ScaledFeatureVector(
                customer_id=customer_id,
                recency_feat=feats["recency_days"],
                frequency_feat=feats["frequency"],
                monetary_feat=feats["monetary"],
            )


def _raw_matrix(aggregates: Sequence[CustomerAggregate]) -> np.ndarray:
    return np.array(
        [[a.recency_days, a.frequency, float(a.monetary)] for a in aggregates],
        dtype=float,
    )


def scale_features(
    aggregates: Sequence[CustomerAggregate],
    drop_degenerate: bool = False,
) -> ScaledFeatures:
    """Z-score recency, frequency and monetary across the population.

    Uses the population standard deviation (ddof=0). The recency column is
    multiplied by -1 after scaling.

    Parameters
    ----------
    aggregates:
        Per-customer RFM aggregates
    drop_degenerate:
        Remove zero-variance dimensions instead of raising

    Returns
    -------
    ScaledFeatures
        Matrix of scaled features, rows in input order

    Raises
    ------
    DegenerateInputError
        If the population is empty, or a dimension has zero variance and
        ``drop_degenerate`` is False, or every dimension has zero variance.
    """
    if not aggregates:
        raise DegenerateInputError("Cannot scale an empty customer population")

    raw = _raw_matrix(aggregates)
    means = raw.mean(axis=0)
    stds = raw.std(axis=0)

    kept: list[int] = []
    dropped: list[str] = []
    for idx, name in enumerate(DIMENSIONS):
        if np.all(raw[:, idx] == raw[0, idx]):
            if not drop_degenerate:
                raise DegenerateInputError(
                    f"{name} has zero variance across {len(aggregates)} customers; "
                    "clustering on it is meaningless",
                    dimension=name,
                )
            logger.warning(f"Dropping zero-variance dimension {name} from features")
            dropped.append(name)
        else:
            kept.append(idx)

    if not kept:
        raise DegenerateInputError("Every RFM dimension has zero variance")

    signs = np.array([_FEATURE_SIGNS[DIMENSIONS[idx]] for idx in kept])
    values = (raw[:, kept] - means[kept]) / stds[kept] * signs
    values.setflags(write=False)

    names = tuple(DIMENSIONS[idx] for idx in kept)
    return ScaledFeatures(
        customer_ids=tuple(a.customer_id for a in aggregates),
        dimensions=names,
        values=values,
        means={name: float(means[idx]) for name, idx in zip(names, kept)},
        stds={name: float(stds[idx]) for name, idx in zip(names, kept)},
        dropped_dimensions=tuple(dropped),
    )
