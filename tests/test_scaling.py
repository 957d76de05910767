"""Tests for feature standardisation."""

from datetime import date, timedelta
from decimal import Decimal

import numpy as np
import pytest

from rfm_segmentation.errors import DegenerateInputError
from rfm_segmentation.foundation.rfm import CustomerAggregate
from rfm_segmentation.foundation.scaling import ScaledFeatureVector, scale_features

ANALYSIS_DATE = date(2023, 12, 31)


def _agg(customer_id, recency_days, frequency, monetary):
    return CustomerAggregate(
        customer_id=customer_id,
        recency_days=recency_days,
        frequency=frequency,
        monetary=Decimal(str(monetary)),
        last_invoice_date=ANALYSIS_DATE - timedelta(days=recency_days),
        analysis_date=ANALYSIS_DATE,
    )


@pytest.fixture
def population():
    return [
        _agg("C1", 10, 8, 900),
        _agg("C2", 40, 4, 300),
        _agg("C3", 200, 1, 50),
        _agg("C4", 90, 2, 120),
    ]


class TestScaleFeatures:
    """Test scale_features function."""

    def test_zero_mean_unit_variance(self, population):
        """Every column has mean 0 and population std 1."""
        features = scale_features(population)

        assert features.values.shape == (4, 3)
        np.testing.assert_allclose(features.values.mean(axis=0), 0.0, atol=1e-12)
        np.testing.assert_allclose(features.values.std(axis=0), 1.0)

    def test_recency_sign_is_flipped(self, population):
        """The most recent customer has the largest recency feature."""
        features = scale_features(population)
        recency = features.values[:, features.dimensions.index("recency_days")]

        assert features.customer_ids[int(recency.argmax())] == "C1"
        assert features.customer_ids[int(recency.argmin())] == "C3"

    def test_matches_manual_zscore(self, population):
        """Scaled values equal (raw - mean) / std with recency negated."""
        features = scale_features(population)
        raw_recency = np.array([10, 40, 200, 90], dtype=float)
        expected = -(raw_recency - raw_recency.mean()) / raw_recency.std()

        np.testing.assert_allclose(features.values[:, 0], expected)
        assert features.means["recency_days"] == pytest.approx(85.0)

    def test_vectors(self, population):
        """vectors() yields one ScaledFeatureVector per customer in order."""
        vectors = list(scale_features(population).vectors())

        assert [v.customer_id for v in vectors] == ["C1", "C2", "C3", "C4"]
        assert all(isinstance(v, ScaledFeatureVector) for v in vectors)
        assert vectors[0].frequency_feat > vectors[2].frequency_feat

    def test_constant_monetary_raises_error(self):
        """Identical monetary values raise DegenerateInputError."""
        aggregates = [_agg(f"C{i}", 10 * (i + 1), i + 1, 250) for i in range(5)]

        with pytest.raises(DegenerateInputError, match="monetary") as excinfo:
            scale_features(aggregates)
        assert excinfo.value.dimension == "monetary"

    def test_constant_dimension_can_be_dropped(self):
        """drop_degenerate removes the zero-variance column."""
        aggregates = [_agg(f"C{i}", 10 * (i + 1), i + 1, 250) for i in range(5)]
        features = scale_features(aggregates, drop_degenerate=True)

        assert features.dimensions == ("recency_days", "frequency")
        assert features.dropped_dimensions == ("monetary",)
        assert features.values.shape == (5, 2)
        assert all(v.monetary_feat == 0.0 for v in features.vectors())

    def test_all_dimensions_constant_raises_error(self):
        """Nothing left to cluster on raises even when dropping."""
        aggregates = [_agg(f"C{i}", 10, 2, 250) for i in range(3)]
        with pytest.raises(DegenerateInputError, match="Every RFM dimension"):
            scale_features(aggregates, drop_degenerate=True)

    def test_empty_population_raises_error(self):
        """Scaling nothing raises DegenerateInputError."""
        with pytest.raises(DegenerateInputError, match="empty"):
            scale_features([])

    def test_values_are_read_only(self, population):
        """The feature matrix cannot be mutated in place."""
        features = scale_features(population)
        with pytest.raises(ValueError):
            features.values[0, 0] = 1.0

    def test_aggregates_are_not_mutated(self, population):
        """Scaling leaves its input untouched."""
        before = list(population)
        scale_features(population)
        assert population == before
