"""Tests for the end-to-end segmentation pipeline."""

import json
from datetime import date, timedelta
from decimal import Decimal

import pytest

from rfm_segmentation import (
    DegenerateInputError,
    InvalidClusterCountError,
    SegmentationConfig,
    ValidationError,
    run_segmentation,
)
from rfm_segmentation.clustering.kmeans import KMeansConfig
from rfm_segmentation.foundation.transactions import Transaction
from rfm_segmentation.synthetic import (
    ScenarioConfig,
    generate_customers,
    generate_transactions,
)

FAST_KMEANS = KMeansConfig(n_init=3, max_iter=50, seed=11)


@pytest.fixture(scope="module")
def synthetic_transactions():
    customers = generate_customers(80, date(2023, 1, 1), date(2023, 9, 30), seed=21)
    return generate_transactions(
        customers,
        date(2023, 1, 1),
        date(2023, 12, 31),
        scenario=ScenarioConfig(seed=21),
    )


@pytest.fixture
def equal_spend_transactions():
    """Three customers who each spent exactly 100.00 in total."""
    start = date(2023, 1, 1)
    txns = [Transaction("C1", "INV-1", 1, Decimal("100.00"), start)]
    for i in range(2):
        txns.append(
            Transaction("C2", f"INV-2{i}", 1, Decimal("50.00"), start + timedelta(days=30 + i))
        )
    for i in range(4):
        txns.append(
            Transaction("C3", f"INV-3{i}", 1, Decimal("25.00"), start + timedelta(days=60 + i))
        )
    return txns


class TestSegmentationConfig:
    """Test SegmentationConfig validation."""

    def test_defaults(self):
        config = SegmentationConfig()
        assert config.bins == 5
        assert config.n_clusters == 4
        assert config.k_values == tuple(range(1, 11))

    def test_k_values_normalised_to_tuple(self):
        config = SegmentationConfig(k_values=range(2, 5))
        assert config.k_values == (2, 3, 4)

    def test_k_values_kept_as_given(self):
        config = SegmentationConfig(k_values=(1, 2.5))
        assert config.k_values == (1, 2.5)

    @pytest.mark.parametrize("bins", [0, 10])
    def test_invalid_bins_raise_error(self, bins):
        with pytest.raises(ValueError, match="bins must be between"):
            SegmentationConfig(bins=bins)

    def test_invalid_cluster_count_raises_error(self):
        with pytest.raises(ValueError, match="n_clusters"):
            SegmentationConfig(n_clusters=0)


class TestRunSegmentation:
    """Test run_segmentation function."""

    def test_synthetic_run(self, synthetic_transactions):
        """A full run produces consistent aggregates, scores and clusters."""
        config = SegmentationConfig(
            n_clusters=3, k_values=range(1, 6), kmeans=FAST_KMEANS
        )
        result = run_segmentation(synthetic_transactions, config)

        customer_ids = [a.customer_id for a in result.aggregates]
        assert customer_ids == sorted(customer_ids)
        assert [s.customer_id for s in result.scores] == customer_ids
        assert list(result.clusters.assignment) == customer_ids
        assert result.clusters.k == 3
        assert result.dispersion_curve.k_values == [1, 2, 3, 4, 5]
        assert result.clusters is result.dispersion_curve.results[3]
        assert sum(p.customer_count for p in result.profiles) == len(customer_ids)
        assert result.analysis_date == max(t.invoice_date for t in synthetic_transactions)

    def test_monetary_is_conserved(self, synthetic_transactions):
        """Customer spend totals add up to the whole transaction log."""
        config = SegmentationConfig(n_clusters=2, k_values=(), kmeans=FAST_KMEANS)
        result = run_segmentation(synthetic_transactions, config)

        total = sum((t.line_total for t in synthetic_transactions), Decimal("0"))
        assert sum((a.monetary for a in result.aggregates), Decimal("0")) == total

    def test_deterministic(self, synthetic_transactions):
        """Same input and config give the same segmentation."""
        config = SegmentationConfig(n_clusters=4, k_values=(), kmeans=FAST_KMEANS)
        first = run_segmentation(synthetic_transactions, config)
        second = run_segmentation(synthetic_transactions, config)

        assert first.clusters.assignment == second.clusters.assignment
        assert first.clusters.inertia == second.clusters.inertia

    def test_cluster_count_outside_curve_still_runs(self, synthetic_transactions):
        """n_clusters need not be part of the dispersion curve."""
        config = SegmentationConfig(n_clusters=6, k_values=(1, 2), kmeans=FAST_KMEANS)
        result = run_segmentation(synthetic_transactions, config)

        assert result.clusters.k == 6
        assert 6 not in result.dispersion_curve.results

    def test_fractional_k_is_recorded_as_error(self, synthetic_transactions):
        """A non-integer candidate k is reported, not rounded to an integer."""
        config = SegmentationConfig(
            n_clusters=2, k_values=(1, 2.5), kmeans=FAST_KMEANS
        )
        result = run_segmentation(synthetic_transactions, config)

        assert result.dispersion_curve.k_values == [1]
        assert 2.5 in result.dispersion_curve.errors
        assert 2 not in result.dispersion_curve.results

    def test_customer_table_and_dict(self, synthetic_transactions):
        """customer_table joins everything; as_dict is JSON-serialisable."""
        config = SegmentationConfig(n_clusters=2, k_values=(1, 2), kmeans=FAST_KMEANS)
        result = run_segmentation(synthetic_transactions, config)

        table = result.customer_table()
        assert len(table) == len(result.aggregates)
        assert set(table[0]) == {
            "customer_id",
            "recency_days",
            "frequency",
            "monetary",
            "last_invoice_date",
            "recency_score",
            "frequency_score",
            "monetary_score",
            "rfm_score",
            "cluster",
        }

        payload = json.loads(json.dumps(result.as_dict()))
        assert payload["config"]["n_clusters"] == 2
        assert payload["clusters"]["k"] == 2
        assert len(payload["customers"]) == len(table)
        assert payload["dispersion_curve"][0]["k"] == 1

    def test_explicit_analysis_date(self, equal_spend_transactions):
        """Recency is measured from the supplied analysis date."""
        config = SegmentationConfig(
            n_clusters=2,
            k_values=(),
            drop_degenerate_dimensions=True,
            kmeans=FAST_KMEANS,
        )
        result = run_segmentation(
            equal_spend_transactions, config, analysis_date=date(2023, 12, 31)
        )

        assert result.analysis_date == date(2023, 12, 31)
        assert result.aggregates[0].recency_days == 364

    def test_empty_transactions_raise_error(self):
        with pytest.raises(ValidationError, match="No transactions"):
            run_segmentation([])

    def test_equal_spend_raises_degenerate_error(self, equal_spend_transactions):
        """Identical monetary totals cannot be standardised."""
        config = SegmentationConfig(n_clusters=2, k_values=(), kmeans=FAST_KMEANS)
        with pytest.raises(DegenerateInputError, match="monetary"):
            run_segmentation(equal_spend_transactions, config)

    def test_equal_spend_dimension_can_be_dropped(self, equal_spend_transactions):
        """Dropping the constant dimension lets clustering proceed."""
        config = SegmentationConfig(
            n_clusters=2,
            k_values=(),
            drop_degenerate_dimensions=True,
            kmeans=FAST_KMEANS,
        )
        result = run_segmentation(equal_spend_transactions, config)

        assert result.features.dropped_dimensions == ("monetary",)
        assert result.clusters.dimensions == ("recency_days", "frequency")
        # Constant monetary scores to the middle bin
        assert {s.monetary_score for s in result.scores} == {3}

    def test_too_many_clusters_raise_error(self, equal_spend_transactions):
        config = SegmentationConfig(
            n_clusters=5,
            k_values=(),
            drop_degenerate_dimensions=True,
            kmeans=FAST_KMEANS,
        )
        with pytest.raises(InvalidClusterCountError):
            run_segmentation(equal_spend_transactions, config)
