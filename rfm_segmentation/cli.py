"""Command line entry points for the RFM segmentation toolkit."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

import pandas as pd

from rfm_segmentation.clustering.kmeans import INIT_METHODS, KMeansConfig
from rfm_segmentation.clustering.selection import compute_dispersion_curve
from rfm_segmentation.errors import RFMSegmentationError
from rfm_segmentation.foundation.rfm import calculate_customer_aggregates
from rfm_segmentation.foundation.scaling import scale_features
from rfm_segmentation.foundation.transactions import (
    Transaction,
    transactions_from_records,
)
from rfm_segmentation.pandas.rfm import dataframe_to_transactions
from rfm_segmentation.pipeline import SegmentationConfig, run_segmentation
from rfm_segmentation.reporting.exports import (
    export_customer_table_csv,
    export_segment_report_markdown,
    export_segmentation_json,
)

logger = logging.getLogger(__name__)


MAX_INPUT_BYTES = 25 * 1024 * 1024  # 25 MiB


def _load_transactions(path: Path) -> list[Transaction]:
    """Read transactions from a JSON list of records or a CSV file."""
    resolved = path.resolve()
    size = resolved.stat().st_size
    if size > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )

    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path, dtype={"customer_id": str, "invoice_id": str})
        return dataframe_to_transactions(df)

    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, list):
        raise ValueError("Expected a list of transactions in the input file")
    return transactions_from_records(payload)


def _parse_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _add_kmeans_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--n-init",
        type=int,
        default=25,
        help="Independent k-means initialisations per k (default: 25)",
    )
    parser.add_argument(
        "--max-iter",
        type=int,
        default=100,
        help="Maximum Lloyd iterations per initialisation (default: 100)",
    )
    parser.add_argument(
        "--seed", type=int, default=42, help="Random seed (default: 42)"
    )
    parser.add_argument(
        "--init",
        choices=INIT_METHODS,
        default="k-means++",
        help="Centroid initialisation method (default: k-means++)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Worker processes for k-means restarts (default: serial)",
    )
    parser.add_argument(
        "--drop-degenerate",
        action="store_true",
        help="Drop zero-variance RFM dimensions instead of failing",
    )
    parser.add_argument(
        "--analysis-date",
        type=str,
        help="Recency reference date (ISO format: YYYY-MM-DD). Defaults to last invoice date.",
    )


def _kmeans_config(args: argparse.Namespace) -> KMeansConfig:
    return KMeansConfig(
        n_init=args.n_init,
        max_iter=args.max_iter,
        seed=args.seed,
        init=args.init,
        n_workers=args.workers,
    )


def segment_customers_cli(argv: list[str] | None = None) -> int:
    """Score and segment customers from a transaction file.

    This command runs the complete segmentation pipeline:
    1. Aggregates transactions into per-customer recency, frequency, monetary
    2. Scores each dimension into quantile bins
    3. Standardises the aggregates and computes the k-means dispersion curve
    4. Clusters customers with the chosen k and profiles each segment

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Segment customers with RFM scoring and k-means"
    )
    parser.add_argument(
        "input", type=Path, help="Path to JSON or CSV file with cleaned transactions"
    )
    parser.add_argument(
        "--output",
        type=Path,
        required=True,
        help="Path for the JSON segmentation report",
    )
    parser.add_argument(
        "--customers-csv",
        type=Path,
        help="Optional path for a per-customer CSV (aggregates, scores, cluster)",
    )
    parser.add_argument(
        "--markdown",
        type=Path,
        help="Optional path for a Markdown summary report",
    )
    parser.add_argument(
        "--clusters",
        type=int,
        default=4,
        help="Number of segments for the final clustering (default: 4)",
    )
    parser.add_argument(
        "--k-min", type=int, default=1, help="Smallest k in the dispersion curve (default: 1)"
    )
    parser.add_argument(
        "--k-max", type=int, default=10, help="Largest k in the dispersion curve (default: 10)"
    )
    parser.add_argument(
        "--bins",
        type=int,
        default=5,
        help="Score levels per RFM dimension (default: 5)",
    )
    _add_kmeans_arguments(parser)

    args = parser.parse_args(argv)

    logger.info(f"Loading transactions from {args.input}")
    try:
        transactions = _load_transactions(args.input)
    except (OSError, ValueError) as exc:
        logger.error(f"Could not read {args.input}: {exc}")
        return 1

    if not transactions:
        logger.error("No transactions found in input file")
        return 1

    logger.info(f"Segmenting {len(transactions)} transactions")
    try:
        config = SegmentationConfig(
            bins=args.bins,
            drop_degenerate_dimensions=args.drop_degenerate,
            n_clusters=args.clusters,
            k_values=range(args.k_min, args.k_max + 1),
            kmeans=_kmeans_config(args),
        )
        result = run_segmentation(
            transactions, config, analysis_date=_parse_date(args.analysis_date)
        )
    except (RFMSegmentationError, ValueError) as exc:
        logger.error(f"Segmentation failed: {exc}")
        return 1

    metadata = {"input": str(args.input)}
    export_segmentation_json(result, args.output, metadata=metadata)
    if args.customers_csv:
        export_customer_table_csv(result, args.customers_csv)
    if args.markdown:
        export_segment_report_markdown(result, args.markdown, metadata=metadata)

    logger.info(
        f"Segmented {len(result.aggregates)} customers into {result.clusters.k} segments. "
        f"Sizes: {result.clusters.cluster_sizes()}"
    )
    return 0


def dispersion_curve_cli(argv: list[str] | None = None) -> int:
    """Print the k-means dispersion (elbow) curve for a transaction file.

    Writes ``k,inertia`` CSV to ``--output`` or stdout.
    """
    parser = argparse.ArgumentParser(
        description="Compute the k-means dispersion curve for RFM features"
    )
    parser.add_argument(
        "input", type=Path, help="Path to JSON or CSV file with cleaned transactions"
    )
    parser.add_argument(
        "--output", type=Path, help="Optional path for the curve as CSV"
    )
    parser.add_argument("--k-min", type=int, default=1)
    parser.add_argument("--k-max", type=int, default=10)
    _add_kmeans_arguments(parser)

    args = parser.parse_args(argv)

    try:
        transactions = _load_transactions(args.input)
    except (OSError, ValueError) as exc:
        logger.error(f"Could not read {args.input}: {exc}")
        return 1
    if not transactions:
        logger.error("No transactions found in input file")
        return 1

    try:
        aggregates = calculate_customer_aggregates(
            transactions, _parse_date(args.analysis_date)
        )
        features = scale_features(aggregates, drop_degenerate=args.drop_degenerate)
        kmeans_config = _kmeans_config(args)
    except (RFMSegmentationError, ValueError) as exc:
        logger.error(f"Could not prepare features: {exc}")
        return 1

    curve = compute_dispersion_curve(
        features, range(args.k_min, args.k_max + 1), kmeans_config
    )
    df = pd.DataFrame(curve.as_records(), columns=["k", "inertia"])

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(args.output, index=False)
        logger.info(f"Dispersion curve exported to {args.output}")
    else:
        df.to_csv(sys.stdout, index=False)

    return 0


def _configure_logging() -> None:
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        level=logging.INFO,
    )


def main() -> None:
    _configure_logging()
    raise SystemExit(segment_customers_cli())


def dispersion_main() -> None:
    _configure_logging()
    raise SystemExit(dispersion_curve_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
