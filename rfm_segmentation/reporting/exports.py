"""Export segmentation results to JSON, CSV and Markdown.

Reports are written for dashboards, spreadsheets and stakeholder
communication. Each export creates missing parent directories.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from rfm_segmentation.pandas.segments import customer_table_to_dataframe
from rfm_segmentation.pipeline import SegmentationResult

logger = logging.getLogger(__name__)


def _prepare_output(output_path: str | Path) -> Path:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def export_segmentation_json(
    result: SegmentationResult,
    output_path: str | Path,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Export a segmentation run to JSON.

    The payload holds the per-customer table, dispersion curve, chosen
    clustering and segment profiles (see :meth:`SegmentationResult.as_dict`).

    Parameters
    ----------
    result:
        Completed segmentation run
    output_path:
        Path where JSON file will be saved
    metadata:
        Optional metadata to include in report (e.g., data source, analyst)

    Examples
    --------
    >>> result = run_segmentation(transactions)
    >>> export_segmentation_json(
    ...     result,
    ...     "segments_2011-12-09.json",
    ...     metadata={"data_source": "online_retail"}
    ... )
    """
    output_path = _prepare_output(output_path)

    report_data = {
        "metadata": metadata or {},
        "timestamp": datetime.now().isoformat(),
        **result.as_dict(),
    }

    output_path.write_text(json.dumps(report_data, indent=2), encoding="utf-8")

    logger.info(f"Segmentation report exported to {output_path}")


def export_customer_table_csv(
    result: SegmentationResult,
    output_path: str | Path,
) -> None:
    """Export one row per customer (aggregates, scores, cluster) to CSV."""
    output_path = _prepare_output(output_path)

    df = customer_table_to_dataframe(result)
    df.to_csv(output_path, index=False)

    logger.info(f"Customer table exported to {output_path}")


def export_segment_report_markdown(
    result: SegmentationResult,
    output_path: str | Path,
    title: str = "RFM Segmentation Report",
    metadata: dict[str, Any] | None = None,
) -> None:
    """Export a human-readable Markdown summary of a segmentation run.

    Parameters
    ----------
    result:
        Completed segmentation run
    output_path:
        Path where Markdown file will be saved
    title:
        Report title (default: "RFM Segmentation Report")
    metadata:
        Optional metadata to include in report header
    """
    output_path = _prepare_output(output_path)

    lines = []
    lines.append(f"# {title}\n")
    lines.append(f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")

    if metadata:
        lines.append("## Metadata\n")
        for key, value in metadata.items():
            lines.append(f"- **{key}:** {value}")
        lines.append("")

    clusters = result.clusters
    lines.append("## Summary\n")
    lines.append(f"- **Analysis Date:** {result.analysis_date.isoformat()}")
    lines.append(f"- **Customers:** {len(result.aggregates)}")
    lines.append(f"- **Segments (k):** {clusters.k}")
    lines.append(f"- **Inertia:** {clusters.inertia:.4f}")
    if not clusters.converged:
        lines.append(
            f"- **Warning:** k-means stopped at {clusters.n_iter} iterations without converging"
        )
    if result.features.dropped_dimensions:
        lines.append(
            f"- **Dropped Dimensions:** {', '.join(result.features.dropped_dimensions)}"
        )
    lines.append("")

    if result.dispersion_curve.points:
        lines.append("## Dispersion Curve\n")
        lines.append("| k | Inertia |")
        lines.append("|---|---------|")
        for k, inertia in result.dispersion_curve.points:
            marker = " ←" if k == clusters.k else ""
            lines.append(f"| {k} | {inertia:.4f}{marker} |")
        lines.append("")

    lines.append("## Segment Profiles\n")
    lines.append("| Cluster | Customers | Share | Mean Recency (days) | Mean Frequency | Mean Monetary |")
    lines.append("|---------|-----------|-------|---------------------|----------------|---------------|")
    for p in result.profiles:
        lines.append(
            f"| {p.cluster} | {p.customer_count} | {100 * p.share_of_customers:.1f}% | "
            f"{p.mean_recency_days:.1f} | {p.mean_frequency:.2f} | {p.mean_monetary} |"
        )
    lines.append("")

    output_path.write_text("\n".join(lines), encoding="utf-8")

    logger.info(f"Segmentation report exported to {output_path}")
