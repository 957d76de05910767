"""Report exports for segmentation runs."""

from .exports import (
    export_customer_table_csv,
    export_segment_report_markdown,
    export_segmentation_json,
)

__all__ = [
    "export_segmentation_json",
    "export_customer_table_csv",
    "export_segment_report_markdown",
]
