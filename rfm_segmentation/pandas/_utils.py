"""Shared utilities for pandas conversion operations."""

import numbers
from decimal import Decimal
from typing import Sequence

import pandas as pd  # type: ignore

from rfm_segmentation.errors import ValidationError


def decimal_to_float(value: Decimal) -> float:
    """Convert Decimal to float for pandas compatibility."""
    return float(value)


def float_to_decimal(value: float) -> Decimal:
    """Convert a numeric value to Decimal through its string form.

    Going through ``str`` keeps ``12.3`` as ``Decimal('12.3')`` rather than
    the binary expansion ``Decimal(12.3)`` would produce.

    Raises:
        TypeError: If value is not numeric

    Example:
        >>> float_to_decimal(123.45)
        Decimal('123.45')
    """
    if isinstance(value, Decimal):
        return value
    if not isinstance(value, numbers.Real):
        raise TypeError(f"Expected numeric type, got {type(value)}")
    return Decimal(str(value))


def check_columns(df: pd.DataFrame, required_cols: Sequence[str], what: str) -> None:
    """Raise ValidationError if columns are missing or hold nulls."""
    missing_cols = set(required_cols) - set(df.columns)
    if missing_cols:
        raise ValidationError(f"DataFrame missing required columns: {missing_cols}")

    null_cols = df[list(required_cols)].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValidationError(
            f"Null/NaN values found in columns: {null_col_names}. "
            f"{what} require complete data."
        )
