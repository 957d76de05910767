"""Pandas DataFrame adapters for transactions, RFM aggregates and scores."""

from datetime import date
from typing import List, Optional, Sequence

import pandas as pd  # type: ignore

from rfm_segmentation.foundation.rfm import (
    CustomerAggregate,
    RFMScore,
    calculate_customer_aggregates,
)
from rfm_segmentation.foundation.transactions import Transaction
from ._utils import check_columns, decimal_to_float, float_to_decimal

AGGREGATE_COLUMNS = [
    "customer_id",
    "recency_days",
    "frequency",
    "monetary",
    "last_invoice_date",
    "analysis_date",
]

SCORE_COLUMNS = [
    "customer_id",
    "recency_score",
    "frequency_score",
    "monetary_score",
    "rfm_score",
]


def _to_date(value) -> date:
    return pd.Timestamp(value).date()


def dataframe_to_transactions(
    transactions_df: pd.DataFrame,
    customer_id_col: str = "customer_id",
    invoice_id_col: str = "invoice_id",
    quantity_col: str = "quantity",
    unit_price_col: str = "unit_price",
    invoice_date_col: str = "invoice_date",
) -> List[Transaction]:
    """Convert a cleaned transaction DataFrame to Transaction records.

    Args:
        transactions_df: DataFrame with one row per invoice line
        *_col: Column name mappings for flexibility

    Returns:
        List of validated Transaction objects. Invoice dates may be strings,
        datetimes or pandas Timestamps; they are reduced to calendar dates.

    Raises:
        ValidationError: If columns are missing, hold nulls, or a row is invalid

    Example with custom column names:
        >>> txns = dataframe_to_transactions(
        ...     df,
        ...     customer_id_col='CustomerID',
        ...     invoice_id_col='InvoiceNo',
        ...     invoice_date_col='InvoiceDate',
        ... )
    """
    mapping = {
        "customer_id": customer_id_col,
        "invoice_id": invoice_id_col,
        "quantity": quantity_col,
        "unit_price": unit_price_col,
        "invoice_date": invoice_date_col,
    }
    check_columns(transactions_df, list(mapping.values()), "Transactions")

    if transactions_df.empty:
        return []

    transactions = []
    for record in transactions_df.to_dict("records"):
        transactions.append(
            Transaction(
                customer_id=str(record[customer_id_col]),
                invoice_id=str(record[invoice_id_col]),
                quantity=int(record[quantity_col]),
                unit_price=float_to_decimal(record[unit_price_col]),
                invoice_date=_to_date(record[invoice_date_col]),
            )
        )
    return transactions


def aggregates_to_dataframe(aggregates: Sequence[CustomerAggregate]) -> pd.DataFrame:
    """Convert customer aggregates to a DataFrame sorted by customer_id.

    ``monetary`` becomes a float column.
    """
    if not aggregates:
        return pd.DataFrame(columns=AGGREGATE_COLUMNS)

    rows = [
        {
            "customer_id": a.customer_id,
            "recency_days": a.recency_days,
            "frequency": a.frequency,
            "monetary": decimal_to_float(a.monetary),
            "last_invoice_date": a.last_invoice_date,
            "analysis_date": a.analysis_date,
        }
        for a in aggregates
    ]
    df = pd.DataFrame(rows, columns=AGGREGATE_COLUMNS)
    return df.sort_values("customer_id").reset_index(drop=True)


def dataframe_to_aggregates(aggregates_df: pd.DataFrame) -> List[CustomerAggregate]:
    """Convert a DataFrame produced by :func:`aggregates_to_dataframe` back.

    Raises:
        ValidationError: If DataFrame missing required columns, has null values, or invalid data
    """
    check_columns(aggregates_df, AGGREGATE_COLUMNS, "Customer aggregates")
    if aggregates_df.empty:
        return []

    return [
        CustomerAggregate(
            customer_id=str(record["customer_id"]),
            recency_days=int(record["recency_days"]),
            frequency=int(record["frequency"]),
            monetary=float_to_decimal(record["monetary"]),
            last_invoice_date=_to_date(record["last_invoice_date"]),
            analysis_date=_to_date(record["analysis_date"]),
        )
        for record in aggregates_df.to_dict("records")
    ]


def scores_to_dataframe(scores: Sequence[RFMScore]) -> pd.DataFrame:
    """Convert RFM scores to a DataFrame sorted by customer_id."""
    if not scores:
        return pd.DataFrame(columns=SCORE_COLUMNS)

    rows = [
        {
            "customer_id": s.customer_id,
            "recency_score": s.recency_score,
            "frequency_score": s.frequency_score,
            "monetary_score": s.monetary_score,
            "rfm_score": s.rfm_score,
        }
        for s in scores
    ]
    df = pd.DataFrame(rows, columns=SCORE_COLUMNS)
    return df.sort_values("customer_id").reset_index(drop=True)


def calculate_customer_aggregates_df(
    transactions_df: pd.DataFrame,
    analysis_date: Optional[date] = None,
    customer_id_col: str = "customer_id",
    invoice_id_col: str = "invoice_id",
    quantity_col: str = "quantity",
    unit_price_col: str = "unit_price",
    invoice_date_col: str = "invoice_date",
) -> pd.DataFrame:
    """Calculate RFM aggregates from a transaction DataFrame.

    Convenience function that combines conversion and calculation.

    Example:
        >>> txns_df = pd.read_csv('online_retail_clean.csv')
        >>> rfm_df = calculate_customer_aggregates_df(txns_df)
        >>> lapsed = rfm_df[rfm_df['recency_days'] > 180]
    """
    transactions = dataframe_to_transactions(
        transactions_df,
        customer_id_col=customer_id_col,
        invoice_id_col=invoice_id_col,
        quantity_col=quantity_col,
        unit_price_col=unit_price_col,
        invoice_date_col=invoice_date_col,
    )
    aggregates = calculate_customer_aggregates(transactions, analysis_date)
    return aggregates_to_dataframe(aggregates)
