"""Transaction records consumed by the RFM aggregator.

Transactions arrive already cleaned by the ingestion layer (no missing
customer identifiers, no returns or negative prices). The record still
validates those guarantees so a broken upstream surfaces immediately
instead of as a skewed segment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from rfm_segmentation.errors import ValidationError


@dataclass(frozen=True)
class Transaction:
    """A single invoice line.

    Attributes
    ----------
    customer_id:
        Identifier of the purchasing customer
    invoice_id:
        Identifier of the invoice this line belongs to. An invoice with
        several lines counts as one purchase for frequency.
    quantity:
        Units purchased (non-negative)
    unit_price:
        Price per unit (non-negative)
    invoice_date:
        Calendar date of the invoice. ``datetime`` values are accepted and
        truncated to their date during aggregation.
    """

    customer_id: str
    invoice_id: str
    quantity: int
    unit_price: Decimal
    invoice_date: date

    def __post_init__(self) -> None:
        """Validate transaction fields."""
        if not self.customer_id:
            raise ValidationError(
                f"Transaction is missing customer_id (invoice_id={self.invoice_id})"
            )
        if not self.invoice_id:
            raise ValidationError(
                f"Transaction is missing invoice_id (customer_id={self.customer_id})"
            )
        if not isinstance(self.invoice_date, date):
            raise ValidationError(
                f"invoice_date must be a date, got {type(self.invoice_date).__name__} "
                f"(invoice_id={self.invoice_id})"
            )
        if self.quantity < 0:
            raise ValidationError(
                f"Quantity cannot be negative: {self.quantity} (invoice_id={self.invoice_id})"
            )
        if self.unit_price < 0:
            raise ValidationError(
                f"Unit price cannot be negative: {self.unit_price} (invoice_id={self.invoice_id})"
            )

    @property
    def line_total(self) -> Decimal:
        price = self.unit_price
        if not isinstance(price, Decimal):
            price = Decimal(str(price))
        return price * self.quantity

    @property
    def day(self) -> date:
        """Invoice date with any time component dropped."""
        if isinstance(self.invoice_date, datetime):
            return self.invoice_date.date()
        return self.invoice_date


def transactions_from_records(
    records: Iterable[Mapping[str, Any]],
) -> list[Transaction]:
    """Build transactions from raw dictionaries.

    Accepts ISO-8601 strings for ``invoice_date`` and any numeric type for
    ``unit_price`` (converted through ``str`` to keep ``Decimal`` exact).

    Raises
    ------
    ValidationError
        If a record is missing a field or holds an unparseable value.
    """
    transactions: list[Transaction] = []
    for idx, record in enumerate(records):
        try:
            raw_date = record["invoice_date"]
            customer_id = record["customer_id"]
            invoice_id = record["invoice_id"]
            raw_quantity = record["quantity"]
            raw_price = record["unit_price"]
        except KeyError as exc:
            raise ValidationError(
                f"Transaction at index {idx} missing key {exc.args[0]}"
            ) from exc

        if customer_id is None or invoice_id is None:
            raise ValidationError(
                f"Transaction at index {idx} has a null customer_id or invoice_id"
            )

        if isinstance(raw_date, str):
            try:
                invoice_date: Any = datetime.fromisoformat(
                    raw_date.replace("Z", "+00:00")
                ).date()
            except ValueError as exc:
                raise ValidationError(
                    f"Transaction at index {idx} has invalid invoice_date {raw_date!r}"
                ) from exc
        else:
            invoice_date = raw_date

        try:
            unit_price = Decimal(str(raw_price))
            quantity = int(raw_quantity)
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise ValidationError(
                f"Transaction at index {idx} has non-numeric quantity or unit_price"
            ) from exc

        transactions.append(
            Transaction(
                customer_id=str(customer_id),
                invoice_id=str(invoice_id),
                quantity=quantity,
                unit_price=unit_price,
                invoice_date=invoice_date,
            )
        )
    return transactions
