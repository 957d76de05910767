"""Seeded synthetic invoice logs.

Each customer places a first invoice on their acquisition date and then
buys as a renewal process: gaps between invoices are exponential with a
personal rate, and the customer stays active for an exponentially
distributed lifetime derived from the monthly churn hazard. The mix of
personal rates and lifetimes gives the skewed recency, frequency and
monetary distributions real retail logs show.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from rfm_segmentation.foundation.transactions import Transaction

DAYS_PER_MONTH = 30.4375


@dataclass(frozen=True)
class Customer:
    customer_id: str
    acquisition_date: date


@dataclass(frozen=True)
class ScenarioConfig:
    """Configuration for synthetic transaction logs.

    Attributes
    ----------
    churn_hazard: Monthly probability that an active customer stops buying.
        0 keeps every customer active until the end of the window.
    base_orders_per_month: Median invoices per active customer per month.
    activity_spread: Log-scale spread of personal order rates; larger
        values give a more skewed frequency distribution.
    mean_unit_price: Average item price.
    price_variability: Log-scale spread of item prices, clamped to [0.01, 1].
    quantity_mean: Average quantity per invoice line (at least 1).
    max_lines_per_invoice: Upper bound on line items per invoice.
    seed: Optional RNG seed for reproducibility.
    """

    churn_hazard: float = 0.08
    base_orders_per_month: float = 1.2
    activity_spread: float = 0.6
    mean_unit_price: float = 30.0
    price_variability: float = 0.4
    quantity_mean: float = 1.3
    max_lines_per_invoice: int = 3
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.churn_hazard < 1.0:
            raise ValueError(f"churn_hazard must be in [0, 1): {self.churn_hazard}")
        if self.base_orders_per_month <= 0:
            raise ValueError(
                f"base_orders_per_month must be positive: {self.base_orders_per_month}"
            )
        if self.max_lines_per_invoice < 1:
            raise ValueError(
                f"max_lines_per_invoice must be at least 1: {self.max_lines_per_invoice}"
            )


def generate_customers(
    n: int,
    start: date,
    end: date,
    *,
    seed: Optional[int] = None,
) -> List[Customer]:
    """Generate ``n`` customers acquired uniformly between ``start`` and ``end``."""
    if n <= 0:
        return []
    if start > end:
        raise ValueError(f"start date {start} must be on or before end date {end}")

    rng = random.Random(seed)
    span = (end - start).days
    width = len(str(n))
    return [
        Customer(
            customer_id=f"C{i:0{width}d}",
            acquisition_date=start + timedelta(days=rng.randint(0, span)),
        )
        for i in range(1, n + 1)
    ]


def _lifetime_days(rng: random.Random, churn_hazard: float) -> float:
    if churn_hazard == 0:
        return math.inf
    daily_hazard = -math.log(1.0 - churn_hazard) / DAYS_PER_MONTH
    return rng.expovariate(daily_hazard)


def _line_price(rng: random.Random, scenario: ScenarioConfig) -> Decimal:
    sigma = min(max(scenario.price_variability, 0.01), 1.0)
    # Log-normal with the requested mean
    mu = math.log(max(scenario.mean_unit_price, 0.01)) - sigma * sigma / 2
    price = max(rng.lognormvariate(mu, sigma), 0.01)
    return Decimal(f"{price:.2f}")


def _line_quantity(rng: random.Random, quantity_mean: float) -> int:
    extra = quantity_mean - 1.0
    if extra <= 0:
        return 1
    return 1 + int(rng.expovariate(1.0 / extra))


def generate_transactions(
    customers: Sequence[Customer],
    start: date,
    end: date,
    *,
    scenario: Optional[ScenarioConfig] = None,
) -> List[Transaction]:
    """Generate invoice lines dated between ``start`` and ``end``.

    Every invoice has between one and ``scenario.max_lines_per_invoice``
    lines sharing its invoice_id, customer and date. The result is sorted by
    customer, date and invoice.
    """
    if start > end:
        raise ValueError(f"start date {start} must be on or before end date {end}")
    scenario = scenario or ScenarioConfig()
    rng = random.Random(scenario.seed)

    transactions: List[Transaction] = []
    invoice_seq = 0

    for customer in customers:
        daily_rate = (
            scenario.base_orders_per_month
            * rng.lognormvariate(0.0, scenario.activity_spread)
            / DAYS_PER_MONTH
        )
        active_until = _lifetime_days(rng, scenario.churn_hazard)
        last_day = min((end - customer.acquisition_date).days, active_until)

        elapsed = 0.0
        while elapsed <= last_day:
            invoice_date = customer.acquisition_date + timedelta(days=int(elapsed))
            if invoice_date >= start:
                invoice_seq += 1
                invoice_id = f"INV-{invoice_seq:06d}"
                for _ in range(rng.randint(1, scenario.max_lines_per_invoice)):
                    transactions.append(
                        Transaction(
                            customer_id=customer.customer_id,
                            invoice_id=invoice_id,
                            quantity=_line_quantity(rng, scenario.quantity_mean),
                            unit_price=_line_price(rng, scenario),
                            invoice_date=invoice_date,
                        )
                    )
            elapsed += rng.expovariate(daily_rate)

    transactions.sort(key=lambda t: (t.customer_id, t.invoice_date, t.invoice_id))
    return transactions
