"""Loyalty, longevity and lifetime value reports.

Complements the RFM segmentation with views that look at the whole
transaction history rather than the as-of snapshot:
- How many years has each customer been active?
- Is the average transaction value growing year over year?
- Which long-tenured, high-volume customers deserve a loyalty upgrade?
- Who contributes the most revenue overall?
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

from card_analytics.foundation.rfm import CustomerRFMRecord, aggregate_customer_metrics
from card_analytics.foundation.transactions import Transaction

MONEY_PRECISION = Decimal("0.01")

# Loyal candidates must exceed this many transactions (SQL: HAVING > 100)
DEFAULT_MIN_TRANSACTIONS = 100
DEFAULT_MIN_ACTIVE_YEARS = 2
DEFAULT_LEADERBOARD_SIZE = 10


def _money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CustomerLongevity:
    """First and last activity of a customer.

    ``active_years`` is the difference of calendar years, so a customer
    active in 2019 and 2020 has ``active_years == 1``.
    """

    customer_id: str
    first_transaction: datetime
    last_transaction: datetime
    active_years: int


@dataclass(frozen=True)
class YearlyTrend:
    """Average transaction value and volume for a calendar year."""

    year: int
    avg_transaction_value: Decimal
    num_transactions: int


@dataclass(frozen=True)
class LoyalCandidate:
    """High-volume customer transacting across several calendar years.

    ``active_years`` counts calendar years inclusively (2019-2020 is 2).
    """

    customer_id: str
    total_transactions: int
    first_year: int
    last_year: int
    active_years: int


@dataclass(frozen=True)
class CustomerValue:
    """Revenue contribution of a customer over the full history."""

    customer_id: str
    total_transactions: int
    total_revenue: Decimal
    avg_revenue_per_transaction: Decimal


def customer_active_years(transactions: Iterable[Transaction]) -> list[CustomerLongevity]:
    """First/last transaction and active years per customer, sorted by customer id."""
    return [
        CustomerLongevity(
            customer_id=m.customer_id,
            first_transaction=m.first_transaction_date,
            last_transaction=m.last_transaction_date,
            active_years=m.last_transaction_date.year - m.first_transaction_date.year,
        )
        for m in aggregate_customer_metrics(transactions, parallel=False)
    ]


def yearly_transaction_trend(transactions: Iterable[Transaction]) -> list[YearlyTrend]:
    """Average transaction amount and count per calendar year, ascending."""
    by_year: dict[int, list[Decimal]] = {}
    for transaction in transactions:
        by_year.setdefault(transaction.transaction_ts.year, []).append(transaction.amount)

    return [
        YearlyTrend(
            year=year,
            avg_transaction_value=_money(sum(amounts, Decimal("0")) / len(amounts)),
            num_transactions=len(amounts),
        )
        for year, amounts in sorted(by_year.items())
    ]


def loyal_candidates(
    transactions: Iterable[Transaction],
    min_transactions: int = DEFAULT_MIN_TRANSACTIONS,
    min_active_years: int = DEFAULT_MIN_ACTIVE_YEARS,
) -> list[LoyalCandidate]:
    """Customers with more than ``min_transactions`` spanning ``min_active_years``.

    Ordered by transaction count descending, ties broken by customer id.

    Parameters
    ----------
    transactions:
        Full transaction history
    min_transactions:
        Strict lower bound on the transaction count (default: 100)
    min_active_years:
        Inclusive lower bound on calendar years spanned (default: 2)
    """
    candidates: list[LoyalCandidate] = []
    for m in aggregate_customer_metrics(transactions, parallel=False):
        first_year = m.first_transaction_date.year
        last_year = m.last_transaction_date.year
        active_years = last_year - first_year + 1
        if m.transaction_count > min_transactions and active_years >= min_active_years:
            candidates.append(
                LoyalCandidate(
                    customer_id=m.customer_id,
                    total_transactions=m.transaction_count,
                    first_year=first_year,
                    last_year=last_year,
                    active_years=active_years,
                )
            )
    candidates.sort(key=lambda c: (-c.total_transactions, c.customer_id))
    return candidates


def lifetime_value_leaderboard(
    transactions: Iterable[Transaction],
    limit: int = DEFAULT_LEADERBOARD_SIZE,
) -> list[CustomerValue]:
    """Top customers by total revenue, ties broken by customer id."""
    if limit < 0:
        raise ValueError(f"limit cannot be negative: {limit}")

    values = [
        CustomerValue(
            customer_id=m.customer_id,
            total_transactions=m.transaction_count,
            total_revenue=_money(m.total_spend),
            avg_revenue_per_transaction=_money(m.total_spend / m.transaction_count),
        )
        for m in aggregate_customer_metrics(transactions, parallel=False)
    ]
    values.sort(key=lambda v: (-v.total_revenue, v.customer_id))
    return values[:limit]


def average_active_years_by_segment(
    records: Sequence[CustomerRFMRecord],
    longevity: Sequence[CustomerLongevity],
) -> dict[str, Decimal]:
    """Average active years of each segment's customers.

    Answers whether loyal customers stay longer than at-risk ones.
    Customers missing from ``longevity`` are ignored.
    """
    years = {item.customer_id: item.active_years for item in longevity}
    grouped: dict[str, list[int]] = {}
    for record in records:
        if record.customer_id in years:
            grouped.setdefault(record.segment, []).append(years[record.customer_id])
    return {
        segment: _money(Decimal(sum(values)) / len(values))
        for segment, values in grouped.items()
    }
