"""Descriptive fraud-rate breakdowns of the transaction ledger.

These are historical slices of the ``is_fraud`` flag (no scoring or
prediction) used alongside the RFM dashboard:
- What share of transactions is fraudulent?
- Which merchant categories, amount bands, hours and states are hit most?
- Does fraud vary with city size or with customer gender, age and job?
- How many transactions, how much spend and how many frauds per card?
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Hashable, Iterable, Sequence

from card_analytics.foundation.transactions import Transaction

PERCENTAGE_PRECISION = Decimal("0.01")
MONEY_PRECISION = Decimal("0.01")

# Amount band upper bounds (exclusive); amounts at or above the last bound
# fall in the open-ended top band.
DEFAULT_AMOUNT_BANDS: tuple[Decimal, ...] = (
    Decimal("10"),
    Decimal("50"),
    Decimal("100"),
    Decimal("500"),
)

# City population band bounds, read the same way as the amount bands.
DEFAULT_CITY_POP_BANDS: tuple[int, ...] = (1_000, 10_000, 100_000, 1_000_000)

# Age band bounds in completed years at the time of the transaction.
DEFAULT_AGE_BANDS: tuple[int, ...] = (20, 30, 40, 50, 60)

#: Group name for transactions missing the attribute being sliced on.
UNKNOWN_GROUP = "unknown"


@dataclass(frozen=True)
class FraudRate:
    """Fraud counts for one slice of transactions.

    Attributes
    ----------
    group:
        Slice key (category, band label, hour, state); "all" for the total
    total_transactions:
        Transactions in the slice
    total_frauds:
        Transactions flagged as fraud
    fraud_rate_pct:
        ``total_frauds / total_transactions * 100`` with 2 decimal places
    """

    group: str
    total_transactions: int
    total_frauds: int
    fraud_rate_pct: Decimal

    def __post_init__(self) -> None:
        if self.total_frauds > self.total_transactions:
            raise ValueError(
                f"Frauds ({self.total_frauds}) cannot exceed transactions "
                f"({self.total_transactions}) (group={self.group})"
            )


def _rate(group: str, total: int, frauds: int) -> FraudRate:
    if total == 0:
        pct = Decimal("0")
    else:
        pct = (Decimal(frauds) * 100 / Decimal(total)).quantize(
            PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP
        )
    return FraudRate(
        group=group, total_transactions=total, total_frauds=frauds, fraud_rate_pct=pct
    )


def _fraud_rate_by(
    transactions: Iterable[Transaction],
    key: Callable[[Transaction], Hashable],
) -> dict[Hashable, FraudRate]:
    totals: dict[Hashable, list[int]] = {}
    for transaction in transactions:
        bucket = totals.setdefault(key(transaction), [0, 0])
        bucket[0] += 1
        bucket[1] += int(transaction.is_fraud)
    return {
        group: _rate(str(group), total, frauds)
        for group, (total, frauds) in totals.items()
    }


def _by_rate_desc(rates: Iterable[FraudRate]) -> list[FraudRate]:
    return sorted(rates, key=lambda r: (-r.fraud_rate_pct, r.group))


def fraud_rate_overall(transactions: Iterable[Transaction]) -> FraudRate:
    """Fraud rate across all transactions."""
    total = frauds = 0
    for transaction in transactions:
        total += 1
        frauds += int(transaction.is_fraud)
    return _rate("all", total, frauds)


def fraud_rate_by_category(transactions: Iterable[Transaction]) -> list[FraudRate]:
    """Fraud rate per merchant category, highest rate first."""
    rates = _fraud_rate_by(transactions, lambda t: t.category or UNKNOWN_GROUP)
    return _by_rate_desc(rates.values())


def _check_bounds(bounds: Sequence[Any], name: str) -> None:
    if not bounds or list(bounds) != sorted(set(bounds)):
        raise ValueError(f"{name} band bounds must be strictly increasing: {list(bounds)}")


def _band_label(value: Any, bounds: Sequence[Any], render: Callable[[Any], str]) -> str:
    lower = None
    for upper in bounds:
        if value < upper:
            if lower is None:
                return f"<{render(upper)}"
            return f"{render(lower)}-{render(upper)}"
        lower = upper
    return f">={render(bounds[-1])}"


def _band_labels(bounds: Sequence[Any], render: Callable[[Any], str]) -> list[str]:
    labels = [f"<{render(bounds[0])}"]
    labels += [f"{render(lo)}-{render(hi)}" for lo, hi in zip(bounds, bounds[1:])]
    labels.append(f">={render(bounds[-1])}")
    return labels


def _in_band_order(rates: dict[Hashable, FraudRate], labels: Sequence[str]) -> list[FraudRate]:
    ordered = [rates[label] for label in labels if label in rates]
    if UNKNOWN_GROUP in rates:
        ordered.append(rates[UNKNOWN_GROUP])
    return ordered


def _dollars(bound: Any) -> str:
    return f"${bound}"


def _thousands(bound: Any) -> str:
    return f"{bound:,}"


def amount_band_label(
    amount: Decimal, bounds: Sequence[Decimal] = DEFAULT_AMOUNT_BANDS
) -> str:
    """Label the amount band of ``amount``, e.g. ``"$10-$50"``.

    >>> from decimal import Decimal
    >>> amount_band_label(Decimal("9.99")), amount_band_label(Decimal("500"))
    ('<$10', '>=$500')
    """
    return _band_label(amount, bounds, _dollars)


def fraud_rate_by_amount_band(
    transactions: Iterable[Transaction],
    bounds: Sequence[Decimal] = DEFAULT_AMOUNT_BANDS,
) -> list[FraudRate]:
    """Fraud rate per transaction amount band, highest rate first."""
    _check_bounds(bounds, "Amount")
    rates = _fraud_rate_by(transactions, lambda t: amount_band_label(t.amount, bounds))
    return _by_rate_desc(rates.values())


def fraud_rate_by_hour(transactions: Iterable[Transaction]) -> list[FraudRate]:
    """Fraud rate per hour of day (0-23), in hour order."""
    rates = _fraud_rate_by(transactions, lambda t: t.transaction_ts.hour)
    return [rates[hour] for hour in sorted(rates)]


def fraud_rate_by_state(transactions: Iterable[Transaction]) -> list[FraudRate]:
    """Fraud rate per customer state, highest rate first."""
    rates = _fraud_rate_by(transactions, lambda t: t.state or UNKNOWN_GROUP)
    return _by_rate_desc(rates.values())


def city_pop_band_label(
    city_pop: int, bounds: Sequence[int] = DEFAULT_CITY_POP_BANDS
) -> str:
    """Label the population band of a customer's city.

    >>> city_pop_band_label(149), city_pop_band_label(3495), city_pop_band_label(2_906_700)
    ('<1,000', '1,000-10,000', '>=1,000,000')
    """
    return _band_label(city_pop, bounds, _thousands)


def fraud_rate_by_city_pop_band(
    transactions: Iterable[Transaction],
    bounds: Sequence[int] = DEFAULT_CITY_POP_BANDS,
) -> list[FraudRate]:
    """Fraud rate per city population band, smallest cities first.

    Transactions without a city population are reported as "unknown",
    after every band.
    """
    _check_bounds(bounds, "City population")

    def key(transaction: Transaction) -> str:
        if transaction.city_pop is None:
            return UNKNOWN_GROUP
        return city_pop_band_label(transaction.city_pop, bounds)

    rates = _fraud_rate_by(transactions, key)
    return _in_band_order(rates, _band_labels(bounds, _thousands))


def fraud_rate_by_gender(transactions: Iterable[Transaction]) -> list[FraudRate]:
    """Fraud rate per customer gender, in gender order."""
    rates = _fraud_rate_by(transactions, lambda t: t.gender or UNKNOWN_GROUP)
    known = sorted(group for group in rates if group != UNKNOWN_GROUP)
    return _in_band_order(rates, known)


def age_at(date_of_birth: date, on: date) -> int:
    """Completed years between ``date_of_birth`` and ``on``.

    >>> from datetime import date
    >>> age_at(date(1988, 3, 9), date(2020, 3, 8)), age_at(date(1988, 3, 9), date(2020, 3, 9))
    (31, 32)
    """
    before_birthday = (on.month, on.day) < (date_of_birth.month, date_of_birth.day)
    return on.year - date_of_birth.year - int(before_birthday)


def fraud_rate_by_age_band(
    transactions: Iterable[Transaction],
    bounds: Sequence[int] = DEFAULT_AGE_BANDS,
) -> list[FraudRate]:
    """Fraud rate per customer age band, youngest first.

    Age is measured at the transaction date, not at report time, so a
    rerun over the same ledger gives the same bands. Transactions without
    a date of birth are reported as "unknown".
    """
    _check_bounds(bounds, "Age")

    def key(transaction: Transaction) -> str:
        if transaction.dob is None:
            return UNKNOWN_GROUP
        age = age_at(transaction.dob, transaction.transaction_ts.date())
        return _band_label(age, bounds, str)

    rates = _fraud_rate_by(transactions, key)
    return _in_band_order(rates, _band_labels(bounds, str))


def fraud_rate_by_job(
    transactions: Iterable[Transaction],
    volume_floor: int = 1000,
    limit: int | None = 10,
) -> list[FraudRate]:
    """Highest fraud-rate occupations.

    Parameters
    ----------
    transactions:
        Validated transactions.
    volume_floor:
        Only jobs with more than this many transactions are listed, so
        that rare job titles do not dominate the ranking.
    limit:
        Maximum number of jobs returned; None returns all of them.
    """
    if volume_floor < 0:
        raise ValueError(f"volume_floor must be non-negative, got {volume_floor}")
    if limit is not None and limit < 0:
        raise ValueError(f"limit must be non-negative, got {limit}")
    rates = _fraud_rate_by(
        (t for t in transactions if t.job is not None), lambda t: t.job
    )
    ranked = _by_rate_desc(
        rate for rate in rates.values() if rate.total_transactions > volume_floor
    )
    return ranked if limit is None else ranked[:limit]


@dataclass(frozen=True)
class CustomerSpending:
    """Transaction volume, spend and fraud count of one card.

    Attributes
    ----------
    customer_id:
        Card number
    transaction_count:
        Number of transactions
    total_spend:
        Sum of amounts, 2 decimal places
    average_transaction:
        Mean amount, 2 decimal places
    fraud_count:
        Transactions flagged as fraud
    """

    customer_id: str
    transaction_count: int
    total_spend: Decimal
    average_transaction: Decimal
    fraud_count: int


def customer_spending_profile(
    transactions: Iterable[Transaction], top_n: int | None = None
) -> list[CustomerSpending]:
    """Per-card spending behaviour, highest total spend first.

    Ties on spend are broken by customer id. ``top_n`` keeps only the
    first ``top_n`` cards.
    """
    if top_n is not None and top_n < 0:
        raise ValueError(f"top_n must be non-negative, got {top_n}")
    totals: dict[str, list[Any]] = {}
    for transaction in transactions:
        bucket = totals.setdefault(transaction.customer_id, [0, Decimal("0"), 0])
        bucket[0] += 1
        bucket[1] += transaction.amount
        bucket[2] += int(transaction.is_fraud)

    profiles = [
        CustomerSpending(
            customer_id=customer_id,
            transaction_count=count,
            total_spend=spend.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP),
            average_transaction=(spend / count).quantize(
                MONEY_PRECISION, rounding=ROUND_HALF_UP
            ),
            fraud_count=frauds,
        )
        for customer_id, (count, spend, frauds) in totals.items()
    ]
    profiles.sort(key=lambda p: (-p.total_spend, p.customer_id))
    return profiles if top_n is None else profiles[:top_n]
