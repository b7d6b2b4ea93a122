"""RFM (Recency-Frequency-Monetary) segmentation engine.

The engine is a staged pure transform from a transaction snapshot to a
segmentation snapshot:

1. group transactions by customer
2. aggregate each group into :class:`CustomerMetrics`
3. score recency, frequency and monetary against fixed bands
4. label each customer with a segment derived from the score total

Every stage returns new frozen records; nothing is mutated and no state
survives between runs. Thresholds come from
:class:`card_analytics.foundation.config.RFMConfig`.
"""

from __future__ import annotations

import logging
import multiprocessing
import os
import zlib
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Sequence

from card_analytics.exceptions import ConfigurationError, InvalidDateError
from card_analytics.foundation.config import (
    DEFAULT_FREQUENCY_BANDS,
    DEFAULT_MONETARY_BANDS,
    DEFAULT_RECENCY_BANDS,
    DEFAULT_SEGMENT_BANDS,
    MAX_SCORE,
    MIN_SCORE,
    RFMConfig,
    ScoreBands,
    SegmentBands,
)
from card_analytics.foundation.transactions import Transaction

logger = logging.getLogger(__name__)

#: Stable, documented field order of the segmentation output.
RFM_RECORD_FIELDS = (
    "customer_id",
    "recency_days",
    "frequency",
    "monetary",
    "recency_score",
    "frequency_score",
    "monetary_score",
    "rfm_total",
    "segment",
)


@dataclass(frozen=True)
class CustomerMetrics:
    """Raw per-customer aggregates, the intermediate of the pipeline.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    first_transaction_date:
        Timestamp of the customer's earliest transaction
    last_transaction_date:
        Timestamp of the customer's most recent transaction
    transaction_count:
        Number of transactions
    total_spend:
        Unrounded sum of transaction amounts (refunds included as-is)
    """

    customer_id: str
    first_transaction_date: datetime
    last_transaction_date: datetime
    transaction_count: int
    total_spend: Decimal

    def __post_init__(self) -> None:
        """Validate customer metrics."""
        if self.transaction_count <= 0:
            raise ValueError(
                f"Transaction count must be positive: {self.transaction_count} "
                f"(customer_id={self.customer_id})"
            )
        if self.first_transaction_date > self.last_transaction_date:
            raise ValueError(
                f"First transaction ({self.first_transaction_date}) is after last "
                f"transaction ({self.last_transaction_date}) (customer_id={self.customer_id})"
            )


@dataclass(frozen=True)
class CustomerRFMRecord:
    """RFM scores and segment for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency_days:
        Days between the as-of date and the most recent transaction
    frequency:
        Number of transactions
    monetary:
        Total spend rounded to whole currency units
    recency_score, frequency_score, monetary_score:
        Band scores (1-5, where 5 is best)
    rfm_total:
        Sum of the three scores (3-15)
    segment:
        Segment label derived from ``rfm_total``
    """

    customer_id: str
    recency_days: int
    frequency: int
    monetary: int
    recency_score: int
    frequency_score: int
    monetary_score: int
    rfm_total: int
    segment: str

    def __post_init__(self) -> None:
        """Validate score ranges and the score total."""
        if self.recency_days < 0:
            raise ValueError(
                f"Recency cannot be negative: {self.recency_days} (customer_id={self.customer_id})"
            )
        if self.frequency <= 0:
            raise ValueError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )
        for score_name, score_value in [
            ("recency_score", self.recency_score),
            ("frequency_score", self.frequency_score),
            ("monetary_score", self.monetary_score),
        ]:
            if not MIN_SCORE <= score_value <= MAX_SCORE:
                raise ValueError(
                    f"{score_name} must be between {MIN_SCORE} and {MAX_SCORE}: "
                    f"{score_value} (customer_id={self.customer_id})"
                )
        expected_total = self.recency_score + self.frequency_score + self.monetary_score
        if self.rfm_total != expected_total:
            raise ValueError(
                f"rfm_total ({self.rfm_total}) does not match score sum ({expected_total}) "
                f"(customer_id={self.customer_id})"
            )

    def as_dict(self) -> dict[str, Any]:
        """Return the record as a dict in :data:`RFM_RECORD_FIELDS` order."""
        return {name: getattr(self, name) for name in RFM_RECORD_FIELDS}


def days_between(as_of_date: date, moment: date | datetime) -> int:
    """Calendar days from ``moment`` to ``as_of_date`` (SQL ``DATEDIFF`` semantics)."""
    if isinstance(as_of_date, datetime):
        as_of_date = as_of_date.date()
    if isinstance(moment, datetime):
        moment = moment.date()
    return (as_of_date - moment).days


def round_to_whole_units(amount: Decimal) -> int:
    """Round a spend total half away from zero to whole currency units."""
    return int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def score_recency(recency_days: int, bands: ScoreBands = DEFAULT_RECENCY_BANDS) -> int:
    """Score recency: ``<=30 -> 5, <=90 -> 4, <=150 -> 3, <=210 -> 2, else 1``.

    >>> score_recency(30), score_recency(31)
    (5, 4)
    """
    return bands.score(recency_days)


def score_frequency(frequency: int, bands: ScoreBands = DEFAULT_FREQUENCY_BANDS) -> int:
    """Score frequency: ``>=1000 -> 5, >=500 -> 4, >=200 -> 3, >=50 -> 2, else 1``.

    >>> score_frequency(1000), score_frequency(999)
    (5, 4)
    """
    return bands.score(frequency)


def score_monetary(
    monetary: int | Decimal, bands: ScoreBands = DEFAULT_MONETARY_BANDS
) -> int:
    """Score monetary: ``>=100000 -> 5, >=50000 -> 4, >=25000 -> 3, >=10000 -> 2, else 1``.

    >>> from decimal import Decimal
    >>> score_monetary(100000), score_monetary(Decimal("99999.99"))
    (5, 4)
    """
    return bands.score(monetary)


def assign_segment(rfm_total: int, bands: SegmentBands = DEFAULT_SEGMENT_BANDS) -> str:
    """Label an RFM total: ``>=11 Premium, >=9 Loyal, >=6 Potential, else At Risk``.

    >>> assign_segment(11), assign_segment(3)
    ('Premium', 'At Risk')
    """
    return bands.label(rfm_total)


def group_by_customer(
    transactions: Iterable[Transaction],
) -> dict[str, list[Transaction]]:
    """Group transactions by customer id, preserving input order within a group."""
    groups: dict[str, list[Transaction]] = {}
    for transaction in transactions:
        groups.setdefault(transaction.customer_id, []).append(transaction)
    return groups


def _aggregate_group(
    customer_id: str, transactions: Sequence[Transaction]
) -> CustomerMetrics:
    timestamps = [t.transaction_ts for t in transactions]
    return CustomerMetrics(
        customer_id=customer_id,
        first_transaction_date=min(timestamps),
        last_transaction_date=max(timestamps),
        transaction_count=len(transactions),
        total_spend=sum((t.amount for t in transactions), Decimal("0")),
    )


def _aggregate_partition(
    groups: dict[str, list[Transaction]],
) -> list[CustomerMetrics]:
    """Aggregate one partition of customer groups.

    Module level so that multiprocessing workers can pickle it.
    """
    return [
        _aggregate_group(customer_id, group) for customer_id, group in groups.items()
    ]


def _partition_key(customer_id: str, partitions: int) -> int:
    # crc32 is stable across processes, unlike the salted built-in hash()
    return zlib.crc32(customer_id.encode("utf-8")) % partitions


def aggregate_customer_metrics(
    transactions: Iterable[Transaction],
    parallel: bool = True,
    parallel_threshold: int = 10_000_000,
    n_workers: Optional[int] = None,
) -> list[CustomerMetrics]:
    """Aggregate transactions into one :class:`CustomerMetrics` per customer.

    **Parallel Processing**: each customer's aggregate depends only on that
    customer's transactions, so for large inputs (>10M customers by
    default) the groups are partitioned by a stable hash of the customer id
    and aggregated in a ``multiprocessing`` pool. The result is identical to
    the serial path.

    Parameters
    ----------
    transactions:
        Validated transactions.
    parallel:
        Enable parallel processing above ``parallel_threshold`` customers.
    parallel_threshold:
        Number of distinct customers above which the pool is used.
    n_workers:
        Worker processes; defaults to the CPU count.

    Returns
    -------
    list[CustomerMetrics]
        One entry per customer, sorted by customer_id
    """
    groups = group_by_customer(transactions)
    if not groups:
        return []

    num_customers = len(groups)
    use_parallel = parallel and num_customers >= parallel_threshold

    if use_parallel:
        workers = max(1, n_workers) if n_workers is not None else (os.cpu_count() or 1)
        partitions: list[dict[str, list[Transaction]]] = [{} for _ in range(workers)]
        for customer_id, group in groups.items():
            partitions[_partition_key(customer_id, workers)][customer_id] = group
        partitions = [partition for partition in partitions if partition]

        logger.info(
            f"Aggregating {num_customers} customers across {len(partitions)} partitions"
        )
        with multiprocessing.Pool(processes=workers) as pool:
            partition_results = pool.map(_aggregate_partition, partitions)

        metrics: list[CustomerMetrics] = []
        for partition_result in partition_results:
            metrics.extend(partition_result)
    else:
        metrics = _aggregate_partition(groups)

    metrics.sort(key=lambda m: m.customer_id)
    return metrics


def score_customer(
    metrics: CustomerMetrics,
    as_of_date: date,
    config: RFMConfig | None = None,
) -> CustomerRFMRecord:
    """Score one customer's metrics and assign a segment.

    Raises
    ------
    InvalidDateError
        If the customer's last transaction is after ``as_of_date``.
    """
    config = config or RFMConfig()
    recency_days = days_between(as_of_date, metrics.last_transaction_date)
    if recency_days < 0:
        raise InvalidDateError(
            f"Last transaction ({metrics.last_transaction_date}) is after as-of date "
            f"({as_of_date}) for customer {metrics.customer_id}"
        )

    frequency = metrics.transaction_count
    monetary = round_to_whole_units(metrics.total_spend)

    recency_score = score_recency(recency_days, config.recency)
    frequency_score = score_frequency(frequency, config.frequency)
    monetary_score = score_monetary(monetary, config.monetary)
    rfm_total = recency_score + frequency_score + monetary_score

    return CustomerRFMRecord(
        customer_id=metrics.customer_id,
        recency_days=recency_days,
        frequency=frequency,
        monetary=monetary,
        recency_score=recency_score,
        frequency_score=frequency_score,
        monetary_score=monetary_score,
        rfm_total=rfm_total,
        segment=assign_segment(rfm_total, config.segments),
    )


def _resolve_as_of(as_of_date: date | datetime | None, config: RFMConfig) -> date:
    resolved = as_of_date if as_of_date is not None else config.as_of_date
    if resolved is None:
        raise ConfigurationError(
            "An as-of date is required: pass as_of_date or set RFMConfig.as_of_date"
        )
    if isinstance(resolved, datetime):
        return resolved.date()
    return resolved


def compute_segmentation(
    transactions: Iterable[Transaction],
    as_of_date: date | datetime | None = None,
    config: RFMConfig | None = None,
    parallel: bool = True,
    parallel_threshold: int = 10_000_000,
    n_workers: Optional[int] = None,
) -> list[CustomerRFMRecord]:
    """Compute the RFM segmentation of every customer in ``transactions``.

    Recency is measured against ``as_of_date`` (falling back to
    ``config.as_of_date``), never against the wall clock, so identical inputs
    always produce identical output. An empty input yields an empty list.

    **Data Quality**: all as-of checks run before any record is emitted. A
    customer whose last transaction is after the as-of date aborts the run
    with :class:`InvalidDateError`; no partial result is returned.

    Parameters
    ----------
    transactions:
        Validated transactions (see
        :class:`card_analytics.foundation.transactions.TransactionContract`).
    as_of_date:
        Reference date recency is measured against.
    config:
        Score and segment bands; defaults to the standard thresholds.
    parallel, parallel_threshold, n_workers:
        Forwarded to :func:`aggregate_customer_metrics`.

    Returns
    -------
    list[CustomerRFMRecord]
        One record per distinct customer, sorted by customer_id

    Examples
    --------
    >>> from datetime import date, datetime
    >>> from decimal import Decimal
    >>> from card_analytics.foundation.transactions import Transaction
    >>> txns = [
    ...     Transaction("C1", datetime(2020, 11, 21), Decimal("50000")),
    ...     Transaction("C1", datetime(2020, 10, 1), Decimal("30000")),
    ...     Transaction("C1", datetime(2020, 9, 1), Decimal("25000")),
    ... ]
    >>> record = compute_segmentation(txns, date(2020, 12, 1))[0]
    >>> record.rfm_total, record.segment
    (11, 'Premium')
    """
    config = config or RFMConfig()
    as_of = _resolve_as_of(as_of_date, config)

    metrics = aggregate_customer_metrics(
        transactions,
        parallel=parallel,
        parallel_threshold=parallel_threshold,
        n_workers=n_workers,
    )
    if not metrics:
        logger.info("No transactions supplied; segmentation is empty")
        return []

    logger.info(f"Scoring {len(metrics)} customers as of {as_of.isoformat()}")
    records = [score_customer(m, as_of, config) for m in metrics]
    return records
