"""Segment-level reports over the RFM segmentation.

Read-only aggregations consumed by the dashboard:
- How many customers fall in each segment?
- Who are the highest spenders within a segment?
- Which customers are drifting away (At Risk, longest recency)?
- How are customers spread across each score band?
- How do segments differ in frequency, spend and recency?

Band labels come from the same :class:`ScoreBands` used for scoring, so a
recalibrated threshold cannot leave a report out of step with the scores.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Literal, Sequence

from card_analytics.foundation.config import MAX_SCORE, MIN_SCORE, RFMConfig
from card_analytics.foundation.rfm import CustomerRFMRecord

# Averages are reported with 2 decimal places, matching ROUND(AVG(x), 2)
AVERAGE_PRECISION = Decimal("0.01")

DEFAULT_TOP_N = 10

Metric = Literal["recency", "frequency", "monetary"]


@dataclass(frozen=True)
class SegmentCount:
    """Number of customers in a segment."""

    segment: str
    customer_count: int


@dataclass(frozen=True)
class BandCount:
    """Number of customers holding a given score for one metric.

    Attributes
    ----------
    metric:
        "recency", "frequency" or "monetary"
    score:
        Score value (1-5)
    label:
        Band label, e.g. ``"Active (<=30d)"``
    customer_count:
        Customers with this score
    """

    metric: str
    score: int
    label: str
    customer_count: int


@dataclass(frozen=True)
class SegmentSummary:
    """Average behaviour of the customers in a segment.

    Attributes
    ----------
    segment:
        Segment label
    customer_count:
        Customers in the segment
    avg_frequency:
        Average transaction count
    avg_monetary:
        Average total spend
    avg_recency_days:
        Average days since last transaction
    avg_revenue_per_order:
        ``avg_monetary / avg_frequency``; None when the average frequency is 0
    """

    segment: str
    customer_count: int
    avg_frequency: Decimal
    avg_monetary: Decimal
    avg_recency_days: Decimal
    avg_revenue_per_order: Decimal | None

    def __post_init__(self) -> None:
        if self.customer_count <= 0:
            raise ValueError(
                f"Segment summary requires customers: {self.customer_count} (segment={self.segment})"
            )


def _check_limit(limit: int) -> None:
    if limit < 0:
        raise ValueError(f"limit cannot be negative: {limit}")


def _average(values: Sequence[int]) -> Decimal:
    return Decimal(sum(values)) / Decimal(len(values))


def segment_distribution(
    records: Sequence[CustomerRFMRecord],
    config: RFMConfig | None = None,
) -> list[SegmentCount]:
    """Count customers per segment.

    Every configured segment is listed, including empty ones. Rows are
    ordered by customer count descending, then from best to worst segment.

    Examples
    --------
    >>> segment_distribution([])[0]
    SegmentCount(segment='Premium', customer_count=0)
    """
    config = config or RFMConfig()
    counts = {label: 0 for label in config.segments.labels}
    for record in records:
        counts[record.segment] = counts.get(record.segment, 0) + 1

    def order(item: tuple[str, int]) -> tuple[int, int, str]:
        label, count = item
        rank = (
            config.segments.rank(label)
            if label in config.segments.labels
            else len(config.segments.labels)
        )
        return (-count, rank, label)

    return [
        SegmentCount(segment=label, customer_count=count)
        for label, count in sorted(counts.items(), key=order)
    ]


def top_customers_by_monetary(
    records: Sequence[CustomerRFMRecord],
    segment: str = "Premium",
    limit: int = DEFAULT_TOP_N,
) -> list[CustomerRFMRecord]:
    """Highest-spending customers of ``segment``.

    Sorted by monetary descending; ties are broken by customer id so the
    output is deterministic.
    """
    _check_limit(limit)
    members = [r for r in records if r.segment == segment]
    members.sort(key=lambda r: (-r.monetary, r.customer_id))
    return members[:limit]


def at_risk_customers(
    records: Sequence[CustomerRFMRecord],
    limit: int = DEFAULT_TOP_N,
    config: RFMConfig | None = None,
) -> list[CustomerRFMRecord]:
    """Customers of the worst segment with the longest time since last purchase.

    Sorted by recency_days descending, ties broken by customer id.
    """
    _check_limit(limit)
    config = config or RFMConfig()
    worst_segment = config.segments.labels[-1]
    members = [r for r in records if r.segment == worst_segment]
    members.sort(key=lambda r: (-r.recency_days, r.customer_id))
    return members[:limit]


def band_distribution(
    records: Sequence[CustomerRFMRecord],
    metric: Metric,
    config: RFMConfig | None = None,
) -> list[BandCount]:
    """Histogram of one score across customers, from score 5 down to 1.

    All five bands are returned, including empty ones.
    """
    config = config or RFMConfig()
    bands = config.bands_for(metric)
    attribute = f"{metric}_score"

    counts = {score: 0 for score in range(MAX_SCORE, MIN_SCORE - 1, -1)}
    for record in records:
        counts[getattr(record, attribute)] += 1

    return [
        BandCount(
            metric=metric,
            score=score,
            label=bands.band_label(score),
            customer_count=count,
        )
        for score, count in counts.items()
    ]


def segment_summary(
    records: Sequence[CustomerRFMRecord],
    config: RFMConfig | None = None,
) -> list[SegmentSummary]:
    """Average frequency, spend and recency per populated segment.

    Segments are ordered from best to worst; empty segments are omitted.
    """
    config = config or RFMConfig()
    grouped: dict[str, list[CustomerRFMRecord]] = {}
    for record in records:
        grouped.setdefault(record.segment, []).append(record)

    def rank(label: str) -> tuple[int, str]:
        if label in config.segments.labels:
            return (config.segments.rank(label), label)
        return (len(config.segments.labels), label)

    summaries: list[SegmentSummary] = []
    for segment in sorted(grouped, key=rank):
        members = grouped[segment]
        avg_frequency = _average([m.frequency for m in members])
        avg_monetary = _average([m.monetary for m in members])
        avg_recency = _average([m.recency_days for m in members])

        if avg_frequency == 0:
            revenue_per_order = None
        else:
            revenue_per_order = (avg_monetary / avg_frequency).quantize(
                AVERAGE_PRECISION, rounding=ROUND_HALF_UP
            )

        summaries.append(
            SegmentSummary(
                segment=segment,
                customer_count=len(members),
                avg_frequency=avg_frequency.quantize(AVERAGE_PRECISION, rounding=ROUND_HALF_UP),
                avg_monetary=avg_monetary.quantize(AVERAGE_PRECISION, rounding=ROUND_HALF_UP),
                avg_recency_days=avg_recency.quantize(AVERAGE_PRECISION, rounding=ROUND_HALF_UP),
                avg_revenue_per_order=revenue_per_order,
            )
        )
    return summaries


def rank_by_rfm_total(records: Sequence[CustomerRFMRecord]) -> list[CustomerRFMRecord]:
    """Full segmentation ordered for export: rfm_total descending, then customer id."""
    return sorted(records, key=lambda r: (-r.rfm_total, r.customer_id))
