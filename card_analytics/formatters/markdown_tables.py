"""Markdown table formatters for RFM segmentation reports.

Formats report rows as clean markdown tables suitable for README-style
summaries, pull requests and any markdown renderer.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from card_analytics.analyses.fraud import (
    CustomerSpending,
    FraudRate,
    customer_spending_profile,
    fraud_rate_by_age_band,
    fraud_rate_by_amount_band,
    fraud_rate_by_category,
    fraud_rate_by_city_pop_band,
    fraud_rate_by_gender,
    fraud_rate_by_hour,
    fraud_rate_by_job,
    fraud_rate_by_state,
    fraud_rate_overall,
)
from card_analytics.analyses.loyalty import (
    CustomerValue,
    LoyalCandidate,
    YearlyTrend,
    average_active_years_by_segment,
    customer_active_years,
    lifetime_value_leaderboard,
    loyal_candidates,
    yearly_transaction_trend,
)
from card_analytics.analyses.segments import (
    BandCount,
    SegmentCount,
    SegmentSummary,
    at_risk_customers,
    band_distribution,
    segment_distribution,
    segment_summary,
    top_customers_by_monetary,
)
from card_analytics.foundation.config import RFMConfig
from card_analytics.foundation.rfm import CustomerRFMRecord
from card_analytics.foundation.transactions import Transaction


def _money(value: Decimal | int) -> str:
    return f"${value:,.2f}"


def format_segment_distribution_table(counts: Sequence[SegmentCount]) -> str:
    """Format segment sizes with each segment's share of customers.

    Parameters
    ----------
    counts:
        Output of :func:`card_analytics.analyses.segments.segment_distribution`

    Returns
    -------
    str:
        Markdown table with one row per segment

    Examples
    --------
    >>> from card_analytics.analyses.segments import SegmentCount
    >>> table = format_segment_distribution_table([SegmentCount("Premium", 3)])
    >>> "| Premium | 3 | 100.00% |" in table
    True
    """
    total = sum(c.customer_count for c in counts)
    table = "| Segment | Customers | Share |\n"
    table += "|---------|-----------|-------|\n"
    for count in counts:
        share = (count.customer_count / total * 100) if total else 0.0
        table += f"| {count.segment} | {count.customer_count:,} | {share:.2f}% |\n"
    return table


def format_band_distribution_table(bands: Sequence[BandCount]) -> str:
    """Format a score histogram produced by ``band_distribution``."""
    metric = bands[0].metric.capitalize() if bands else "Score"
    table = f"| {metric} Band | Score | Customers |\n"
    table += "|------|-------|-----------|\n"
    for band in bands:
        table += f"| {band.label} | {band.score} | {band.customer_count:,} |\n"
    return table


def format_segment_summary_table(summaries: Sequence[SegmentSummary]) -> str:
    """Format per-segment averages of frequency, spend and recency."""
    table = (
        "| Segment | Customers | Avg Transactions | Avg Spend | "
        "Avg Recency (days) | Avg Revenue/Order |\n"
    )
    table += "|---------|-----------|------------------|-----------|--------------------|-------------------|\n"
    for summary in summaries:
        per_order = (
            _money(summary.avg_revenue_per_order)
            if summary.avg_revenue_per_order is not None
            else "n/a"
        )
        table += (
            f"| {summary.segment} | {summary.customer_count:,} | {summary.avg_frequency} | "
            f"{_money(summary.avg_monetary)} | {summary.avg_recency_days} | {per_order} |\n"
        )
    return table


def format_customer_table(records: Sequence[CustomerRFMRecord]) -> str:
    """Format individual customer RFM records (top spenders, at-risk lists)."""
    table = "| Customer | Recency (days) | Transactions | Spend | R | F | M | Total | Segment |\n"
    table += "|----------|----------------|--------------|-------|---|---|---|-------|---------|\n"
    for r in records:
        table += (
            f"| {r.customer_id} | {r.recency_days} | {r.frequency:,} | {_money(r.monetary)} | "
            f"{r.recency_score} | {r.frequency_score} | {r.monetary_score} | "
            f"{r.rfm_total} | {r.segment} |\n"
        )
    return table


def format_fraud_rate_table(rates: Sequence[FraudRate], group_name: str = "Group") -> str:
    """Format fraud-rate rows, e.g. by merchant category."""
    table = f"| {group_name} | Transactions | Frauds | Fraud Rate |\n"
    table += "|------|--------------|--------|------------|\n"
    for rate in rates:
        table += (
            f"| {rate.group} | {rate.total_transactions:,} | {rate.total_frauds:,} | "
            f"{rate.fraud_rate_pct}% |\n"
        )
    return table


def format_active_years_table(averages: Mapping[str, Decimal]) -> str:
    """Format average active years per segment."""
    table = "| Segment | Avg Active Years |\n"
    table += "|---------|------------------|\n"
    for segment, years in averages.items():
        table += f"| {segment} | {years} |\n"
    return table


def format_yearly_trend_table(trends: Sequence[YearlyTrend]) -> str:
    """Format transaction volume and average value per year."""
    table = "| Year | Transactions | Avg Transaction |\n"
    table += "|------|--------------|-----------------|\n"
    for trend in trends:
        table += (
            f"| {trend.year} | {trend.num_transactions:,} | "
            f"{_money(trend.avg_transaction_value)} |\n"
        )
    return table


def format_loyal_candidates_table(candidates: Sequence[LoyalCandidate]) -> str:
    """Format long-tenured, high-volume customers."""
    table = "| Customer | Transactions | First Year | Last Year | Active Years |\n"
    table += "|----------|--------------|------------|-----------|--------------|\n"
    for c in candidates:
        table += (
            f"| {c.customer_id} | {c.total_transactions:,} | {c.first_year} | "
            f"{c.last_year} | {c.active_years} |\n"
        )
    return table


def format_customer_value_table(values: Sequence[CustomerValue]) -> str:
    """Format the lifetime value leaderboard."""
    table = "| Customer | Transactions | Total Revenue | Avg per Transaction |\n"
    table += "|----------|--------------|---------------|---------------------|\n"
    for v in values:
        table += (
            f"| {v.customer_id} | {v.total_transactions:,} | {_money(v.total_revenue)} | "
            f"{_money(v.avg_revenue_per_transaction)} |\n"
        )
    return table


def format_customer_spending_table(profiles: Sequence[CustomerSpending]) -> str:
    """Format per-card spending behaviour."""
    table = "| Customer | Transactions | Total Spend | Avg Transaction | Frauds |\n"
    table += "|----------|--------------|-------------|-----------------|--------|\n"
    for p in profiles:
        table += (
            f"| {p.customer_id} | {p.transaction_count:,} | {_money(p.total_spend)} | "
            f"{_money(p.average_transaction)} | {p.fraud_count:,} |\n"
        )
    return table


def _ledger_sections(
    records: Sequence[CustomerRFMRecord],
    transactions: Sequence[Transaction],
    top_n: int,
) -> list[str]:
    overall = fraud_rate_overall(transactions)
    lines = [
        "## Average Active Years by Segment\n",
        format_active_years_table(
            average_active_years_by_segment(records, customer_active_years(transactions))
        ),
        "## Yearly Transaction Trend\n",
        format_yearly_trend_table(yearly_transaction_trend(transactions)),
        "## Loyal Candidates\n",
        format_loyal_candidates_table(loyal_candidates(transactions)[:top_n]),
        f"## Top {top_n} Customers by Lifetime Value\n",
        format_customer_value_table(lifetime_value_leaderboard(transactions, top_n)),
        "## Fraud Overview\n",
        f"**Overall fraud rate:** {overall.fraud_rate_pct}% "
        f"({overall.total_frauds:,} of {overall.total_transactions:,} transactions)\n",
    ]
    breakdowns = [
        ("Merchant Category", "Category", fraud_rate_by_category(transactions)),
        ("Amount Band", "Amount", fraud_rate_by_amount_band(transactions)),
        ("Hour of Day", "Hour", fraud_rate_by_hour(transactions)),
        ("State", "State", fraud_rate_by_state(transactions)),
        ("City Population", "Population", fraud_rate_by_city_pop_band(transactions)),
        ("Gender", "Gender", fraud_rate_by_gender(transactions)),
        ("Age Band", "Age", fraud_rate_by_age_band(transactions)),
        ("Occupation", "Job", fraud_rate_by_job(transactions, limit=top_n)),
    ]
    for title, group_name, rates in breakdowns:
        lines.append(f"## Fraud Rate by {title}\n")
        lines.append(format_fraud_rate_table(rates, group_name=group_name))
    lines.append(f"## Top {top_n} Cards by Spending\n")
    lines.append(format_customer_spending_table(customer_spending_profile(transactions, top_n)))
    return lines


def format_segmentation_report(
    records: Sequence[CustomerRFMRecord],
    as_of_date: date,
    config: RFMConfig | None = None,
    top_n: int = 10,
    transactions: Iterable[Transaction] | None = None,
) -> str:
    """Build the full markdown RFM report.

    Sections: segment distribution, segment summary, score band
    distributions, top Premium customers and most dormant At Risk customers.

    When ``transactions`` are given the report continues with the ledger
    views: active years by segment, yearly trend, loyal candidates,
    lifetime value, the fraud-rate breakdowns and per-card spending.
    """
    config = config or RFMConfig()
    best_segment = config.segments.labels[0]
    worst_segment = config.segments.labels[-1]

    lines = [
        "# RFM Customer Segmentation Report\n",
        f"**As-of date:** {as_of_date.isoformat()}",
        f"**Customers:** {len(records):,}\n",
        "## Segment Distribution\n",
        format_segment_distribution_table(segment_distribution(records, config)),
        "## Segment Summary\n",
        format_segment_summary_table(segment_summary(records, config)),
    ]
    for metric in ("recency", "frequency", "monetary"):
        lines.append(f"## {metric.capitalize()} Band Distribution\n")
        lines.append(format_band_distribution_table(band_distribution(records, metric, config)))

    lines.append(f"## Top {best_segment} Customers by Spend\n")
    lines.append(
        format_customer_table(top_customers_by_monetary(records, best_segment, top_n))
    )
    lines.append(f"## {worst_segment} Customers (Longest Since Last Transaction)\n")
    lines.append(format_customer_table(at_risk_customers(records, top_n, config)))

    if transactions is not None:
        lines.extend(_ledger_sections(records, list(transactions), top_n))
    return "\n".join(lines)
