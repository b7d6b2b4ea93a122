"""Reports built on top of the transaction ledger and RFM segmentation."""

from .fraud import (
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
from .loyalty import (
    CustomerLongevity,
    CustomerValue,
    LoyalCandidate,
    YearlyTrend,
    average_active_years_by_segment,
    customer_active_years,
    lifetime_value_leaderboard,
    loyal_candidates,
    yearly_transaction_trend,
)
from .segments import (
    BandCount,
    SegmentCount,
    SegmentSummary,
    at_risk_customers,
    band_distribution,
    rank_by_rfm_total,
    segment_distribution,
    segment_summary,
    top_customers_by_monetary,
)

__all__ = [
    "CustomerSpending",
    "FraudRate",
    "customer_spending_profile",
    "fraud_rate_by_age_band",
    "fraud_rate_by_amount_band",
    "fraud_rate_by_category",
    "fraud_rate_by_city_pop_band",
    "fraud_rate_by_gender",
    "fraud_rate_by_hour",
    "fraud_rate_by_job",
    "fraud_rate_by_state",
    "fraud_rate_overall",
    "CustomerLongevity",
    "CustomerValue",
    "LoyalCandidate",
    "YearlyTrend",
    "average_active_years_by_segment",
    "customer_active_years",
    "lifetime_value_leaderboard",
    "loyal_candidates",
    "yearly_transaction_trend",
    "BandCount",
    "SegmentCount",
    "SegmentSummary",
    "at_risk_customers",
    "band_distribution",
    "rank_by_rfm_total",
    "segment_distribution",
    "segment_summary",
    "top_customers_by_monetary",
]
