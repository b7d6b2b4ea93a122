"""Foundational building blocks for credit card analytics.

This package exposes the transaction contract, the centralised score
band configuration and the RFM (Recency-Frequency-Monetary)
segmentation engine.
"""

from .config import (
    BandDirection,
    RFMConfig,
    ScoreBands,
    SegmentBands,
)
from .rfm import (
    RFM_RECORD_FIELDS,
    CustomerMetrics,
    CustomerRFMRecord,
    aggregate_customer_metrics,
    assign_segment,
    compute_segmentation,
    score_frequency,
    score_monetary,
    score_recency,
)
from .transactions import (
    Transaction,
    TransactionContract,
    ValidatedTransactions,
    validate_transactions,
)

__all__ = [
    "BandDirection",
    "RFMConfig",
    "ScoreBands",
    "SegmentBands",
    "RFM_RECORD_FIELDS",
    "CustomerMetrics",
    "CustomerRFMRecord",
    "aggregate_customer_metrics",
    "assign_segment",
    "compute_segmentation",
    "score_frequency",
    "score_monetary",
    "score_recency",
    "Transaction",
    "TransactionContract",
    "ValidatedTransactions",
    "validate_transactions",
]
