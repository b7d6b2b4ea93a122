"""Pandas DataFrame adapters for credit card analytics components."""

from .rfm import (
    SOURCE_COLUMN_MAP,
    compute_segmentation_df,
    dataframe_to_rfm_records,
    dataframe_to_transactions,
    read_transactions_csv,
    read_transactions_json,
    rfm_records_to_dataframe,
)
from ._utils import dataclasses_to_dataframe

__all__ = [
    # Transaction loading
    "SOURCE_COLUMN_MAP",
    "dataframe_to_transactions",
    "read_transactions_csv",
    "read_transactions_json",
    # RFM adapters
    "rfm_records_to_dataframe",
    "dataframe_to_rfm_records",
    "compute_segmentation_df",
    # Report adapters
    "dataclasses_to_dataframe",
]
