"""Pandas DataFrame adapters for transactions and RFM segmentation."""

from datetime import date, datetime
from pathlib import Path
from typing import List, Mapping, Optional

import pandas as pd  # type: ignore

from card_analytics.exceptions import MalformedRecordError
from card_analytics.foundation.config import RFMConfig
from card_analytics.foundation.rfm import (
    RFM_RECORD_FIELDS,
    CustomerRFMRecord,
    compute_segmentation,
)
from card_analytics.foundation.transactions import (
    TransactionContract,
    ValidatedTransactions,
)

#: Column names of the credit card transactions dataset mapped to the
#: canonical transaction fields.
SOURCE_COLUMN_MAP = {
    "cc_num": "customer_id",
    "trans_date_trans_time": "transaction_ts",
    "amt": "amount",
    "trans_num": "transaction_id",
    "merchant": "merchant",
    "category": "category",
    "state": "state",
    "city_pop": "city_pop",
    "is_fraud": "is_fraud",
    "gender": "gender",
    "dob": "dob",
    "job": "job",
}

CANONICAL_COLUMNS = (
    "customer_id",
    "transaction_ts",
    "amount",
    "transaction_id",
    "merchant",
    "category",
    "state",
    "city_pop",
    "is_fraud",
    "gender",
    "dob",
    "job",
)

REQUIRED_COLUMNS = ("customer_id", "transaction_ts", "amount")


def _canonicalise(
    transactions_df: pd.DataFrame, column_map: Optional[Mapping[str, str]]
) -> pd.DataFrame:
    mapping = dict(SOURCE_COLUMN_MAP if column_map is None else column_map)
    renamed = transactions_df.rename(
        columns={src: dst for src, dst in mapping.items() if src in transactions_df.columns}
    )
    missing_cols = set(REQUIRED_COLUMNS) - set(renamed.columns)
    if missing_cols:
        raise MalformedRecordError(
            f"DataFrame missing required columns: {sorted(missing_cols)}"
        )
    present = [col for col in CANONICAL_COLUMNS if col in renamed.columns]
    canonical = renamed[present].copy()
    # Unparseable timestamps become NaT and are reported as malformed records.
    # Offsets are applied and dropped; offset-free values are taken as UTC.
    canonical["transaction_ts"] = pd.to_datetime(
        canonical["transaction_ts"], errors="coerce", utc=True, format="ISO8601"
    ).dt.tz_localize(None)
    return canonical


def dataframe_to_transactions(
    transactions_df: pd.DataFrame,
    column_map: Optional[Mapping[str, str]] = None,
    tolerate_malformed: bool = False,
    allow_empty: bool = True,
) -> ValidatedTransactions:
    """Validate a raw transactions DataFrame into transaction records.

    Args:
        transactions_df: Raw transactions, e.g. the credit card CSV
        column_map: Source column -> canonical field mapping. Defaults to
            :data:`SOURCE_COLUMN_MAP`; columns already carrying canonical
            names need no mapping.
        tolerate_malformed: Skip rows missing required values instead of failing
        allow_empty: When False, raise EmptyInputError if no row is valid

    Returns:
        ValidatedTransactions with accepted transactions and rejection counts

    Raises:
        MalformedRecordError: If required columns are missing, or a row is
            malformed and ``tolerate_malformed`` is False

    Example:
        >>> df = pd.read_csv("credit_card_transactions.csv", dtype={"cc_num": str})
        >>> validated = dataframe_to_transactions(df, tolerate_malformed=True)
        >>> validated.rejected_records
        0
    """
    contract = TransactionContract(tolerate_malformed=tolerate_malformed)
    if transactions_df.empty and len(transactions_df.columns) == 0:
        # An empty JSON array carries no columns at all
        return contract.validate_records([], allow_empty=allow_empty)

    canonical = _canonicalise(transactions_df, column_map)
    return contract.validate_records(
        canonical.to_dict("records"), allow_empty=allow_empty
    )


def read_transactions_csv(
    path: str | Path,
    column_map: Optional[Mapping[str, str]] = None,
    tolerate_malformed: bool = False,
    allow_empty: bool = True,
) -> ValidatedTransactions:
    """Load and validate transactions from a CSV file.

    Identifier columns are read as strings so card numbers keep every digit.
    """
    mapping = dict(SOURCE_COLUMN_MAP if column_map is None else column_map)
    string_columns = {
        src
        for src, dst in mapping.items()
        if dst in ("customer_id", "transaction_id")
    } | {"customer_id", "transaction_id"}
    transactions_df = pd.read_csv(
        path, dtype={col: str for col in string_columns}, keep_default_na=True
    )
    return dataframe_to_transactions(
        transactions_df,
        column_map=mapping,
        tolerate_malformed=tolerate_malformed,
        allow_empty=allow_empty,
    )


def read_transactions_json(
    path: str | Path,
    column_map: Optional[Mapping[str, str]] = None,
    tolerate_malformed: bool = False,
    allow_empty: bool = True,
) -> ValidatedTransactions:
    """Load and validate transactions from a JSON array of records."""
    transactions_df = pd.read_json(
        path, orient="records", dtype=False, convert_dates=False
    )
    return dataframe_to_transactions(
        transactions_df,
        column_map=column_map,
        tolerate_malformed=tolerate_malformed,
        allow_empty=allow_empty,
    )


def rfm_records_to_dataframe(records: List[CustomerRFMRecord]) -> pd.DataFrame:
    """Convert RFM records to a DataFrame with the stable output columns.

    Example:
        >>> records = compute_segmentation(transactions, date(2020, 12, 1))
        >>> rfm_records_to_dataframe(records).groupby("segment").size()
    """
    if not records:
        return pd.DataFrame(columns=list(RFM_RECORD_FIELDS))
    return pd.DataFrame([record.as_dict() for record in records], columns=list(RFM_RECORD_FIELDS))


def dataframe_to_rfm_records(rfm_df: pd.DataFrame) -> List[CustomerRFMRecord]:
    """Convert an exported segmentation DataFrame back into validated records.

    Raises:
        ValueError: If columns are missing, values are null, or a row
            violates the record invariants
    """
    missing_cols = set(RFM_RECORD_FIELDS) - set(rfm_df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {sorted(missing_cols)}")

    if rfm_df.empty:
        return []

    null_cols = rfm_df[list(RFM_RECORD_FIELDS)].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(
            f"Null/NaN values found in columns: {null_col_names}. "
            "RFM records require complete data."
        )

    integer_fields = [f for f in RFM_RECORD_FIELDS if f not in ("customer_id", "segment")]
    records = []
    for row in rfm_df.to_dict("records"):
        values = {field: int(row[field]) for field in integer_fields}
        records.append(
            CustomerRFMRecord(
                customer_id=str(row["customer_id"]),
                segment=str(row["segment"]),
                **values,
            )
        )
    return records


def compute_segmentation_df(
    transactions_df: pd.DataFrame,
    as_of_date: date | datetime | None = None,
    config: Optional[RFMConfig] = None,
    column_map: Optional[Mapping[str, str]] = None,
    tolerate_malformed: bool = False,
) -> pd.DataFrame:
    """Validate a transactions DataFrame and return its RFM segmentation.

    Convenience function that combines validation, segmentation and
    conversion back to a DataFrame.

    Example:
        >>> df = pd.read_csv("credit_card_transactions.csv", dtype={"cc_num": str})
        >>> rfm_df = compute_segmentation_df(df, date(2020, 12, 1))
        >>> rfm_df[rfm_df["segment"] == "Premium"].head()
    """
    validated = dataframe_to_transactions(
        transactions_df,
        column_map=column_map,
        tolerate_malformed=tolerate_malformed,
    )
    records = compute_segmentation(validated.transactions, as_of_date, config)
    return rfm_records_to_dataframe(records)
