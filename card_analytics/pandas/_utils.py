"""Shared utilities for pandas conversion operations."""

from dataclasses import asdict, is_dataclass
from decimal import Decimal
from typing import Any, Sequence

import pandas as pd  # type: ignore


def decimal_to_float(value: Any) -> Any:
    """Convert Decimal to float for pandas compatibility; other values pass through."""
    if isinstance(value, Decimal):
        return float(value)
    return value


def dataclasses_to_dataframe(
    rows: Sequence[Any], columns: Sequence[str] | None = None
) -> pd.DataFrame:
    """Convert a sequence of report dataclasses to a DataFrame.

    Decimal fields become floats. ``columns`` fixes the column order and
    is also used for the empty frame returned when ``rows`` is empty.

    Raises:
        TypeError: If an element is not a dataclass instance
    """
    records = []
    for row in rows:
        if not is_dataclass(row) or isinstance(row, type):
            raise TypeError(f"Expected a dataclass instance, got {type(row)}")
        records.append({k: decimal_to_float(v) for k, v in asdict(row).items()})

    if not records:
        return pd.DataFrame(columns=list(columns) if columns else [])
    df = pd.DataFrame(records)
    if columns:
        df = df[list(columns)]
    return df
