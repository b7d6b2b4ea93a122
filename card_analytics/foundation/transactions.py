"""Transaction records and input validation.

The transaction contract is the single place where raw rows are checked.
Once a row has become a :class:`Transaction` every downstream stage can
rely on it carrying a customer id, a timestamp and a numeric amount.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping

from card_analytics.exceptions import (
    DuplicateTransactionError,
    EmptyInputError,
    MalformedRecordError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transaction:
    """A single card transaction.

    Attributes
    ----------
    customer_id:
        Card number / customer identifier (``cc_num`` in the source data).
    transaction_ts:
        Timestamp of the transaction (``trans_date_trans_time``).
    amount:
        Transaction amount (``amt``). Refunds may be negative.
    transaction_id:
        Unique transaction number (``trans_num``), when available.
    merchant, category, state, city_pop, is_fraud:
        Descriptive attributes used by the fraud reports only.
    gender, dob, job:
        Cardholder demographics (``dob`` is the date of birth), used by
        the demographic fraud reports only.
    """

    customer_id: str
    transaction_ts: datetime
    amount: Decimal
    transaction_id: str | None = None
    merchant: str | None = None
    category: str | None = None
    state: str | None = None
    city_pop: int | None = None
    is_fraud: bool = False
    gender: str | None = None
    dob: date | None = None
    job: str | None = None

    def __post_init__(self) -> None:
        """Validate required fields."""
        if not self.customer_id:
            raise MalformedRecordError("Transaction is missing a customer id")
        if not isinstance(self.transaction_ts, datetime):
            raise MalformedRecordError(
                f"transaction_ts must be a datetime: {self.transaction_ts!r} "
                f"(customer_id={self.customer_id})"
            )
        object.__setattr__(self, "transaction_ts", to_naive_utc(self.transaction_ts))
        if not isinstance(self.amount, Decimal) or not self.amount.is_finite():
            raise MalformedRecordError(
                f"amount must be a finite Decimal: {self.amount!r} "
                f"(customer_id={self.customer_id})"
            )


@dataclass(frozen=True)
class ValidatedTransactions:
    """Outcome of validating a batch of raw transaction records.

    Attributes
    ----------
    transactions:
        Records that passed validation, in input order.
    total_records:
        Number of raw records inspected.
    malformed_records:
        Records skipped because a required field was missing or unparseable.
    duplicate_records:
        Records skipped because their transaction id was already seen.
    """

    transactions: tuple[Transaction, ...]
    total_records: int
    malformed_records: int = 0
    duplicate_records: int = 0

    @property
    def rejected_records(self) -> int:
        return self.malformed_records + self.duplicate_records


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if value != value:  # NaN and NaT from pandas
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _parse_customer_id(value: Any) -> str:
    # Card numbers read by pandas may arrive as ints or floats like 2.7e15
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware timestamp to naive UTC; naive values are returned as-is.

    Naive timestamps are taken to be UTC already, so a ledger mixing
    ``...Z`` and offset-free values stays comparable.
    """
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip().replace("Z", "+00:00")
        return to_naive_utc(datetime.fromisoformat(text))
    raise TypeError(f"Unsupported timestamp type {type(value).__name__}")


def _parse_amount(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("Boolean is not a valid amount")
    amount = Decimal(str(value).strip())
    if not amount.is_finite():
        raise ValueError(f"Amount is not finite: {value!r}")
    return amount


def _parse_flag(value: Any) -> bool:
    if _is_missing(value):
        return False
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "t"}
    return bool(int(value))


def _optional_str(value: Any) -> str | None:
    return None if _is_missing(value) else str(value).strip()


def _optional_int(value: Any) -> int | None:
    return None if _is_missing(value) else int(float(value))


def _optional_date(value: Any) -> date | None:
    if _is_missing(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


class TransactionContract:
    """Validate raw transaction mappings into :class:`Transaction` records.

    Parameters
    ----------
    tolerate_malformed:
        When True, records missing a required field (or carrying a
        duplicate transaction id) are skipped and counted instead of
        failing the whole batch.
    """

    #: Fields every record must populate.
    REQUIRED_FIELDS = ("customer_id", "transaction_ts", "amount")

    def __init__(self, tolerate_malformed: bool = False) -> None:
        self.tolerate_malformed = tolerate_malformed

    def _to_transaction(self, idx: int, record: Mapping[str, Any]) -> Transaction:
        missing = [name for name in self.REQUIRED_FIELDS if _is_missing(record.get(name))]
        if missing:
            raise MalformedRecordError(
                f"Record {idx} missing required fields: {missing}"
            )
        try:
            return Transaction(
                customer_id=_parse_customer_id(record["customer_id"]),
                transaction_ts=_parse_timestamp(record["transaction_ts"]),
                amount=_parse_amount(record["amount"]),
                transaction_id=_optional_str(record.get("transaction_id")),
                merchant=_optional_str(record.get("merchant")),
                category=_optional_str(record.get("category")),
                state=_optional_str(record.get("state")),
                city_pop=_optional_int(record.get("city_pop")),
                is_fraud=_parse_flag(record.get("is_fraud")),
                gender=_optional_str(record.get("gender")),
                dob=_optional_date(record.get("dob")),
                job=_optional_str(record.get("job")),
            )
        except MalformedRecordError:
            raise
        except (TypeError, ValueError, InvalidOperation) as exc:
            raise MalformedRecordError(f"Record {idx} could not be parsed: {exc}") from exc

    def validate_records(
        self,
        records: Iterable[Mapping[str, Any]],
        *,
        allow_empty: bool = True,
    ) -> ValidatedTransactions:
        """Validate ``records`` and return the accepted transactions.

        Parameters
        ----------
        records:
            Raw mappings keyed by the canonical field names
            (``customer_id``, ``transaction_ts``, ``amount``, ...).
        allow_empty:
            When False an input without any accepted transaction raises
            :class:`EmptyInputError`.

        Raises
        ------
        MalformedRecordError
            A record is missing a required field and malformed records
            are not tolerated.
        DuplicateTransactionError
            A transaction id repeats and malformed records are not tolerated.
        """
        accepted: list[Transaction] = []
        seen_ids: set[str] = set()
        total = malformed = duplicates = 0

        for idx, record in enumerate(records):
            total += 1
            try:
                transaction = self._to_transaction(idx, record)
            except MalformedRecordError as exc:
                if not self.tolerate_malformed:
                    raise
                malformed += 1
                logger.debug(f"Skipping malformed record: {exc}")
                continue

            if transaction.transaction_id is not None:
                if transaction.transaction_id in seen_ids:
                    if not self.tolerate_malformed:
                        raise DuplicateTransactionError(
                            f"Record {idx} repeats transaction id {transaction.transaction_id}"
                        )
                    duplicates += 1
                    logger.debug(
                        f"Skipping duplicate transaction id {transaction.transaction_id}"
                    )
                    continue
                seen_ids.add(transaction.transaction_id)

            accepted.append(transaction)

        if malformed or duplicates:
            logger.warning(
                f"Skipped {malformed} malformed and {duplicates} duplicate records "
                f"out of {total}"
            )
        if not accepted and not allow_empty:
            raise EmptyInputError(f"No valid transactions found in {total} records")

        return ValidatedTransactions(
            transactions=tuple(accepted),
            total_records=total,
            malformed_records=malformed,
            duplicate_records=duplicates,
        )


def validate_transactions(
    records: Iterable[Mapping[str, Any]],
    *,
    tolerate_malformed: bool = False,
    allow_empty: bool = True,
) -> list[Transaction]:
    """Shortcut for :meth:`TransactionContract.validate_records` returning the list."""
    result = TransactionContract(tolerate_malformed=tolerate_malformed).validate_records(
        records, allow_empty=allow_empty
    )
    return list(result.transactions)
