"""Tests for transaction records and input validation."""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from card_analytics.exceptions import (
    CardAnalyticsError,
    DuplicateTransactionError,
    EmptyInputError,
    MalformedRecordError,
)
from card_analytics.foundation.rfm import compute_segmentation
from card_analytics.foundation.transactions import (
    Transaction,
    TransactionContract,
    validate_transactions,
)


def _record(**overrides):
    record = {
        "customer_id": "2703186189652095",
        "transaction_ts": "2019-01-01 00:00:18",
        "amount": "4.97",
        "transaction_id": "0b242abb623afc578575680df30655b9",
        "merchant": "fraud_Rippin, Kub and Mann",
        "category": "misc_net",
        "state": "NC",
        "city_pop": 3495,
        "is_fraud": 0,
        "gender": "F",
        "dob": "1988-03-09",
        "job": "Psychologist, counselling",
    }
    record.update(overrides)
    return record


class TestErrorTaxonomy:
    """Validation errors share the pipeline base class."""

    def test_duplicate_is_malformed(self):
        """Duplicate transaction ids are a kind of malformed record."""
        assert issubclass(DuplicateTransactionError, MalformedRecordError)
        assert issubclass(MalformedRecordError, CardAnalyticsError)
        assert issubclass(EmptyInputError, ValueError)


class TestTransaction:
    """Test Transaction dataclass validation."""

    def test_valid_transaction(self):
        """A transaction needs only customer, timestamp and amount."""
        txn = Transaction("C1", datetime(2020, 1, 1), Decimal("10.00"))
        assert txn.is_fraud is False
        assert txn.category is None

    def test_missing_customer_id_raises_error(self):
        """Empty customer ids are rejected."""
        with pytest.raises(MalformedRecordError, match="customer id"):
            Transaction("", datetime(2020, 1, 1), Decimal("10.00"))

    def test_non_decimal_amount_raises_error(self):
        """Amounts must be Decimal."""
        with pytest.raises(MalformedRecordError, match="finite Decimal"):
            Transaction("C1", datetime(2020, 1, 1), 10.0)

    def test_transaction_is_frozen(self):
        """Transactions are immutable."""
        txn = Transaction("C1", datetime(2020, 1, 1), Decimal("10.00"))
        with pytest.raises(AttributeError):
            txn.amount = Decimal("1")


class TestTransactionContract:
    """Test validation of raw transaction mappings."""

    def test_valid_record_is_parsed(self):
        """All fields are parsed into typed values."""
        result = TransactionContract().validate_records([_record()])
        txn = result.transactions[0]
        assert txn.customer_id == "2703186189652095"
        assert txn.transaction_ts == datetime(2019, 1, 1, 0, 0, 18)
        assert txn.amount == Decimal("4.97")
        assert txn.category == "misc_net"
        assert txn.city_pop == 3495
        assert txn.is_fraud is False
        assert txn.gender == "F"
        assert txn.dob == date(1988, 3, 9)
        assert txn.job == "Psychologist, counselling"
        assert result.total_records == 1
        assert result.rejected_records == 0

    def test_float_card_number_keeps_digits(self):
        """Integral float ids lose their trailing .0."""
        result = TransactionContract().validate_records(
            [_record(customer_id=4613314721966.0)]
        )
        assert result.transactions[0].customer_id == "4613314721966"

    def test_demographics_are_optional(self):
        """Missing gender, date of birth and job stay None."""
        result = TransactionContract().validate_records(
            [_record(gender=None, dob=float("nan"), job="")]
        )
        txn = result.transactions[0]
        assert (txn.gender, txn.dob, txn.job) == (None, None, None)

    def test_unparseable_dob_raises_error(self):
        """A date of birth that is not an ISO date is malformed."""
        with pytest.raises(MalformedRecordError, match="could not be parsed"):
            TransactionContract().validate_records([_record(dob="03/09/1988")])

    def test_fraud_flag_parsing(self):
        """Fraud flags accept ints, bools and strings."""
        records = [
            _record(transaction_id="a", is_fraud=1),
            _record(transaction_id="b", is_fraud="true"),
            _record(transaction_id="c", is_fraud=None),
        ]
        flags = [t.is_fraud for t in validate_transactions(records)]
        assert flags == [True, True, False]

    def test_iso_timestamp_with_z_suffix(self):
        """UTC timestamps with a Z suffix become naive UTC."""
        result = TransactionContract().validate_records(
            [_record(transaction_ts="2020-06-21T12:14:25Z")]
        )
        assert result.transactions[0].transaction_ts == datetime(2020, 6, 21, 12, 14, 25)
        assert result.transactions[0].transaction_ts.tzinfo is None

    @pytest.mark.parametrize("field", ["customer_id", "transaction_ts", "amount"])
    def test_missing_required_field_raises_error(self, field):
        """Missing required fields fail the batch by default."""
        with pytest.raises(MalformedRecordError, match="missing required fields"):
            TransactionContract().validate_records([_record(**{field: None})])

    def test_nan_amount_is_missing(self):
        """NaN amounts (pandas nulls) count as missing."""
        with pytest.raises(MalformedRecordError, match="amount"):
            TransactionContract().validate_records([_record(amount=float("nan"))])

    def test_unparseable_amount_raises_error(self):
        """Non-numeric amounts are malformed."""
        with pytest.raises(MalformedRecordError, match="could not be parsed"):
            TransactionContract().validate_records([_record(amount="ten dollars")])

    def test_unparseable_timestamp_raises_error(self):
        """Non-ISO timestamps are malformed."""
        with pytest.raises(MalformedRecordError, match="could not be parsed"):
            TransactionContract().validate_records([_record(transaction_ts="not a date")])

    def test_duplicate_transaction_id_raises_error(self):
        """Repeated transaction ids fail the batch by default."""
        with pytest.raises(DuplicateTransactionError, match="repeats transaction id"):
            TransactionContract().validate_records([_record(), _record()])

    def test_tolerated_records_are_skipped_and_counted(self, caplog):
        """Tolerated malformed and duplicate records are counted and logged."""
        records = [
            _record(transaction_id="t1"),
            _record(transaction_id="t1"),
            _record(transaction_id="t2", amount=None),
            _record(transaction_id="t3", customer_id=" "),
            _record(transaction_id="t4"),
        ]
        with caplog.at_level(logging.WARNING):
            result = TransactionContract(tolerate_malformed=True).validate_records(records)

        assert [t.transaction_id for t in result.transactions] == ["t1", "t4"]
        assert result.total_records == 5
        assert result.malformed_records == 2
        assert result.duplicate_records == 1
        assert result.rejected_records == 3
        assert "Skipped 2 malformed and 1 duplicate records out of 5" in caplog.text

    def test_records_without_transaction_id_are_not_duplicates(self):
        """Duplicate detection only applies to populated transaction ids."""
        records = [_record(transaction_id=None), _record(transaction_id=None)]
        assert len(validate_transactions(records)) == 2

    def test_empty_input_allowed_by_default(self):
        """An empty batch is valid unless the caller forbids it."""
        result = TransactionContract().validate_records([])
        assert result.transactions == ()
        assert result.total_records == 0

    def test_empty_input_rejected_when_requested(self):
        """allow_empty=False raises EmptyInputError."""
        with pytest.raises(EmptyInputError, match="No valid transactions"):
            TransactionContract().validate_records([], allow_empty=False)

    def test_all_malformed_rejected_when_empty_forbidden(self):
        """A batch whose every record was skipped counts as empty."""
        contract = TransactionContract(tolerate_malformed=True)
        with pytest.raises(EmptyInputError):
            contract.validate_records([_record(amount=None)], allow_empty=False)


class TestTimestampNormalisation:
    """Aware and naive timestamps end up on one comparable clock."""

    def test_offset_timestamp_converted_to_utc(self):
        """An explicit offset is applied before the zone is dropped."""
        result = TransactionContract().validate_records(
            [_record(transaction_ts="2020-06-21T12:14:25+02:00")]
        )
        assert result.transactions[0].transaction_ts == datetime(2020, 6, 21, 10, 14, 25)

    def test_aware_datetime_converted_to_utc(self):
        """Aware datetime objects are normalised like ISO strings."""
        eastern = timezone(timedelta(hours=-5))
        result = TransactionContract().validate_records(
            [_record(transaction_ts=datetime(2020, 11, 30, 22, 0, tzinfo=eastern))]
        )
        assert result.transactions[0].transaction_ts == datetime(2020, 12, 1, 3, 0)

    def test_transaction_constructor_normalises(self):
        """Directly built transactions are normalised too."""
        txn = Transaction("C1", datetime(2020, 1, 1, 12, tzinfo=timezone.utc), Decimal("1"))
        assert txn.transaction_ts == datetime(2020, 1, 1, 12)
        assert txn.transaction_ts.tzinfo is None

    def test_mixed_batch_segments_without_error(self):
        """One customer with Z-suffixed and offset-free rows can be segmented."""
        transactions = validate_transactions(
            [
                {"customer_id": "C1", "transaction_ts": "2020-11-01T10:00:00Z", "amount": 5},
                {"customer_id": "C1", "transaction_ts": "2020-11-02T10:00:00", "amount": 5},
            ]
        )

        records = compute_segmentation(transactions, date(2020, 12, 1))

        assert len(records) == 1
        assert records[0].recency_days == 29
        assert records[0].frequency == 2
        assert records[0].monetary == 10
