"""Tests for fraud-rate breakdowns."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from card_analytics.analyses.fraud import (
    CustomerSpending,
    FraudRate,
    age_at,
    amount_band_label,
    city_pop_band_label,
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
from card_analytics.foundation.transactions import Transaction


def _txn(amount, is_fraud=False, category=None, state=None, hour=12):
    return Transaction(
        customer_id="C1",
        transaction_ts=datetime(2020, 6, 1, hour),
        amount=Decimal(str(amount)),
        category=category,
        state=state,
        is_fraud=is_fraud,
    )


@pytest.fixture
def transactions():
    return [
        _txn("5.00", category="grocery_pos", state="NY", hour=0),
        _txn("900.00", True, category="shopping_net", state="NY", hour=23),
        _txn("950.00", True, category="shopping_net", state="TX", hour=23),
        _txn("40.00", category="shopping_net", state="TX", hour=22),
        _txn("75.00", category="grocery_pos", state="TX", hour=0),
        _txn("300.00", True, category="grocery_pos", hour=22),
    ]


class TestFraudRate:
    """Test FraudRate validation."""

    def test_frauds_cannot_exceed_transactions(self):
        """A slice cannot hold more frauds than transactions."""
        with pytest.raises(ValueError, match="cannot exceed"):
            FraudRate("all", 1, 2, Decimal("200"))


class TestFraudRates:
    """Test fraud-rate breakdowns."""

    def test_overall(self, transactions):
        """Overall rate is frauds over all transactions, as a percentage."""
        rate = fraud_rate_overall(transactions)
        assert rate == FraudRate("all", 6, 3, Decimal("50.00"))

    def test_overall_empty(self):
        """No transactions give a zero rate."""
        assert fraud_rate_overall([]).fraud_rate_pct == Decimal("0")

    def test_by_category(self, transactions):
        """Categories are ordered by rate descending."""
        rates = fraud_rate_by_category(transactions)
        assert [(r.group, r.total_frauds, r.fraud_rate_pct) for r in rates] == [
            ("shopping_net", 2, Decimal("66.67")),
            ("grocery_pos", 1, Decimal("33.33")),
        ]

    def test_by_hour(self, transactions):
        """Hours are listed in clock order."""
        rates = fraud_rate_by_hour(transactions)
        assert [r.group for r in rates] == ["0", "22", "23"]
        assert rates[-1].fraud_rate_pct == Decimal("100.00")

    def test_by_state_unknown(self, transactions):
        """Missing states are grouped as unknown."""
        groups = {r.group: r for r in fraud_rate_by_state(transactions)}
        assert groups["unknown"].total_transactions == 1
        assert groups["NY"].fraud_rate_pct == Decimal("50.00")

    def test_by_amount_band(self, transactions):
        """High-value transactions concentrate the fraud."""
        rates = fraud_rate_by_amount_band(transactions)
        groups = {r.group: (r.total_transactions, r.total_frauds) for r in rates}
        assert groups == {
            "<$10": (1, 0),
            "$10-$50": (1, 0),
            "$50-$100": (1, 0),
            "$100-$500": (1, 1),
            ">=$500": (2, 2),
        }
        assert rates[0].fraud_rate_pct == Decimal("100.00")

    def test_amount_bands_must_increase(self, transactions):
        """Band bounds must be strictly increasing."""
        with pytest.raises(ValueError, match="strictly increasing"):
            fraud_rate_by_amount_band(transactions, (Decimal("50"), Decimal("10")))


class TestAmountBandLabel:
    """Test amount_band_label."""

    @pytest.mark.parametrize(
        "amount,expected",
        [
            ("9.99", "<$10"),
            ("10", "$10-$50"),
            ("49.99", "$10-$50"),
            ("100", "$100-$500"),
            ("499.99", "$100-$500"),
            ("500", ">=$500"),
            ("-20", "<$10"),
        ],
    )
    def test_labels(self, amount, expected):
        """Lower bounds are inclusive, upper bounds exclusive."""
        assert amount_band_label(Decimal(amount)) == expected


def _cardholder(customer_id, amount, is_fraud=False, **attributes):
    return Transaction(
        customer_id=customer_id,
        transaction_ts=datetime(2020, 6, 1, 12),
        amount=Decimal(str(amount)),
        is_fraud=is_fraud,
        **attributes,
    )


class TestCityPopBands:
    """Test the city population breakdown."""

    @pytest.mark.parametrize(
        "city_pop,expected",
        [
            (0, "<1,000"),
            (999, "<1,000"),
            (1_000, "1,000-10,000"),
            (99_999, "10,000-100,000"),
            (100_000, "100,000-1,000,000"),
            (1_000_000, ">=1,000,000"),
        ],
    )
    def test_labels(self, city_pop, expected):
        """Lower bounds are inclusive, upper bounds exclusive."""
        assert city_pop_band_label(city_pop) == expected

    def test_bands_in_size_order(self):
        """Bands are listed smallest first with unknown last."""
        transactions = [
            _cardholder("C1", 10, True, city_pop=2_906_700),
            _cardholder("C2", 10, city_pop=149),
            _cardholder("C3", 10, True, city_pop=333_497),
            _cardholder("C3", 10, city_pop=333_497),
            _cardholder("C4", 10),
        ]
        rates = fraud_rate_by_city_pop_band(transactions)
        assert [(r.group, r.total_transactions, r.total_frauds) for r in rates] == [
            ("<1,000", 1, 0),
            ("100,000-1,000,000", 2, 1),
            (">=1,000,000", 1, 1),
            ("unknown", 1, 0),
        ]
        assert rates[1].fraud_rate_pct == Decimal("50.00")

    def test_bounds_must_increase(self):
        """City population bounds must be strictly increasing."""
        with pytest.raises(ValueError, match="strictly increasing"):
            fraud_rate_by_city_pop_band([], (10_000, 1_000))


class TestDemographicFraudRates:
    """Test gender, age and occupation breakdowns."""

    def test_by_gender(self):
        """Genders are listed in order with missing values last."""
        transactions = [
            _cardholder("C1", 10, True, gender="M"),
            _cardholder("C1", 10, gender="M"),
            _cardholder("C2", 10, gender="F"),
            _cardholder("C3", 10),
        ]
        rates = fraud_rate_by_gender(transactions)
        assert [(r.group, r.fraud_rate_pct) for r in rates] == [
            ("F", Decimal("0.00")),
            ("M", Decimal("50.00")),
            ("unknown", Decimal("0.00")),
        ]

    def test_age_at_counts_completed_years(self):
        """A birthday not yet reached this year does not count."""
        assert age_at(date(1988, 3, 9), date(2020, 3, 8)) == 31
        assert age_at(date(1988, 3, 9), date(2020, 3, 9)) == 32

    def test_by_age_band(self):
        """Age is taken at the transaction date and bands run youngest first."""
        transactions = [
            _cardholder("C1", 10, True, dob=date(2001, 6, 2)),  # 18 on 2020-06-01
            _cardholder("C2", 10, dob=date(2000, 6, 1)),  # 20
            _cardholder("C3", 10, True, dob=date(1950, 1, 1)),  # 70
            _cardholder("C4", 10, dob=date(1985, 12, 31)),  # 34
            _cardholder("C5", 10),
        ]
        rates = fraud_rate_by_age_band(transactions)
        assert [(r.group, r.total_frauds) for r in rates] == [
            ("<20", 1),
            ("20-30", 0),
            ("30-40", 0),
            (">=60", 1),
            ("unknown", 0),
        ]

    def test_by_job_filters_low_volume(self):
        """Only jobs above the volume floor are ranked, highest rate first."""
        transactions = (
            [_cardholder("C1", 10, i < 1, job="Surveyor") for i in range(4)]
            + [_cardholder("C2", 10, i < 3, job="Pilot") for i in range(4)]
            + [_cardholder("C3", 10, True, job="Actor")]
            + [_cardholder("C4", 10, True)]
        )
        rates = fraud_rate_by_job(transactions, volume_floor=3)
        assert [(r.group, r.fraud_rate_pct) for r in rates] == [
            ("Pilot", Decimal("75.00")),
            ("Surveyor", Decimal("25.00")),
        ]

    def test_by_job_limit(self):
        """limit keeps the riskiest jobs."""
        transactions = [
            _cardholder("C1", 10, True, job="Pilot"),
            _cardholder("C2", 10, job="Surveyor"),
        ]
        rates = fraud_rate_by_job(transactions, volume_floor=0, limit=1)
        assert [r.group for r in rates] == ["Pilot"]

    def test_by_job_default_floor_excludes_small_ledgers(self):
        """With the default floor of 1000 a handful of rows lists nothing."""
        assert fraud_rate_by_job([_cardholder("C1", 10, True, job="Pilot")]) == []

    def test_by_job_rejects_negative_floor(self):
        """The volume floor cannot be negative."""
        with pytest.raises(ValueError, match="volume_floor"):
            fraud_rate_by_job([], volume_floor=-1)


class TestCustomerSpendingProfile:
    """Test per-card spending behaviour."""

    def test_profile(self):
        """Counts, totals, averages and frauds are per card, biggest spender first."""
        transactions = [
            _cardholder("C1", "10.005"),
            _cardholder("C1", "20.00", True),
            _cardholder("C2", "500.00"),
        ]
        profiles = customer_spending_profile(transactions)
        assert profiles == [
            CustomerSpending("C2", 1, Decimal("500.00"), Decimal("500.00"), 0),
            CustomerSpending("C1", 2, Decimal("30.01"), Decimal("15.00"), 1),
        ]

    def test_top_n(self):
        """top_n keeps the biggest spenders."""
        transactions = [_cardholder("C1", 1), _cardholder("C2", 2), _cardholder("C3", 3)]
        assert [p.customer_id for p in customer_spending_profile(transactions, top_n=2)] == [
            "C3",
            "C2",
        ]

    def test_empty(self):
        """No transactions give no profiles."""
        assert customer_spending_profile([]) == []
