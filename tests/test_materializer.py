from datetime import date
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from chatledger.schemas.directory import CardRef
from chatledger.schemas.transactions import ShareSpec
from chatledger.services.errors import ExtractionFailed
from chatledger.services.materializer import (
    add_months,
    compute_split,
    materialize,
    split_installments,
)

cents = st.integers(min_value=0, max_value=10_000_000).map(lambda value: Decimal(value) / 100)


class TestComputeSplit:
    def test_half(self):
        assert compute_split(Decimal("100"), "half") == (Decimal("50.00"), Decimal("50.00"))

    def test_odd_cent_half(self):
        own, other = compute_split(Decimal("100.01"), "half")
        assert own + other == Decimal("100.01")
        assert abs(own - other) == Decimal("0.01")

    def test_percentage(self):
        assert compute_split(Decimal("100"), "percentage", Decimal("60")) == (Decimal("60.00"), Decimal("40.00"))

    def test_fixed_amount(self):
        assert compute_split(Decimal("10"), "fixed_amount", Decimal("6")) == (Decimal("6.00"), Decimal("4.00"))

    @pytest.mark.parametrize(
        ("kind", "value"),
        [
            ("fixed_amount", Decimal("15")),
            ("fixed_amount", Decimal("-1")),
            ("percentage", Decimal("120")),
            ("percentage", None),
        ],
    )
    def test_invalid_policies(self, kind: str, value):
        with pytest.raises(ExtractionFailed) as exc_info:
            compute_split(Decimal("10"), kind, value)
        assert exc_info.value.reason == ExtractionFailed.INVALID_SPLIT

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            compute_split(Decimal("10"), "thirds")

    @given(amount=cents)
    @settings(max_examples=100)
    def test_half_split_is_exact(self, amount: Decimal):
        """Property: both halves add back up to the total."""
        own, other = compute_split(amount, "half")
        assert own + other == amount
        assert abs(own - other) <= Decimal("0.01")

    @given(amount=cents, percent=st.integers(min_value=0, max_value=100))
    @settings(max_examples=100)
    def test_percentage_split_is_exact(self, amount: Decimal, percent: int):
        """Property: a percentage split never loses or invents a cent."""
        own, other = compute_split(amount, "percentage", Decimal(percent))
        assert own + other == amount
        assert own >= 0 and other >= 0


class TestSplitInstallments:
    def test_even(self):
        assert split_installments(Decimal("600.00"), 3) == [Decimal("200.00")] * 3

    def test_remainder_on_last(self):
        assert split_installments(Decimal("100.00"), 3) == [
            Decimal("33.33"),
            Decimal("33.33"),
            Decimal("33.34"),
        ]

    def test_invalid_count(self):
        with pytest.raises(ValueError):
            split_installments(Decimal("10"), 0)

    @given(amount=cents, count=st.integers(min_value=1, max_value=24))
    @settings(max_examples=100)
    def test_installments_add_up(self, amount: Decimal, count: int):
        """Property: installments sum to the total and none is negative."""
        parts = split_installments(amount, count)
        assert len(parts) == count
        assert sum(parts) == amount
        assert all(part >= 0 for part in parts)
        assert len(set(parts[:-1])) <= 1
        assert parts[-1] >= parts[0]


class TestAddMonths:
    def test_plain(self):
        assert add_months(date(2026, 10, 19), 2) == date(2026, 12, 19)

    def test_year_rollover(self):
        assert add_months(date(2026, 11, 5), 3) == date(2027, 2, 5)

    def test_day_clamped_to_month_end(self):
        assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
        assert add_months(date(2028, 1, 31), 1) == date(2028, 2, 29)


class TestMaterialize:
    TODAY = date(2026, 10, 19)

    def test_single_record(self, make_pending):
        records = materialize(make_pending(amount="50.00"), user_id=1, today=self.TODAY)
        assert len(records) == 1
        record = records[0]
        assert record.amount == Decimal("50.00")
        assert record.tx_date == self.TODAY
        assert record.installment_number is None
        assert record.installment_total is None
        assert record.share is None
        assert record.category_id == 1
        assert record.description == "Almoço"

    def test_installment_schedule(self, make_pending):
        card = CardRef(id=9, name="Nubank")
        pending = make_pending(amount="600.00", payment_method="credit", installments=3, card=card)
        records = materialize(pending, user_id=1, today=self.TODAY)
        assert [r.amount for r in records] == [Decimal("200.00")] * 3
        assert [r.tx_date for r in records] == [date(2026, 10, 19), date(2026, 11, 19), date(2026, 12, 19)]
        assert [r.installment_number for r in records] == [1, 2, 3]
        assert {r.installment_total for r in records} == {3}
        assert {r.card_id for r in records} == {9}
        assert all(r.payment_method == "credit" for r in records)

    def test_shared_percentage(self, make_pending, partners):
        pending = make_pending(
            amount="100.00",
            share=ShareSpec(target_identifier="@bia", division_kind="percentage", division_value=Decimal("60")),
            share_with=partners[0],
        )
        (record,) = materialize(pending, user_id=1, today=self.TODAY)
        assert record.amount == Decimal("60.00")
        assert record.share.amount == Decimal("40.00")
        assert record.share.shared_with_user_id == 2
        assert record.share.division_kind == "percentage"

    def test_every_installment_carries_its_share(self, make_pending, partners):
        pending = make_pending(
            amount="300.00",
            payment_method="credit",
            installments=3,
            share=ShareSpec(target_identifier="@bia"),
            share_with=partners[0],
        )
        records = materialize(pending, user_id=1, today=self.TODAY)
        assert [r.amount for r in records] == [Decimal("50.00")] * 3
        assert [r.share.amount for r in records] == [Decimal("50.00")] * 3

    def test_unresolved_share_is_not_split(self, make_pending):
        pending = make_pending(amount="80.00", share=ShareSpec(target_identifier="@bia"))
        (record,) = materialize(pending, user_id=1, today=self.TODAY)
        assert record.amount == Decimal("80.00")
        assert record.share is None

    @given(
        amount=st.integers(min_value=1, max_value=1_000_000).map(lambda value: Decimal(value) / 100),
        count=st.integers(min_value=2, max_value=24),
        percent=st.integers(min_value=0, max_value=100),
    )
    @settings(max_examples=100, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_shared_installments_conserve_total(self, make_pending, partners, amount, count, percent):
        """Property: own and shared parts across all installments add up to the total."""
        pending = make_pending(
            amount=str(amount),
            payment_method="credit",
            installments=count,
            share=ShareSpec(target_identifier="@bia", division_kind="percentage", division_value=Decimal(percent)),
            share_with=partners[0],
        )
        records = materialize(pending, user_id=1, today=self.TODAY)
        assert len(records) == count
        assert sum(r.amount for r in records) + sum(r.share.amount for r in records) == amount
