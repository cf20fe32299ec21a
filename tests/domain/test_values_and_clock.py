"""Enum parsing and the deterministic clock."""

from datetime import date, datetime, timezone

import pytest

from ledger_kernel.domain.clock import DeterministicClock, SequentialClock
from ledger_kernel.domain.values import DiscountType, PaymentMethod, parse_enum
from ledger_kernel.exceptions import ValidationFailedError


class TestParseEnum:

    def test_member_passes_through(self):
        assert parse_enum(PaymentMethod, PaymentMethod.MOMO, "payment_method") is PaymentMethod.MOMO

    @pytest.mark.parametrize("raw", ["bank_transfer", "BANK_TRANSFER", " Bank_Transfer "])
    def test_value_or_name_case_insensitive(self, raw):
        assert parse_enum(PaymentMethod, raw, "payment_method") is PaymentMethod.BANK_TRANSFER

    def test_unknown_value_rejected_not_defaulted(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            parse_enum(DiscountType, "fixed", "discount_type")
        assert exc_info.value.field == "discount_type"
        assert "percent" in str(exc_info.value)

    def test_none_rejected(self):
        with pytest.raises(ValidationFailedError, match="required"):
            parse_enum(PaymentMethod, None, "payment_method")

    def test_only_credit_is_credit(self):
        assert [m for m in PaymentMethod if m.is_credit] == [PaymentMethod.CREDIT]


class TestDeterministicClock:

    def test_fixed_until_advanced(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()
        before = clock.now()
        assert clock.tick() > before

    def test_advance_days_moves_today(self):
        clock = DeterministicClock(datetime(2024, 1, 31, 23, 0, tzinfo=timezone.utc))
        clock.advance_days(1)
        assert clock.today() == date(2024, 2, 1)

    def test_sequential_repeats_last(self):
        t1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
        t2 = datetime(2024, 1, 2, tzinfo=timezone.utc)
        clock = SequentialClock([t1, t2])
        assert [clock.now(), clock.now(), clock.now()] == [t1, t2, t2]

    def test_sequential_requires_times(self):
        with pytest.raises(ValueError):
            SequentialClock([])
