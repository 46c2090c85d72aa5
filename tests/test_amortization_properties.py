"""
Тесты движка амортизации планов погашения.

Тестирует:
- Расчёт даты первого платежа по дню выписки
- График рассрочки (комиссия, остаток округления в последнем платеже)
- График револьверного погашения (проценты на остаток, ограничение 120 месяцев)
- Свойства графиков на случайных параметрах
"""

from datetime import date
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st, settings

from finance_core.models.enums import PaymentType
from finance_core.services.amortization_service import (
    MAX_REVOLVING_MONTHS,
    round4,
    calculate_first_billing_date,
    calculate_installment_schedule,
    calculate_revolving_schedule,
)
from finance_core.utils.exceptions import ValidationError


class TestRound4:
    """Тесты округления денежных сумм."""

    def test_half_up(self):
        assert round4(Decimal("343333.33335")) == Decimal("343333.3334")
        assert round4(Decimal("0.00005")) == Decimal("0.0001")
        assert round4(Decimal("0.00004")) == Decimal("0.0000")

    def test_negative_half_up_away_from_zero(self):
        assert round4(Decimal("-1.00005")) == Decimal("-1.0001")


class TestFirstBillingDate:
    """Тесты даты первого платежа."""

    def test_billing_day_later_in_same_month(self):
        assert calculate_first_billing_date(date(2025, 1, 10), 15) == date(2025, 1, 15)

    def test_billing_day_equal_to_start_moves_to_next_month(self):
        assert calculate_first_billing_date(date(2025, 1, 15), 15) == date(2025, 2, 15)

    def test_billing_day_earlier_moves_to_next_month(self):
        assert calculate_first_billing_date(date(2025, 1, 20), 5) == date(2025, 2, 5)

    def test_billing_day_clamped_to_month_length(self):
        assert calculate_first_billing_date(date(2025, 1, 31), 31) == date(2025, 2, 28)
        assert calculate_first_billing_date(date(2024, 2, 10), 31) == date(2024, 2, 29)

    def test_december_rolls_over_year(self):
        assert calculate_first_billing_date(date(2025, 12, 20), 10) == date(2026, 1, 10)

    @pytest.mark.parametrize("billing_day", [0, 32, None])
    def test_invalid_billing_day(self, billing_day):
        with pytest.raises(ValidationError):
            calculate_first_billing_date(date(2025, 1, 1), billing_day)


class TestInstallmentSchedule:
    """Тесты графика рассрочки."""

    def test_three_installments_with_one_percent_fee(self):
        """1 000 000 на 3 платежа с комиссией 1% за платёж."""
        schedule = calculate_installment_schedule(
            Decimal("1000000"), 3, Decimal("0.01"), date(2025, 1, 10), 15
        )

        assert schedule.payment_type == PaymentType.INSTALLMENT
        assert schedule.fee_per_installment == Decimal("10000")
        assert schedule.total_amount_with_fee == Decimal("1030000")
        assert schedule.installment_amount == Decimal("343333.3333")
        assert schedule.opening_balance == Decimal("1030000")
        assert schedule.total_fee == Decimal("30000")

        totals = [p.total_amount for p in schedule.payments]
        assert totals == [Decimal("343333.3333"), Decimal("343333.3333"), Decimal("343333.3334")]

        principals = [p.principal_amount for p in schedule.payments]
        assert principals == [Decimal("333333.3333"), Decimal("333333.3333"), Decimal("333333.3334")]

        assert [p.due_date for p in schedule.payments] == [
            date(2025, 1, 15), date(2025, 2, 15), date(2025, 3, 15)
        ]
        assert schedule.payments[-1].remaining_after == Decimal("0")
        assert schedule.first_payment_date == date(2025, 1, 15)

    def test_zero_fee(self):
        schedule = calculate_installment_schedule(
            Decimal("900000"), 3, Decimal("0"), date(2025, 1, 1), 1
        )
        assert schedule.total_amount_with_fee == Decimal("900000")
        assert all(p.total_amount == Decimal("300000") for p in schedule.payments)
        assert schedule.total_fee == Decimal("0")

    def test_due_dates_step_monthly_from_first_payment(self):
        schedule = calculate_installment_schedule(
            Decimal("400000"), 4, Decimal("0"), date(2025, 1, 20), 31
        )
        assert [p.due_date for p in schedule.payments] == [
            date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31), date(2025, 4, 30)
        ]

    def test_due_dates_keep_day_of_short_first_month(self):
        """Первая дата 28.02 задаёт день для всех следующих платежей."""
        schedule = calculate_installment_schedule(
            Decimal("300"), 3, Decimal("0"), date(2025, 2, 10), 31
        )
        assert [p.due_date for p in schedule.payments] == [
            date(2025, 2, 28), date(2025, 3, 28), date(2025, 4, 28)
        ]

    def test_tiny_amount_spread_over_many_payments(self):
        """Доли округляются вверх, последние платежи получают ноль."""
        schedule = calculate_installment_schedule(
            Decimal("0.0002"), 4, Decimal("0"), date(2025, 1, 1), 15
        )

        principals = [p.principal_amount for p in schedule.payments]
        assert principals == [Decimal("0.0001"), Decimal("0.0001"), Decimal("0"), Decimal("0")]
        assert sum(p.total_amount for p in schedule.payments) == Decimal("0.0002")
        assert all(p.remaining_after >= 0 for p in schedule.payments)
        assert schedule.payments[-1].remaining_after == Decimal("0")

    def test_single_installment_rejected(self):
        with pytest.raises(ValidationError):
            calculate_installment_schedule(Decimal("1000"), 1, Decimal("0"), date(2025, 1, 1))

    def test_non_positive_amount_rejected(self):
        with pytest.raises(ValidationError):
            calculate_installment_schedule(Decimal("0"), 3, Decimal("0"), date(2025, 1, 1))

    def test_negative_fee_rejected(self):
        with pytest.raises(ValidationError):
            calculate_installment_schedule(Decimal("1000"), 3, Decimal("-0.01"), date(2025, 1, 1))

    @given(
        original=st.decimals(min_value=Decimal("1"), max_value=Decimal("1000000000"), places=4),
        n=st.integers(min_value=2, max_value=36),
        fee_rate=st.decimals(min_value=Decimal("0"), max_value=Decimal("0.05"), places=4),
        start=st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31)),
        billing_day=st.integers(min_value=1, max_value=31),
    )
    @settings(max_examples=50, deadline=None)
    def test_property_installment_sums_are_exact(self, original, n, fee_rate, start, billing_day):
        """
        Property: сумма платежей равна total_with_fee, сумма основного долга
        равна исходной сумме, остаток монотонно убывает до нуля.
        """
        schedule = calculate_installment_schedule(original, n, fee_rate, start, billing_day)

        assert len(schedule.payments) == n
        assert sum(p.total_amount for p in schedule.payments) == schedule.total_amount_with_fee
        assert sum(p.principal_amount for p in schedule.payments) == original

        remaining = [p.remaining_after for p in schedule.payments]
        assert all(a > b for a, b in zip(remaining, remaining[1:]))
        assert remaining[-1] == 0

        assert [p.payment_number for p in schedule.payments] == list(range(1, n + 1))
        dates = [p.due_date for p in schedule.payments]
        assert dates[0] > start
        assert all(a < b for a, b in zip(dates, dates[1:]))


class TestRevolvingSchedule:
    """Тесты графика револьверного погашения."""

    def test_two_percent_monthly(self):
        """1 000 000 под 24% годовых, платёж 300 000."""
        schedule = calculate_revolving_schedule(
            Decimal("1000000"), Decimal("300000"), Decimal("0.24"), date(2025, 1, 10), 15
        )

        assert schedule.payment_type == PaymentType.REVOLVING
        assert schedule.monthly_rate == Decimal("0.02")
        assert schedule.opening_balance == Decimal("1000000")

        interest = [p.interest_amount for p in schedule.payments]
        assert interest == [Decimal("20000"), Decimal("14400"), Decimal("8688"), Decimal("2861.76")]

        totals = [p.total_amount for p in schedule.payments]
        assert totals[:3] == [Decimal("300000")] * 3
        assert totals[3] == Decimal("145949.76")

        assert schedule.total_interest == Decimal("45949.76")
        assert schedule.total_amount_with_fee == Decimal("1045949.76")
        assert schedule.payments[-1].remaining_after == 0

    def test_zero_interest(self):
        schedule = calculate_revolving_schedule(
            Decimal("100000"), Decimal("30000"), Decimal("0"), date(2025, 1, 1), 10
        )
        assert [p.total_amount for p in schedule.payments] == [
            Decimal("30000"), Decimal("30000"), Decimal("30000"), Decimal("10000")
        ]
        assert schedule.total_interest == 0

    def test_payment_not_covering_interest_rejected(self):
        with pytest.raises(ValidationError):
            calculate_revolving_schedule(
                Decimal("1000000"), Decimal("20000"), Decimal("0.24"), date(2025, 1, 1)
            )

    def test_not_converging_within_cap_rejected(self):
        with pytest.raises(ValidationError):
            calculate_revolving_schedule(
                Decimal("1000000"), Decimal("20001"), Decimal("0.24"), date(2025, 1, 1)
            )

    def test_non_positive_payment_rejected(self):
        with pytest.raises(ValidationError):
            calculate_revolving_schedule(
                Decimal("1000"), Decimal("0"), Decimal("0.1"), date(2025, 1, 1)
            )

    @given(
        original=st.decimals(min_value=Decimal("1000"), max_value=Decimal("100000000"), places=2),
        factor=st.decimals(min_value=Decimal("0.05"), max_value=Decimal("1.2"), places=2),
        annual_rate=st.decimals(min_value=Decimal("0"), max_value=Decimal("0.36"), places=4),
        start=st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31)),
        billing_day=st.integers(min_value=1, max_value=31),
    )
    @settings(max_examples=50, deadline=None)
    def test_property_revolving_pays_off_principal(self, original, factor, annual_rate, start, billing_day):
        """
        Property: основной долг погашается полностью, каждый платёж равен
        проценты + основной долг, срок не превышает 120 месяцев.
        """
        monthly_payment = round4(original * factor)
        schedule = calculate_revolving_schedule(original, monthly_payment, annual_rate, start, billing_day)

        assert 1 <= len(schedule.payments) <= MAX_REVOLVING_MONTHS
        assert sum(p.principal_amount for p in schedule.payments) == original
        assert schedule.payments[-1].remaining_after == 0
        for payment in schedule.payments:
            assert payment.total_amount == payment.principal_amount + payment.interest_amount
            assert payment.total_amount <= monthly_payment
            assert payment.fee_amount == 0
