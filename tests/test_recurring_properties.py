"""
Property-based тесты повторяющихся транзакций.

Тестирует:
- Сохранение желаемого дня месяца при ежемесячном повторении
- Строгое возрастание курсора
- Баланс и счётчик после N исполнений
"""

from calendar import monthrange
from datetime import date
from decimal import Decimal

from hypothesis import given, strategies as st, settings, HealthCheck

from finance_core.models import RecurringFrequency
from finance_core.services.recurring_service import (
    calculate_next_execution_date,
    execute_due_recurring,
)
from finance_core.services.transaction_service import get_transactions
from test_factories import create_test_account, create_test_recurring


frequencies = st.sampled_from(list(RecurringFrequency))
start_dates = st.dates(min_value=date(2020, 1, 1), max_value=date(2030, 12, 31))


class TestRecurringProperties:
    """Property-based тесты повторяющихся транзакций."""

    @given(
        day_of_month=st.integers(min_value=1, max_value=31),
        year=st.integers(min_value=2020, max_value=2030),
        month=st.integers(min_value=1, max_value=12),
        steps=st.integers(min_value=1, max_value=24),
    )
    @settings(max_examples=50, deadline=None)
    def test_property_monthly_keeps_desired_day(self, day_of_month, year, month, steps):
        """
        Property: при ежемесячном повторении день каждой даты равен
        min(day_of_month, длина месяца).
        """
        current = date(year, month, min(day_of_month, monthrange(year, month)[1]))

        for _ in range(steps):
            current = calculate_next_execution_date(current, RecurringFrequency.MONTHLY, 1, day_of_month)
            assert current.day == min(day_of_month, monthrange(current.year, current.month)[1])

    @given(
        start=start_dates,
        frequency=frequencies,
        interval=st.integers(min_value=1, max_value=12),
    )
    @settings(max_examples=50, deadline=None)
    def test_property_cursor_strictly_increases(self, start, frequency, interval):
        """Property: следующая дата исполнения всегда позже текущей."""
        assert calculate_next_execution_date(start, frequency, interval) > start

    @given(
        executions=st.integers(min_value=1, max_value=6),
        amount=st.decimals(min_value=Decimal("1"), max_value=Decimal("1000000"), places=2),
    )
    @settings(max_examples=15, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_property_n_daily_executions(self, db_session, user_id, executions, amount):
        """
        Property: после N исполнений ежедневного расхода создано N транзакций
        на последовательные даты, баланс уменьшился на N * amount.
        """
        start = date(2025, 1, 1)
        account = create_test_account(db_session, user_id)
        recurring = create_test_recurring(db_session, user_id, account.id, amount, start_date=start)
        today = date(2025, 1, executions)

        # Один шаг догоняющего исполнения за проход
        for _ in range(executions):
            assert execute_due_recurring(db_session, recurring.id, today) is True
        assert execute_due_recurring(db_session, recurring.id, today) is False

        db_session.refresh(account)
        db_session.refresh(recurring)
        assert account.current_balance == -amount * executions
        assert recurring.execution_count == executions
        assert recurring.next_execution_date == date(2025, 1, executions + 1)

        dates = [
            t.transaction_date for t in get_transactions(db_session, user_id, account_id=account.id)
        ]
        assert dates == [date(2025, 1, d) for d in range(1, executions + 1)]
