"""
Тесты фоновых задач планировщика.

Проверяет, что задачи идемпотентны, обрабатывают каждый элемент в своей
единице работы и не прерываются из-за ошибки одного элемента.
"""

from datetime import date
from decimal import Decimal

import pytest

from finance_core.jobs import tasks
from finance_core.jobs.tasks import (
    BatchResult,
    run_auto_payoff_job,
    run_due_reminders_job,
    run_overdue_notifications_job,
    run_overdue_sweep_job,
    run_recurring_job,
)
from finance_core.models import AccountType, NotificationKind, TransactionType
from finance_core.services.account_service import get_account
from finance_core.services.collaborators import LoggingNotifier
from finance_core.services.recurring_service import get_recurring
from finance_core.services.transaction_service import get_transactions
from finance_core.utils.exceptions import ValidationError
from test_factories import (
    create_test_account,
    create_test_credit_card,
    create_test_installment_plan,
    create_test_recurring,
    create_test_transaction,
)


def _balance(session_factory, account_id):
    with session_factory() as session:
        return get_account(session, account_id).current_balance


@pytest.fixture
def installment_plan(session_factory, user_id):
    """План рассрочки на 3 платежа со сроками 15.01, 15.02 и 15.03.2025."""
    with session_factory() as session:
        card = create_test_credit_card(session, user_id, billing_day=15)
        tx = create_test_transaction(session, user_id, card.id, Decimal("1000000"))
        return create_test_installment_plan(session, user_id, tx.id)


class TestBatchResult:
    """Тесты итогов задачи."""

    def test_record_failure(self):
        result = BatchResult(job="test")

        result.record_failure("item-1", ValidationError("bad input"))

        assert result.failed == 1
        assert result.errors[0].startswith("item-1: ")
        assert "bad input" in result.errors[0]


class TestRecurringJob:
    """Тесты задачи повторяющихся транзакций."""

    def test_second_run_does_not_duplicate(self, session_factory, user_id):
        with session_factory() as session:
            account = create_test_account(session, user_id)
            create_test_recurring(session, user_id, account.id, start_date=date(2025, 1, 1))
            create_test_recurring(session, user_id, account.id, Decimal("20000"), start_date=date(2025, 1, 1))

        first = run_recurring_job(session_factory, today=date(2025, 1, 1))
        second = run_recurring_job(session_factory, today=date(2025, 1, 1))

        assert (first.total, first.succeeded, first.failed) == (2, 2, 0)
        assert second.total == 0
        with session_factory() as session:
            assert len(get_transactions(session, user_id)) == 2
        assert _balance(session_factory, account.id) == Decimal("-70000")

    def test_catch_up_one_step_per_run(self, session_factory, user_id):
        with session_factory() as session:
            account = create_test_account(session, user_id)
            recurring = create_test_recurring(session, user_id, account.id, Decimal("50000"), start_date=date(2025, 1, 1))

        today = date(2025, 1, 3)
        runs = [run_recurring_job(session_factory, today=today) for _ in range(4)]

        assert [r.succeeded for r in runs] == [1, 1, 1, 0]
        assert _balance(session_factory, account.id) == Decimal("-150000")
        with session_factory() as session:
            recurring = get_recurring(session, recurring.id)
            assert recurring.execution_count == 3
            assert recurring.next_execution_date == date(2025, 1, 4)

    def test_failing_rule_does_not_abort_batch(self, session_factory, user_id):
        with session_factory() as session:
            usd = create_test_account(session, user_id, "USD", AccountType.BANK, currency="USD")
            vnd = create_test_account(session, user_id, "VND", AccountType.BANK)
            broken = create_test_recurring(
                session, user_id, usd.id, Decimal("10"), type=TransactionType.TRANSFER,
                start_date=date(2025, 1, 1), to_account_id=vnd.id
            )
            healthy = create_test_recurring(session, user_id, vnd.id, start_date=date(2025, 1, 1))

        result = run_recurring_job(session_factory, today=date(2025, 1, 1))

        assert (result.total, result.succeeded, result.failed) == (2, 1, 1)
        assert result.errors[0].startswith(broken.id)
        with session_factory() as session:
            assert get_recurring(session, broken.id).execution_count == 0
            assert get_recurring(session, healthy.id).execution_count == 1
        assert _balance(session_factory, usd.id) == Decimal("0")


class TestAutoPayoffJob:
    """Тесты задачи автопогашения."""

    def test_paid_and_skipped_cards(self, session_factory, user_id):
        with session_factory() as session:
            rich = create_test_account(session, user_id, "Богатый", AccountType.BANK, balance=Decimal("2000000"))
            poor = create_test_account(session, user_id, "Бедный", AccountType.BANK, balance=Decimal("1000000"))
            paid_card = create_test_credit_card(
                session, user_id, "Paid", balance=Decimal("3200000"), billing_day=15, linked_account_id=rich.id
            )
            skipped_card = create_test_credit_card(
                session, user_id, "Skipped", balance=Decimal("3200000"), billing_day=15, linked_account_id=poor.id
            )

        result = run_auto_payoff_job(session_factory, today=date(2025, 1, 15))

        assert (result.total, result.succeeded, result.skipped, result.failed) == (2, 1, 1, 0)
        assert _balance(session_factory, paid_card.id) == Decimal("5000000")
        assert _balance(session_factory, rich.id) == Decimal("200000")
        assert _balance(session_factory, skipped_card.id) == Decimal("3200000")
        assert _balance(session_factory, poor.id) == Decimal("1000000")

    def test_card_failure_is_isolated(self, session_factory, user_id, monkeypatch):
        with session_factory() as session:
            first = create_test_credit_card(session, user_id, "First", balance=Decimal("5000000"), billing_day=15)
            second = create_test_credit_card(session, user_id, "Second", balance=Decimal("5500000"), billing_day=15)

        original = tasks.process_credit_card_payoff

        def flaky(session, card_id, today=None, converter=None):
            if card_id == first.id:
                raise RuntimeError("database is locked")
            return original(session, card_id, today, converter=converter)

        monkeypatch.setattr(tasks, "process_credit_card_payoff", flaky)

        result = run_auto_payoff_job(session_factory, today=date(2025, 1, 15))

        assert (result.total, result.succeeded, result.failed) == (2, 1, 1)
        assert _balance(session_factory, second.id) == Decimal("5000000")

    def test_nothing_due(self, session_factory, user_id):
        with session_factory() as session:
            create_test_credit_card(session, user_id, billing_day=20)

        result = run_auto_payoff_job(session_factory, today=date(2025, 1, 15))

        assert result.total == 0


class TestPaymentJobs:
    """Тесты задач по платежам планов погашения."""

    def test_overdue_sweep_is_idempotent(self, session_factory, installment_plan):
        first = run_overdue_sweep_job(session_factory, today=date(2025, 2, 20))
        second = run_overdue_sweep_job(session_factory, today=date(2025, 2, 20))

        assert first.succeeded == 2
        assert second.succeeded == 0

    def test_due_reminders(self, session_factory, user_id, installment_plan):
        notifier = LoggingNotifier()

        result = run_due_reminders_job(notifier, session_factory, today=date(2025, 1, 13), days=3)

        assert result.succeeded == 1
        [(recipient, kind, payload)] = notifier.sent
        assert recipient == user_id
        assert kind == NotificationKind.CREDIT_CARD_PAYMENT_DUE
        assert payload["plan_id"] == installment_plan.id
        assert payload["payment_number"] == 1
        assert payload["days_until"] == 2
        assert payload["amount"] == Decimal("343333.3333")

    def test_overdue_notifications(self, session_factory, installment_plan):
        run_overdue_sweep_job(session_factory, today=date(2025, 2, 20))
        notifier = LoggingNotifier()

        result = run_overdue_notifications_job(notifier, session_factory, today=date(2025, 2, 20))

        assert result.succeeded == 2
        assert all(kind == NotificationKind.CREDIT_CARD_PAYMENT_OVERDUE for _, kind, _ in notifier.sent)
        assert sorted(payload["days_overdue"] for _, _, payload in notifier.sent) == [5, 36]

    def test_notifier_failure_is_isolated(self, session_factory, installment_plan):
        run_overdue_sweep_job(session_factory, today=date(2025, 2, 20))

        class FlakyNotifier(LoggingNotifier):
            def notify(self, user_id, kind, payload):
                if payload["payment_number"] == 1:
                    raise ConnectionError("smtp unavailable")
                super().notify(user_id, kind, payload)

        notifier = FlakyNotifier()
        result = run_overdue_notifications_job(notifier, session_factory, today=date(2025, 2, 20))

        assert (result.total, result.succeeded, result.failed) == (2, 1, 1)
        assert [payload["payment_number"] for _, _, payload in notifier.sent] == [2]
