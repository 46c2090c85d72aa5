"""
Тела фоновых задач планировщика.

Каждая задача:
1. Перечисляет элементы к обработке в одной короткой сессии чтения
2. Обрабатывает каждый элемент в своей сессии (commit или rollback на элемент)
3. Возвращает BatchResult

Ошибка обработки одного элемента логируется и учитывается в failed, но не
влияет на остальные элементы. Ошибка перечисления прерывает задачу целиком.
"""

from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional
import logging

from sqlalchemy.orm import Session

from finance_core.config import settings
from finance_core.database import get_db_session
from finance_core.models import CreditCardPaymentDB, NotificationKind, PayoffOutcome
from finance_core.services.auto_payoff_service import find_credit_cards_due, process_credit_card_payoff
from finance_core.services.collaborators import CurrencyConverter, Notifier, LoggingNotifier
from finance_core.services.payment_plan_service import (
    find_payments_due_soon, find_overdue_payments, mark_overdue_payments
)
from finance_core.services.recurring_service import find_due_recurring, execute_due_recurring
from finance_core.utils.error_handler import ErrorHandler

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager]

_error_handler = ErrorHandler(logger)


@dataclass
class BatchResult:
    """
    Итог выполнения задачи.

    Attributes:
        job: Имя задачи
        total: Количество найденных элементов
        succeeded: Успешно обработано
        skipped: Пропущено (элемент больше не подлежит обработке или нечего делать)
        failed: Ошибки обработки
        errors: Сообщения об ошибках по элементам
    """
    job: str
    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def record_failure(self, item_id: str, exception: Exception) -> None:
        self.failed += 1
        self.errors.append(f"{item_id}: {_error_handler.handle(exception, f'{self.job} [{item_id}]')}")

    def log_summary(self) -> None:
        logger.info(
            f"Задача {self.job} завершена: всего {self.total}, успешно {self.succeeded}, "
            f"пропущено {self.skipped}, ошибок {self.failed}"
        )


def _factory(session_factory: Optional[SessionFactory]) -> SessionFactory:
    return session_factory or get_db_session


def run_recurring_job(
    session_factory: Optional[SessionFactory] = None,
    today: Optional[date] = None,
    converter: Optional[CurrencyConverter] = None
) -> BatchResult:
    """
    Исполняет все повторяющиеся транзакции, курсор которых наступил.

    Каждое правило исполняется в своей единице работы с повторной проверкой
    статуса, поэтому повторный запуск не создаёт дубликатов.
    """
    today = today or date.today()
    session_factory = _factory(session_factory)
    result = BatchResult(job="recurring_transactions")

    with session_factory() as session:
        due_ids = [r.id for r in find_due_recurring(session, today)]
    result.total = len(due_ids)
    logger.info(f"Найдено {result.total} повторяющихся транзакций к исполнению на {today}")

    for recurring_id in due_ids:
        try:
            with session_factory() as session:
                if execute_due_recurring(session, recurring_id, today, converter=converter):
                    result.succeeded += 1
                else:
                    result.skipped += 1
        except Exception as e:
            result.record_failure(recurring_id, e)

    result.log_summary()
    return result


def run_auto_payoff_job(
    session_factory: Optional[SessionFactory] = None,
    today: Optional[date] = None,
    converter: Optional[CurrencyConverter] = None
) -> BatchResult:
    """
    Выполняет автопогашение кредитных карт, у которых сегодня день выписки.

    PAID и RESET считаются успехом, SKIPPED учитывается отдельно.
    """
    today = today or date.today()
    session_factory = _factory(session_factory)
    result = BatchResult(job="credit_card_auto_payoff")

    with session_factory() as session:
        card_ids = [card.id for card in find_credit_cards_due(session, today)]
    result.total = len(card_ids)
    logger.info(f"Найдено {result.total} кредитных карт для автопогашения на {today}")

    for card_id in card_ids:
        try:
            with session_factory() as session:
                outcome = process_credit_card_payoff(session, card_id, today, converter=converter)
            if outcome == PayoffOutcome.SKIPPED:
                result.skipped += 1
            else:
                result.succeeded += 1
        except Exception as e:
            result.record_failure(card_id, e)

    result.log_summary()
    return result


def run_overdue_sweep_job(
    session_factory: Optional[SessionFactory] = None,
    today: Optional[date] = None
) -> BatchResult:
    """Помечает просроченные платежи по планам погашения."""
    session_factory = _factory(session_factory)
    result = BatchResult(job="overdue_payment_sweep")

    with session_factory() as session:
        updated = mark_overdue_payments(session, today)
    result.total = updated
    result.succeeded = updated

    result.log_summary()
    return result


def _payment_payload(payment: CreditCardPaymentDB) -> dict:
    return {
        "plan_id": payment.plan_id,
        "payment_id": payment.id,
        "payment_number": payment.payment_number,
        "amount": payment.total_amount,
        "currency": payment.plan.currency,
        "due_date": payment.due_date,
    }


def _notify_payments(
    job: str,
    kind: NotificationKind,
    finder: Callable[[Session], List[CreditCardPaymentDB]],
    session_factory: SessionFactory,
    notifier: Notifier,
    today: date
) -> BatchResult:
    result = BatchResult(job=job)

    with session_factory() as session:
        notifications = []
        for payment in finder(session):
            payload = _payment_payload(payment)
            if kind == NotificationKind.CREDIT_CARD_PAYMENT_DUE:
                payload["days_until"] = (payment.due_date - today).days
            else:
                payload["days_overdue"] = (today - payment.due_date).days
            notifications.append((payment.plan.user_id, payload))
    result.total = len(notifications)

    for user_id, payload in notifications:
        try:
            notifier.notify(user_id, kind, payload)
            result.succeeded += 1
        except Exception as e:
            result.record_failure(payload["payment_id"], e)

    result.log_summary()
    return result


def run_due_reminders_job(
    notifier: Optional[Notifier] = None,
    session_factory: Optional[SessionFactory] = None,
    today: Optional[date] = None,
    days: Optional[int] = None
) -> BatchResult:
    """
    Отправляет напоминания о платежах со сроком в ближайшие дни.

    Горизонт по умолчанию берётся из settings.reminder_days.
    """
    today = today or date.today()
    days = settings.reminder_days if days is None else days
    return _notify_payments(
        "payment_due_reminders",
        NotificationKind.CREDIT_CARD_PAYMENT_DUE,
        lambda session: find_payments_due_soon(session, today, days),
        _factory(session_factory),
        notifier or LoggingNotifier(),
        today,
    )


def run_overdue_notifications_job(
    notifier: Optional[Notifier] = None,
    session_factory: Optional[SessionFactory] = None,
    today: Optional[date] = None
) -> BatchResult:
    """Отправляет уведомления о просроченных платежах."""
    today = today or date.today()
    return _notify_payments(
        "overdue_payment_notifications",
        NotificationKind.CREDIT_CARD_PAYMENT_OVERDUE,
        find_overdue_payments,
        _factory(session_factory),
        notifier or LoggingNotifier(),
        today,
    )
