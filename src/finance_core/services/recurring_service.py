"""
Сервис повторяющихся транзакций.

Содержит функции для:
- Вычисления следующей даты исполнения
- Создания, обновления, удаления и чтения правил
- Управления состоянием (пауза, возобновление, отмена)
- Поиска правил к исполнению и их исполнения

Состояния правила: ACTIVE -> PAUSED -> ACTIVE, ACTIVE/PAUSED -> CANCELLED,
ACTIVE -> COMPLETED. CANCELLED и COMPLETED терминальные.
"""

from datetime import date, timedelta
from typing import List, Optional
import logging

from dateutil.relativedelta import relativedelta
from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from finance_core.config import settings
from finance_core.models import (
    RecurringTransactionDB, TransactionDB,
    RecurringTransactionCreate, RecurringTransactionUpdate, TransactionCreate,
    RecurringFrequency, RecurringStatus
)
from finance_core.services.amortization_service import round4
from finance_core.services.collaborators import CurrencyConverter
from finance_core.services.transaction_service import record_transaction, validate_transaction_shape
from finance_core.utils.dates import add_months
from finance_core.utils.exceptions import (
    ValidationError, NotFoundError, StateConflictError, DatabaseError
)

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (RecurringStatus.CANCELLED, RecurringStatus.COMPLETED)


def calculate_next_execution_date(
    current_date: date,
    frequency: RecurringFrequency,
    interval_value: int = 1,
    day_of_month: Optional[int] = None
) -> date:
    """
    Вычисляет следующую дату исполнения правила.

    Args:
        current_date: Текущая дата исполнения
        frequency: Периодичность
        interval_value: Интервал (каждые N периодов)
        day_of_month: Желаемый день месяца для MONTHLY (ограничивается длиной месяца)

    Returns:
        date: Следующая дата исполнения

    Raises:
        ValidationError: Если интервал меньше 1 или периодичность неизвестна

    Example:
        >>> calculate_next_execution_date(date(2024, 1, 31), RecurringFrequency.MONTHLY, 1, 31)
        datetime.date(2024, 2, 29)
        >>> calculate_next_execution_date(date(2024, 2, 29), RecurringFrequency.MONTHLY, 1, 31)
        datetime.date(2024, 3, 31)
    """
    if interval_value is None or interval_value < 1:
        raise ValidationError(f"Интервал должен быть не меньше 1: {interval_value}")

    if frequency == RecurringFrequency.DAILY:
        return current_date + timedelta(days=interval_value)
    elif frequency == RecurringFrequency.WEEKLY:
        return current_date + timedelta(weeks=interval_value)
    elif frequency == RecurringFrequency.MONTHLY:
        return add_months(current_date, interval_value, day=day_of_month)
    elif frequency == RecurringFrequency.YEARLY:
        # relativedelta переносит 29 февраля на 28 февраля невисокосного года
        return current_date + relativedelta(years=interval_value)

    raise ValidationError(f"Неизвестная периодичность: {frequency}")


def _next_for(recurring: RecurringTransactionDB, current_date: date) -> date:
    return calculate_next_execution_date(
        current_date, recurring.frequency, recurring.interval_value, recurring.day_of_month
    )


# =============================================================================
# Чтение
# =============================================================================

def get_recurring(session: Session, recurring_id: str, user_id: Optional[str] = None) -> RecurringTransactionDB:
    """
    Получает правило по ID.

    Raises:
        NotFoundError: Если правило не найдено
    """
    query = session.query(RecurringTransactionDB).filter(RecurringTransactionDB.id == recurring_id)
    if user_id is not None:
        query = query.filter(RecurringTransactionDB.user_id == user_id)
    recurring = query.one_or_none()
    if recurring is None:
        raise NotFoundError(f"Повторяющаяся транзакция с ID {recurring_id} не найдена")
    return recurring


def get_recurring_list(
    session: Session,
    user_id: str,
    status: Optional[RecurringStatus] = None
) -> List[RecurringTransactionDB]:
    """Возвращает правила пользователя, опционально отфильтрованные по статусу."""
    try:
        query = session.query(RecurringTransactionDB).filter(RecurringTransactionDB.user_id == user_id)
        if status is not None:
            query = query.filter(RecurringTransactionDB.status == status)
        return query.order_by(RecurringTransactionDB.next_execution_date).all()
    except SQLAlchemyError as e:
        logger.error(f"Ошибка при получении повторяющихся транзакций: {e}")
        raise


def get_upcoming_recurring(
    session: Session,
    user_id: str,
    days: Optional[int] = None,
    today: Optional[date] = None
) -> List[RecurringTransactionDB]:
    """
    Возвращает активные правила, которые сработают в ближайшие days дней.

    Args:
        session: Активная сессия БД
        user_id: Владелец
        days: Горизонт в днях (по умолчанию settings.upcoming_days)
        today: Текущая дата (по умолчанию date.today())

    Returns:
        Правила с next_execution_date <= today + days, по возрастанию даты
    """
    today = today or date.today()
    days = settings.upcoming_days if days is None else days
    horizon = today + timedelta(days=days)
    return session.query(RecurringTransactionDB).filter(
        RecurringTransactionDB.user_id == user_id,
        RecurringTransactionDB.status == RecurringStatus.ACTIVE,
        RecurringTransactionDB.next_execution_date <= horizon
    ).order_by(RecurringTransactionDB.next_execution_date).all()


def find_due_recurring(session: Session, today: Optional[date] = None) -> List[RecurringTransactionDB]:
    """
    Находит правила, которые пора исполнить.

    Условие: status = ACTIVE, next_execution_date <= today,
    end_date отсутствует или end_date >= today.
    """
    today = today or date.today()
    due = session.query(RecurringTransactionDB).filter(
        RecurringTransactionDB.status == RecurringStatus.ACTIVE,
        RecurringTransactionDB.next_execution_date <= today,
        or_(RecurringTransactionDB.end_date.is_(None), RecurringTransactionDB.end_date >= today)
    ).order_by(RecurringTransactionDB.next_execution_date).all()

    logger.debug(f"Найдено {len(due)} повторяющихся транзакций к исполнению на {today}")
    return due


# =============================================================================
# Создание, обновление, удаление
# =============================================================================

def create_recurring(session: Session, recurring_data: RecurringTransactionCreate) -> RecurringTransactionDB:
    """
    Создаёт правило повторяющейся транзакции.

    Правило создаётся в статусе ACTIVE, первое исполнение в start_date.
    Валюта по умолчанию берётся из счёта-источника.

    Raises:
        ValidationError: Перевод без счёта назначения и т.п.
        NotFoundError: Если счёт или категория не найдены
        DatabaseError: При ошибках записи в БД
    """
    try:
        logger.debug(
            f"Создание повторяющейся транзакции: {recurring_data.type.value} {recurring_data.amount}, "
            f"{recurring_data.frequency.value}"
        )

        source, _ = validate_transaction_shape(
            session,
            recurring_data.user_id,
            recurring_data.type,
            recurring_data.account_id,
            recurring_data.to_account_id,
            recurring_data.category_id,
        )

        recurring = RecurringTransactionDB(
            user_id=recurring_data.user_id,
            account_id=recurring_data.account_id,
            category_id=recurring_data.category_id,
            to_account_id=recurring_data.to_account_id,
            exchange_rate=recurring_data.exchange_rate,
            type=recurring_data.type,
            amount=round4(recurring_data.amount),
            currency=recurring_data.currency or source.currency,
            description=recurring_data.description,
            frequency=recurring_data.frequency,
            interval_value=recurring_data.interval_value,
            day_of_week=recurring_data.day_of_week,
            day_of_month=recurring_data.day_of_month,
            start_date=recurring_data.start_date,
            end_date=recurring_data.end_date,
            next_execution_date=recurring_data.start_date,
            status=RecurringStatus.ACTIVE,
            execution_count=0,
            max_executions=recurring_data.max_executions,
        )
        session.add(recurring)
        session.commit()
        session.refresh(recurring)

        logger.info(f"Повторяющаяся транзакция создана с ID: {recurring.id}, первое исполнение {recurring.next_execution_date}")
        return recurring

    except (ValidationError, NotFoundError) as e:
        logger.error(f"Ошибка валидации повторяющейся транзакции: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при сохранении повторяющейся транзакции: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при сохранении повторяющейся транзакции: {e}") from e


def update_recurring(
    session: Session,
    user_id: str,
    recurring_id: str,
    recurring_data: RecurringTransactionUpdate,
    today: Optional[date] = None
) -> RecurringTransactionDB:
    """
    Обновляет правило (только переданные поля).

    Если меняется start_date, курсор пересчитывается от новой даты начала
    и сдвигается вперёд, пока он раньше today.

    Raises:
        NotFoundError: Если правило не найдено
        StateConflictError: Если правило в терминальном статусе
        ValidationError: Если новые данные невалидны
        DatabaseError: При ошибках записи в БД
    """
    today = today or date.today()
    try:
        recurring = get_recurring(session, recurring_id, user_id)
        if recurring.status in TERMINAL_STATUSES:
            raise StateConflictError(
                f"Нельзя изменить повторяющуюся транзакцию в статусе {recurring.status.value}"
            )

        updates = recurring_data.model_dump(exclude_unset=True)
        for required in ("account_id", "type", "amount", "frequency", "interval_value", "start_date"):
            if updates.get(required, True) is None:
                del updates[required]
        if "amount" in updates:
            updates["amount"] = round4(updates["amount"])

        start_changed = "start_date" in updates and updates["start_date"] != recurring.start_date

        for field, value in updates.items():
            setattr(recurring, field, value)

        validate_transaction_shape(
            session, user_id, recurring.type, recurring.account_id,
            recurring.to_account_id, recurring.category_id
        )
        if recurring.end_date is not None and recurring.end_date < recurring.start_date:
            raise ValidationError("Дата окончания не может быть раньше даты начала")

        if start_changed:
            next_date = recurring.start_date
            while next_date < today:
                next_date = _next_for(recurring, next_date)
            recurring.next_execution_date = next_date
            logger.debug(f"Курсор правила {recurring_id} пересчитан: {next_date}")

        session.commit()
        session.refresh(recurring)

        logger.info(f"Повторяющаяся транзакция {recurring_id} обновлена")
        return recurring

    except (ValidationError, NotFoundError, StateConflictError) as e:
        logger.error(f"Ошибка при обновлении повторяющейся транзакции {recurring_id}: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при обновлении повторяющейся транзакции {recurring_id}: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при обновлении повторяющейся транзакции: {e}") from e


def delete_recurring(session: Session, user_id: str, recurring_id: str) -> None:
    """
    Удаляет правило. Созданные им транзакции остаются, ссылка на правило обнуляется.

    Raises:
        NotFoundError: Если правило не найдено
        DatabaseError: При ошибках работы с БД
    """
    try:
        recurring = get_recurring(session, recurring_id, user_id)

        detached = session.query(TransactionDB).filter(
            TransactionDB.recurring_transaction_id == recurring_id
        ).update({TransactionDB.recurring_transaction_id: None}, synchronize_session=False)

        session.delete(recurring)
        session.commit()
        logger.info(f"Повторяющаяся транзакция {recurring_id} удалена, отвязано транзакций: {detached}")

    except NotFoundError as e:
        logger.error(f"Ошибка при удалении повторяющейся транзакции: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при удалении повторяющейся транзакции {recurring_id}: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при удалении повторяющейся транзакции: {e}") from e


# =============================================================================
# Переходы состояний
# =============================================================================

def _transition(session: Session, recurring: RecurringTransactionDB, new_status: RecurringStatus) -> RecurringTransactionDB:
    old_status = recurring.status
    recurring.status = new_status
    try:
        session.commit()
    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при смене статуса правила {recurring.id}: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при смене статуса: {e}") from e
    session.refresh(recurring)
    logger.info(f"Повторяющаяся транзакция {recurring.id}: {old_status.value} -> {new_status.value}")
    return recurring


def pause_recurring(session: Session, user_id: str, recurring_id: str) -> RecurringTransactionDB:
    """
    Приостанавливает активное правило.

    Raises:
        StateConflictError: Если правило не в статусе ACTIVE
    """
    recurring = get_recurring(session, recurring_id, user_id)
    if recurring.status != RecurringStatus.ACTIVE:
        raise StateConflictError(
            f"Приостановить можно только активную транзакцию (текущий статус: {recurring.status.value})"
        )
    return _transition(session, recurring, RecurringStatus.PAUSED)


def resume_recurring(
    session: Session,
    user_id: str,
    recurring_id: str,
    today: Optional[date] = None
) -> RecurringTransactionDB:
    """
    Возобновляет приостановленное правило.

    Если курсор в прошлом, он переносится на today: пропущенные за время
    паузы исполнения не создаются.

    Raises:
        StateConflictError: Если правило не в статусе PAUSED
    """
    today = today or date.today()
    recurring = get_recurring(session, recurring_id, user_id)
    if recurring.status != RecurringStatus.PAUSED:
        raise StateConflictError(
            f"Возобновить можно только приостановленную транзакцию (текущий статус: {recurring.status.value})"
        )
    if recurring.next_execution_date < today:
        logger.debug(f"Курсор правила {recurring_id} перенесён с {recurring.next_execution_date} на {today}")
        recurring.next_execution_date = today
    return _transition(session, recurring, RecurringStatus.ACTIVE)


def cancel_recurring(session: Session, user_id: str, recurring_id: str) -> RecurringTransactionDB:
    """
    Отменяет правило (из ACTIVE или PAUSED).

    Raises:
        StateConflictError: Если правило уже отменено или завершено
    """
    recurring = get_recurring(session, recurring_id, user_id)
    if recurring.status in TERMINAL_STATUSES:
        raise StateConflictError(
            f"Транзакция уже в терминальном статусе: {recurring.status.value}"
        )
    return _transition(session, recurring, RecurringStatus.CANCELLED)


# =============================================================================
# Исполнение
# =============================================================================

def execute_recurring(
    session: Session,
    recurring: RecurringTransactionDB,
    converter: Optional[CurrencyConverter] = None
) -> TransactionDB:
    """
    Исполняет правило: создаёт транзакцию на дату курсора и сдвигает курсор.

    Транзакция, изменения балансов и нового курсора фиксируются одним коммитом.
    При ошибке выполняется откат и правило остаётся в прежнем состоянии.

    Args:
        session: Активная сессия БД
        recurring: Правило в статусе ACTIVE
        converter: Конвертер валют для переводов

    Returns:
        TransactionDB: Созданная транзакция

    Raises:
        StateConflictError: Если правило не активно
        ValidationError, NotFoundError: Если транзакцию нельзя создать
        DatabaseError: При ошибках записи в БД
    """
    if recurring.status != RecurringStatus.ACTIVE:
        raise StateConflictError(
            f"Исполнить можно только активную транзакцию (текущий статус: {recurring.status.value})"
        )

    recurring_id = recurring.id
    try:
        executed_on = recurring.next_execution_date
        transaction = record_transaction(
            session,
            TransactionCreate(
                user_id=recurring.user_id,
                account_id=recurring.account_id,
                category_id=recurring.category_id,
                type=recurring.type,
                amount=recurring.amount,
                currency=recurring.currency,
                description=recurring.description,
                transaction_date=executed_on,
                to_account_id=recurring.to_account_id,
                exchange_rate=recurring.exchange_rate,
            ),
            recurring_transaction_id=recurring.id,
            converter=converter,
        )

        recurring.last_execution_date = executed_on
        recurring.execution_count = (recurring.execution_count or 0) + 1
        recurring.next_execution_date = _next_for(recurring, executed_on)

        reached_max = recurring.max_executions is not None and recurring.execution_count >= recurring.max_executions
        past_end = recurring.end_date is not None and recurring.next_execution_date > recurring.end_date
        if reached_max or past_end:
            recurring.status = RecurringStatus.COMPLETED
            logger.info(
                f"Повторяющаяся транзакция {recurring_id} завершена "
                f"(исполнений: {recurring.execution_count})"
            )

        session.commit()
        session.refresh(transaction)

        logger.info(
            f"Повторяющаяся транзакция {recurring_id} исполнена за {executed_on}, "
            f"следующее исполнение {recurring.next_execution_date}"
        )
        return transaction

    except (ValidationError, NotFoundError) as e:
        logger.error(f"Ошибка при исполнении повторяющейся транзакции {recurring_id}: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при исполнении повторяющейся транзакции {recurring_id}: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при исполнении повторяющейся транзакции: {e}") from e


def execute_due_recurring(
    session: Session,
    recurring_id: str,
    today: Optional[date] = None,
    converter: Optional[CurrencyConverter] = None
) -> bool:
    """
    Единица работы планировщика для одного правила.

    Перед исполнением правило перечитывается с блокировкой строки и заново
    проверяется (статус ACTIVE, курсор наступил, end_date не прошёл).

    Returns:
        bool: True, если правило исполнено; False, если оно больше не подлежит исполнению
    """
    today = today or date.today()
    recurring = session.query(RecurringTransactionDB).filter(
        RecurringTransactionDB.id == recurring_id
    ).with_for_update().one_or_none()

    if recurring is None:
        logger.debug(f"Правило {recurring_id} удалено до исполнения")
        return False
    if recurring.status != RecurringStatus.ACTIVE or recurring.next_execution_date > today:
        logger.debug(f"Правило {recurring_id} больше не подлежит исполнению (статус {recurring.status.value})")
        session.rollback()
        return False
    if recurring.end_date is not None and recurring.end_date < today:
        session.rollback()
        return False

    execute_recurring(session, recurring, converter=converter)
    return True
