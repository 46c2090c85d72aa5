"""
Сервис планов погашения по кредитной карте.

Содержит функции для:
- Создания плана (рассрочка или револьвер) для расхода по кредитной карте
- Массового создания планов
- Отметки платежа как оплаченного
- Отмены плана
- Получения ближайших платежей и списка планов
- Обновления статусов просроченных платежей
- Поиска платежей для напоминаний
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional
import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from finance_core.config import settings
from finance_core.models import (
    AccountDB, TransactionDB, CreditCardPaymentPlanDB, CreditCardPaymentDB,
    PaymentPlanCreate, BulkPaymentPlanCreate,
    AccountType, TransactionType, PaymentType, PaymentPlanStatus, PaymentStatus
)
from finance_core.services.amortization_service import (
    AmortizationSchedule,
    DEFAULT_BILLING_DAY,
    calculate_installment_schedule,
    calculate_revolving_schedule,
)
from finance_core.utils.exceptions import (
    ValidationError, NotFoundError, StateConflictError, DatabaseError
)
from finance_core.utils.validation import validate_uuid_format

logger = logging.getLogger(__name__)


@dataclass
class BulkPlanError:
    """Ошибка создания плана для одной транзакции."""
    transaction_id: str
    error: str


@dataclass
class BulkPlanResult:
    """
    Результат массового создания планов.

    Attributes:
        created: Созданные планы
        errors: Ошибки по транзакциям, для которых план не создан
    """
    created: List[CreditCardPaymentPlanDB] = field(default_factory=list)
    errors: List[BulkPlanError] = field(default_factory=list)

    @property
    def total_requested(self) -> int:
        return len(self.created) + len(self.errors)

    @property
    def success_count(self) -> int:
        return len(self.created)

    @property
    def failed_count(self) -> int:
        return len(self.errors)


# =============================================================================
# Чтение
# =============================================================================

def get_payment_plan(session: Session, plan_id: str, user_id: Optional[str] = None) -> CreditCardPaymentPlanDB:
    """
    Получает план погашения по ID.

    Raises:
        NotFoundError: Если план не найден
    """
    validate_uuid_format(plan_id, "ID плана")
    query = session.query(CreditCardPaymentPlanDB).filter(CreditCardPaymentPlanDB.id == plan_id)
    if user_id is not None:
        query = query.filter(CreditCardPaymentPlanDB.user_id == user_id)
    plan = query.one_or_none()
    if plan is None:
        raise NotFoundError(f"План погашения с ID {plan_id} не найден")
    return plan


def get_payment_plans(
    session: Session,
    user_id: str,
    account_id: Optional[str] = None,
    status: Optional[PaymentPlanStatus] = None,
    payment_type: Optional[PaymentType] = None
) -> List[CreditCardPaymentPlanDB]:
    """
    Получает планы пользователя с опциональной фильтрацией.

    Args:
        session: Активная сессия БД
        user_id: Владелец
        account_id: Кредитная карта
        status: Статус плана
        payment_type: Тип плана

    Returns:
        Список планов (новые первыми)
    """
    try:
        query = session.query(CreditCardPaymentPlanDB).filter(CreditCardPaymentPlanDB.user_id == user_id)
        if account_id is not None:
            query = query.filter(CreditCardPaymentPlanDB.account_id == account_id)
        if status is not None:
            query = query.filter(CreditCardPaymentPlanDB.status == status)
        if payment_type is not None:
            query = query.filter(CreditCardPaymentPlanDB.payment_type == payment_type)
        return query.order_by(CreditCardPaymentPlanDB.created_at.desc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Ошибка при получении планов погашения: {e}")
        raise


def get_plan_payments(session: Session, plan_id: str) -> List[CreditCardPaymentDB]:
    """Возвращает платежи плана по номеру."""
    return session.query(CreditCardPaymentDB).filter(
        CreditCardPaymentDB.plan_id == plan_id
    ).order_by(CreditCardPaymentDB.payment_number).all()


def get_upcoming_payments(
    session: Session,
    user_id: str,
    days: Optional[int] = None,
    today: Optional[date] = None
) -> List[CreditCardPaymentDB]:
    """
    Получает ожидаемые платежи с датой в интервале [today, today + days].

    Учитываются только платежи активных планов. Горизонт по умолчанию
    берётся из settings.upcoming_days.

    Returns:
        Список платежей по возрастанию due_date
    """
    today = today or date.today()
    days = settings.upcoming_days if days is None else days
    horizon = today + timedelta(days=days)
    return session.query(CreditCardPaymentDB).join(CreditCardPaymentDB.plan).filter(
        CreditCardPaymentPlanDB.user_id == user_id,
        CreditCardPaymentPlanDB.status == PaymentPlanStatus.ACTIVE,
        CreditCardPaymentDB.status == PaymentStatus.PENDING,
        CreditCardPaymentDB.due_date >= today,
        CreditCardPaymentDB.due_date <= horizon
    ).order_by(CreditCardPaymentDB.due_date, CreditCardPaymentDB.payment_number).all()


def find_payments_due_soon(session: Session, today: Optional[date] = None, days: int = 3) -> List[CreditCardPaymentDB]:
    """
    Находит ожидаемые платежи всех пользователей со сроком в ближайшие days дней.

    Используется задачей напоминаний.
    """
    today = today or date.today()
    horizon = today + timedelta(days=days)
    return session.query(CreditCardPaymentDB).join(CreditCardPaymentDB.plan).filter(
        CreditCardPaymentPlanDB.status == PaymentPlanStatus.ACTIVE,
        CreditCardPaymentDB.status == PaymentStatus.PENDING,
        CreditCardPaymentDB.due_date >= today,
        CreditCardPaymentDB.due_date <= horizon
    ).order_by(CreditCardPaymentDB.due_date).all()


def find_overdue_payments(session: Session) -> List[CreditCardPaymentDB]:
    """Находит просроченные платежи активных планов (для уведомлений)."""
    return session.query(CreditCardPaymentDB).join(CreditCardPaymentDB.plan).filter(
        CreditCardPaymentPlanDB.status == PaymentPlanStatus.ACTIVE,
        CreditCardPaymentDB.status == PaymentStatus.OVERDUE
    ).order_by(CreditCardPaymentDB.due_date).all()


# =============================================================================
# Создание
# =============================================================================

def has_live_plan(session: Session, transaction: TransactionDB) -> bool:
    """Признак того, что у транзакции есть активный план погашения."""
    if not transaction.payment_plan_id:
        return False
    plan = session.get(CreditCardPaymentPlanDB, transaction.payment_plan_id)
    return plan is not None and plan.status == PaymentPlanStatus.ACTIVE


def _build_schedule(plan_data: PaymentPlanCreate, transaction: TransactionDB, account: AccountDB) -> AmortizationSchedule:
    start_date = plan_data.start_date or transaction.transaction_date
    billing_day = account.billing_day or DEFAULT_BILLING_DAY

    if plan_data.payment_type == PaymentType.INSTALLMENT:
        if plan_data.total_installments is None:
            raise ValidationError("Для рассрочки требуется количество платежей")
        return calculate_installment_schedule(
            transaction.amount,
            plan_data.total_installments,
            plan_data.installment_fee_rate or 0,
            start_date,
            billing_day,
        )

    if plan_data.payment_type == PaymentType.REVOLVING:
        if plan_data.monthly_payment is None or plan_data.interest_rate is None:
            raise ValidationError("Для револьверного погашения требуются ежемесячный платёж и годовая ставка")
        return calculate_revolving_schedule(
            transaction.amount,
            plan_data.monthly_payment,
            plan_data.interest_rate,
            start_date,
            billing_day,
        )

    raise ValidationError(f"Неподдерживаемый тип плана: {plan_data.payment_type}")


def create_payment_plan(session: Session, user_id: str, plan_data: PaymentPlanCreate) -> CreditCardPaymentPlanDB:
    """
    Создаёт план погашения для расхода по кредитной карте.

    План и все его платежи создаются одним коммитом. Транзакция получает
    payment_type плана и ссылку payment_plan_id.

    Args:
        session: Активная сессия БД
        user_id: Владелец транзакции
        plan_data: Параметры плана

    Returns:
        CreditCardPaymentPlanDB: Созданный план с платежами

    Raises:
        NotFoundError: Если транзакция не найдена или принадлежит другому пользователю
        ValidationError: Если транзакция не расход по кредитной карте, у неё уже есть
            активный или погашенный план, или параметры плана невалидны
        DatabaseError: При ошибках записи в БД

    Example:
        >>> plan = create_payment_plan(session, user_id, PaymentPlanCreate(
        ...     transaction_id=tx.id, payment_type=PaymentType.INSTALLMENT,
        ...     total_installments=3, installment_fee_rate=Decimal("0.01")))
        >>> len(plan.payments)
        3
    """
    try:
        logger.debug(f"Создание плана {plan_data.payment_type.value} для транзакции {plan_data.transaction_id}")

        transaction = session.query(TransactionDB).filter(
            TransactionDB.id == plan_data.transaction_id,
            TransactionDB.user_id == user_id
        ).with_for_update().one_or_none()
        if transaction is None:
            raise NotFoundError(f"Транзакция с ID {plan_data.transaction_id} не найдена")

        if transaction.payment_plan_id:
            existing = session.get(CreditCardPaymentPlanDB, transaction.payment_plan_id)
            if existing is not None and existing.status != PaymentPlanStatus.CANCELLED:
                raise ValidationError(
                    f"У транзакции {transaction.id} уже есть план погашения {existing.id} "
                    f"в статусе {existing.status.value}"
                )

        account = session.get(AccountDB, transaction.account_id)
        if account is None or account.type != AccountType.CREDIT_CARD:
            raise ValidationError("План погашения доступен только для транзакций по кредитной карте")
        if transaction.type != TransactionType.EXPENSE:
            raise ValidationError("План погашения доступен только для расходов")

        schedule = _build_schedule(plan_data, transaction, account)

        plan = CreditCardPaymentPlanDB(
            user_id=user_id,
            transaction_id=transaction.id,
            account_id=account.id,
            payment_type=schedule.payment_type,
            original_amount=schedule.original_amount,
            total_amount_with_fee=schedule.total_amount_with_fee,
            remaining_amount=schedule.opening_balance,
            currency=transaction.currency,
            start_date=plan_data.start_date or transaction.transaction_date,
            next_payment_date=schedule.first_payment_date,
            total_installments=schedule.total_installments,
            completed_installments=0,
            installment_amount=schedule.installment_amount,
            installment_fee_rate=plan_data.installment_fee_rate if schedule.payment_type == PaymentType.INSTALLMENT else None,
            monthly_payment=plan_data.monthly_payment if schedule.payment_type == PaymentType.REVOLVING else None,
            interest_rate=plan_data.interest_rate if schedule.payment_type == PaymentType.REVOLVING else None,
            status=PaymentPlanStatus.ACTIVE,
        )
        for item in schedule.payments:
            plan.payments.append(CreditCardPaymentDB(
                payment_number=item.payment_number,
                principal_amount=item.principal_amount,
                fee_amount=item.fee_amount,
                interest_amount=item.interest_amount,
                total_amount=item.total_amount,
                remaining_after=item.remaining_after,
                due_date=item.due_date,
                status=PaymentStatus.PENDING,
            ))

        session.add(plan)
        session.flush()

        transaction.payment_type = schedule.payment_type
        transaction.payment_plan_id = plan.id

        session.commit()
        session.refresh(plan)

        logger.info(
            f"План погашения {plan.id} создан: {plan.payment_type.value}, "
            f"платежей {plan.total_installments}, итого {plan.total_amount_with_fee}"
        )
        return plan

    except (ValidationError, NotFoundError) as e:
        logger.error(f"Ошибка при создании плана погашения: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при создании плана погашения: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при создании плана погашения: {e}") from e


def create_payment_plans_bulk(session: Session, user_id: str, bulk_data: BulkPaymentPlanCreate) -> BulkPlanResult:
    """
    Создаёт одинаковые планы для нескольких транзакций.

    Каждый план создаётся в своей единице работы: ошибка одной транзакции
    попадает в errors и не влияет на остальные.
    """
    result = BulkPlanResult()

    for transaction_id in bulk_data.transaction_ids:
        try:
            plan = create_payment_plan(session, user_id, bulk_data.for_transaction(transaction_id))
            result.created.append(plan)
        except (ValidationError, NotFoundError, DatabaseError) as e:
            result.errors.append(BulkPlanError(transaction_id=transaction_id, error=str(e)))
            logger.warning(f"Не удалось создать план для транзакции {transaction_id}: {e}")

    logger.info(
        f"Массовое создание планов: создано {result.success_count}, "
        f"ошибок {result.failed_count} (пользователь {user_id})"
    )
    return result


# =============================================================================
# Изменение состояния
# =============================================================================

def mark_payment_paid(
    session: Session,
    user_id: str,
    plan_id: str,
    payment_id: str,
    today: Optional[date] = None
) -> CreditCardPaymentDB:
    """
    Отмечает платёж как оплаченный.

    Обновляет счётчик оплаченных платежей, остаток и дату следующего платежа.
    После последнего платежа план завершается, а транзакция снова считается
    единовременной.

    Raises:
        NotFoundError: Если план или платёж не найдены
        StateConflictError: Если платёж уже оплачен или план не активен
        DatabaseError: При ошибках записи в БД
    """
    today = today or date.today()
    try:
        plan = get_payment_plan(session, plan_id, user_id)
        if plan.status != PaymentPlanStatus.ACTIVE:
            raise StateConflictError(f"План {plan_id} не активен (статус: {plan.status.value})")

        validate_uuid_format(payment_id, "ID платежа")
        payment = session.query(CreditCardPaymentDB).filter(
            CreditCardPaymentDB.id == payment_id,
            CreditCardPaymentDB.plan_id == plan_id
        ).with_for_update().one_or_none()
        if payment is None:
            raise NotFoundError(f"Платёж с ID {payment_id} не найден в плане {plan_id}")
        if payment.status == PaymentStatus.PAID:
            raise StateConflictError(f"Платёж {payment_id} уже оплачен")

        payment.status = PaymentStatus.PAID
        payment.payment_date = today

        plan.completed_installments = (plan.completed_installments or 0) + 1
        plan.remaining_amount = payment.remaining_after

        next_payment = session.query(CreditCardPaymentDB).filter(
            CreditCardPaymentDB.plan_id == plan_id,
            CreditCardPaymentDB.id != payment_id,
            CreditCardPaymentDB.status.in_([PaymentStatus.PENDING, PaymentStatus.OVERDUE])
        ).order_by(CreditCardPaymentDB.payment_number).first()

        if next_payment is not None:
            plan.next_payment_date = next_payment.due_date
        else:
            plan.status = PaymentPlanStatus.COMPLETED
            plan.next_payment_date = None
            transaction = session.get(TransactionDB, plan.transaction_id)
            if transaction is not None:
                transaction.payment_type = PaymentType.ONE_TIME
            logger.info(f"План погашения {plan_id} полностью погашен")

        session.commit()
        session.refresh(payment)

        logger.info(f"Платёж #{payment.payment_number} плана {plan_id} отмечен как оплаченный")
        return payment

    except (ValidationError, NotFoundError, StateConflictError) as e:
        logger.error(f"Ошибка при оплате платежа {payment_id}: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при оплате платежа {payment_id}: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при оплате платежа: {e}") from e


def cancel_payment_plan(session: Session, user_id: str, plan_id: str) -> CreditCardPaymentPlanDB:
    """
    Отменяет активный план погашения.

    Платежи не удаляются. Транзакция снова считается единовременной,
    ссылка на план обнуляется.

    Raises:
        NotFoundError: Если план не найден
        StateConflictError: Если план завершён или уже отменён
        DatabaseError: При ошибках записи в БД
    """
    try:
        plan = get_payment_plan(session, plan_id, user_id)
        if plan.status == PaymentPlanStatus.COMPLETED:
            raise StateConflictError(f"Нельзя отменить завершённый план {plan_id}")
        if plan.status == PaymentPlanStatus.CANCELLED:
            raise StateConflictError(f"План {plan_id} уже отменён")

        plan.status = PaymentPlanStatus.CANCELLED
        plan.next_payment_date = None

        transaction = session.get(TransactionDB, plan.transaction_id)
        if transaction is not None:
            transaction.payment_type = PaymentType.ONE_TIME
            transaction.payment_plan_id = None

        session.commit()
        session.refresh(plan)

        logger.info(f"План погашения {plan_id} отменён")
        return plan

    except (ValidationError, NotFoundError, StateConflictError) as e:
        logger.error(f"Ошибка при отмене плана {plan_id}: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при отмене плана {plan_id}: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при отмене плана: {e}") from e


def mark_overdue_payments(session: Session, today: Optional[date] = None) -> int:
    """
    Переводит ожидаемые платежи с прошедшим сроком в статус OVERDUE.

    Повторный вызов в тот же день ничего не меняет.

    Args:
        session: Активная сессия БД
        today: Текущая дата (по умолчанию date.today())

    Returns:
        int: Количество обновлённых платежей

    Raises:
        DatabaseError: При ошибках записи в БД
    """
    today = today or date.today()
    try:
        logger.debug(f"Проверка просроченных платежей на {today}")

        overdue = session.query(CreditCardPaymentDB).join(CreditCardPaymentDB.plan).filter(
            CreditCardPaymentPlanDB.status == PaymentPlanStatus.ACTIVE,
            CreditCardPaymentDB.status == PaymentStatus.PENDING,
            CreditCardPaymentDB.due_date < today
        ).all()

        for payment in overdue:
            payment.status = PaymentStatus.OVERDUE
            logger.debug(f"Платёж #{payment.payment_number} плана {payment.plan_id} просрочен (срок {payment.due_date})")

        session.commit()

        if overdue:
            logger.info(f"Обновлено {len(overdue)} просроченных платежей")
        return len(overdue)

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при обновлении просроченных платежей: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при обновлении просроченных платежей: {e}") from e
