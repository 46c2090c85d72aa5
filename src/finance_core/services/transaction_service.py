"""
Сервис транзакций с поддержкой балансов счетов.

Содержит функции для:
- record_transaction: создание транзакции с применением эффектов к балансам
  (без коммита, для использования внутри чужой единицы работы)
- create_transaction: создание транзакции в отдельной единице работы
- update_transaction: откат старых эффектов и применение новых
- delete_transaction: откат эффектов и удаление
- get_transaction / get_transactions: чтение

Все функции принимают сессию БД как параметр (Dependency Injection).
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from finance_core.models import (
    AccountDB, CategoryDB, TransactionDB, CreditCardPaymentPlanDB,
    TransactionCreate, TransactionUpdate, TransactionType
)
from finance_core.services.amortization_service import round4
from finance_core.services.collaborators import CurrencyConverter
from finance_core.services.ledger_service import apply_transaction_effects
from finance_core.services.payment_plan_service import has_live_plan
from finance_core.utils.exceptions import (
    ValidationError, NotFoundError, StateConflictError, DatabaseError
)

# Настройка логирования
logger = logging.getLogger(__name__)

# Поля, изменение которых влияет на план погашения
_PLAN_BOUND_FIELDS = ("account_id", "type", "amount", "currency")
_REQUIRED_FIELDS = ("account_id", "type", "amount", "transaction_date")


def get_transaction(session: Session, transaction_id: str, user_id: Optional[str] = None) -> TransactionDB:
    """
    Получает транзакцию по ID.

    Raises:
        NotFoundError: Если транзакция не найдена
    """
    query = session.query(TransactionDB).filter(TransactionDB.id == transaction_id)
    if user_id is not None:
        query = query.filter(TransactionDB.user_id == user_id)
    transaction = query.one_or_none()
    if transaction is None:
        raise NotFoundError(f"Транзакция с ID {transaction_id} не найдена")
    return transaction


def get_transactions(
    session: Session,
    user_id: str,
    account_id: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> List[TransactionDB]:
    """
    Получает транзакции пользователя с опциональной фильтрацией.

    Args:
        session: Активная сессия БД
        user_id: Владелец
        account_id: Счёт (источник или назначение)
        start_date: Начало периода (включительно)
        end_date: Конец периода (включительно)

    Returns:
        Список транзакций, отсортированный по дате
    """
    try:
        query = session.query(TransactionDB).filter(TransactionDB.user_id == user_id)
        if account_id is not None:
            query = query.filter(
                (TransactionDB.account_id == account_id) | (TransactionDB.to_account_id == account_id)
            )
        if start_date is not None:
            query = query.filter(TransactionDB.transaction_date >= start_date)
        if end_date is not None:
            query = query.filter(TransactionDB.transaction_date <= end_date)

        transactions = query.order_by(TransactionDB.transaction_date, TransactionDB.created_at).all()
        logger.debug(f"Найдено {len(transactions)} транзакций пользователя {user_id}")
        return transactions

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при получении транзакций: {e}")
        raise


def _get_owned_account(session: Session, account_id: str, user_id: str, role: str) -> AccountDB:
    account = session.query(AccountDB).filter(
        AccountDB.id == account_id,
        AccountDB.user_id == user_id
    ).one_or_none()
    if account is None:
        raise NotFoundError(f"{role} с ID {account_id} не найден")
    return account


def _check_category(session: Session, category_id: Optional[str]) -> None:
    if category_id is None:
        return
    if session.get(CategoryDB, category_id) is None:
        raise NotFoundError(f"Категория с ID {category_id} не найдена")


def resolve_exchange_rate(
    source: AccountDB,
    destination: AccountDB,
    amount: Decimal,
    exchange_rate: Optional[Decimal],
    converter: Optional[CurrencyConverter] = None
) -> Optional[Decimal]:
    """
    Определяет курс для перевода между счетами.

    Явно заданный курс сохраняется. Для перевода между счетами в одной валюте
    курс не нужен. Для разных валют курс запрашивается у конвертера.

    Raises:
        ValidationError: Если валюты различаются, курс не задан и конвертера нет
    """
    if exchange_rate is not None:
        return exchange_rate
    if source.currency == destination.currency:
        return None
    if converter is None:
        raise ValidationError(
            f"Для перевода {source.currency} -> {destination.currency} требуется курс конвертации"
        )
    _, rate = converter.convert(amount, source.currency, destination.currency)
    logger.debug(f"Курс {source.currency} -> {destination.currency} получен из конвертера: {rate}")
    return rate


def validate_transaction_shape(
    session: Session,
    user_id: str,
    transaction_type: TransactionType,
    account_id: str,
    to_account_id: Optional[str],
    category_id: Optional[str]
) -> tuple:
    """
    Проверяет структуру транзакции и возвращает (счёт-источник, счёт назначения).

    Raises:
        ValidationError: Перевод без счёта назначения, перевод на тот же счёт
            или счёт назначения у не-перевода
        NotFoundError: Если счёт или категория не найдены
    """
    source = _get_owned_account(session, account_id, user_id, "Счёт")
    destination = None

    if transaction_type == TransactionType.TRANSFER:
        if not to_account_id:
            raise ValidationError("Для перевода требуется счёт назначения")
        if to_account_id == account_id:
            raise ValidationError("Счёт назначения совпадает со счётом-источником")
        destination = _get_owned_account(session, to_account_id, user_id, "Счёт назначения")
    elif to_account_id:
        raise ValidationError("Счёт назначения допустим только для перевода")

    _check_category(session, category_id)
    return source, destination


def record_transaction(
    session: Session,
    transaction_data: TransactionCreate,
    recurring_transaction_id: Optional[str] = None,
    converter: Optional[CurrencyConverter] = None
) -> TransactionDB:
    """
    Создаёт транзакцию и применяет её эффекты к балансам без коммита.

    Вызывающий код владеет единицей работы и отвечает за commit/rollback.

    Args:
        session: Активная сессия БД
        transaction_data: Данные транзакции
        recurring_transaction_id: Правило, из которого создана транзакция
        converter: Конвертер валют для переводов между валютами

    Returns:
        TransactionDB: Созданная транзакция (flush выполнен)

    Raises:
        ValidationError: При невалидной структуре транзакции
        NotFoundError: Если счёт или категория не найдены
    """
    amount = round4(transaction_data.amount)
    if amount <= 0:
        raise ValidationError(f"Сумма должна быть положительным числом: {transaction_data.amount}")

    source, destination = validate_transaction_shape(
        session,
        transaction_data.user_id,
        transaction_data.type,
        transaction_data.account_id,
        transaction_data.to_account_id,
        transaction_data.category_id,
    )

    exchange_rate = None
    if destination is not None:
        exchange_rate = resolve_exchange_rate(
            source, destination, amount, transaction_data.exchange_rate, converter
        )

    transaction = TransactionDB(
        user_id=transaction_data.user_id,
        account_id=transaction_data.account_id,
        category_id=transaction_data.category_id,
        type=transaction_data.type,
        amount=amount,
        currency=transaction_data.currency or source.currency,
        description=transaction_data.description,
        transaction_date=transaction_data.transaction_date,
        to_account_id=transaction_data.to_account_id,
        exchange_rate=exchange_rate,
        recurring_transaction_id=recurring_transaction_id,
    )
    session.add(transaction)
    apply_transaction_effects(session, transaction, +1)
    session.flush()

    logger.debug(f"Транзакция записана: {transaction.id} ({transaction.type.value}, {transaction.amount})")
    return transaction


def create_transaction(
    session: Session,
    transaction_data: TransactionCreate,
    converter: Optional[CurrencyConverter] = None
) -> TransactionDB:
    """
    Создаёт новую транзакцию и обновляет балансы счетов.

    Args:
        session: Активная сессия БД
        transaction_data: Данные для создания транзакции (Pydantic модель)
        converter: Конвертер валют для переводов между валютами

    Returns:
        Созданная транзакция с заполненным ID

    Raises:
        ValidationError: Если данные невалидны на уровне бизнес-логики
        NotFoundError: Если счёт или категория не найдены
        DatabaseError: При ошибках записи в базу данных
    """
    try:
        logger.debug(
            f"Создание транзакции: {transaction_data.type.value} {transaction_data.amount}, "
            f"account_id={transaction_data.account_id}"
        )
        transaction = record_transaction(session, transaction_data, converter=converter)
        session.commit()
        session.refresh(transaction)

        logger.info(f"Транзакция успешно создана с ID: {transaction.id}")
        return transaction

    except (ValidationError, NotFoundError) as e:
        logger.error(f"Ошибка валидации данных транзакции: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при сохранении транзакции в БД: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при сохранении транзакции: {e}") from e


def update_transaction(
    session: Session,
    user_id: str,
    transaction_id: str,
    transaction_data: TransactionUpdate,
    converter: Optional[CurrencyConverter] = None
) -> TransactionDB:
    """
    Обновляет транзакцию: откатывает старые эффекты и применяет новые.

    Откат и повторное применение выполняются в одной единице работы.
    Обновляются только явно переданные поля.

    Args:
        session: Активная сессия БД
        user_id: Владелец
        transaction_id: ID транзакции
        transaction_data: Новые данные
        converter: Конвертер валют

    Returns:
        Обновлённая транзакция

    Raises:
        NotFoundError: Если транзакция не найдена
        ValidationError: Если новые данные невалидны
        StateConflictError: Если изменяются сумма/счёт/тип транзакции с активным планом погашения
        DatabaseError: При ошибках работы с базой данных
    """
    try:
        logger.debug(f"Обновление транзакции ID: {transaction_id}")

        transaction = get_transaction(session, transaction_id, user_id)
        updates = transaction_data.model_dump(exclude_unset=True)
        for required in _REQUIRED_FIELDS:
            if updates.get(required, True) is None:
                del updates[required]

        if any(field in updates for field in _PLAN_BOUND_FIELDS) and has_live_plan(session, transaction):
            raise StateConflictError(
                f"Транзакция {transaction_id} привязана к активному плану погашения"
            )

        # 1. Откат старых эффектов
        apply_transaction_effects(session, transaction, -1)

        # 2. Применение изменений
        if updates.get("type") is not None and updates["type"] != TransactionType.TRANSFER:
            updates.setdefault("to_account_id", None)
            updates.setdefault("exchange_rate", None)
        if ("account_id" in updates or "to_account_id" in updates) and "exchange_rate" not in updates:
            updates["exchange_rate"] = None
        if "amount" in updates:
            updates["amount"] = round4(updates["amount"])

        for field, value in updates.items():
            setattr(transaction, field, value)

        source, destination = validate_transaction_shape(
            session, user_id, transaction.type, transaction.account_id,
            transaction.to_account_id, transaction.category_id
        )
        if "account_id" in updates and "currency" not in updates:
            transaction.currency = source.currency
        if destination is not None:
            transaction.exchange_rate = resolve_exchange_rate(
                source, destination, transaction.amount, transaction.exchange_rate, converter
            )

        # 3. Применение новых эффектов
        apply_transaction_effects(session, transaction, +1)

        session.commit()
        session.refresh(transaction)

        logger.info(f"Транзакция {transaction_id} успешно обновлена")
        return transaction

    except (ValidationError, NotFoundError, StateConflictError) as e:
        logger.error(f"Ошибка при обновлении транзакции {transaction_id}: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при обновлении транзакции {transaction_id}: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при обновлении транзакции: {e}") from e


def delete_transaction(session: Session, user_id: str, transaction_id: str) -> None:
    """
    Удаляет транзакцию и откатывает её эффекты на балансах.

    Транзакцию, на которую ссылается план погашения, удалить нельзя:
    сначала план нужно отменить.

    Raises:
        NotFoundError: Если транзакция не найдена
        StateConflictError: Если на транзакцию ссылается план погашения
        DatabaseError: При ошибках работы с базой данных
    """
    try:
        logger.debug(f"Удаление транзакции ID: {transaction_id}")

        transaction = get_transaction(session, transaction_id, user_id)

        plan_refs = session.query(CreditCardPaymentPlanDB).filter(
            CreditCardPaymentPlanDB.transaction_id == transaction_id
        ).count()
        if plan_refs:
            raise StateConflictError(
                f"На транзакцию {transaction_id} ссылаются планы погашения ({plan_refs} шт.)"
            )

        apply_transaction_effects(session, transaction, -1)
        session.delete(transaction)
        session.commit()

        logger.info(f"Транзакция {transaction_id} удалена")

    except (NotFoundError, StateConflictError, ValidationError) as e:
        logger.error(f"Ошибка при удалении транзакции {transaction_id}: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при удалении транзакции {transaction_id}: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при удалении транзакции: {e}") from e
