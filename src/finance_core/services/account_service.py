"""
Сервис для работы со счетами.

Содержит функции для:
- Создания счёта (текущий баланс = начальный баланс)
- Получения счёта по ID
- Получения списка счетов пользователя
"""

from typing import List, Optional
import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from finance_core.config import settings
from finance_core.models import AccountDB, AccountCreate, AccountType
from finance_core.services.amortization_service import round4
from finance_core.utils.exceptions import ValidationError, NotFoundError, DatabaseError

logger = logging.getLogger(__name__)


def get_account(session: Session, account_id: str, user_id: Optional[str] = None) -> AccountDB:
    """
    Получает счёт по ID.

    Args:
        session: Активная сессия БД
        account_id: ID счёта
        user_id: Если указан, счёт должен принадлежать этому пользователю

    Raises:
        NotFoundError: Если счёт не найден
    """
    query = session.query(AccountDB).filter(AccountDB.id == account_id)
    if user_id is not None:
        query = query.filter(AccountDB.user_id == user_id)
    account = query.one_or_none()
    if account is None:
        raise NotFoundError(f"Счёт с ID {account_id} не найден")
    return account


def get_accounts(session: Session, user_id: str, account_type: Optional[AccountType] = None) -> List[AccountDB]:
    """Возвращает активные счета пользователя, опционально по типу."""
    query = session.query(AccountDB).filter(
        AccountDB.user_id == user_id,
        AccountDB.is_active.is_(True)
    )
    if account_type is not None:
        query = query.filter(AccountDB.type == account_type)
    return query.order_by(AccountDB.name).all()


def create_account(session: Session, account_data: AccountCreate) -> AccountDB:
    """
    Создаёт новый счёт.

    Для кредитной карты связанный счёт (источник автопогашения) должен
    принадлежать тому же пользователю и не быть кредитной картой.

    Args:
        session: Активная сессия БД
        account_data: Данные счёта

    Returns:
        AccountDB: Созданный счёт

    Raises:
        ValidationError: При нарушении правил для кредитной карты
        NotFoundError: Если связанный счёт не найден
        DatabaseError: При ошибках записи в БД
    """
    try:
        logger.debug(f"Создание счёта '{account_data.name}' ({account_data.type.value})")

        is_card = account_data.type == AccountType.CREDIT_CARD
        if not is_card and (account_data.linked_account_id or account_data.credit_limit is not None):
            raise ValidationError("Кредитный лимит и связанный счёт допустимы только для кредитной карты")

        if account_data.linked_account_id:
            linked = get_account(session, account_data.linked_account_id, account_data.user_id)
            if linked.type == AccountType.CREDIT_CARD:
                raise ValidationError("Счёт автопогашения не может быть кредитной картой")

        account = AccountDB(
            user_id=account_data.user_id,
            name=account_data.name,
            type=account_data.type,
            currency=account_data.currency or settings.default_currency,
            initial_balance=round4(account_data.initial_balance),
            current_balance=round4(account_data.initial_balance),
            credit_limit=round4(account_data.credit_limit) if account_data.credit_limit is not None else None,
            billing_day=account_data.billing_day,
            payment_due_day=account_data.payment_due_day,
            linked_account_id=account_data.linked_account_id,
        )
        session.add(account)
        session.commit()
        session.refresh(account)

        logger.info(f"Счёт успешно создан с ID: {account.id}")
        return account

    except (ValidationError, NotFoundError) as e:
        logger.error(f"Ошибка валидации при создании счёта: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при сохранении счёта в БД: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при сохранении счёта: {e}") from e
