"""
Сервис учёта балансов счетов (ledger).

Единственное место, где изменяется Account.current_balance:
- apply_effect: применение/откат эффекта одной стороны транзакции
- transfer_credit_amount: сумма зачисления на счёт назначения перевода
- apply_transaction_effects: применение/откат всех эффектов транзакции
- lock_account: блокировка строки счёта на время единицы работы
- reset_balance: сброс баланса кредитной карты до лимита

Откат выполняется тем же кодом с sign=-1, поэтому применение и откат
всегда симметричны.
"""

from decimal import Decimal
from typing import Dict, Optional
import logging

from sqlalchemy.orm import Session

from finance_core.models import AccountDB, TransactionDB, TransactionType
from finance_core.services.amortization_service import round4
from finance_core.utils.exceptions import ValidationError, NotFoundError

logger = logging.getLogger(__name__)


def apply_effect(account: AccountDB, transaction_type: TransactionType, amount: Decimal, sign: int) -> None:
    """
    Применяет эффект транзакции к балансу счёта.

    INCOME увеличивает баланс, EXPENSE и TRANSFER (списание со счёта-источника)
    уменьшают. sign=+1 применяет эффект, sign=-1 откатывает его.

    Args:
        account: Счёт
        transaction_type: Тип транзакции
        amount: Сумма (положительная)
        sign: +1 или -1

    Raises:
        ValidationError: При неизвестном типе транзакции или неверном sign
    """
    if sign not in (1, -1):
        raise ValidationError(f"sign должен быть +1 или -1, получено: {sign}")

    if transaction_type == TransactionType.INCOME:
        delta = Decimal(amount)
    elif transaction_type in (TransactionType.EXPENSE, TransactionType.TRANSFER):
        delta = -Decimal(amount)
    else:
        raise ValidationError(f"Неизвестный тип транзакции: {transaction_type}")

    before = Decimal(account.current_balance or 0)
    account.current_balance = round4(before + sign * delta)
    logger.debug(
        f"Баланс счёта {account.id}: {before} -> {account.current_balance} "
        f"({transaction_type.value}, sign={sign})"
    )


def transfer_credit_amount(amount: Decimal, exchange_rate: Optional[Decimal]) -> Decimal:
    """
    Сумма, зачисляемая на счёт назначения перевода.

    Example:
        >>> transfer_credit_amount(Decimal("10"), Decimal("25000"))
        Decimal('250000.0000')
        >>> transfer_credit_amount(Decimal("10"), None)
        Decimal('10')
    """
    if exchange_rate is None:
        return Decimal(amount)
    return round4(Decimal(amount) * Decimal(exchange_rate))


def lock_account(session: Session, account_id: str) -> AccountDB:
    """
    Загружает счёт с блокировкой строки (SELECT ... FOR UPDATE).

    Raises:
        NotFoundError: Если счёт не найден
    """
    account = session.query(AccountDB).filter(
        AccountDB.id == account_id
    ).with_for_update().one_or_none()

    if account is None:
        raise NotFoundError(f"Счёт с ID {account_id} не найден")
    return account


def _lock_accounts(session: Session, *account_ids: str) -> Dict[str, AccountDB]:
    # Блокировки берутся в порядке ID
    locked: Dict[str, AccountDB] = {}
    for account_id in sorted(set(a for a in account_ids if a)):
        locked[account_id] = lock_account(session, account_id)
    return locked


def apply_transaction_effects(session: Session, transaction: TransactionDB, sign: int) -> None:
    """
    Применяет (sign=+1) или откатывает (sign=-1) все эффекты транзакции.

    Для перевода списывается сумма со счёта-источника и зачисляется
    amount * exchange_rate (или amount без курса) на счёт назначения.

    Args:
        session: Активная сессия БД
        transaction: Транзакция
        sign: +1 или -1

    Raises:
        ValidationError: Если у перевода нет счёта назначения
        NotFoundError: Если счёт не найден
    """
    if transaction.type == TransactionType.TRANSFER and not transaction.to_account_id:
        raise ValidationError("Для перевода требуется счёт назначения")

    accounts = _lock_accounts(session, transaction.account_id, transaction.to_account_id)

    apply_effect(accounts[transaction.account_id], transaction.type, transaction.amount, sign)

    if transaction.type == TransactionType.TRANSFER:
        credit = transfer_credit_amount(transaction.amount, transaction.exchange_rate)
        apply_effect(accounts[transaction.to_account_id], TransactionType.INCOME, credit, sign)


def reset_balance(account: AccountDB, value: Decimal) -> None:
    """
    Устанавливает баланс счёта в указанное значение.

    Используется только автопогашением кредитной карты (сброс до лимита).
    """
    before = account.current_balance
    account.current_balance = round4(value)
    logger.info(f"Баланс счёта {account.id} сброшен: {before} -> {account.current_balance}")
