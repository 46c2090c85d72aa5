"""
Сервис автоматического погашения кредитных карт в день выписки.

В день выписки задолженность по карте (credit_limit - current_balance)
переводится со связанного счёта, после чего баланс карты сбрасывается
до кредитного лимита.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from finance_core.models import AccountDB, AccountType, TransactionCreate, TransactionType, PayoffOutcome
from finance_core.services.collaborators import CurrencyConverter
from finance_core.services.ledger_service import lock_account, reset_balance
from finance_core.services.transaction_service import record_transaction
from finance_core.utils.dates import is_last_day_of_month
from finance_core.utils.exceptions import ValidationError, NotFoundError, DatabaseError

logger = logging.getLogger(__name__)


def find_credit_cards_due(session: Session, today: Optional[date] = None) -> List[AccountDB]:
    """
    Находит активные кредитные карты, у которых сегодня день выписки.

    В последний день месяца учитываются также карты с днём выписки больше
    длины месяца (например, 31 в феврале).
    """
    today = today or date.today()

    day_condition = AccountDB.billing_day == today.day
    if is_last_day_of_month(today):
        day_condition = or_(day_condition, AccountDB.billing_day > today.day)

    cards = session.query(AccountDB).filter(
        and_(
            AccountDB.type == AccountType.CREDIT_CARD,
            AccountDB.is_active.is_(True),
            AccountDB.billing_day.isnot(None),
            day_condition
        )
    ).order_by(AccountDB.id).all()

    logger.debug(f"Найдено {len(cards)} кредитных карт с выпиской {today}")
    return cards


def _debit_amount(
    card: AccountDB,
    linked: AccountDB,
    amount_spent: Decimal,
    converter: Optional[CurrencyConverter]
) -> Optional[Decimal]:
    if card.currency == linked.currency:
        return amount_spent
    if converter is None:
        return None
    debit, _ = converter.convert(amount_spent, card.currency, linked.currency)
    return debit


def process_credit_card_payoff(
    session: Session,
    card_id: str,
    today: Optional[date] = None,
    converter: Optional[CurrencyConverter] = None
) -> PayoffOutcome:
    """
    Погашает задолженность одной кредитной карты (одна единица работы).

    Правила:
    - кредитный лимит не задан или не положителен: SKIPPED
    - задолженности нет (amount_spent <= 0): баланс сбрасывается до лимита, RESET
    - нет связанного счёта или на нём недостаточно средств: SKIPPED, без изменений
    - иначе перевод со связанного счёта на карту, баланс карты = лимит, PAID

    Args:
        session: Активная сессия БД
        card_id: ID кредитной карты
        today: Дата погашения (по умолчанию date.today())
        converter: Конвертер для связанного счёта в другой валюте

    Returns:
        PayoffOutcome: Результат погашения

    Raises:
        NotFoundError: Если карта или связанный счёт не найдены
        DatabaseError: При ошибках записи в БД
    """
    today = today or date.today()
    try:
        card = lock_account(session, card_id)

        if card.type != AccountType.CREDIT_CARD or not card.is_active:
            logger.warning(f"Счёт {card_id} не является активной кредитной картой, пропуск")
            session.rollback()
            return PayoffOutcome.SKIPPED

        if card.credit_limit is None or Decimal(card.credit_limit) <= 0:
            logger.info(f"У карты {card.name} ({card_id}) не задан кредитный лимит, пропуск")
            session.rollback()
            return PayoffOutcome.SKIPPED

        amount_spent = Decimal(card.credit_limit) - Decimal(card.current_balance)

        if amount_spent <= 0:
            reset_balance(card, card.credit_limit)
            session.commit()
            logger.info(f"Задолженности по карте {card.name} нет, баланс сброшен до лимита")
            return PayoffOutcome.RESET

        if not card.linked_account_id:
            logger.info(f"У карты {card.name} нет связанного счёта, автопогашение пропущено")
            session.rollback()
            return PayoffOutcome.SKIPPED

        linked = lock_account(session, card.linked_account_id)

        debit = _debit_amount(card, linked, amount_spent, converter)
        if debit is None:
            logger.warning(
                f"Нет курса {card.currency} -> {linked.currency} для автопогашения карты {card.name}, пропуск"
            )
            session.rollback()
            return PayoffOutcome.SKIPPED

        if Decimal(linked.current_balance) < debit:
            logger.warning(
                f"Недостаточно средств на счёте {linked.name} для погашения карты {card.name}: "
                f"нужно {debit}, доступно {linked.current_balance}"
            )
            session.rollback()
            return PayoffOutcome.SKIPPED

        record_transaction(
            session,
            TransactionCreate(
                user_id=card.user_id,
                account_id=linked.id,
                type=TransactionType.TRANSFER,
                amount=debit,
                currency=linked.currency,
                description=f"Auto-payment for {card.name}",
                transaction_date=today,
                to_account_id=card.id,
            ),
            converter=converter,
        )
        reset_balance(card, card.credit_limit)
        session.commit()

        logger.info(f"Карта {card.name} погашена со счёта {linked.name} на сумму {debit} {linked.currency}")
        return PayoffOutcome.PAID

    except (NotFoundError, ValidationError) as e:
        logger.error(f"Ошибка автопогашения карты {card_id}: {e}")
        session.rollback()
        raise

    except SQLAlchemyError as e:
        logger.error(f"Ошибка БД при автопогашении карты {card_id}: {e}")
        session.rollback()
        raise DatabaseError(f"Ошибка при автопогашении карты: {e}") from e
