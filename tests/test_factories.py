"""
Фабрики для создания тестовых данных.

В отличие от прямого создания моделей, фабрики проходят через сервисы,
поэтому балансы счетов всегда согласованы с транзакциями.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from finance_core.models import (
    AccountDB,
    TransactionDB,
    RecurringTransactionDB,
    CreditCardPaymentPlanDB,
    AccountCreate,
    TransactionCreate,
    RecurringTransactionCreate,
    PaymentPlanCreate,
    AccountType,
    TransactionType,
    PaymentType,
    RecurringFrequency,
)
from finance_core.services.account_service import create_account
from finance_core.services.transaction_service import create_transaction
from finance_core.services.recurring_service import create_recurring
from finance_core.services.payment_plan_service import create_payment_plan


def create_test_account(
    session,
    user_id: str,
    name: str = "Наличные",
    type: AccountType = AccountType.CASH,
    currency: str = "VND",
    balance: Decimal = Decimal("0"),
) -> AccountDB:
    """Создаёт обычный счёт с начальным балансом."""
    return create_account(session, AccountCreate(
        user_id=user_id,
        name=name,
        type=type,
        currency=currency,
        initial_balance=balance,
    ))


def create_test_credit_card(
    session,
    user_id: str,
    name: str = "Visa",
    credit_limit: Optional[Decimal] = Decimal("5000000"),
    balance: Optional[Decimal] = None,
    billing_day: Optional[int] = 15,
    linked_account_id: Optional[str] = None,
    currency: str = "VND",
) -> AccountDB:
    """
    Создаёт кредитную карту.

    Баланс карты - доступный кредит, по умолчанию равен лимиту (долга нет).
    """
    if balance is None:
        balance = credit_limit or Decimal("0")
    return create_account(session, AccountCreate(
        user_id=user_id,
        name=name,
        type=AccountType.CREDIT_CARD,
        currency=currency,
        initial_balance=balance,
        credit_limit=credit_limit,
        billing_day=billing_day,
        linked_account_id=linked_account_id,
    ))


def create_test_transaction(
    session,
    user_id: str,
    account_id: str,
    amount: Decimal = Decimal("100000"),
    type: TransactionType = TransactionType.EXPENSE,
    transaction_date: Optional[date] = None,
    to_account_id: Optional[str] = None,
    exchange_rate: Optional[Decimal] = None,
    converter=None,
) -> TransactionDB:
    """Создаёт транзакцию через сервис (с применением к балансам)."""
    return create_transaction(session, TransactionCreate(
        user_id=user_id,
        account_id=account_id,
        type=type,
        amount=amount,
        transaction_date=transaction_date or date(2025, 1, 10),
        to_account_id=to_account_id,
        exchange_rate=exchange_rate,
    ), converter=converter)


def create_test_recurring(
    session,
    user_id: str,
    account_id: str,
    amount: Decimal = Decimal("50000"),
    type: TransactionType = TransactionType.EXPENSE,
    frequency: RecurringFrequency = RecurringFrequency.DAILY,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    max_executions: Optional[int] = None,
    day_of_month: Optional[int] = None,
    interval_value: int = 1,
    to_account_id: Optional[str] = None,
) -> RecurringTransactionDB:
    """Создаёт правило повторяющейся транзакции."""
    return create_recurring(session, RecurringTransactionCreate(
        user_id=user_id,
        account_id=account_id,
        type=type,
        amount=amount,
        frequency=frequency,
        interval_value=interval_value,
        day_of_month=day_of_month,
        start_date=start_date or date(2025, 1, 1),
        end_date=end_date,
        max_executions=max_executions,
        to_account_id=to_account_id,
    ))


def create_test_installment_plan(
    session,
    user_id: str,
    transaction_id: str,
    total_installments: int = 3,
    fee_rate: Decimal = Decimal("0.01"),
    start_date: Optional[date] = None,
) -> CreditCardPaymentPlanDB:
    """Создаёт план рассрочки для расхода по карте."""
    return create_payment_plan(session, user_id, PaymentPlanCreate(
        transaction_id=transaction_id,
        payment_type=PaymentType.INSTALLMENT,
        total_installments=total_installments,
        installment_fee_rate=fee_rate,
        start_date=start_date,
    ))
