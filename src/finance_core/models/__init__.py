"""Модели данных Finance Core."""

from finance_core.models.enums import (
    TransactionType,
    AccountType,
    PaymentType,
    RecurringFrequency,
    RecurringStatus,
    PaymentPlanStatus,
    PaymentStatus,
    PayoffOutcome,
    NotificationKind,
)
from finance_core.models.models import (
    Base,
    AccountDB,
    CategoryDB,
    TransactionDB,
    RecurringTransactionDB,
    CreditCardPaymentPlanDB,
    CreditCardPaymentDB,
    AccountCreate,
    TransactionCreate,
    TransactionUpdate,
    RecurringTransactionCreate,
    RecurringTransactionUpdate,
    PaymentPlanCreate,
    BulkPaymentPlanCreate,
)

__all__ = [
    "TransactionType",
    "AccountType",
    "PaymentType",
    "RecurringFrequency",
    "RecurringStatus",
    "PaymentPlanStatus",
    "PaymentStatus",
    "PayoffOutcome",
    "NotificationKind",
    "Base",
    "AccountDB",
    "CategoryDB",
    "TransactionDB",
    "RecurringTransactionDB",
    "CreditCardPaymentPlanDB",
    "CreditCardPaymentDB",
    "AccountCreate",
    "TransactionCreate",
    "TransactionUpdate",
    "RecurringTransactionCreate",
    "RecurringTransactionUpdate",
    "PaymentPlanCreate",
    "BulkPaymentPlanCreate",
]
