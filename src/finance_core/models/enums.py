"""
Модуль перечислений (enums) для Finance Core.

Содержит все Enum классы, используемые в моделях данных.
"""

from enum import Enum


class TransactionType(str, Enum):
    """
    Тип финансовой транзакции.

    Attributes:
        INCOME: Доход (поступление средств)
        EXPENSE: Расход (трата средств)
        TRANSFER: Перевод между счетами
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class AccountType(str, Enum):
    """
    Тип счёта.

    Attributes:
        CASH: Наличные
        BANK: Банковский счёт
        E_WALLET: Электронный кошелёк
        CREDIT_CARD: Кредитная карта
    """
    CASH = "cash"
    BANK = "bank"
    E_WALLET = "e_wallet"
    CREDIT_CARD = "credit_card"


class PaymentType(str, Enum):
    """
    Способ оплаты транзакции по кредитной карте.

    Attributes:
        ONE_TIME: Единовременная оплата (по умолчанию)
        INSTALLMENT: Рассрочка с фиксированной комиссией
        REVOLVING: Револьверное погашение с процентами
    """
    ONE_TIME = "one_time"
    INSTALLMENT = "installment"
    REVOLVING = "revolving"


class RecurringFrequency(str, Enum):
    """
    Периодичность повторяющейся транзакции.

    Attributes:
        DAILY: Ежедневно
        WEEKLY: Еженедельно
        MONTHLY: Ежемесячно
        YEARLY: Ежегодно
    """
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurringStatus(str, Enum):
    """
    Статус повторяющейся транзакции.

    Attributes:
        ACTIVE: Активна (исполняется по расписанию)
        PAUSED: Приостановлена пользователем
        CANCELLED: Отменена (терминальный статус)
        COMPLETED: Завершена автоматически (терминальный статус)
    """
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentPlanStatus(str, Enum):
    """
    Статус плана погашения по кредитной карте.

    Attributes:
        ACTIVE: Активный
        COMPLETED: Полностью погашен
        CANCELLED: Отменён
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """
    Статус платежа по плану погашения.

    Attributes:
        PENDING: Ожидается
        PAID: Оплачен
        OVERDUE: Просрочен
    """
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class PayoffOutcome(str, Enum):
    """
    Результат автоматического погашения кредитной карты.

    Attributes:
        PAID: Задолженность погашена со связанного счёта
        RESET: Задолженности нет, баланс сброшен до лимита
        SKIPPED: Погашение пропущено (нет связанного счёта или средств)
    """
    PAID = "paid"
    RESET = "reset"
    SKIPPED = "skipped"


class NotificationKind(str, Enum):
    """
    Тип уведомления, передаваемого во внешний сервис уведомлений.
    """
    CREDIT_CARD_PAYMENT_DUE = "credit_card_payment_due"
    CREDIT_CARD_PAYMENT_OVERDUE = "credit_card_payment_overdue"
