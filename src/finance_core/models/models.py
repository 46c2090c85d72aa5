"""
Модуль моделей данных для Finance Core.

Содержит определения моделей:
- SQLAlchemy модели для хранения счетов, транзакций, повторяющихся транзакций
  и планов погашения по кредитным картам
- Pydantic модели для создания и обновления сущностей с валидацией
"""

from datetime import datetime
from datetime import date as date_type
from typing import List, Optional
from decimal import Decimal
import uuid

from sqlalchemy import Column, Integer, String, Numeric, Date, DateTime, Enum as SQLEnum, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship, DeclarativeBase
from pydantic import BaseModel, field_validator, Field

from .enums import (
    TransactionType, AccountType, PaymentType, RecurringFrequency,
    RecurringStatus, PaymentPlanStatus, PaymentStatus
)

# Точность денежных сумм и курсов
MONEY = Numeric(19, 4)
RATE = Numeric(19, 6)


# Декларативная база для SQLAlchemy моделей
class Base(DeclarativeBase):
    """Базовый класс для всех SQLAlchemy моделей."""
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


class AccountDB(Base):
    """
    Счёт пользователя (наличные, банк, кошелёк или кредитная карта).

    Баланс счёта хранится материализованно в current_balance и изменяется
    только через ledger_service. Он никогда не пересчитывается по транзакциям.

    Attributes:
        id: Уникальный идентификатор счёта (UUID)
        user_id: Владелец счёта (UUID)
        name: Название счёта
        type: Тип счёта
        currency: Код валюты (3 буквы)
        initial_balance: Начальный баланс
        current_balance: Текущий баланс (сумма всех применённых эффектов)
        credit_limit: Кредитный лимит (только для кредитных карт)
        billing_day: День выписки (1-31), в этот день выполняется автопогашение
        payment_due_day: День оплаты по карте (1-31)
        linked_account_id: Счёт-источник для автопогашения (UUID)
        is_active: Признак активности
        created_at: Дата создания записи
        updated_at: Дата последнего обновления
    """
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(SQLEnum(AccountType), nullable=False)
    currency = Column(String(3), nullable=False, default="VND")
    initial_balance = Column(MONEY, nullable=False, default=Decimal("0"))
    current_balance = Column(MONEY, nullable=False, default=Decimal("0"))
    credit_limit = Column(MONEY, nullable=True)
    billing_day = Column(Integer, nullable=True)
    payment_due_day = Column(Integer, nullable=True)
    linked_account_id = Column(String(36), ForeignKey("accounts.id"), nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Связи
    linked_account = relationship("AccountDB", remote_side="AccountDB.id")

    __table_args__ = (
        Index('ix_accounts_type_billing_day', 'type', 'billing_day'),
    )

    @property
    def is_credit_card(self) -> bool:
        """Признак кредитной карты."""
        return self.type == AccountType.CREDIT_CARD


class CategoryDB(Base):
    """
    Категория для классификации транзакций.

    Attributes:
        id: Уникальный идентификатор категории (UUID)
        user_id: Владелец категории (None для системных категорий)
        name: Название категории
        type: Тип категории (доход или расход)
        is_system: Признак системной категории
    """
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    name = Column(String, nullable=False)
    type = Column(SQLEnum(TransactionType), nullable=False)
    is_system = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class RecurringTransactionDB(Base):
    """
    Правило повторяющейся транзакции.

    Курсор next_execution_date единственный источник истины о том, когда правило
    сработает в следующий раз. Курсор сдвигается только после успешного
    исполнения (коммита), поэтому повторный запуск планировщика не создаёт
    дубликатов.

    Attributes:
        id: Уникальный идентификатор правила (UUID)
        user_id: Владелец правила (UUID)
        account_id: Счёт-источник (UUID)
        category_id: Категория (опционально)
        to_account_id: Счёт назначения для переводов (опционально)
        exchange_rate: Курс конвертации для переводов (опционально)
        type: Тип транзакции
        amount: Сумма (положительная)
        currency: Валюта
        description: Описание
        frequency: Периодичность
        interval_value: Интервал (каждые N периодов)
        day_of_week: День недели (1-7, опционально)
        day_of_month: День месяца (1-31, ограничивается длиной месяца)
        start_date: Дата начала
        end_date: Дата окончания (опционально)
        next_execution_date: Дата следующего исполнения
        last_execution_date: Дата последнего исполнения
        status: Статус правила
        execution_count: Количество выполненных исполнений
        max_executions: Максимальное количество исполнений (опционально)
    """
    __tablename__ = "recurring_transactions"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    to_account_id = Column(String(36), ForeignKey("accounts.id"), nullable=True)
    exchange_rate = Column(RATE, nullable=True)
    type = Column(SQLEnum(TransactionType), nullable=False)
    amount = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False)
    description = Column(String, nullable=True)
    frequency = Column(SQLEnum(RecurringFrequency), nullable=False)
    interval_value = Column(Integer, nullable=False, default=1)
    day_of_week = Column(Integer, nullable=True)
    day_of_month = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    next_execution_date = Column(Date, nullable=False)
    last_execution_date = Column(Date, nullable=True)
    status = Column(SQLEnum(RecurringStatus), nullable=False, default=RecurringStatus.ACTIVE)
    execution_count = Column(Integer, nullable=False, default=0)
    max_executions = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Связи
    account = relationship("AccountDB", foreign_keys=[account_id])
    to_account = relationship("AccountDB", foreign_keys=[to_account_id])
    category = relationship("CategoryDB")

    # Индекс для выборки правил к исполнению
    __table_args__ = (
        Index('ix_recurring_transactions_status_next_execution_date', 'status', 'next_execution_date'),
    )


class TransactionDB(Base):
    """
    Фактическая финансовая транзакция (доход, расход или перевод).

    Attributes:
        id: Уникальный идентификатор транзакции (UUID)
        user_id: Владелец (UUID)
        account_id: Счёт-источник (UUID)
        category_id: Категория (опционально)
        type: Тип транзакции
        amount: Сумма (положительное число)
        currency: Валюта
        description: Описание (необязательное)
        transaction_date: Дата совершения транзакции
        to_account_id: Счёт назначения для переводов (UUID)
        exchange_rate: Курс конвертации для переводов
        recurring_transaction_id: Правило, из которого создана транзакция (UUID)
        payment_type: Способ оплаты (единовременно, рассрочка, револьвер)
        payment_plan_id: Ссылка на план погашения (хранится только ID, без FK)
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    type = Column(SQLEnum(TransactionType), nullable=False)
    amount = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False)
    description = Column(String, nullable=True)
    transaction_date = Column(Date, nullable=False, index=True)
    to_account_id = Column(String(36), ForeignKey("accounts.id"), nullable=True)
    exchange_rate = Column(RATE, nullable=True)
    recurring_transaction_id = Column(
        String(36), ForeignKey("recurring_transactions.id", ondelete="SET NULL"), nullable=True
    )
    payment_type = Column(SQLEnum(PaymentType), nullable=False, default=PaymentType.ONE_TIME)
    payment_plan_id = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Связи
    account = relationship("AccountDB", foreign_keys=[account_id])
    to_account = relationship("AccountDB", foreign_keys=[to_account_id])
    category = relationship("CategoryDB")
    recurring_transaction = relationship("RecurringTransactionDB")

    # Индексы для быстрого поиска
    __table_args__ = (
        Index('ix_transactions_account_id_date', 'account_id', 'transaction_date'),
    )


class CreditCardPaymentPlanDB(Base):
    """
    План погашения расхода по кредитной карте (рассрочка или револьвер).

    Платежи создаются один раз при создании плана. При отмене плана платежи
    не удаляются и остаются в истории.

    Attributes:
        id: Уникальный идентификатор плана (UUID)
        user_id: Владелец (UUID)
        transaction_id: Исходная транзакция расхода (UUID)
        account_id: Кредитная карта (UUID)
        payment_type: Тип плана (INSTALLMENT или REVOLVING)
        original_amount: Исходная сумма расхода
        total_amount_with_fee: Итоговая сумма с комиссиями/процентами
        remaining_amount: Остаток к погашению
        currency: Валюта
        start_date: Дата начала плана
        next_payment_date: Дата ближайшего платежа (None для завершённых)
        total_installments: Количество платежей
        completed_installments: Количество оплаченных платежей
        installment_amount: Сумма платежа по рассрочке
        installment_fee_rate: Ставка комиссии за платёж (доля)
        monthly_payment: Ежемесячный платёж (револьвер)
        interest_rate: Годовая ставка (доля, револьвер)
        status: Статус плана
        payments: Упорядоченный список платежей
    """
    __tablename__ = "credit_card_payment_plans"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    transaction_id = Column(String(36), ForeignKey("transactions.id"), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    payment_type = Column(SQLEnum(PaymentType), nullable=False)
    original_amount = Column(MONEY, nullable=False)
    total_amount_with_fee = Column(MONEY, nullable=False)
    remaining_amount = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False)
    start_date = Column(Date, nullable=False)
    next_payment_date = Column(Date, nullable=True)
    total_installments = Column(Integer, nullable=True)
    completed_installments = Column(Integer, nullable=False, default=0)
    installment_amount = Column(MONEY, nullable=True)
    installment_fee_rate = Column(Numeric(9, 6), nullable=True)
    monthly_payment = Column(MONEY, nullable=True)
    interest_rate = Column(Numeric(9, 6), nullable=True)
    status = Column(SQLEnum(PaymentPlanStatus), nullable=False, default=PaymentPlanStatus.ACTIVE)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Связи
    transaction = relationship("TransactionDB")
    account = relationship("AccountDB")
    payments = relationship(
        "CreditCardPaymentDB",
        back_populates="plan",
        order_by="CreditCardPaymentDB.payment_number",
        cascade="all",
    )

    __table_args__ = (
        Index('ix_credit_card_payment_plans_user_id_status', 'user_id', 'status'),
    )


class CreditCardPaymentDB(Base):
    """
    Платёж по плану погашения.

    Attributes:
        id: Уникальный идентификатор (UUID)
        plan_id: План погашения (UUID)
        payment_number: Номер платежа (с 1, без пропусков)
        principal_amount: Основной долг
        fee_amount: Комиссия
        interest_amount: Проценты
        total_amount: Итого (principal + fee + interest)
        remaining_after: Остаток по плану после платежа (не меньше нуля)
        due_date: Срок платежа
        payment_date: Фактическая дата оплаты
        status: Статус платежа
    """
    __tablename__ = "credit_card_payments"

    id = Column(String(36), primary_key=True, default=_new_id, index=True)
    plan_id = Column(String(36), ForeignKey("credit_card_payment_plans.id"), nullable=False)
    payment_number = Column(Integer, nullable=False)
    principal_amount = Column(MONEY, nullable=False)
    fee_amount = Column(MONEY, nullable=False, default=Decimal("0"))
    interest_amount = Column(MONEY, nullable=False, default=Decimal("0"))
    total_amount = Column(MONEY, nullable=False)
    remaining_after = Column(MONEY, nullable=False)
    due_date = Column(Date, nullable=False)
    payment_date = Column(Date, nullable=True)
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Связи
    plan = relationship("CreditCardPaymentPlanDB", back_populates="payments")

    # Индексы для производительности
    __table_args__ = (
        Index('ix_credit_card_payments_plan_id_payment_number', 'plan_id', 'payment_number'),
        Index('ix_credit_card_payments_status_due_date', 'status', 'due_date'),
    )


# =============================================================================
# Pydantic модели для валидации входных данных
# =============================================================================

def _validate_uuid(v: Optional[str]) -> Optional[str]:
    if v is not None:
        try:
            uuid.UUID(v)
        except ValueError:
            raise ValueError(f'Невалидный UUID: {v}')
    return v


def _validate_currency(v: Optional[str]) -> Optional[str]:
    if v is not None:
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f'Код валюты должен состоять из 3 букв: {v}')
        return v.upper()
    return v


class AccountCreate(BaseModel):
    """
    Pydantic модель для создания счёта.

    Attributes:
        user_id: Владелец (UUID)
        name: Название счёта
        type: Тип счёта
        currency: Код валюты (по умолчанию settings.default_currency)
        initial_balance: Начальный баланс (становится текущим)
        credit_limit: Кредитный лимит (для кредитных карт)
        billing_day: День выписки (1-31)
        payment_due_day: День оплаты (1-31)
        linked_account_id: Счёт-источник автопогашения
    """
    user_id: str
    name: str = Field(min_length=1, max_length=200)
    type: AccountType
    currency: Optional[str] = None
    initial_balance: Decimal = Decimal("0")
    credit_limit: Optional[Decimal] = Field(None, ge=Decimal('0'))
    billing_day: Optional[int] = Field(None, ge=1, le=31)
    payment_due_day: Optional[int] = Field(None, ge=1, le=31)
    linked_account_id: Optional[str] = None

    @field_validator('user_id', 'linked_account_id')
    @classmethod
    def validate_uuid(cls, v: Optional[str]) -> Optional[str]:
        """Валидация формата UUID."""
        return _validate_uuid(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        """Валидация кода валюты."""
        return _validate_currency(v)


class TransactionCreate(BaseModel):
    """
    Pydantic модель для создания транзакции с валидацией.

    Attributes:
        user_id: Владелец (UUID)
        account_id: Счёт-источник (UUID)
        category_id: Категория (опционально)
        type: Тип транзакции
        amount: Сумма (должна быть больше 0)
        currency: Валюта (по умолчанию валюта счёта)
        description: Необязательное описание
        transaction_date: Дата транзакции (по умолчанию текущая дата)
        to_account_id: Счёт назначения (обязателен для переводов)
        exchange_rate: Курс конвертации для переводов
    """
    user_id: str
    account_id: str
    category_id: Optional[str] = None
    type: TransactionType
    amount: Decimal = Field(gt=Decimal('0'), description="Сумма транзакции должна быть положительной")
    currency: Optional[str] = None
    description: Optional[str] = None
    transaction_date: date_type = Field(default_factory=date_type.today)
    to_account_id: Optional[str] = None
    exchange_rate: Optional[Decimal] = Field(None, gt=Decimal('0'))

    @field_validator('user_id', 'account_id', 'category_id', 'to_account_id')
    @classmethod
    def validate_uuid(cls, v: Optional[str]) -> Optional[str]:
        """Валидация формата UUID."""
        return _validate_uuid(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        """Валидация кода валюты."""
        return _validate_currency(v)


class TransactionUpdate(BaseModel):
    """
    Pydantic модель для обновления транзакции.

    Все поля опциональные - обновляются только указанные.
    """
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(None, gt=Decimal('0'))
    currency: Optional[str] = None
    description: Optional[str] = None
    transaction_date: Optional[date_type] = None
    to_account_id: Optional[str] = None
    exchange_rate: Optional[Decimal] = Field(None, gt=Decimal('0'))

    @field_validator('account_id', 'category_id', 'to_account_id')
    @classmethod
    def validate_uuid(cls, v: Optional[str]) -> Optional[str]:
        """Валидация формата UUID."""
        return _validate_uuid(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        """Валидация кода валюты."""
        return _validate_currency(v)


class RecurringTransactionCreate(BaseModel):
    """
    Pydantic модель для создания повторяющейся транзакции.

    Attributes:
        user_id: Владелец (UUID)
        account_id: Счёт-источник (UUID)
        category_id: Категория (опционально)
        type: Тип транзакции
        amount: Сумма (> 0)
        currency: Валюта (по умолчанию валюта счёта)
        description: Описание
        to_account_id: Счёт назначения (для переводов)
        exchange_rate: Курс конвертации (для переводов)
        frequency: Периодичность
        interval_value: Интервал (>= 1)
        day_of_week: День недели (1-7)
        day_of_month: День месяца (1-31)
        start_date: Дата начала (первое исполнение)
        end_date: Дата окончания (не раньше start_date)
        max_executions: Максимальное количество исполнений (> 0)
    """
    user_id: str
    account_id: str
    category_id: Optional[str] = None
    type: TransactionType
    amount: Decimal = Field(gt=Decimal('0'), description="Сумма транзакции")
    currency: Optional[str] = None
    description: Optional[str] = None
    to_account_id: Optional[str] = None
    exchange_rate: Optional[Decimal] = Field(None, gt=Decimal('0'))
    frequency: RecurringFrequency
    interval_value: int = Field(1, ge=1, description="Интервал должен быть не меньше 1")
    day_of_week: Optional[int] = Field(None, ge=1, le=7)
    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    start_date: date_type
    end_date: Optional[date_type] = None
    max_executions: Optional[int] = Field(None, gt=0, description="Количество исполнений должно быть больше нуля")

    @field_validator('user_id', 'account_id', 'category_id', 'to_account_id')
    @classmethod
    def validate_uuid(cls, v: Optional[str]) -> Optional[str]:
        """Валидация формата UUID."""
        return _validate_uuid(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        """Валидация кода валюты."""
        return _validate_currency(v)

    @field_validator('end_date')
    @classmethod
    def end_date_after_start(cls, v: Optional[date_type], values) -> Optional[date_type]:
        """Проверка, что end_date не раньше start_date (если указан)."""
        if v is not None and 'start_date' in values.data:
            if v < values.data['start_date']:
                raise ValueError('Дата окончания не может быть раньше даты начала')
        return v


class RecurringTransactionUpdate(BaseModel):
    """
    Pydantic модель для обновления повторяющейся транзакции.

    Все поля опциональные - обновляются только указанные.
    """
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(None, gt=Decimal('0'))
    currency: Optional[str] = None
    description: Optional[str] = None
    to_account_id: Optional[str] = None
    exchange_rate: Optional[Decimal] = Field(None, gt=Decimal('0'))
    frequency: Optional[RecurringFrequency] = None
    interval_value: Optional[int] = Field(None, ge=1)
    day_of_week: Optional[int] = Field(None, ge=1, le=7)
    day_of_month: Optional[int] = Field(None, ge=1, le=31)
    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None
    max_executions: Optional[int] = Field(None, gt=0)

    @field_validator('account_id', 'category_id', 'to_account_id')
    @classmethod
    def validate_uuid(cls, v: Optional[str]) -> Optional[str]:
        """Валидация формата UUID."""
        return _validate_uuid(v)

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: Optional[str]) -> Optional[str]:
        """Валидация кода валюты."""
        return _validate_currency(v)


class PaymentPlanCreate(BaseModel):
    """
    Pydantic модель для создания плана погашения по кредитной карте.

    Для INSTALLMENT обязательны total_installments (>= 2), installment_fee_rate
    по умолчанию 0. Для REVOLVING обязательны monthly_payment и interest_rate.

    Attributes:
        transaction_id: Исходная транзакция расхода (UUID)
        payment_type: Тип плана
        total_installments: Количество платежей рассрочки
        installment_fee_rate: Комиссия за каждый платёж (доля от суммы)
        monthly_payment: Ежемесячный платёж (револьвер)
        interest_rate: Годовая ставка (доля, револьвер)
        start_date: Дата начала (по умолчанию дата транзакции)
    """
    transaction_id: str
    payment_type: PaymentType
    total_installments: Optional[int] = None
    installment_fee_rate: Optional[Decimal] = Field(None, ge=Decimal('0'))
    monthly_payment: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    start_date: Optional[date_type] = None

    @field_validator('transaction_id')
    @classmethod
    def validate_uuid(cls, v: str) -> str:
        """Валидация формата UUID."""
        return _validate_uuid(v)

    @field_validator('payment_type')
    @classmethod
    def plan_type_only(cls, v: PaymentType) -> PaymentType:
        """Единовременная оплата не является планом погашения."""
        if v == PaymentType.ONE_TIME:
            raise ValueError('Тип плана должен быть INSTALLMENT или REVOLVING')
        return v


class BulkPaymentPlanCreate(BaseModel):
    """
    Pydantic модель для создания одинаковых планов погашения для нескольких транзакций.

    Параметры плана применяются к каждой транзакции из transaction_ids.
    """
    transaction_ids: List[str] = Field(min_length=1)
    payment_type: PaymentType
    total_installments: Optional[int] = None
    installment_fee_rate: Optional[Decimal] = Field(None, ge=Decimal('0'))
    monthly_payment: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    start_date: Optional[date_type] = None

    @field_validator('transaction_ids')
    @classmethod
    def validate_uuids(cls, v: List[str]) -> List[str]:
        """Валидация формата UUID для каждой транзакции."""
        for item in v:
            _validate_uuid(item)
        return v

    @field_validator('payment_type')
    @classmethod
    def plan_type_only(cls, v: PaymentType) -> PaymentType:
        """Единовременная оплата не является планом погашения."""
        if v == PaymentType.ONE_TIME:
            raise ValueError('Тип плана должен быть INSTALLMENT или REVOLVING')
        return v

    def for_transaction(self, transaction_id: str) -> PaymentPlanCreate:
        """Создаёт запрос на план для одной транзакции."""
        return PaymentPlanCreate(
            transaction_id=transaction_id,
            **self.model_dump(exclude={'transaction_ids'})
        )
