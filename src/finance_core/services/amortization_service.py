"""
Движок амортизации для планов погашения по кредитной карте.

Содержит чистые функции (без обращения к БД):
- round4: округление денежных сумм до 4 знаков (half-up)
- calculate_first_billing_date: дата первого платежа по дню выписки
- calculate_installment_schedule: график рассрочки с фиксированной комиссией
- calculate_revolving_schedule: график револьверного погашения с процентами
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
import logging

from finance_core.models.enums import PaymentType
from finance_core.utils.dates import clamp_day, add_months
from finance_core.utils.exceptions import ValidationError
from finance_core.utils.validation import validate_day_of_month

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.0001")
MONTHLY_RATE_QUANT = Decimal("0.00000001")
MAX_REVOLVING_MONTHS = 120
DEFAULT_BILLING_DAY = 1


def round4(value: Decimal) -> Decimal:
    """
    Округляет сумму до 4 знаков после запятой (half-up).

    Example:
        >>> round4(Decimal("343333.33335"))
        Decimal('343333.3334')
    """
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ScheduledPayment:
    """
    Рассчитанный платёж графика.

    Attributes:
        payment_number: Номер платежа (с 1)
        principal_amount: Основной долг
        fee_amount: Комиссия
        interest_amount: Проценты
        total_amount: Итого к оплате
        remaining_after: Остаток после платежа
        due_date: Срок платежа
    """
    payment_number: int
    principal_amount: Decimal
    fee_amount: Decimal
    interest_amount: Decimal
    total_amount: Decimal
    remaining_after: Decimal
    due_date: date


@dataclass
class AmortizationSchedule:
    """
    Результат расчёта графика погашения.

    opening_balance - остаток плана до первого платежа: для рассрочки это сумма
    с комиссией, для револьвера это исходная сумма (проценты начисляются на остаток).
    """
    payment_type: PaymentType
    original_amount: Decimal
    total_amount_with_fee: Decimal
    opening_balance: Decimal
    installment_amount: Optional[Decimal] = None
    fee_per_installment: Optional[Decimal] = None
    monthly_rate: Optional[Decimal] = None
    payments: List[ScheduledPayment] = field(default_factory=list)

    @property
    def total_installments(self) -> int:
        return len(self.payments)

    @property
    def total_fee(self) -> Decimal:
        return sum((p.fee_amount for p in self.payments), Decimal("0"))

    @property
    def total_interest(self) -> Decimal:
        return sum((p.interest_amount for p in self.payments), Decimal("0"))

    @property
    def first_payment_date(self) -> Optional[date]:
        return self.payments[0].due_date if self.payments else None


def _check_billing_day(billing_day: int) -> None:
    validate_day_of_month(billing_day, "День выписки")


def calculate_first_billing_date(start_date: date, billing_day: int) -> date:
    """
    Вычисляет дату первого платежа.

    Берётся день выписки в месяце start_date (с ограничением по длине месяца).
    Если эта дата не позже start_date, берётся день выписки следующего месяца.

    Args:
        start_date: Дата начала плана
        billing_day: День выписки (1-31)

    Returns:
        date: Дата первого платежа, строго после start_date

    Example:
        >>> calculate_first_billing_date(date(2025, 1, 15), 20)
        datetime.date(2025, 1, 20)
        >>> calculate_first_billing_date(date(2025, 1, 31), 31)
        datetime.date(2025, 2, 28)
    """
    _check_billing_day(billing_day)
    candidate = clamp_day(start_date.year, start_date.month, billing_day)
    if candidate <= start_date:
        candidate = add_months(start_date, 1, day=billing_day)
    return candidate


def _due_date(first_billing_date: date, offset: int) -> date:
    return add_months(first_billing_date, offset)


def calculate_installment_schedule(
    original_amount: Decimal,
    total_installments: int,
    fee_rate: Decimal,
    start_date: date,
    billing_day: int = DEFAULT_BILLING_DAY
) -> AmortizationSchedule:
    """
    Рассчитывает график рассрочки.

    Комиссия начисляется на исходную сумму за каждый платёж:
    fee = round4(original * fee_rate). Все платежи, кроме последнего, равны
    round4(total_with_fee / n). Последний платёж забирает остаток округления,
    поэтому сумма платежей в точности равна total_with_fee, а сумма основного
    долга равна original_amount.

    Args:
        original_amount: Исходная сумма расхода (> 0)
        total_installments: Количество платежей (>= 2)
        fee_rate: Комиссия за платёж в долях (>= 0), например 0.01
        start_date: Дата начала плана
        billing_day: День выписки карты

    Returns:
        AmortizationSchedule: График платежей

    Raises:
        ValidationError: При невалидных параметрах

    Example:
        >>> s = calculate_installment_schedule(Decimal("1000000"), 3, Decimal("0.01"), date(2025, 1, 10), 15)
        >>> s.total_amount_with_fee
        Decimal('1030000.0000')
    """
    original_amount = Decimal(original_amount)
    fee_rate = Decimal(fee_rate)

    if original_amount <= 0:
        raise ValidationError(f"Сумма рассрочки должна быть положительной: {original_amount}")
    if total_installments is None or total_installments < 2:
        raise ValidationError(f"Количество платежей рассрочки должно быть не меньше 2: {total_installments}")
    if fee_rate < 0:
        raise ValidationError(f"Ставка комиссии не может быть отрицательной: {fee_rate}")
    _check_billing_day(billing_day)

    n = total_installments
    fee_per = round4(original_amount * fee_rate)
    total_fee = fee_per * n
    total_with_fee = round4(original_amount + total_fee)
    installment_amount = round4(total_with_fee / n)
    principal_per = round4(original_amount / n)

    logger.debug(
        f"Рассрочка: сумма={original_amount}, платежей={n}, комиссия за платёж={fee_per}, "
        f"итого={total_with_fee}"
    )

    first_date = calculate_first_billing_date(start_date, billing_day)
    payments: List[ScheduledPayment] = []
    paid_total = Decimal("0")
    paid_principal = Decimal("0")

    for number in range(1, n + 1):
        if number < n:
            # На очень малых суммах округлённые доли могут превысить остаток
            principal = min(principal_per, original_amount - paid_principal)
            total = min(installment_amount, total_with_fee - paid_total)
        else:
            principal = original_amount - paid_principal
            total = total_with_fee - paid_total
        paid_principal += principal
        paid_total += total
        remaining = total_with_fee - paid_total

        payments.append(ScheduledPayment(
            payment_number=number,
            principal_amount=principal,
            fee_amount=fee_per,
            interest_amount=Decimal("0"),
            total_amount=total,
            remaining_after=remaining,
            due_date=_due_date(first_date, number - 1),
        ))

    return AmortizationSchedule(
        payment_type=PaymentType.INSTALLMENT,
        original_amount=original_amount,
        total_amount_with_fee=total_with_fee,
        opening_balance=total_with_fee,
        installment_amount=installment_amount,
        fee_per_installment=fee_per,
        payments=payments,
    )


def calculate_revolving_schedule(
    original_amount: Decimal,
    monthly_payment: Decimal,
    annual_interest_rate: Decimal,
    start_date: date,
    billing_day: int = DEFAULT_BILLING_DAY
) -> AmortizationSchedule:
    """
    Рассчитывает график револьверного погашения.

    Месячная ставка = годовая / 12 (8 знаков). Каждый месяц начисляются проценты
    на остаток, платёж сначала гасит проценты, затем основной долг. Последний
    платёж гасит остаток целиком. Расчёт ограничен 120 месяцами.

    Args:
        original_amount: Исходная сумма (> 0)
        monthly_payment: Ежемесячный платёж (> 0)
        annual_interest_rate: Годовая ставка в долях (>= 0), например 0.24
        start_date: Дата начала плана
        billing_day: День выписки карты

    Returns:
        AmortizationSchedule: График платежей

    Raises:
        ValidationError: Если платёж не покрывает проценты первого месяца
            или долг не погашается за 120 месяцев
    """
    original_amount = Decimal(original_amount)
    monthly_payment = Decimal(monthly_payment)
    annual_interest_rate = Decimal(annual_interest_rate)

    if original_amount <= 0:
        raise ValidationError(f"Сумма должна быть положительной: {original_amount}")
    if monthly_payment <= 0:
        raise ValidationError(f"Ежемесячный платёж должен быть положительным: {monthly_payment}")
    if annual_interest_rate < 0:
        raise ValidationError(f"Годовая ставка не может быть отрицательной: {annual_interest_rate}")
    _check_billing_day(billing_day)

    monthly_rate = (annual_interest_rate / 12).quantize(MONTHLY_RATE_QUANT, rounding=ROUND_HALF_UP)

    if monthly_payment <= original_amount * monthly_rate:
        raise ValidationError(
            f"Ежемесячный платёж {monthly_payment} не покрывает проценты "
            f"({round4(original_amount * monthly_rate)} в месяц)"
        )

    first_date = calculate_first_billing_date(start_date, billing_day)
    payments: List[ScheduledPayment] = []
    remaining = original_amount

    for number in range(1, MAX_REVOLVING_MONTHS + 1):
        interest = round4(remaining * monthly_rate)

        if remaining + interest <= monthly_payment:
            principal = remaining
            total = remaining + interest
            remaining = Decimal("0")
        else:
            principal = monthly_payment - interest
            total = monthly_payment
            remaining = remaining - principal

        payments.append(ScheduledPayment(
            payment_number=number,
            principal_amount=principal,
            fee_amount=Decimal("0"),
            interest_amount=interest,
            total_amount=total,
            remaining_after=remaining,
            due_date=_due_date(first_date, number - 1),
        ))

        if remaining == 0:
            break

    if remaining > 0:
        raise ValidationError(
            f"Долг не погашается за {MAX_REVOLVING_MONTHS} месяцев при платеже {monthly_payment}, "
            f"остаток {round4(remaining)}"
        )

    total_with_interest = sum((p.total_amount for p in payments), Decimal("0"))
    logger.debug(
        f"Револьвер: сумма={original_amount}, платёж={monthly_payment}, "
        f"месяцев={len(payments)}, итого={total_with_interest}"
    )

    return AmortizationSchedule(
        payment_type=PaymentType.REVOLVING,
        original_amount=original_amount,
        total_amount_with_fee=total_with_interest,
        opening_balance=original_amount,
        monthly_rate=monthly_rate,
        payments=payments,
    )
