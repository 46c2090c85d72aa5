"""
Вспомогательные функции для работы с календарными датами.
"""

from calendar import monthrange
from datetime import date
from typing import Optional

from dateutil.relativedelta import relativedelta


def clamp_day(year: int, month: int, day: int) -> date:
    """
    Возвращает дату с днём, ограниченным длиной месяца.

    Example:
        >>> clamp_day(2025, 2, 31)
        datetime.date(2025, 2, 28)
    """
    return date(year, month, min(day, monthrange(year, month)[1]))


def add_months(start: date, months: int, day: Optional[int] = None) -> date:
    """
    Сдвигает дату на указанное количество месяцев.

    Если day задан, в результирующем месяце берётся этот день (ограниченный
    длиной месяца), иначе relativedelta сохраняет день исходной даты.
    """
    shifted = start + relativedelta(months=months)
    if day is None:
        return shifted
    return clamp_day(shifted.year, shifted.month, day)


def is_last_day_of_month(value: date) -> bool:
    return value.day == monthrange(value.year, value.month)[1]
