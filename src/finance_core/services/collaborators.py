"""
Внешние зависимости ядра: конвертер валют и сервис уведомлений.

Ядро не получает курсы и не доставляет уведомления само. Оно потребляет
их через протоколы CurrencyConverter и Notifier.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple
import logging

from finance_core.models.enums import NotificationKind
from finance_core.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

RATE_QUANT = Decimal("0.000001")


class CurrencyConverter(Protocol):
    """Конвертер валют: чистая функция convert(amount, from, to)."""

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Tuple[Decimal, Decimal]:
        """
        Возвращает (сконвертированная сумма, курс).

        Raises:
            ValidationError: Если курс для пары валют не найден
        """
        ...


class Notifier(Protocol):
    """Сервис уведомлений (доставка не гарантирует exactly-once)."""

    def notify(self, user_id: str, kind: NotificationKind, payload: Mapping[str, Any]) -> None:
        ...


class StaticRateConverter:
    """
    Конвертер по фиксированной таблице курсов.

    Обратный курс вычисляется автоматически, если задан только прямой.

    Example:
        >>> converter = StaticRateConverter({("USD", "VND"): Decimal("25000")})
        >>> converter.convert(Decimal("2"), "USD", "VND")
        (Decimal('50000.0000'), Decimal('25000'))
    """

    def __init__(self, rates: Optional[Dict[Tuple[str, str], Decimal]] = None):
        self._rates: Dict[Tuple[str, str], Decimal] = {}
        for (src, dst), rate in (rates or {}).items():
            self.set_rate(src, dst, rate)

    def set_rate(self, from_currency: str, to_currency: str, rate: Decimal) -> None:
        rate = Decimal(rate)
        if rate <= 0:
            raise ValidationError(f"Курс должен быть положительным: {from_currency}->{to_currency}={rate}")
        self._rates[(from_currency.upper(), to_currency.upper())] = rate

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        src, dst = from_currency.upper(), to_currency.upper()
        if src == dst:
            return Decimal("1")
        if (src, dst) in self._rates:
            return self._rates[(src, dst)]
        if (dst, src) in self._rates:
            return (Decimal("1") / self._rates[(dst, src)]).quantize(RATE_QUANT, rounding=ROUND_HALF_UP)
        raise ValidationError(f"Курс {src}->{dst} не найден")

    def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Tuple[Decimal, Decimal]:
        rate = self.get_rate(from_currency, to_currency)
        converted = (Decimal(amount) * rate).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
        return converted, rate


class LoggingNotifier:
    """
    Notifier, записывающий уведомления в структурированный лог.

    Отправленные уведомления сохраняются в sent (удобно для проверки).
    """

    def __init__(self, logger_: Optional[logging.Logger] = None):
        self.logger = logger_ or logger
        self.sent = []

    def notify(self, user_id: str, kind: NotificationKind, payload: Mapping[str, Any]) -> None:
        self.sent.append((user_id, kind, dict(payload)))
        self.logger.info(
            f"Уведомление {kind.value} для пользователя {user_id}",
            extra={"user_id": user_id, "kind": kind, "payload": dict(payload)},
        )
