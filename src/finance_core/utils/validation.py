import uuid
import logging

from finance_core.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

def validate_uuid_format(id_value: str, field_name: str = "ID") -> None:
    """
    Валидация формата UUID.

    Args:
        id_value: Значение для проверки
        field_name: Название поля для сообщения об ошибке

    Raises:
        ValidationError: Если формат невалидный
    """
    try:
        uuid.UUID(str(id_value))
    except ValueError:
        error_msg = f'Невалидный формат {field_name}: {id_value}. Ожидается UUID формата: 550e8400-e29b-41d4-a716-446655440000'
        logger.error(error_msg)
        raise ValidationError(error_msg)


def validate_day_of_month(day: int, field_name: str = "day") -> None:
    """
    Проверяет, что день месяца лежит в диапазоне 1-31.

    Raises:
        ValidationError: Если значение вне диапазона
    """
    if day is None or not 1 <= day <= 31:
        error_msg = f'{field_name} должен быть в диапазоне 1-31, получено: {day}'
        logger.error(error_msg)
        raise ValidationError(error_msg)
