"""
Модуль централизованной обработки ошибок.
Предоставляет инструменты для перехвата и логирования ошибок фоновых задач.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from finance_core.utils.exceptions import (
    ValidationError,
    NotFoundError,
    BusinessLogicError,
    DatabaseError
)

logger = logging.getLogger(__name__)


class ErrorHandler:
    """
    Класс для централизованной обработки ошибок.

    Пользовательские ошибки (валидация, бизнес-правила, отсутствующие сущности)
    логируются как предупреждения, системные ошибки логируются с трассировкой.
    """

    def __init__(self, logger_: Optional[logging.Logger] = None):
        self.logger = logger_ or logger

    def handle(self, exception: Exception, context_message: str = "") -> str:
        """
        Обрабатывает возникшее исключение: логирует его и возвращает сообщение.

        Args:
            exception: Исключение, которое нужно обработать.
            context_message: Дополнительное сообщение о контексте ошибки.

        Returns:
            str: Понятное сообщение об ошибке
        """
        log_message = f"{context_message}: {str(exception)}" if context_message else str(exception)

        if self.is_user_error(exception):
            self.logger.warning(f"User error: {log_message}")
        else:
            self.logger.error(f"System error: {log_message}", exc_info=exception)

        return self._get_user_message(exception)

    @staticmethod
    def is_user_error(exception: Exception) -> bool:
        """Признак ошибки, вызванной данными, а не инфраструктурой."""
        return isinstance(exception, (ValidationError, NotFoundError, BusinessLogicError))

    def _get_user_message(self, exception: Exception) -> str:
        """Возвращает понятное сообщение об ошибке."""
        if isinstance(exception, ValidationError):
            return f"Ошибка ввода: {str(exception)}"
        elif isinstance(exception, NotFoundError):
            return f"Не найдено: {str(exception)}"
        elif isinstance(exception, BusinessLogicError):
            return f"Невозможно выполнить операцию: {str(exception)}"
        elif isinstance(exception, (DatabaseError, SQLAlchemyError)):
            return "Произошла ошибка при работе с базой данных. Попробуйте позже."
        else:
            return f"Произошла непредвиденная ошибка: {str(exception)}"

