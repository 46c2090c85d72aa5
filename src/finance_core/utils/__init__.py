"""Утилиты приложения."""

from finance_core.utils.logger import setup_logging, get_logger
from finance_core.utils.error_handler import ErrorHandler
from finance_core.utils.exceptions import (
    FinanceCoreError,
    ValidationError,
    NotFoundError,
    BusinessLogicError,
    StateConflictError,
    DatabaseError,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "ErrorHandler",
    "FinanceCoreError",
    "ValidationError",
    "NotFoundError",
    "BusinessLogicError",
    "StateConflictError",
    "DatabaseError",
]
