"""
Модуль пользовательских исключений Finance Core.
"""

class FinanceCoreError(Exception):
    """Базовый класс для всех исключений приложения."""
    pass

class ValidationError(FinanceCoreError):
    """Исключение при ошибке валидации входных данных. Отклоняется до любых изменений."""
    pass

class NotFoundError(FinanceCoreError):
    """Исключение когда счёт, транзакция, правило, план или платёж не найдены."""
    pass

class BusinessLogicError(FinanceCoreError):
    """Исключение при нарушении бизнес-правил."""
    pass

class StateConflictError(BusinessLogicError):
    """Исключение при недопустимом переходе состояния (например, пауза отменённого правила)."""
    pass

class DatabaseError(FinanceCoreError):
    """Исключение при ошибках работы с базой данных."""
    pass
