"""
Тесты инфраструктуры: конфигурация, логирование, обработка ошибок,
инициализация БД и внешние зависимости (конвертер, уведомления).
"""

from datetime import date
from decimal import Decimal
import json
import logging

import pytest

from finance_core.config import settings, DEFAULT_JOB_TIMES
from finance_core.database import init_db, get_db_session, close_db
from finance_core.models import AccountCreate, AccountType, CategoryDB, NotificationKind, PaymentType
from finance_core.services.account_service import create_account
from finance_core.services.collaborators import LoggingNotifier, StaticRateConverter
from finance_core.utils.error_handler import ErrorHandler
from finance_core.utils.exceptions import (
    ValidationError, NotFoundError, StateConflictError, DatabaseError
)
from finance_core.utils.logger import JsonFormatter


class TestConfig:
    """Тесты настроек."""

    def test_default_job_times(self):
        assert settings.job_time("recurring") == (0, 5)
        assert settings.job_time("overdue_notifications") == (9, 0)

    def test_invalid_job_time(self, monkeypatch):
        monkeypatch.setitem(settings.job_times, "recurring", "25:00")
        with pytest.raises(ValueError):
            settings.job_time("recurring")

    def test_save_and_load(self, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "config_file", str(tmp_path / "config.json"))
        monkeypatch.setattr(settings, "reminder_days", 5)
        monkeypatch.setattr(settings, "job_times", dict(DEFAULT_JOB_TIMES, auto_payoff="01:30"))

        settings.save()
        settings.reminder_days = 1
        settings.job_times = dict(DEFAULT_JOB_TIMES)
        settings.load()

        assert settings.reminder_days == 5
        assert settings.job_time("auto_payoff") == (1, 30)
        assert settings.job_time("recurring") == (0, 5)

    def test_account_currency_defaults_to_setting(self, db_session, user_id, monkeypatch):
        monkeypatch.setattr(settings, "default_currency", "USD")

        account = create_account(db_session, AccountCreate(user_id=user_id, name="Кошелёк", type=AccountType.CASH))

        assert account.currency == "USD"


class TestJsonFormatter:
    """Тесты JSON форматтера логов."""

    def test_extra_fields_serialized(self):
        record = logging.LogRecord(
            name="finance_core.test", level=logging.INFO, pathname=__file__, lineno=1,
            msg="Платёж %s", args=("#1",), exc_info=None,
        )
        record.amount = Decimal("343333.3333")
        record.due_date = date(2025, 1, 15)
        record.payment_type = PaymentType.INSTALLMENT
        record.payload = {"days": 2, "amount": Decimal("1")}

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "Платёж #1"
        assert data["level"] == "INFO"
        assert data["amount"] == "343333.3333"
        assert data["due_date"] == "2025-01-15"
        assert data["payment_type"] == "installment"
        assert data["payload"] == {"days": 2, "amount": "1"}


class TestErrorHandler:
    """Тесты централизованной обработки ошибок."""

    def test_user_error_logged_as_warning(self, caplog):
        handler = ErrorHandler()
        with caplog.at_level(logging.WARNING):
            message = handler.handle(ValidationError("сумма"), "create")

        assert message == "Ошибка ввода: сумма"
        assert caplog.records[-1].levelno == logging.WARNING

    def test_state_conflict_is_user_error(self):
        assert ErrorHandler.is_user_error(StateConflictError("x"))
        assert ErrorHandler.is_user_error(NotFoundError("x"))
        assert not ErrorHandler.is_user_error(DatabaseError("x"))

    def test_system_error_logged_with_traceback(self, caplog):
        handler = ErrorHandler()
        with caplog.at_level(logging.ERROR):
            message = handler.handle(DatabaseError("disk full"))

        assert "базой данных" in message
        assert caplog.records[-1].levelno == logging.ERROR
        assert caplog.records[-1].exc_info is not None


class TestDatabase:
    """Тесты инициализации БД."""

    def test_init_creates_system_categories_once(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'finance.db'}"
        try:
            init_db(url)
            init_db(url)
            with get_db_session() as session:
                categories = session.query(CategoryDB).filter(CategoryDB.is_system.is_(True)).all()
            assert len(categories) == 8
        finally:
            close_db()

    def test_session_requires_init(self):
        close_db()
        with pytest.raises(RuntimeError):
            with get_db_session():
                pass


class TestCollaborators:
    """Тесты конвертера валют и уведомлений."""

    def test_converter_direct_and_inverse(self):
        converter = StaticRateConverter({("USD", "VND"): Decimal("25000")})

        assert converter.convert(Decimal("2"), "usd", "VND") == (Decimal("50000.0000"), Decimal("25000"))
        assert converter.get_rate("VND", "USD") == Decimal("0.000040")
        assert converter.get_rate("EUR", "EUR") == Decimal("1")

    def test_converter_missing_pair(self):
        converter = StaticRateConverter()
        with pytest.raises(ValidationError):
            converter.convert(Decimal("1"), "USD", "EUR")

    def test_converter_rejects_non_positive_rate(self):
        with pytest.raises(ValidationError):
            StaticRateConverter({("USD", "VND"): Decimal("0")})

    def test_logging_notifier_records_notifications(self):
        notifier = LoggingNotifier()

        notifier.notify("user-1", NotificationKind.CREDIT_CARD_PAYMENT_DUE, {"payment_number": 1})

        assert notifier.sent == [("user-1", NotificationKind.CREDIT_CARD_PAYMENT_DUE, {"payment_number": 1})]
