"""
Конфигурация pytest для тестов finance_core.
"""
from contextlib import contextmanager
import os
import tempfile
import uuid

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Настройки и логи тестов не пишутся в домашнюю директорию
os.environ.setdefault("FINANCE_CORE_DATA_DIR", tempfile.mkdtemp(prefix="finance_core_test_"))

from finance_core.models import Base


def _enable_foreign_keys(engine):
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Включает поддержку foreign keys в SQLite."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
def db_session():
    """
    Централизованная фикстура для создания временной БД и сессии.
    Автоматически закрывает соединение после теста.
    """
    engine = create_engine("sqlite:///:memory:")
    _enable_foreign_keys(engine)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()

    yield session

    # Закрываем сессию и соединение
    session.close()
    engine.dispose()


@pytest.fixture
def session_factory():
    """
    Фабрика сессий для тестов фоновых задач.

    Все сессии работают с одной in-memory БД (StaticPool), каждая сессия
    ведёт себя как get_db_session(): откат при ошибке, закрытие в конце.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_foreign_keys(engine)
    Base.metadata.create_all(engine)
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    @contextmanager
    def factory():
        session = TestSessionLocal()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    yield factory

    engine.dispose()


@pytest.fixture
def user_id():
    """ID тестового пользователя."""
    return str(uuid.uuid4())
