"""
Модуль конфигурации Finance Core.

Содержит настройки:
- Пути к пользовательским данным (БД, логи, файл настроек)
- Настройки логирования
- Валюта по умолчанию
- Расписание фоновых задач планировщика
- Персистентность настроек (загрузка/сохранение)
"""

import os
import json
import logging
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)

# Расписание задач по умолчанию (время в формате HH:MM)
DEFAULT_JOB_TIMES: Dict[str, str] = {
    "recurring": "00:05",
    "auto_payoff": "00:10",
    "overdue_sweep": "00:30",
    "due_reminders": "08:00",
    "overdue_notifications": "09:00",
}


class Config:
    """
    Класс конфигурации приложения.
    Реализует паттерн Singleton для доступа к настройкам из любой части приложения.

    Все пользовательские данные (БД, логи, настройки) хранятся в директории
    ~/.finance_core_data/. Путь можно переопределить переменной окружения
    FINANCE_CORE_DATA_DIR.
    """

    _instance = None

    # Константы приложения
    APP_NAME = "Finance Core"
    VERSION = "1.0.0"

    @staticmethod
    def get_user_data_dir() -> Path:
        """
        Возвращает путь к директории пользовательских данных.

        Создаёт директорию и поддиректорию logs/ при необходимости.

        Returns:
            Path: Путь к директории данных
        """
        override = os.environ.get("FINANCE_CORE_DATA_DIR")
        data_dir = Path(override) if override else Path.home() / ".finance_core_data"

        data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Директория пользовательских данных: {data_dir}")

        logs_dir = data_dir / "logs"
        logs_dir.mkdir(exist_ok=True)
        logger.debug(f"Директория логов: {logs_dir}")

        return data_dir

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True

        self.user_data_dir = self.get_user_data_dir()

        # Пути к файлам
        self.db_path: str = str(self.user_data_dir / "finance.db")
        self.config_file: str = str(self.user_data_dir / "config.json")
        self.log_file: str = str(self.user_data_dir / "logs" / "finance_core.log")

        # Настройки логирования
        self.log_level: str = "INFO"

        self.default_currency: str = "VND"

        # Настройки планировщика
        self.job_times: Dict[str, str] = dict(DEFAULT_JOB_TIMES)
        self.reminder_days: int = 3
        self.upcoming_days: int = 7
        self.job_failure_threshold: int = 5
        self.job_failure_window_hours: int = 1
        self.misfire_grace_time: int = 3600

        self.load()

    def load(self) -> None:
        """
        Загружает настройки из файла конфигурации.

        Если файл не существует, используются значения по умолчанию.
        """
        if not os.path.exists(self.config_file):
            logger.info(f"Файл конфигурации не найден, используются значения по умолчанию: {self.config_file}")
            return

        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            self.log_level = data.get("log_level", "INFO")
            self.default_currency = data.get("default_currency", "VND")

            job_times = dict(DEFAULT_JOB_TIMES)
            job_times.update(data.get("job_times", {}))
            self.job_times = job_times

            self.reminder_days = data.get("reminder_days", 3)
            self.upcoming_days = data.get("upcoming_days", 7)
            self.job_failure_threshold = data.get("job_failure_threshold", 5)
            self.job_failure_window_hours = data.get("job_failure_window_hours", 1)
            self.misfire_grace_time = data.get("misfire_grace_time", 3600)

            logger.info(f"Конфигурация загружена из {self.config_file}")

        except Exception as e:
            logger.error(f"Ошибка при загрузке конфигурации: {e}")

    def save(self) -> None:
        """Сохраняет текущие настройки в файл конфигурации."""
        data = {
            "log_level": self.log_level,
            "default_currency": self.default_currency,
            "job_times": self.job_times,
            "reminder_days": self.reminder_days,
            "upcoming_days": self.upcoming_days,
            "job_failure_threshold": self.job_failure_threshold,
            "job_failure_window_hours": self.job_failure_window_hours,
            "misfire_grace_time": self.misfire_grace_time,
        }

        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=4, ensure_ascii=False)
            logger.info(f"Конфигурация сохранена в {self.config_file}")
        except Exception as e:
            logger.error(f"Ошибка при сохранении конфигурации: {e}")

    def job_time(self, job_name: str) -> tuple:
        """
        Возвращает время запуска задачи в виде (час, минута).

        Args:
            job_name: Имя задачи из DEFAULT_JOB_TIMES

        Raises:
            ValueError: Если время задано в неверном формате
        """
        value = self.job_times.get(job_name, DEFAULT_JOB_TIMES[job_name])
        hour, minute = value.split(":")
        hour, minute = int(hour), int(minute)
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ValueError(f"Неверное время запуска задачи {job_name}: {value}")
        return hour, minute


# Глобальный экземпляр конфигурации
settings = Config()
