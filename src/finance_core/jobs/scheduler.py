"""
Модуль планировщика фоновых задач (APScheduler).

Планировщик запускает пять ежедневных задач. У каждой задачи свой запрос
отбора, каждый элемент обрабатывается в отдельной единице работы:
- recurring (00:05) - исполнение повторяющихся транзакций
- auto_payoff (00:10) - автопогашение кредитных карт в день выписки
- overdue_sweep (00:30) - пометка просроченных платежей планов
- due_reminders (08:00) - напоминания о скорых платежах
- overdue_notifications (09:00) - уведомления о просроченных платежах

Время запуска настраивается через settings.job_times.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from finance_core.config import settings
from finance_core.jobs.tasks import (
    run_recurring_job,
    run_auto_payoff_job,
    run_overdue_sweep_job,
    run_due_reminders_job,
    run_overdue_notifications_job,
)
from finance_core.services.collaborators import CurrencyConverter, Notifier

logger = logging.getLogger(__name__)

# Текущий экземпляр планировщика
scheduler: Optional[BaseScheduler] = None

# Время недавних сбоев по каждой задаче
_job_failures: Dict[str, List[datetime]] = defaultdict(list)

JOB_NAMES = {
    "recurring": "Повторяющиеся транзакции",
    "auto_payoff": "Автопогашение кредитных карт",
    "overdue_sweep": "Пометка просроченных платежей",
    "due_reminders": "Напоминания о платежах",
    "overdue_notifications": "Уведомления о просрочке",
}


def job_listener(event) -> None:
    """
    Обработчик событий выполнения задач.

    Сбои учитываются в скользящем окне settings.job_failure_window_hours.
    При достижении порога settings.job_failure_threshold сбой логируется
    как ошибка. Успешный запуск обнуляет счётчик задачи.
    """
    job_id = event.job_id

    if not event.exception:
        if job_id in _job_failures:
            _job_failures[job_id].clear()
        return

    now = datetime.now()
    cutoff = now - timedelta(hours=settings.job_failure_window_hours)
    failures = [ts for ts in _job_failures[job_id] if ts > cutoff]
    failures.append(now)
    _job_failures[job_id] = failures

    if len(failures) >= settings.job_failure_threshold:
        logger.error(
            f"Задача {job_id} завершилась ошибкой {len(failures)} раз за "
            f"{settings.job_failure_window_hours} ч. Последняя ошибка: {event.exception}"
        )
    else:
        logger.warning(
            f"Ошибка задачи {job_id} ({len(failures)}/{settings.job_failure_threshold}): {event.exception}"
        )


def _job_table(
    notifier: Optional[Notifier],
    converter: Optional[CurrencyConverter]
) -> List[Tuple[str, Callable[..., Any], Dict[str, Any]]]:
    return [
        ("recurring", run_recurring_job, {"converter": converter}),
        ("auto_payoff", run_auto_payoff_job, {"converter": converter}),
        ("overdue_sweep", run_overdue_sweep_job, {}),
        ("due_reminders", run_due_reminders_job, {"notifier": notifier}),
        ("overdue_notifications", run_overdue_notifications_job, {"notifier": notifier}),
    ]


def init_scheduler(
    blocking: bool = False,
    notifier: Optional[Notifier] = None,
    converter: Optional[CurrencyConverter] = None
) -> BaseScheduler:
    """
    Создаёт планировщик и регистрирует все задачи.

    Задачи не перекрываются (max_instances=1), пропущенные запуски
    схлопываются в один (coalesce).

    Args:
        blocking: BlockingScheduler для запуска в основном потоке процесса,
            иначе BackgroundScheduler
        notifier: Сервис уведомлений для задач напоминаний
        converter: Конвертер валют для переводов между счетами в разных валютах

    Returns:
        BaseScheduler: Настроенный (ещё не запущенный) планировщик

    Raises:
        ValueError: Если время запуска задачи в settings.job_times невалидно
    """
    global scheduler

    scheduler_cls = BlockingScheduler if blocking else BackgroundScheduler
    scheduler = scheduler_cls(job_defaults={
        "coalesce": True,
        "max_instances": 1,
        "misfire_grace_time": settings.misfire_grace_time,
    })
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    for job_id, func, kwargs in _job_table(notifier, converter):
        hour, minute = settings.job_time(job_id)
        scheduler.add_job(
            func,
            CronTrigger(hour=hour, minute=minute),
            kwargs=kwargs,
            id=job_id,
            name=JOB_NAMES[job_id],
            replace_existing=True,
        )
        logger.debug(f"Зарегистрирована задача {job_id} на {hour:02d}:{minute:02d}")

    logger.info(f"Планировщик инициализирован, задач: {len(JOB_NAMES)}")
    return scheduler


def start_scheduler() -> None:
    """Запускает планировщик, если он создан и ещё не запущен."""
    if scheduler and not scheduler.running:
        scheduler.start()
        logger.info("Планировщик запущен")


def stop_scheduler() -> None:
    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("Планировщик остановлен")


def get_scheduler() -> Optional[BaseScheduler]:
    return scheduler


def get_job_health_status() -> dict:
    """
    Возвращает состояние задач планировщика.

    Returns:
        dict: job_id -> {name, next_run (ISO или None), recent_failures, healthy}
    """
    if not scheduler:
        return {}

    status = {}
    for job in scheduler.get_jobs():
        recent_failures = len(_job_failures.get(job.id, []))
        next_run = getattr(job, "next_run_time", None)
        status[job.id] = {
            "name": job.name,
            "next_run": next_run.isoformat() if next_run else None,
            "recent_failures": recent_failures,
            "healthy": recent_failures < settings.job_failure_threshold,
        }
    return status
