"""
Точка входа для запуска планировщика через python -m finance_core
"""
import logging

from finance_core.database import init_db
from finance_core.jobs.scheduler import init_scheduler, stop_scheduler
from finance_core.services.collaborators import LoggingNotifier
from finance_core.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    setup_logging()
    init_db()

    scheduler = init_scheduler(blocking=True, notifier=LoggingNotifier())
    logger.info("Запуск планировщика Finance Core (Ctrl+C для остановки)")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Получен сигнал остановки")
    finally:
        stop_scheduler()


if __name__ == "__main__":
    main()
