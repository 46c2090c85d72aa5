"""Фоновые задачи и планировщик."""

from finance_core.jobs.tasks import (
    BatchResult,
    run_recurring_job,
    run_auto_payoff_job,
    run_overdue_sweep_job,
    run_due_reminders_job,
    run_overdue_notifications_job,
)

__all__ = [
    "BatchResult",
    "run_recurring_job",
    "run_auto_payoff_job",
    "run_overdue_sweep_job",
    "run_due_reminders_job",
    "run_overdue_notifications_job",
]
