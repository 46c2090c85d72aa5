__all__ = [
    "round4",
    "calculate_first_billing_date",
    "calculate_installment_schedule",
    "calculate_revolving_schedule",
    "AmortizationSchedule",
    "ScheduledPayment",
    "apply_effect",
    "apply_transaction_effects",
    "transfer_credit_amount",
    "lock_account",
    "reset_balance",
    "create_account",
    "get_account",
    "get_accounts",
    "record_transaction",
    "create_transaction",
    "update_transaction",
    "delete_transaction",
    "get_transaction",
    "get_transactions",
    "calculate_next_execution_date",
    "create_recurring",
    "update_recurring",
    "delete_recurring",
    "get_recurring",
    "get_recurring_list",
    "get_upcoming_recurring",
    "pause_recurring",
    "resume_recurring",
    "cancel_recurring",
    "find_due_recurring",
    "execute_recurring",
    "execute_due_recurring",
    "create_payment_plan",
    "create_payment_plans_bulk",
    "mark_payment_paid",
    "cancel_payment_plan",
    "mark_overdue_payments",
    "get_payment_plan",
    "get_payment_plans",
    "get_plan_payments",
    "get_upcoming_payments",
    "find_payments_due_soon",
    "find_overdue_payments",
    "BulkPlanResult",
    "find_credit_cards_due",
    "process_credit_card_payoff",
    "CurrencyConverter",
    "Notifier",
    "StaticRateConverter",
    "LoggingNotifier",
]

from finance_core.services.amortization_service import (
    round4,
    calculate_first_billing_date,
    calculate_installment_schedule,
    calculate_revolving_schedule,
    AmortizationSchedule,
    ScheduledPayment,
)

from finance_core.services.ledger_service import (
    apply_effect,
    apply_transaction_effects,
    transfer_credit_amount,
    lock_account,
    reset_balance,
)

from finance_core.services.account_service import (
    create_account,
    get_account,
    get_accounts,
)

from finance_core.services.transaction_service import (
    record_transaction,
    create_transaction,
    update_transaction,
    delete_transaction,
    get_transaction,
    get_transactions,
)

from finance_core.services.recurring_service import (
    calculate_next_execution_date,
    create_recurring,
    update_recurring,
    delete_recurring,
    get_recurring,
    get_recurring_list,
    get_upcoming_recurring,
    pause_recurring,
    resume_recurring,
    cancel_recurring,
    find_due_recurring,
    execute_recurring,
    execute_due_recurring,
)

from finance_core.services.payment_plan_service import (
    create_payment_plan,
    create_payment_plans_bulk,
    mark_payment_paid,
    cancel_payment_plan,
    mark_overdue_payments,
    get_payment_plan,
    get_payment_plans,
    get_plan_payments,
    get_upcoming_payments,
    find_payments_due_soon,
    find_overdue_payments,
    BulkPlanResult,
)

from finance_core.services.auto_payoff_service import (
    find_credit_cards_due,
    process_credit_card_payoff,
)

from finance_core.services.collaborators import (
    CurrencyConverter,
    Notifier,
    StaticRateConverter,
    LoggingNotifier,
)
