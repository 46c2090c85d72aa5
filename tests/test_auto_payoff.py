"""
Тесты автоматического погашения кредитных карт.
"""

from datetime import date
from decimal import Decimal
import uuid

import pytest

from finance_core.models import AccountType, PayoffOutcome, TransactionType
from finance_core.services.auto_payoff_service import find_credit_cards_due, process_credit_card_payoff
from finance_core.services.collaborators import StaticRateConverter
from finance_core.services.transaction_service import get_transactions
from finance_core.utils.exceptions import NotFoundError
from test_factories import create_test_account, create_test_credit_card


TODAY = date(2025, 1, 15)


def _card_with_linked(session, user_id, card_balance, linked_balance, limit=Decimal("5000000")):
    linked = create_test_account(session, user_id, "Банк", AccountType.BANK, balance=linked_balance)
    card = create_test_credit_card(
        session, user_id, credit_limit=limit, balance=card_balance,
        billing_day=TODAY.day, linked_account_id=linked.id
    )
    return card, linked


class TestFindCreditCardsDue:
    """Тесты выбора карт для автопогашения."""

    def test_billing_day_matches_today(self, db_session, user_id):
        due = create_test_credit_card(db_session, user_id, "Due", billing_day=15)
        create_test_credit_card(db_session, user_id, "Other", billing_day=16)
        inactive = create_test_credit_card(db_session, user_id, "Inactive", billing_day=15)
        inactive.is_active = False
        db_session.commit()
        bank = create_test_account(db_session, user_id, "Банк", AccountType.BANK)
        bank.billing_day = 15
        db_session.commit()

        assert [c.id for c in find_credit_cards_due(db_session, TODAY)] == [due.id]

    def test_last_day_of_short_month_includes_later_billing_days(self, db_session, user_id):
        day_28 = create_test_credit_card(db_session, user_id, "28", billing_day=28)
        day_30 = create_test_credit_card(db_session, user_id, "30", billing_day=30)
        day_31 = create_test_credit_card(db_session, user_id, "31", billing_day=31)
        create_test_credit_card(db_session, user_id, "27", billing_day=27)

        due_ids = {c.id for c in find_credit_cards_due(db_session, date(2025, 2, 28))}

        assert due_ids == {day_28.id, day_30.id, day_31.id}
        assert find_credit_cards_due(db_session, date(2025, 1, 30)) == [day_30]


class TestProcessCreditCardPayoff:
    """Тесты погашения одной карты."""

    def test_paid_from_linked_account(self, db_session, user_id):
        card, linked = _card_with_linked(db_session, user_id, Decimal("3200000"), Decimal("2000000"))

        outcome = process_credit_card_payoff(db_session, card.id, TODAY)

        db_session.refresh(card)
        db_session.refresh(linked)
        assert outcome == PayoffOutcome.PAID
        assert card.current_balance == Decimal("5000000")
        assert linked.current_balance == Decimal("200000")

        [tx] = get_transactions(db_session, user_id, account_id=linked.id)
        assert tx.type == TransactionType.TRANSFER
        assert tx.amount == Decimal("1800000")
        assert tx.to_account_id == card.id
        assert tx.transaction_date == TODAY
        assert tx.description == "Auto-payment for Visa"

    def test_insufficient_funds_skipped(self, db_session, user_id):
        card, linked = _card_with_linked(db_session, user_id, Decimal("3200000"), Decimal("1000000"))

        outcome = process_credit_card_payoff(db_session, card.id, TODAY)

        db_session.refresh(card)
        db_session.refresh(linked)
        assert outcome == PayoffOutcome.SKIPPED
        assert card.current_balance == Decimal("3200000")
        assert linked.current_balance == Decimal("1000000")
        assert get_transactions(db_session, user_id) == []

    def test_no_debt_resets_balance(self, db_session, user_id):
        card = create_test_credit_card(db_session, user_id, balance=Decimal("5300000"), billing_day=15)

        outcome = process_credit_card_payoff(db_session, card.id, TODAY)

        db_session.refresh(card)
        assert outcome == PayoffOutcome.RESET
        assert card.current_balance == Decimal("5000000")

    def test_no_linked_account_skipped(self, db_session, user_id):
        card = create_test_credit_card(db_session, user_id, balance=Decimal("4000000"), billing_day=15)

        assert process_credit_card_payoff(db_session, card.id, TODAY) == PayoffOutcome.SKIPPED
        db_session.refresh(card)
        assert card.current_balance == Decimal("4000000")

    def test_zero_limit_skipped(self, db_session, user_id):
        card = create_test_credit_card(
            db_session, user_id, credit_limit=Decimal("0"), balance=Decimal("-100"), billing_day=15
        )
        assert process_credit_card_payoff(db_session, card.id, TODAY) == PayoffOutcome.SKIPPED

    def test_non_card_skipped(self, db_session, user_id):
        bank = create_test_account(db_session, user_id, "Банк", AccountType.BANK)
        assert process_credit_card_payoff(db_session, bank.id, TODAY) == PayoffOutcome.SKIPPED

    def test_missing_card(self, db_session):
        with pytest.raises(NotFoundError):
            process_credit_card_payoff(db_session, str(uuid.uuid4()), TODAY)

    def test_cross_currency_requires_converter(self, db_session, user_id):
        linked = create_test_account(db_session, user_id, "VND", AccountType.BANK, balance=Decimal("20000000"))
        card = create_test_credit_card(
            db_session, user_id, credit_limit=Decimal("1000"), balance=Decimal("600"),
            billing_day=15, linked_account_id=linked.id, currency="USD"
        )

        assert process_credit_card_payoff(db_session, card.id, TODAY) == PayoffOutcome.SKIPPED

        converter = StaticRateConverter({("USD", "VND"): Decimal("25000")})
        assert process_credit_card_payoff(db_session, card.id, TODAY, converter=converter) == PayoffOutcome.PAID

        db_session.refresh(card)
        db_session.refresh(linked)
        assert card.current_balance == Decimal("1000")
        assert linked.current_balance == Decimal("10000000")
        [tx] = get_transactions(db_session, user_id, account_id=linked.id)
        assert tx.amount == Decimal("10000000")
        assert tx.currency == "VND"
