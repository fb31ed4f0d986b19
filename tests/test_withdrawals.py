from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from models import Transaction
from wallet.errors import (ConflictError, InsufficientBalanceError, LimitExceededError,
                           ValidationError, WindowClosedError)
from wallet.settings import WITHDRAWALS, update_settings
from wallet.withdrawal import (approve_withdrawal, js_weekday, local_time, reject_withdrawal,
                               request_withdrawal, update_withdrawal_account)

SATURDAY_NOON_BOGOTA = datetime(2026, 10, 24, 17, 0)


@pytest.fixture
def account_holder(make_user):
    return make_user(
        balance=50000,
        withdrawal_account="3001234567",
        withdrawal_full_name="Ana Gomez",
        withdrawal_id_number="1020304050",
    )


def test_business_clock(app, now):
    local = local_time(now)
    assert (local.hour, js_weekday(local)) == (12, 1)
    assert js_weekday(local_time(SATURDAY_NOON_BOGOTA)) == 6


class TestRequest:
    def test_debits_amount_and_snapshots_account(self, db, account_holder, now):
        withdrawal = request_withdrawal(account_holder.id, 20000, now=now)

        assert account_holder.balance == Decimal("30000.00")
        assert withdrawal.status == "pending"
        assert withdrawal.fee == Decimal("1600.00")
        assert withdrawal.net_amount == Decimal("18400.00")
        assert withdrawal.nequi_account == "3001234567"
        entry = Transaction.query.filter_by(user_id=account_holder.id).one()
        assert (entry.type, entry.amount) == ("debit", Decimal("20000.00"))

    def test_daily_limit(self, db, account_holder, now):
        request_withdrawal(account_holder.id, 10000, now=now)
        with pytest.raises(LimitExceededError):
            request_withdrawal(account_holder.id, 10000, now=now + timedelta(hours=1))
        assert account_holder.balance == Decimal("40000.00")

    def test_rejected_requests_do_not_count_towards_limit(self, db, account_holder, now):
        first = request_withdrawal(account_holder.id, 10000, now=now)
        reject_withdrawal(first.id, now=now)
        request_withdrawal(account_holder.id, 10000, now=now + timedelta(minutes=5))
        assert account_holder.balance == Decimal("40000.00")

    def test_outside_hours(self, db, account_holder, now):
        with pytest.raises(WindowClosedError):
            request_withdrawal(account_holder.id, 10000, now=now.replace(hour=22))  # 17:00 local

    def test_end_hour_is_exclusive(self, db, account_holder, now):
        with pytest.raises(WindowClosedError):
            request_withdrawal(account_holder.id, 10000, now=now.replace(hour=20))  # 15:00 local

    def test_disallowed_day(self, db, account_holder):
        with pytest.raises(WindowClosedError):
            request_withdrawal(account_holder.id, 10000, now=SATURDAY_NOON_BOGOTA)

    def test_configured_days_are_honoured(self, db, account_holder):
        update_settings(WITHDRAWALS, {"allowedWithdrawalDays": [6]})
        request_withdrawal(account_holder.id, 10000, now=SATURDAY_NOON_BOGOTA)

    def test_below_minimum(self, db, account_holder, now):
        with pytest.raises(ValidationError):
            request_withdrawal(account_holder.id, 5000, now=now)

    def test_requires_payout_account(self, db, make_user, now):
        user = make_user(balance=50000)
        with pytest.raises(ValidationError):
            request_withdrawal(user.id, 20000, now=now)

    @pytest.mark.parametrize("amount", ["1e30", "1e20", "NaN"])
    def test_unrepresentable_amount(self, db, account_holder, now, amount):
        with pytest.raises(ValidationError):
            request_withdrawal(account_holder.id, amount, now=now)
        assert account_holder.balance == Decimal("50000.00")

    def test_insufficient_balance(self, db, account_holder, now):
        with pytest.raises(InsufficientBalanceError):
            request_withdrawal(account_holder.id, 60000, now=now)
        assert account_holder.balance == Decimal("50000.00")


class TestDecisions:
    def test_approve(self, db, account_holder, now):
        withdrawal = request_withdrawal(account_holder.id, 20000, now=now)
        approved = approve_withdrawal(withdrawal.id, now=now + timedelta(hours=1))

        assert approved.status == "approved"
        assert approved.processed_at == now + timedelta(hours=1)
        assert account_holder.balance == Decimal("30000.00")
        with pytest.raises(ConflictError):
            approve_withdrawal(withdrawal.id, now=now)

    def test_reject_refunds(self, db, account_holder, now):
        withdrawal = request_withdrawal(account_holder.id, 20000, now=now)

        rejected = reject_withdrawal(withdrawal.id, now=now)

        assert rejected.status == "rejected"
        assert account_holder.balance == Decimal("50000.00")
        entries = Transaction.query.filter_by(user_id=account_holder.id).order_by(Transaction.id).all()
        assert [e.type for e in entries] == ["debit", "credit"]
        with pytest.raises(ConflictError):
            reject_withdrawal(withdrawal.id, now=now)
        assert account_holder.balance == Decimal("50000.00")


class TestPayoutAccount:
    def test_update_with_expected_version(self, db, make_user):
        user = make_user()
        update_withdrawal_account(user.id, "3009876543", "Luis Perez", "12345678", expected_version=1)
        assert user.withdrawal_info == {
            "nequiAccount": "3009876543", "fullName": "Luis Perez", "idNumber": "12345678",
        }
        assert user.version == 2

    def test_stale_version_conflicts(self, db, make_user):
        user = make_user()
        update_withdrawal_account(user.id, "3009876543", "Luis Perez", "12345678")
        with pytest.raises(ConflictError):
            update_withdrawal_account(user.id, "3001111111", "Luis Perez", "12345678", expected_version=1)

    def test_validation(self, db, make_user):
        with pytest.raises(ValidationError):
            update_withdrawal_account(make_user().id, "12", "Luis Perez", "12345678")
