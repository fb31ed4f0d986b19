from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from models import AuditLog, Transaction, User
from wallet.balance import adjust_balance, credit, debit, load_user, run_transaction
from wallet.errors import ConflictError, InsufficientBalanceError, ValidationError
from wallet.ledger import ledger_balance, record_transaction


class TestVersionGuard:
    def test_concurrent_writers_cannot_both_commit_on_same_version(self, db, make_user):
        user = make_user(balance=1000)

        with Session(db.engine) as first, Session(db.engine) as second:
            a = first.get(User, user.id)
            b = second.get(User, user.id)
            assert a.version == b.version == 1

            b.balance = b.balance + 100
            second.commit()

            a.balance = a.balance + 50
            with pytest.raises(StaleDataError):
                first.commit()
            first.rollback()

        db.session.expire_all()
        fresh = db.session.get(User, user.id)
        assert fresh.balance == Decimal("1100.00")
        assert fresh.version == 2

    def test_every_update_bumps_version_by_one(self, db, make_user):
        user = make_user(balance=0)
        for expected in (2, 3, 4):
            run_transaction(lambda: credit(load_user(user.id), Decimal("10"), "Test credit"))
            assert user.version == expected


class TestRunTransaction:
    def test_retries_after_version_conflict(self, db, make_user):
        user = make_user(balance=0)
        attempts = []

        def work():
            attempts.append(1)
            target = load_user(user.id)
            if len(attempts) == 1:
                # another writer moves the version under us
                db.session.execute(text("UPDATE users SET version = version + 1 WHERE id = :id"),
                                   {"id": user.id})
            credit(target, Decimal("250"), "Retried credit")
            return target

        result = run_transaction(work)

        assert len(attempts) == 2
        assert result.balance == Decimal("250.00")
        assert result.version == 2
        assert Transaction.query.filter_by(user_id=user.id).count() == 1

    def test_gives_up_with_conflict_after_retries(self, db, make_user):
        user = make_user(balance=0)

        def always_conflicting():
            target = load_user(user.id)
            db.session.execute(text("UPDATE users SET version = version + 1 WHERE id = :id"),
                               {"id": user.id})
            credit(target, Decimal("1"), "Never lands")

        with pytest.raises(ConflictError):
            run_transaction(always_conflicting, retries=2)

        assert user.balance == Decimal("0.00")
        assert Transaction.query.count() == 0

    def test_failure_rolls_back_everything(self, db, make_user):
        user = make_user(balance=100)

        def work():
            target = load_user(user.id)
            credit(target, Decimal("50"), "Credit")
            debit(target, Decimal("1000"), "Too much")

        with pytest.raises(InsufficientBalanceError):
            run_transaction(work)

        assert user.balance == Decimal("100.00")
        assert user.version == 1
        assert Transaction.query.count() == 0


class TestLedger:
    def test_rejects_invalid_entries(self, db, make_user):
        user = make_user()
        with pytest.raises(ValidationError):
            record_transaction(user.id, "credit", Decimal("0"), "Zero")
        with pytest.raises(ValidationError):
            record_transaction(user.id, "credit", Decimal("10"), "   ")
        with pytest.raises(ValidationError):
            record_transaction(user.id, "refund", Decimal("10"), "Unknown type")
        with pytest.raises(ValidationError):
            record_transaction(None, "credit", Decimal("10"), "No user")

    def test_ledger_balance_reconciles_with_mutations(self, db, make_user):
        user = make_user(balance=0)
        run_transaction(lambda: credit(load_user(user.id), Decimal("300"), "In"))
        run_transaction(lambda: debit(load_user(user.id), Decimal("120"), "Out"))
        assert ledger_balance(user.id) == user.balance == Decimal("180.00")


class TestAdjustBalance:
    def test_add_with_current_version(self, db, make_user):
        admin = make_user(role="superadmin")
        user = make_user(balance=1000)

        adjust_balance(user.id, "add", "500", "Promo", expected_version=1, actor=admin)

        assert user.balance == Decimal("1500.00")
        assert user.version == 2
        entry = Transaction.query.filter_by(user_id=user.id).one()
        assert (entry.type, entry.amount, entry.description) == ("credit", Decimal("500.00"), "Promo")
        audit = AuditLog.query.one()
        assert audit.action == "balance.add"
        assert audit.actor_id == admin.id

    def test_stale_version_is_a_conflict_without_retry(self, db, make_user):
        user = make_user(balance=1000)
        run_transaction(lambda: credit(load_user(user.id), Decimal("1"), "Concurrent write"))

        with pytest.raises(ConflictError):
            adjust_balance(user.id, "add", "500", "Promo", expected_version=1)

        assert user.balance == Decimal("1001.00")
        assert AuditLog.query.count() == 0

    def test_set_records_signed_difference(self, db, make_user):
        user = make_user(balance=1000)

        adjust_balance(user.id, "set", "400", "Correction", expected_version=1)

        assert user.balance == Decimal("400.00")
        entry = Transaction.query.filter_by(user_id=user.id).one()
        assert (entry.type, entry.amount) == ("debit", Decimal("600.00"))

    def test_set_to_same_amount_is_rejected(self, db, make_user):
        user = make_user(balance=1000)
        with pytest.raises(ValidationError):
            adjust_balance(user.id, "set", "1000", "No-op", expected_version=1)
        assert user.version == 1

    def test_subtract_may_go_negative(self, db, make_user):
        user = make_user(balance=100)
        adjust_balance(user.id, "subtract", "150", "Chargeback", expected_version=1)
        assert user.balance == Decimal("-50.00")

    @pytest.mark.parametrize("action,amount,description,version", [
        ("multiply", "10", "x", 1),
        ("add", "-5", "x", 1),
        ("add", "abc", "x", 1),
        ("add", "10", "", 1),
        ("add", "10", "x", None),
        ("add", "1e30", "x", 1),
        ("add", "1e20", "x", 1),
    ])
    def test_invalid_input(self, db, make_user, action, amount, description, version):
        user = make_user(balance=100)
        with pytest.raises(ValidationError):
            adjust_balance(user.id, action, amount, description, expected_version=version)
