"""
Balance mutation coordinator.

Every balance-affecting write goes through `run_transaction`. The users table
carries a mapper-level version counter, so the UPDATE SQLAlchemy emits is
`... WHERE id = :id AND version = :version_read` and bumps `version` by one.
If another writer committed in between, zero rows match, SQLAlchemy raises
StaleDataError and the whole unit of work is rolled back and re-run from a
fresh read. The admin manual-adjustment path instead compares the version the
operator saw and reports a conflict without retrying.
"""
from decimal import Decimal
import logging
from flask import current_app, request, has_request_context
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from extensions import db
from logger import ledger_logger
from models import User, AuditLog, TransactionType
from utils import to_money
from wallet.errors import (ConflictError, InsufficientBalanceError, NotFoundError,
                           ValidationError)
from wallet.feed import notify_user
from wallet.ledger import record_transaction

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "User data has been modified by another process. Please refresh and try again."
ADJUST_ACTIONS = ("add", "subtract", "set")


def run_transaction(work, *args, retries=None, integrity_message=None, **kwargs):
    """
    Run `work(*args, **kwargs)` as one atomic unit and commit it.

    A version conflict rolls back and re-runs `work` up to `retries` attempts in
    total; `work` must therefore re-read whatever it mutates. Any other failure
    rolls back and propagates.
    """
    attempts = retries or current_app.config.get("TRANSACTION_RETRIES", 3)
    for attempt in range(1, attempts + 1):
        try:
            result = work(*args, **kwargs)
            db.session.commit()
            return result
        except StaleDataError:
            db.session.rollback()
            logger.warning(f"Version conflict in {getattr(work, '__name__', work)} (attempt {attempt}/{attempts})")
        except IntegrityError as e:
            db.session.rollback()
            logger.warning(f"Integrity conflict in {getattr(work, '__name__', work)}: {e.orig}")
            raise ConflictError(integrity_message or "The record was changed by another request.")
        except Exception:
            db.session.rollback()
            raise
    raise ConflictError(CONFLICT_MESSAGE)


def load_user(user_id, message="User not found.") -> User:
    """Fresh read of a user inside the current transaction."""
    user = db.session.get(User, user_id, populate_existing=True) if user_id else None
    if user is None:
        raise NotFoundError(message)
    return user


def credit(user: User, amount: Decimal, description: str, date=None):
    """Add to the user's balance and stage the matching credit entry."""
    old_balance = Decimal(user.balance or 0)
    user.balance = old_balance + amount
    entry = record_transaction(user.id, TransactionType.CREDIT, amount, description, date=date)
    ledger_logger.info(f"CREDIT user={user.id} amount={amount} balance={old_balance}->{user.balance} "
                       f"version={user.version} ({description})")
    notify_user(user)
    return entry


def debit(user: User, amount: Decimal, description: str, date=None):
    """Take from the user's balance; the balance may not go negative."""
    old_balance = Decimal(user.balance or 0)
    if old_balance < amount:
        raise InsufficientBalanceError("Insufficient balance.")
    user.balance = old_balance - amount
    entry = record_transaction(user.id, TransactionType.DEBIT, amount, description, date=date)
    ledger_logger.info(f"DEBIT user={user.id} amount={amount} balance={old_balance}->{user.balance} "
                       f"version={user.version} ({description})")
    notify_user(user)
    return entry


def check_version(user: User, expected_version):
    if expected_version is None:
        return
    try:
        expected_version = int(expected_version)
    except (TypeError, ValueError):
        raise ValidationError("expectedVersion must be an integer.")
    if user.version != expected_version:
        raise ConflictError(CONFLICT_MESSAGE)


# ==========================================================
#                  ADMIN MANUAL ADJUSTMENT
# ==========================================================
def plan_adjustment(current_balance: Decimal, action: str, amount: Decimal):
    """Return (new_balance, ledger type, ledger amount) for add/subtract/set."""
    if action == "add":
        return current_balance + amount, TransactionType.CREDIT, amount
    if action == "subtract":
        return current_balance - amount, TransactionType.DEBIT, amount
    diff = amount - current_balance
    kind = TransactionType.CREDIT if diff >= 0 else TransactionType.DEBIT
    return amount, kind, abs(diff)


def adjust_balance(user_id, action, amount, description, expected_version, actor=None):
    """
    Admin balance edit. Fails with ConflictError when the stored version is not
    the one the admin was looking at; there is no automatic retry.
    """
    if action not in ADJUST_ACTIONS:
        raise ValidationError("Action must be one of add, subtract or set.")
    try:
        amount = to_money(amount)
    except ValueError as e:
        raise ValidationError(str(e))
    if amount < 0 or (amount == 0 and action != "set"):
        raise ValidationError("Amount must be positive.")
    if not description or not str(description).strip():
        raise ValidationError("A description is required.")
    if expected_version is None:
        raise ValidationError("expectedVersion is required.")

    def _adjust():
        user = load_user(user_id)
        check_version(user, expected_version)

        current = Decimal(user.balance or 0)
        new_balance, kind, ledger_amount = plan_adjustment(current, action, amount)
        if ledger_amount == 0:
            raise ValidationError("The balance is already at that amount.")

        user.balance = new_balance
        record_transaction(user.id, kind, ledger_amount, description)
        db.session.add(AuditLog(
            actor_id=actor.id if actor else None,
            target_user_id=user.id,
            action=f"balance.{action}",
            details={"amount": str(amount), "from": str(current), "to": str(new_balance)},
            ip_address=request.remote_addr if has_request_context() else None,
        ))
        ledger_logger.info(f"ADJUST user={user.id} action={action} amount={amount} "
                           f"balance={current}->{new_balance} by={actor.id if actor else None}")
        notify_user(user)
        return user

    return run_transaction(_adjust, retries=1)
