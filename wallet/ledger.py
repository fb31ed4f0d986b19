from decimal import Decimal
import logging
from sqlalchemy import func
from extensions import db
from models import Transaction, TransactionType
from utils import utcnow
from wallet.errors import ValidationError

logger = logging.getLogger(__name__)


def record_transaction(user_id, tx_type, amount, description, date=None) -> Transaction:
    """
    Validate and stage an immutable ledger entry on the current session.
    The entry commits (or rolls back) together with the balance change it describes.
    """
    if not user_id:
        logger.error(f"Invalid transaction data: missing user id ({tx_type}, {amount}, {description!r})")
        raise ValidationError("Could not record the transaction: invalid user id.")

    if isinstance(tx_type, TransactionType):
        tx_type = tx_type.value
    if tx_type not in (TransactionType.CREDIT.value, TransactionType.DEBIT.value):
        raise ValidationError(f"Unknown transaction type '{tx_type}'.")

    if amount is None or not isinstance(amount, (int, Decimal)) or isinstance(amount, bool):
        raise ValidationError("Transaction amount is invalid.")
    amount = Decimal(amount)
    if not amount.is_finite() or amount <= 0:
        logger.error(f"Invalid transaction amount {amount} for user {user_id}")
        raise ValidationError("Transaction amount must be greater than zero.")

    if not description or not str(description).strip():
        raise ValidationError("Transaction description cannot be empty.")

    entry = Transaction(
        user_id=user_id,
        type=tx_type,
        amount=amount,
        description=str(description).strip()[:255],
        date=date or utcnow(),
    )
    db.session.add(entry)
    return entry


def user_transactions(user_id, limit=None):
    query = Transaction.query.filter_by(user_id=user_id).order_by(
        Transaction.date.desc(), Transaction.id.desc()
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def ledger_balance(user_id) -> Decimal:
    """Credits minus debits recorded for a user."""
    rows = db.session.query(
        Transaction.type, func.coalesce(func.sum(Transaction.amount), 0)
    ).filter(Transaction.user_id == user_id).group_by(Transaction.type).all()
    totals = {kind: Decimal(str(total)) for kind, total in rows}
    return (totals.get(TransactionType.CREDIT.value, Decimal("0"))
            - totals.get(TransactionType.DEBIT.value, Decimal("0")))
