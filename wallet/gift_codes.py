"""
Gift codes: admin-issued vouchers credited to a user's balance.

A code is redeemable while it has not expired, fewer than `usage_limit`
users have redeemed it, and the requesting user has not redeemed it before.
"""
from decimal import Decimal
import logging
from extensions import db
from models import GiftCode, GiftCodeRedemption
from utils import generate_code, to_money, utcnow
from wallet.balance import credit, load_user, run_transaction
from wallet.errors import (ConflictError, LimitExceededError, NotFoundError,
                           ValidationError, WindowClosedError)

logger = logging.getLogger(__name__)

ALREADY_REDEEMED = "You have already redeemed this code."
CODE_LENGTH = 8


def normalize_code(code) -> str:
    return (code or "").strip().upper()


def _code_exists(code) -> bool:
    return db.session.query(GiftCode.query.filter_by(code=code).exists()).scalar()


def create_gift_code(amount, usage_limit, expires_in_minutes, code=None, now=None) -> GiftCode:
    try:
        amount = to_money(amount)
    except ValueError as e:
        raise ValidationError(str(e))
    if amount <= 0:
        raise ValidationError("The amount must be positive.")
    try:
        usage_limit = int(usage_limit)
        expires_in_minutes = int(expires_in_minutes)
    except (TypeError, ValueError):
        raise ValidationError("Usage limit and expiry must be whole numbers.")
    if usage_limit < 1:
        raise ValidationError("The usage limit must be at least 1.")
    if expires_in_minutes < 1:
        raise ValidationError("The expiry must be at least 1 minute.")

    code = normalize_code(code)
    if code:
        if len(code) < 4 or not code.isalnum():
            raise ValidationError("Codes must be at least 4 letters or digits.")
        if _code_exists(code):
            raise ConflictError(f"The code {code} already exists.")
    else:
        code = generate_code(CODE_LENGTH, exists=_code_exists)

    gift = GiftCode(
        code=code,
        amount=amount,
        usage_limit=usage_limit,
        expires_in_minutes=expires_in_minutes,
        created_at=now or utcnow(),
        redeemed_count=0,
    )
    db.session.add(gift)
    db.session.commit()
    logger.info(f"Gift code {code} created: {amount} x{usage_limit}, {expires_in_minutes} min")
    return gift


def redeem_gift_code(user_id, code, now=None):
    """Credit a gift code to a user. Returns (user, gift_code)."""
    code = normalize_code(code)
    if not code:
        raise ValidationError("Please enter a code.")
    now = now or utcnow()

    def _redeem():
        gift = GiftCode.query.filter_by(code=code).populate_existing().first()
        if gift is None:
            raise NotFoundError("Invalid gift code.")
        if now >= gift.expires_at:
            raise WindowClosedError("This gift code has expired.")

        already = GiftCodeRedemption.query.filter_by(gift_code_id=gift.id, user_id=user_id).first()
        if already is not None:
            raise ConflictError(ALREADY_REDEEMED)
        if gift.redeemed_count >= gift.usage_limit:
            raise LimitExceededError("This gift code has reached its usage limit.")

        user = load_user(user_id)
        # bumps gift_codes.version; a concurrent redemption conflicts and retries
        gift.redeemed_count = gift.redeemed_count + 1
        db.session.add(GiftCodeRedemption(gift_code_id=gift.id, user_id=user.id, redeemed_at=now))
        credit(user, Decimal(gift.amount), f"Gift code redeemed: {gift.code}", date=now)
        return user, gift

    user, gift = run_transaction(_redeem, integrity_message=ALREADY_REDEEMED)
    logger.info(f"User {user.id} redeemed gift code {gift.code} ({gift.amount})")
    return user, gift


def delete_gift_code(gift_id):
    gift = db.session.get(GiftCode, gift_id)
    if gift is None:
        raise NotFoundError("Gift code not found.")
    db.session.delete(gift)
    db.session.commit()
    logger.info(f"Gift code {gift_id} deleted")


def list_gift_codes():
    return GiftCode.query.order_by(GiftCode.created_at.desc()).all()
