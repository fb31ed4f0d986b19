"""Registration, login checks and the admin side of user management."""
from decimal import Decimal
import logging
from flask import current_app, has_request_context, request
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from extensions import db
from models import (AuditLog, RechargeRequest, RequestStatus, Role, Transaction,
                    TransactionType, User, WithdrawalRequest)
from utils import generate_code, to_money, utcnow, validate_phone
from logger import ledger_logger
from wallet.errors import (AuthenticationError, ConflictError, NotFoundError,
                           PermissionDenied, ValidationError)
from wallet.ledger import ledger_balance, record_transaction

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
ASSIGNABLE_ROLES = (Role.USER.value, Role.SUPPORT.value, Role.ADMIN.value)


def _referral_code_taken(code) -> bool:
    return db.session.query(User.query.filter_by(referral_code=code).exists()).scalar()


def _display_id_taken(code) -> bool:
    return db.session.query(User.query.filter_by(display_id=code).exists()).scalar()


def find_by_referral_code(code):
    code = (code or "").strip().upper()
    if not code:
        return None
    return User.query.filter(func.upper(User.referral_code) == code).first()


# ==========================================================
#                  SIGN UP / LOG IN
# ==========================================================
def register_user(phone, password, referral_code=None, now=None) -> User:
    phone = (phone or "").strip()
    password = password or ""
    referral_code = (referral_code or "").strip()

    if not validate_phone(phone):
        raise ValidationError("Please enter a valid phone number (at least 10 digits).")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if User.query.filter_by(phone=phone).first():
        raise ConflictError("This phone number is already registered.")

    referrer = None
    if referral_code:
        referrer = find_by_referral_code(referral_code)
        if referrer is None:
            raise ValidationError("The referral code is not valid.")

    now = now or utcnow()
    bonus = to_money(current_app.config.get("SIGNUP_BONUS", 0))
    try:
        user = User(
            phone=phone,
            display_id=generate_code(6, exists=_display_id_taken),
            referral_code=generate_code(6, exists=_referral_code_taken),
            referred_by_id=referrer.id if referrer else None,
            role=Role.USER.value,
            balance=bonus,
            has_made_first_recharge=False,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.flush()

        # inserted with the bonus already applied, so the row starts at version 1
        if bonus > 0:
            record_transaction(user.id, TransactionType.CREDIT, bonus, "Welcome bonus", date=now)
            ledger_logger.info(f"CREDIT user={user.id} amount={bonus} balance=0->{bonus} "
                               f"version={user.version} (Welcome bonus)")
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("This phone number is already registered.")

    logger.info(f"New user {user.id} ({user.display_id}) registered"
                + (f", referred by {referrer.id}" if referrer else ""))
    return user


def authenticate(phone, password) -> User:
    phone = (phone or "").strip()
    if not phone or not password:
        raise ValidationError("Phone and password are required.")
    user = User.query.filter_by(phone=phone).first()
    if not user or not user.check_password(password):
        raise AuthenticationError("Invalid phone or password.")
    if not user.is_active:
        raise PermissionDenied("This account is disabled.")
    return user


# ==========================================================
#                  REFERRALS
# ==========================================================
def referral_summary(user: User):
    referred = User.query.filter_by(referred_by_id=user.id).order_by(User.created_at.desc()).all()
    earned = db.session.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
        Transaction.user_id == user.id,
        Transaction.type == TransactionType.CREDIT.value,
        Transaction.description.like("Referral commission%"),
    ).scalar()
    return {
        "referralCode": user.referral_code,
        "referredUsers": [u.to_referral_dict() for u in referred],
        "totalReferred": len(referred),
        "totalCommission": float(earned or 0),
    }


# ==========================================================
#                  ADMIN
# ==========================================================
def _audit(actor, target, action, details=None):
    db.session.add(AuditLog(
        actor_id=actor.id if actor else None,
        target_user_id=target.id if target else None,
        action=action,
        details=details,
        ip_address=request.remote_addr if has_request_context() else None,
    ))


def search_users(term=None, limit=100):
    query = User.query
    term = (term or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.filter(or_(
            User.phone.ilike(pattern),
            User.display_id.ilike(pattern),
            User.referral_code.ilike(pattern),
        ))
    return query.order_by(User.created_at.desc()).limit(limit).all()


def get_user(user_id) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


def set_role(user_id, role, actor=None) -> User:
    if role not in ASSIGNABLE_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ASSIGNABLE_ROLES)}.")
    user = get_user(user_id)
    if user.is_superadmin:
        raise PermissionDenied("A superadmin cannot be demoted.")
    previous = user.role
    user.role = role
    _audit(actor, user, "user.role", {"from": previous, "to": role})
    db.session.commit()
    logger.info(f"User {user.id} role {previous} -> {role}")
    return user


def delete_user(user_id, actor=None):
    """Remove the account; ledger rows and requests stay, detached from it."""
    user = get_user(user_id)
    if user.is_superadmin:
        raise PermissionDenied("A superadmin cannot be deleted.")
    if actor is not None and actor.id == user.id:
        raise PermissionDenied("You cannot delete your own account.")
    _audit(actor, None, "user.delete", {"userId": user.id, "phone": user.phone})
    db.session.delete(user)
    db.session.commit()
    logger.info(f"User {user_id} deleted by {actor.id if actor else 'system'}")


def reconcile(user: User):
    """Compare the stored balance with what the ledger adds up to."""
    expected = ledger_balance(user.id)
    balance = Decimal(user.balance or 0)
    return {
        "balance": float(balance),
        "ledgerBalance": float(expected),
        "difference": float(balance - expected),
        "consistent": balance == expected,
    }


def dashboard_stats():
    pending = RequestStatus.PENDING.value
    return {
        "totalUsers": User.query.count(),
        "totalBalance": float(db.session.query(func.coalesce(func.sum(User.balance), 0)).scalar() or 0),
        "pendingRecharges": RechargeRequest.query.filter_by(status=pending).count(),
        "pendingWithdrawals": WithdrawalRequest.query.filter_by(status=pending).count(),
        "approvedRechargeTotal": float(db.session.query(func.coalesce(func.sum(RechargeRequest.amount), 0))
                                       .filter(RechargeRequest.status == RequestStatus.APPROVED.value).scalar() or 0),
    }
