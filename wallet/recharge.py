"""
Manual bank-transfer recharges.

1. The user picks an amount -> a short-lived staging row (temp_recharges).
2. After paying by transfer the user submits the bank's payment reference
   -> a pending RechargeRequest.
3. An admin approves (credit + optional one-time referral commission) or rejects.
"""
from datetime import timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
import logging
import secrets
from flask import current_app
from extensions import db
from models import RechargeRequest, RequestStatus, TempRecharge, User
from utils import CENTS, to_money, utcnow
from wallet.balance import credit, load_user, run_transaction
from wallet.errors import ConflictError, NotFoundError, ValidationError
from wallet.feed import notify
from wallet.settings import referral_percentage

logger = logging.getLogger(__name__)

TOPIC = "recharge-requests"
DUPLICATE_REFERENCE = "This payment reference has already been approved."


def _positive_amount(value):
    try:
        amount = to_money(value)
    except ValueError:
        raise ValidationError("Please enter a valid amount to recharge.")
    if amount <= 0:
        raise ValidationError("Please enter a valid amount to recharge.")
    return amount


# ==========================================================
#                  STAGING
# ==========================================================
def start_recharge(user, amount, now=None) -> TempRecharge:
    amount = _positive_amount(amount)
    now = now or utcnow()

    # stored times are naive UTC
    epoch_ms = int(now.replace(tzinfo=timezone.utc).timestamp() * 1000)
    reference_id = f"SY-RECARGA-{epoch_ms}"
    if db.session.get(TempRecharge, reference_id) is not None:
        reference_id = f"{reference_id}-{secrets.token_hex(2).upper()}"

    temp = TempRecharge(id=reference_id, user_id=user.id, amount=amount, created_at=now)
    db.session.add(temp)
    db.session.commit()
    logger.info(f"Recharge staged {reference_id} for user {user.id}: {amount}")
    return temp


def get_staged_recharge(reference_id, user, now=None) -> TempRecharge:
    now = now or utcnow()
    temp = db.session.get(TempRecharge, reference_id)
    ttl = timedelta(minutes=current_app.config.get("TEMP_RECHARGE_TTL_MINUTES", 60))
    if temp is None or temp.user_id != user.id or temp.created_at + ttl < now:
        raise NotFoundError("The recharge session has expired. Please try again.")
    return temp


def submit_recharge_request(user, reference_id, payment_reference, now=None) -> RechargeRequest:
    now = now or utcnow()
    payment_reference = (payment_reference or "").strip()
    min_length = current_app.config.get("MIN_PAYMENT_REFERENCE_LENGTH", 4)
    if len(payment_reference) < min_length:
        raise ValidationError(f"The reference must have at least {min_length} characters.")

    temp = get_staged_recharge(reference_id, user, now=now)
    recharge = RechargeRequest(
        reference=payment_reference,
        user_id=user.id,
        user_phone=user.phone,
        amount=temp.amount,
        status=RequestStatus.PENDING.value,
        requested_at=now,
    )
    db.session.add(recharge)
    db.session.delete(temp)
    notify(TOPIC, "recharge.created", reference=payment_reference)
    db.session.commit()
    logger.info(f"Recharge request {recharge.id} (ref {payment_reference}) submitted by user {user.id}")
    return recharge


def purge_staged_recharges(now=None) -> int:
    now = now or utcnow()
    cutoff = now - timedelta(minutes=current_app.config.get("TEMP_RECHARGE_TTL_MINUTES", 60))
    deleted = TempRecharge.query.filter(TempRecharge.created_at < cutoff).delete(synchronize_session=False)
    db.session.commit()
    return deleted


# ==========================================================
#                  ADMIN DECISIONS
# ==========================================================
def _pending_request(request_id) -> RechargeRequest:
    recharge = db.session.get(RechargeRequest, request_id, populate_existing=True)
    if recharge is None or recharge.status != RequestStatus.PENDING.value:
        raise ConflictError("The request has already been processed.")
    return recharge


def reference_already_approved(reference, exclude_id=None) -> bool:
    query = RechargeRequest.query.filter(
        RechargeRequest.reference == reference,
        RechargeRequest.status == RequestStatus.APPROVED.value,
    )
    if exclude_id is not None:
        query = query.filter(RechargeRequest.id != exclude_id)
    return db.session.query(query.exists()).scalar()


def referral_commission(amount) -> Decimal:
    return (Decimal(amount) * referral_percentage() / Decimal(100)).quantize(CENTS, ROUND_HALF_UP)


def approve_recharge(request_id, admin=None, now=None):
    """
    Approve a pending request. Returns (request, commission or None).

    The duplicate-reference check runs inside the same transaction as the
    credit, and `approved_reference` is unique, so two approvals of the same
    reference cannot both commit.
    """
    now = now or utcnow()

    def _approve():
        recharge = _pending_request(request_id)
        if reference_already_approved(recharge.reference, exclude_id=recharge.id):
            raise ConflictError(DUPLICATE_REFERENCE)

        user = load_user(recharge.user_id)
        amount = Decimal(recharge.amount)
        commission = None

        if not user.has_made_first_recharge:
            if user.referred_by_id:
                referrer = db.session.get(User, user.referred_by_id, populate_existing=True)
                if referrer is not None:
                    commission = referral_commission(amount)
                    if commission > 0:
                        credit(referrer, commission, f"Referral commission for {user.phone}", date=now)
                    else:
                        commission = None
            user.has_made_first_recharge = True

        credit(user, amount, f"Recharge approved (Ref: {recharge.reference})", date=now)
        recharge.status = RequestStatus.APPROVED.value
        recharge.approved_reference = recharge.reference
        recharge.processed_at = now
        recharge.processed_by = admin.id if admin else None
        notify(TOPIC, "recharge.approved", id=recharge.id)
        return recharge, commission

    recharge, commission = run_transaction(_approve, integrity_message=DUPLICATE_REFERENCE)
    logger.info(f"Recharge {recharge.id} approved for user {recharge.user_id}: {recharge.amount}"
                + (f", commission {commission}" if commission else ""))
    return recharge, commission


def reject_recharge(request_id, admin=None, now=None) -> RechargeRequest:
    now = now or utcnow()

    def _reject():
        recharge = _pending_request(request_id)
        recharge.status = RequestStatus.REJECTED.value
        recharge.processed_at = now
        recharge.processed_by = admin.id if admin else None
        notify(TOPIC, "recharge.rejected", id=recharge.id)
        return recharge

    recharge = run_transaction(_reject)
    logger.info(f"Recharge {recharge.id} (ref {recharge.reference}) rejected")
    return recharge


def list_recharge_requests(status):
    query = RechargeRequest.query.filter_by(status=status)
    if status == RequestStatus.PENDING.value:
        query = query.order_by(RechargeRequest.requested_at.asc())
    else:
        query = query.order_by(RechargeRequest.requested_at.desc())
    return query.all()
