from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
import logging
from zoneinfo import ZoneInfo
from flask import current_app
from extensions import db
from models import RequestStatus, User, WithdrawalRequest
from utils import CENTS, format_cop, to_money, utcnow, validate_phone
from wallet.balance import check_version, credit, debit, load_user, run_transaction
from wallet.errors import (ConflictError, LimitExceededError, ValidationError,
                           WindowClosedError)
from wallet.feed import notify, notify_user, user_topic
from wallet.settings import WITHDRAWALS, get_settings

logger = logging.getLogger(__name__)

TOPIC = "withdrawal-requests"
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


# ==========================================================
#                  CONFIGURATION
# ==========================================================
class WithdrawalRules:
    """Snapshot of the `withdrawals` settings document."""

    def __init__(self, settings: dict):
        self.min_withdrawal = Decimal(str(settings["minWithdrawal"]))
        self.daily_limit = int(settings["dailyLimit"])
        self.fee_percentage = Decimal(str(settings["withdrawalFeePercentage"]))
        self.start_hour = int(settings["withdrawalStartTime"])
        self.end_hour = int(settings["withdrawalEndTime"])
        self.allowed_days = list(settings["allowedWithdrawalDays"])

    @classmethod
    def load(cls):
        return cls(get_settings(WITHDRAWALS))

    def calculate_fee(self, amount: Decimal) -> Decimal:
        fee = (amount * self.fee_percentage) / Decimal("100")
        return fee.quantize(CENTS, rounding=ROUND_HALF_UP)


def business_timezone():
    return ZoneInfo(current_app.config.get("BUSINESS_TIMEZONE", "America/Bogota"))


def local_time(now):
    """`now` is naive UTC; returns the wall-clock time in the business timezone."""
    return now.replace(tzinfo=timezone.utc).astimezone(business_timezone())


def local_day_bounds(now):
    """Naive-UTC [start, end) of the business-local calendar day containing `now`."""
    local = local_time(now)
    start_local = datetime(local.year, local.month, local.day, tzinfo=local.tzinfo)
    start = start_local.astimezone(timezone.utc).replace(tzinfo=None)
    return start, start + timedelta(days=1)


def js_weekday(moment) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (moment.weekday() + 1) % 7


# ==========================================================
#                  VALIDATOR
# ==========================================================
class WithdrawalValidator:
    @staticmethod
    def check_window(rules: WithdrawalRules, now):
        local = local_time(now)
        if js_weekday(local) not in rules.allowed_days:
            days = ", ".join(DAY_NAMES[d] for d in sorted(rules.allowed_days))
            raise WindowClosedError(f"Withdrawals are only available on: {days}.")
        if not (rules.start_hour <= local.hour < rules.end_hour):
            raise WindowClosedError(
                f"Withdrawals are only available from {rules.start_hour}:00 to {rules.end_hour}:00."
            )

    @staticmethod
    def requests_today(user_id, now) -> int:
        start, end = local_day_bounds(now)
        return WithdrawalRequest.query.filter(
            WithdrawalRequest.user_id == user_id,
            WithdrawalRequest.status != RequestStatus.REJECTED.value,
            WithdrawalRequest.requested_at >= start,
            WithdrawalRequest.requested_at < end,
        ).count()

    @staticmethod
    def validate(user: User, amount: Decimal, rules: WithdrawalRules, now):
        if not user.withdrawal_account:
            raise ValidationError("Please set up your withdrawal account first.")
        if amount < rules.min_withdrawal:
            raise ValidationError(f"The minimum withdrawal is {format_cop(rules.min_withdrawal)}.")
        WithdrawalValidator.check_window(rules, now)
        if WithdrawalValidator.requests_today(user.id, now) >= rules.daily_limit:
            raise LimitExceededError(
                f"You have reached the daily limit of {rules.daily_limit} withdrawal(s)."
            )


# ==========================================================
#                  PAYOUT ACCOUNT
# ==========================================================
def update_withdrawal_account(user_id, account, full_name, id_number, expected_version=None):
    account = (account or "").strip()
    full_name = (full_name or "").strip()
    id_number = (id_number or "").strip()
    if not validate_phone(account):
        raise ValidationError("The Nequi account must be a valid phone number.")
    if len(full_name) < 3:
        raise ValidationError("Please enter the account holder's full name.")
    if not id_number.isdigit() or len(id_number) < 5:
        raise ValidationError("Please enter a valid identification number.")

    def _update():
        user = load_user(user_id)
        check_version(user, expected_version)
        user.withdrawal_account = account
        user.withdrawal_full_name = full_name
        user.withdrawal_id_number = id_number
        notify_user(user)
        return user

    user = run_transaction(_update, retries=1 if expected_version is not None else None)
    logger.info(f"User {user.id} updated withdrawal account")
    return user


# ==========================================================
#                  REQUEST / DECISIONS
# ==========================================================
def request_withdrawal(user_id, amount, now=None) -> WithdrawalRequest:
    """Debit the amount up front and open a pending request."""
    try:
        amount = to_money(amount)
    except ValueError:
        raise ValidationError("Please enter a valid amount.")
    if amount <= 0:
        raise ValidationError("Please enter a valid amount.")
    now = now or utcnow()
    rules = WithdrawalRules.load()

    def _request():
        user = load_user(user_id)
        WithdrawalValidator.validate(user, amount, rules, now)
        fee = rules.calculate_fee(amount)
        debit(user, amount, f"Withdrawal request ({format_cop(amount)})", date=now)
        withdrawal = WithdrawalRequest(
            user_id=user.id,
            user_phone=user.phone,
            amount=amount,
            fee=fee,
            net_amount=amount - fee,
            nequi_account=user.withdrawal_account,
            full_name=user.withdrawal_full_name,
            id_number=user.withdrawal_id_number,
            status=RequestStatus.PENDING.value,
            requested_at=now,
        )
        db.session.add(withdrawal)
        notify(TOPIC, "withdrawal.created", userId=user.id)
        return withdrawal

    withdrawal = run_transaction(_request)
    logger.info(f"Withdrawal {withdrawal.id} requested by user {user_id}: {amount} (fee {withdrawal.fee})")
    return withdrawal


def _pending_withdrawal(withdrawal_id) -> WithdrawalRequest:
    withdrawal = db.session.get(WithdrawalRequest, withdrawal_id, populate_existing=True)
    if withdrawal is None or withdrawal.status != RequestStatus.PENDING.value:
        raise ConflictError("The request has already been processed.")
    return withdrawal


def approve_withdrawal(withdrawal_id, admin=None, now=None) -> WithdrawalRequest:
    now = now or utcnow()

    def _approve():
        withdrawal = _pending_withdrawal(withdrawal_id)
        withdrawal.status = RequestStatus.APPROVED.value
        withdrawal.processed_at = now
        withdrawal.processed_by = admin.id if admin else None
        notify(TOPIC, "withdrawal.approved", id=withdrawal.id)
        if withdrawal.user_id:
            notify(user_topic(withdrawal.user_id), "withdrawal.approved", id=withdrawal.id)
        return withdrawal

    withdrawal = run_transaction(_approve)
    logger.info(f"Withdrawal {withdrawal.id} approved: pay {withdrawal.net_amount} to {withdrawal.nequi_account}")
    return withdrawal


def reject_withdrawal(withdrawal_id, admin=None, now=None) -> WithdrawalRequest:
    """Reject and refund the debited amount."""
    now = now or utcnow()

    def _reject():
        withdrawal = _pending_withdrawal(withdrawal_id)
        withdrawal.status = RequestStatus.REJECTED.value
        withdrawal.processed_at = now
        withdrawal.processed_by = admin.id if admin else None
        if withdrawal.user_id:
            user = load_user(withdrawal.user_id)
            credit(user, Decimal(withdrawal.amount), f"Withdrawal rejected, refund #{withdrawal.id}", date=now)
        notify(TOPIC, "withdrawal.rejected", id=withdrawal.id)
        return withdrawal

    withdrawal = run_transaction(_reject)
    logger.info(f"Withdrawal {withdrawal.id} rejected and refunded")
    return withdrawal


def list_withdrawals(status=None, user_id=None):
    query = WithdrawalRequest.query
    if status:
        query = query.filter_by(status=status)
    if user_id:
        query = query.filter_by(user_id=user_id)
    return query.order_by(WithdrawalRequest.requested_at.desc()).all()
