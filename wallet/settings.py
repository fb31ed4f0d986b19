"""Singleton configuration documents. Admin writes are last-write-wins."""
from copy import deepcopy
from decimal import Decimal, InvalidOperation
import math
import logging
from flask import current_app
from extensions import db
from models import ConfigDocument
from utils import validate_phone
from wallet.errors import NotFoundError, ValidationError
from wallet.feed import notify

logger = logging.getLogger(__name__)

WITHDRAWALS = "withdrawals"
REFERRALS = "referrals"
SUPPORT = "support"
QR_CODE = "qrCode"
ANNOUNCEMENT = "announcement"

DEFAULT_QR_URL = "https://placehold.co/300x300.png"
DEFAULT_SUPPORT_PHONE = "3000000000"

DEFAULTS = {
    WITHDRAWALS: {
        "minWithdrawal": 10000,
        "dailyLimit": 1,
        "withdrawalFeePercentage": 8,
        "withdrawalStartTime": 10,
        "withdrawalEndTime": 15,
        "allowedWithdrawalDays": [1, 2, 3, 4, 5],
    },
    REFERRALS: {"commissionPercentage": None},
    SUPPORT: {"phoneNumber": DEFAULT_SUPPORT_PHONE},
    QR_CODE: {"url": DEFAULT_QR_URL},
    ANNOUNCEMENT: {"message": "", "active": False},
}


def _number(data, key, cast=float, minimum=None, maximum=None):
    if key not in data:
        return None
    value = data[key]
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number.")
    try:
        number = cast(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{key} must be a number.")
    if not math.isfinite(number):
        raise ValidationError(f"{key} must be a finite number.")
    if cast is int and float(value) != number:
        raise ValidationError(f"{key} must be a whole number.")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{key} must be at least {minimum}.")
    if maximum is not None and number > maximum:
        raise ValidationError(f"{key} must be at most {maximum}.")
    return number


def _clean_withdrawals(data, current):
    cleaned = dict(current)
    min_withdrawal = _number(data, "minWithdrawal")
    if min_withdrawal is not None:
        if min_withdrawal <= 0:
            raise ValidationError("minWithdrawal must be a positive number.")
        cleaned["minWithdrawal"] = min_withdrawal
    for key, minimum, maximum, cast in (
        ("dailyLimit", 1, None, int),
        ("withdrawalFeePercentage", 0, 100, float),
        ("withdrawalStartTime", 0, 23, int),
        ("withdrawalEndTime", 0, 23, int),
    ):
        value = _number(data, key, cast=cast, minimum=minimum, maximum=maximum)
        if value is not None:
            cleaned[key] = value
    if "allowedWithdrawalDays" in data:
        days = data["allowedWithdrawalDays"]
        if not isinstance(days, list) or not days:
            raise ValidationError("Select at least one day of the week.")
        if any(isinstance(d, bool) or not isinstance(d, int) or d < 0 or d > 6 for d in days):
            raise ValidationError("Days must be numbers from 0 (Sunday) to 6 (Saturday).")
        cleaned["allowedWithdrawalDays"] = sorted(set(days))
    if cleaned["withdrawalStartTime"] >= cleaned["withdrawalEndTime"]:
        raise ValidationError("The start hour must be before the end hour.")
    return cleaned


def _clean_referrals(data, current):
    percentage = _number(data, "commissionPercentage", minimum=0, maximum=100)
    if percentage is None:
        raise ValidationError("commissionPercentage is required.")
    return {"commissionPercentage": percentage}


def _clean_support(data, current):
    phone = str(data.get("phoneNumber", "")).strip()
    if not validate_phone(phone):
        raise ValidationError("The phone number must have at least 10 digits.")
    return {"phoneNumber": phone}


def _clean_qr(data, current):
    url = str(data.get("url", "")).strip()
    if not url.startswith(("http://", "https://")):
        raise ValidationError("A valid image URL is required.")
    return {"url": url}


def _clean_announcement(data, current):
    message = str(data.get("message", current.get("message", ""))).strip()
    active = bool(data.get("active", current.get("active", False)))
    if active and not message:
        raise ValidationError("An active announcement needs a message.")
    return {"message": message[:500], "active": active}


CLEANERS = {
    WITHDRAWALS: _clean_withdrawals,
    REFERRALS: _clean_referrals,
    SUPPORT: _clean_support,
    QR_CODE: _clean_qr,
    ANNOUNCEMENT: _clean_announcement,
}


def get_settings(key):
    if key not in DEFAULTS:
        raise NotFoundError(f"Unknown settings document '{key}'.")
    merged = deepcopy(DEFAULTS[key])
    document = db.session.get(ConfigDocument, key)
    if document and document.data:
        merged.update(document.data)
    return merged


def update_settings(key, data):
    if key not in CLEANERS:
        raise NotFoundError(f"Unknown settings document '{key}'.")
    if not isinstance(data, dict):
        raise ValidationError("Settings must be a JSON object.")
    cleaned = CLEANERS[key](data, get_settings(key))

    document = db.session.get(ConfigDocument, key)
    if document is None:
        document = ConfigDocument(key=key, data=cleaned)
        db.session.add(document)
    else:
        document.data = {**(document.data or {}), **cleaned}
    notify("config", "config.updated", key=key)
    db.session.commit()
    logger.info(f"Settings '{key}' updated: {cleaned}")
    return get_settings(key)


def referral_percentage() -> Decimal:
    """Commission percentage (e.g. 10 for 10%); falls back to the configured default."""
    configured = get_settings(REFERRALS).get("commissionPercentage")
    if configured is None:
        configured = current_app.config.get("DEFAULT_REFERRAL_PERCENTAGE", 10)
    try:
        percentage = Decimal(str(configured))
    except InvalidOperation:
        percentage = None
    if percentage is not None and percentage.is_finite():
        return percentage
    logger.error(f"Bad referral percentage {configured!r}, using default")
    return Decimal(str(current_app.config.get("DEFAULT_REFERRAL_PERCENTAGE", 10)))


def site_info():
    announcement = get_settings(ANNOUNCEMENT)
    return {
        "announcement": announcement if announcement.get("active") else None,
        "supportPhone": get_settings(SUPPORT)["phoneNumber"],
        "qrUrl": get_settings(QR_CODE)["url"],
        "rechargePresets": current_app.config.get("RECHARGE_PRESET_AMOUNTS", []),
    }
