# models.py - Flask-SQLAlchemy models for the SaldoYa wallet
from datetime import timedelta
from decimal import Decimal
import enum
from enum import Enum
from flask_login import UserMixin
from sqlalchemy import UniqueConstraint, Index
from werkzeug.security import check_password_hash, generate_password_hash
from extensions import db
from utils import utcnow, mask_phone, money_float

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class TransactionType(Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class RequestStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ProductStatus(enum.Enum):
    ACTIVE = "Active"
    EXPIRED = "Expired"


class Role(enum.Enum):
    USER = "user"
    SUPPORT = "support"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


ADMIN_ROLES = (Role.ADMIN.value, Role.SUPERADMIN.value)


def _iso(value):
    return value.isoformat() if value else None


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

# ===========================================================
# USER
# ===========================================================

class User(UserMixin, db.Model, BaseMixin):
    """Account holder. `version` is the optimistic-lock counter; every UPDATE bumps it by one."""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    display_id = db.Column(db.String(12), unique=True, nullable=False)
    phone = db.Column(db.String(20), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=Role.USER.value, index=True)
    balance = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    version = db.Column(db.Integer, nullable=False)

    referral_code = db.Column(db.String(12), unique=True, nullable=False)
    referred_by_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    has_made_first_recharge = db.Column(db.Boolean, nullable=False, default=False)

    # Payout account
    withdrawal_account = db.Column(db.String(30), nullable=True)
    withdrawal_full_name = db.Column(db.String(150), nullable=True)
    withdrawal_id_number = db.Column(db.String(30), nullable=True)

    is_active = db.Column(db.Boolean, default=True)

    referrer = db.relationship('User', remote_side=[id], backref=db.backref('referred_users', passive_deletes=True))
    purchased_products = db.relationship('PurchasedProduct', back_populates='user',
                                         order_by='PurchasedProduct.purchase_date', passive_deletes=True)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('idx_user_phone', 'phone'),
        Index('idx_user_referral_code', 'referral_code'),
    )

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role in ADMIN_ROLES

    @property
    def is_superadmin(self):
        return self.role == Role.SUPERADMIN.value

    @property
    def withdrawal_info(self):
        if not self.withdrawal_account:
            return None
        return {
            "nequiAccount": self.withdrawal_account,
            "fullName": self.withdrawal_full_name,
            "idNumber": self.withdrawal_id_number,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "displayId": self.display_id,
            "phone": self.phone,
            "role": self.role,
            "balance": money_float(self.balance),
            "version": self.version,
            "referralCode": self.referral_code,
            "referredBy": self.referred_by_id,
            "hasMadeFirstRecharge": bool(self.has_made_first_recharge),
            "withdrawalInfo": self.withdrawal_info,
            "memberSince": _iso(self.created_at),
        }

    def to_referral_dict(self):
        return {
            "displayId": self.display_id,
            "phone": mask_phone(self.phone),
            "hasMadeFirstRecharge": bool(self.has_made_first_recharge),
            "memberSince": _iso(self.created_at),
        }

    def __repr__(self):
        return f'<User {self.id} {self.display_id} v{self.version}>'

# ===========================================================
# PRODUCTS
# ===========================================================

class Product(db.Model, BaseMixin):
    """Admin-managed template users buy from."""
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    price = db.Column(db.Numeric(18, 2), nullable=False)
    daily_yield = db.Column(db.Numeric(6, 2), nullable=False)  # percent
    purchase_limit = db.Column(db.Integer, nullable=False, default=1)
    duration_days = db.Column(db.Integer, nullable=False, default=30)
    image_url = db.Column(db.String(500), nullable=True)

    is_time_limited = db.Column(db.Boolean, nullable=False, default=False)
    time_limit_hours = db.Column(db.Integer, nullable=True)
    time_limit_set_at = db.Column(db.DateTime, nullable=True)

    @property
    def offer_ends_at(self):
        if not (self.is_time_limited and self.time_limit_hours and self.time_limit_set_at):
            return None
        return self.time_limit_set_at + timedelta(hours=self.time_limit_hours)

    def is_offer_open(self, now) -> bool:
        ends_at = self.offer_ends_at
        return ends_at is None or now < ends_at

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "price": money_float(self.price),
            "dailyYield": money_float(self.daily_yield),
            "dailyYieldAmount": money_float(self.price * self.daily_yield / 100),
            "purchaseLimit": self.purchase_limit,
            "durationDays": self.duration_days,
            "imageUrl": self.image_url,
            "isTimeLimited": bool(self.is_time_limited),
            "timeLimitHours": self.time_limit_hours,
            "timeLimitSetAt": _iso(self.time_limit_set_at),
            "offerEndsAt": _iso(self.offer_ends_at),
            "createdAt": _iso(self.created_at),
        }


class PurchasedProduct(db.Model):
    """One unit a user owns. Price, yield and duration are snapshotted at purchase time."""
    __tablename__ = 'purchased_products'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='SET NULL'), nullable=True, index=True)
    name = db.Column(db.String(100), nullable=False)
    price = db.Column(db.Numeric(18, 2), nullable=False)
    daily_yield = db.Column(db.Numeric(6, 2), nullable=False)
    duration_days = db.Column(db.Integer, nullable=False)
    image_url = db.Column(db.String(500), nullable=True)
    purchase_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_yield_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=ProductStatus.ACTIVE.value)

    user = db.relationship('User', back_populates='purchased_products')

    __table_args__ = (
        Index('idx_purchased_user_status', 'user_id', 'status'),
    )

    @property
    def expiration_date(self):
        return self.purchase_date + timedelta(days=self.duration_days)

    @property
    def is_expired(self):
        return self.status == ProductStatus.EXPIRED.value

    def to_dict(self):
        return {
            "id": self.id,
            "productId": self.product_id,
            "name": self.name,
            "price": money_float(self.price),
            "dailyYield": money_float(self.daily_yield),
            "durationDays": self.duration_days,
            "imageUrl": self.image_url,
            "purchaseDate": _iso(self.purchase_date),
            "lastYieldDate": _iso(self.last_yield_date),
            "expirationDate": _iso(self.expiration_date),
            "status": self.status,
        }

# ===========================================================
# LEDGER
# ===========================================================

class Transaction(db.Model):
    """Immutable ledger entry."""
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    type = db.Column(db.String(10), nullable=False)  # credit, debit
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    date = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "amount": money_float(self.amount),
            "description": self.description,
            "date": _iso(self.date),
        }

# ===========================================================
# RECHARGES & WITHDRAWALS
# ===========================================================

class TempRecharge(db.Model):
    """Short-lived staging row holding an amount until the user submits a payment reference."""
    __tablename__ = 'temp_recharges'

    id = db.Column(db.String(64), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class RechargeRequest(db.Model):
    __tablename__ = 'recharge_requests'

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(120), nullable=False, index=True)  # user-supplied payment reference
    # Set only on approval; the unique constraint makes a reference approvable once.
    approved_reference = db.Column(db.String(120), nullable=True, unique=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    user_phone = db.Column(db.String(20))
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=RequestStatus.PENDING.value, index=True)
    requested_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    processed_at = db.Column(db.DateTime, nullable=True)
    processed_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "reference": self.reference,
            "userId": self.user_id,
            "userPhone": self.user_phone,
            "amount": money_float(self.amount),
            "status": self.status,
            "requestedAt": _iso(self.requested_at),
            "processedAt": _iso(self.processed_at),
        }


class WithdrawalRequest(db.Model):
    __tablename__ = 'withdrawal_requests'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    user_phone = db.Column(db.String(20))
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    fee = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    net_amount = db.Column(db.Numeric(18, 2), nullable=False)
    nequi_account = db.Column(db.String(30), nullable=False)
    full_name = db.Column(db.String(150), nullable=False)
    id_number = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=RequestStatus.PENDING.value, index=True)
    requested_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    processed_at = db.Column(db.DateTime, nullable=True)
    processed_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "userPhone": self.user_phone,
            "amount": money_float(self.amount),
            "fee": money_float(self.fee),
            "netAmount": money_float(self.net_amount),
            "nequiAccount": self.nequi_account,
            "fullName": self.full_name,
            "idNumber": self.id_number,
            "status": self.status,
            "requestedAt": _iso(self.requested_at),
            "processedAt": _iso(self.processed_at),
        }

# ===========================================================
# GIFT CODES
# ===========================================================

class GiftCode(db.Model):
    """`version` guards `redeemed_count` so concurrent redemptions cannot overshoot usage_limit."""
    __tablename__ = 'gift_codes'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(40), unique=True, nullable=False, index=True)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    usage_limit = db.Column(db.Integer, nullable=False, default=1)
    expires_in_minutes = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    redeemed_count = db.Column(db.Integer, nullable=False, default=0)
    version = db.Column(db.Integer, nullable=False)

    redemptions = db.relationship('GiftCodeRedemption', back_populates='gift_code',
                                  cascade="all, delete-orphan", passive_deletes=True)

    __mapper_args__ = {"version_id_col": version}

    @property
    def expires_at(self):
        return self.created_at + timedelta(minutes=self.expires_in_minutes)

    @property
    def redeemed_by(self):
        # deleted users leave detached redemption rows
        return [r.user_id for r in self.redemptions if r.user_id is not None]

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "amount": money_float(self.amount),
            "usageLimit": self.usage_limit,
            "expiresInMinutes": self.expires_in_minutes,
            "createdAt": _iso(self.created_at),
            "expiresAt": _iso(self.expires_at),
            "redeemedBy": self.redeemed_by,
            "redeemedCount": self.redeemed_count,
        }


class GiftCodeRedemption(db.Model):
    __tablename__ = 'gift_code_redemptions'

    id = db.Column(db.Integer, primary_key=True)
    gift_code_id = db.Column(db.Integer, db.ForeignKey('gift_codes.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    redeemed_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    gift_code = db.relationship('GiftCode', back_populates='redemptions')

    __table_args__ = (
        UniqueConstraint('gift_code_id', 'user_id', name='uq_gift_code_user'),
    )

# ===========================================================
# CONFIG DOCUMENTS & AUDITING
# ===========================================================

class ConfigDocument(db.Model):
    """Singleton settings rows keyed by name (withdrawals, referrals, support, qrCode, announcement)."""
    __tablename__ = 'config'

    key = db.Column(db.String(50), primary_key=True)
    data = db.Column(db.JSON, nullable=False, default=dict)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)


class AuditLog(db.Model, BaseMixin):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    target_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    action = db.Column(db.String(255))
    details = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(50))
