# purchase.py
from decimal import Decimal
import logging
from extensions import db
from models import Product, PurchasedProduct, User
from utils import utcnow
from wallet.balance import debit, load_user, run_transaction
from wallet.errors import (LimitExceededError, NotFoundError, ValidationError,
                           WindowClosedError, InsufficientBalanceError)
from wallet.feed import notify_user

logger = logging.getLogger(__name__)

MAX_QUANTITY = 100


class PurchaseValidator:
    @staticmethod
    def parse_quantity(value) -> int:
        if isinstance(value, bool):
            raise ValidationError("Quantity must be a whole number.")
        try:
            quantity = int(value)
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be a whole number.")
        if float(value) != quantity or quantity < 1:
            raise ValidationError("Quantity must be at least 1.")
        if quantity > MAX_QUANTITY:
            raise ValidationError(f"You can buy at most {MAX_QUANTITY} units at once.")
        return quantity

    @staticmethod
    def owned_count(user_id, product_id) -> int:
        """Units ever bought (expired ones included) count against the limit."""
        return PurchasedProduct.query.filter_by(user_id=user_id, product_id=product_id).count()

    @staticmethod
    def validate(user: User, product: Product, quantity: int, now):
        if not product.is_offer_open(now):
            raise WindowClosedError("This offer is no longer available.")

        owned = PurchaseValidator.owned_count(user.id, product.id)
        if owned + quantity > product.purchase_limit:
            raise LimitExceededError(
                f"Purchase limit exceeded: the limit is {product.purchase_limit} and you own {owned}."
            )

        total = Decimal(product.price) * quantity
        if Decimal(user.balance or 0) < total:
            raise InsufficientBalanceError("Insufficient balance for this purchase.")
        return total


def purchase_product(user_id, product_id, quantity=1, now=None):
    """
    Buy `quantity` units of a product. The debit, its ledger entry and the new
    purchased-product rows commit together or not at all.
    """
    quantity = PurchaseValidator.parse_quantity(quantity)
    now = now or utcnow()

    def _purchase():
        user = load_user(user_id)
        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product not found.")

        total = PurchaseValidator.validate(user, product, quantity, now)
        debit(user, total, f"Purchase: {product.name} (x{quantity})", date=now)

        units = []
        for _ in range(quantity):
            unit = PurchasedProduct(
                user_id=user.id,
                product_id=product.id,
                name=product.name,
                price=product.price,
                daily_yield=product.daily_yield,
                duration_days=product.duration_days,
                image_url=product.image_url,
                purchase_date=now,
                last_yield_date=None,
            )
            db.session.add(unit)
            units.append(unit)
        notify_user(user, "products.purchased")
        return user, units

    user, units = run_transaction(_purchase)
    logger.info(f"User {user.id} bought {quantity} x product {product_id}; balance now {user.balance}")
    return user, units


def remove_purchased_product(user_id, purchased_id):
    """Admin removal of one owned unit; no balance effect."""
    unit = PurchasedProduct.query.filter_by(id=purchased_id, user_id=user_id).first()
    if unit is None:
        raise NotFoundError("Purchased product not found.")
    if unit.user is not None:
        notify_user(unit.user, "products.removed")
    db.session.delete(unit)
    db.session.commit()
    logger.info(f"Purchased product {purchased_id} removed from user {user_id}")
