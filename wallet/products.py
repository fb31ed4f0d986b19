import logging
from extensions import db
from models import Product
from utils import to_money, utcnow
from wallet.errors import NotFoundError, ValidationError
from wallet.feed import notify

logger = logging.getLogger(__name__)

TOPIC = "products"


def _int_field(data, key, minimum, label):
    value = data.get(key)
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a whole number.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a whole number.")
    if float(value) != number or number < minimum:
        raise ValidationError(f"{label} must be a whole number of at least {minimum}.")
    return number


def clean_product_data(data: dict) -> dict:
    """Validate an admin product form; every field is required."""
    name = str(data.get("name") or "").strip()
    if len(name) < 3:
        raise ValidationError("The name must have at least 3 characters.")
    try:
        price = to_money(data.get("price"), "price")
        daily_yield = to_money(data.get("dailyYield"), "dailyYield")
    except ValueError as e:
        raise ValidationError(str(e))
    if price <= 0:
        raise ValidationError("The price must be positive.")
    if daily_yield <= 0 or daily_yield > 100:
        raise ValidationError("The daily yield must be between 0 and 100 percent.")

    cleaned = {
        "name": name,
        "price": price,
        "daily_yield": daily_yield,
        "purchase_limit": _int_field(data, "purchaseLimit", 1, "The purchase limit"),
        "duration_days": _int_field(data, "durationDays", 1, "The duration"),
        "image_url": (str(data.get("imageUrl") or "").strip() or None),
        "is_time_limited": bool(data.get("isTimeLimited")),
        "time_limit_hours": None,
    }
    if cleaned["is_time_limited"]:
        cleaned["time_limit_hours"] = _int_field(data, "timeLimitHours", 1, "The offer window")
    return cleaned


def _apply(product: Product, cleaned: dict, now):
    for field, value in cleaned.items():
        setattr(product, field, value)
    # saving a time-limited product (re)starts its window
    product.time_limit_set_at = now if cleaned["is_time_limited"] else None


def create_product(data, now=None) -> Product:
    cleaned = clean_product_data(data)
    product = Product()
    _apply(product, cleaned, now or utcnow())
    db.session.add(product)
    notify(TOPIC, "product.created", name=product.name)
    db.session.commit()
    logger.info(f"Product {product.id} '{product.name}' created")
    return product


def update_product(product_id, data, now=None) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found.")
    _apply(product, clean_product_data(data), now or utcnow())
    notify(TOPIC, "product.updated", id=product.id)
    db.session.commit()
    logger.info(f"Product {product.id} updated")
    return product


def delete_product(product_id):
    """Owned units keep their snapshot; only the template goes."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found.")
    db.session.delete(product)
    notify(TOPIC, "product.deleted", id=product_id)
    db.session.commit()
    logger.info(f"Product {product_id} deleted")


def all_products():
    return Product.query.order_by(Product.created_at.desc()).all()


def catalogue(now=None):
    """Products a user may buy right now: open time-limited offers first, then newest."""
    now = now or utcnow()
    visible = [p for p in all_products() if p.is_offer_open(now)]
    return sorted(visible, key=lambda p: 0 if p.offer_ends_at is not None else 1)
