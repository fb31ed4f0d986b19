"""
Daily yield accrual for purchased products.

Accrual is catch-up, not streaming: whenever a user's data is read (or the
`flask process-yields` job runs) every whole 24-hour cycle elapsed since the
last accrual is credited at once. Partial days never accrue and nothing is
credited past a product's expiration date.
"""
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging
from typing import List, NamedTuple, Optional
from extensions import db
from models import PurchasedProduct, ProductStatus, User
from utils import CENTS, utcnow
from wallet.balance import credit, load_user, run_transaction

logger = logging.getLogger(__name__)

CYCLE = timedelta(hours=24)
CYCLE_HOURS = 24


class ProductAccrual(NamedTuple):
    product: PurchasedProduct
    cycles: int
    profit: Decimal
    last_yield_date: Optional[object]
    status: str


class YieldPlan(NamedTuple):
    balance: Decimal
    accruals: List[ProductAccrual]

    @property
    def has_changes(self) -> bool:
        return bool(self.accruals)

    @property
    def total_profit(self) -> Decimal:
        return sum((a.profit for a in self.accruals), Decimal("0.00"))


def daily_profit(price, daily_yield) -> Decimal:
    return Decimal(price) * Decimal(daily_yield) / Decimal(100)


def accrue_product(product: PurchasedProduct, now) -> Optional[ProductAccrual]:
    """
    Work out what one product is owed at `now`. Returns None when nothing
    changes; a zero-cycle accrual is the status-only flip for a product that
    crossed its expiration without completing another cycle.
    """
    if product.status == ProductStatus.EXPIRED.value:
        return None

    expiration_date = product.expiration_date
    last_date = product.last_yield_date or product.purchase_date
    effective_now = min(now, expiration_date)
    elapsed_hours = (effective_now - last_date).total_seconds() / 3600

    if elapsed_hours < CYCLE_HOURS:
        if now > expiration_date:
            return ProductAccrual(product, 0, Decimal("0.00"), product.last_yield_date,
                                  ProductStatus.EXPIRED.value)
        return None

    cycles = int(elapsed_hours // CYCLE_HOURS)
    profit = (daily_profit(product.price, product.daily_yield) * cycles).quantize(CENTS, ROUND_HALF_UP)
    new_last_yield = last_date + CYCLE * cycles
    status = ProductStatus.EXPIRED.value if new_last_yield >= expiration_date else ProductStatus.ACTIVE.value
    return ProductAccrual(product, cycles, profit, new_last_yield, status)


def calculate_yields(balance, products, now) -> YieldPlan:
    """Pure pass over a user's products; nothing is mutated."""
    accruals = []
    running = Decimal(balance or 0)
    for product in products:
        accrual = accrue_product(product, now)
        if accrual is None:
            continue
        running += accrual.profit
        accruals.append(accrual)
    return YieldPlan(running, accruals)


def apply_yields(user: User, products, now) -> YieldPlan:
    """Apply a plan to loaded rows: one credit entry per product that earned, status flips for the rest."""
    plan = calculate_yields(user.balance, products, now)
    for accrual in plan.accruals:
        product = accrual.product
        if accrual.profit > 0:
            credit(user, accrual.profit, f"Yield from {product.name} ({accrual.cycles} day(s))", date=now)
        product.last_yield_date = accrual.last_yield_date
        product.status = accrual.status
        if accrual.status == ProductStatus.EXPIRED.value:
            logger.info(f"Purchased product {product.id} of user {user.id} expired")
    return plan


def process_user_yields(user_id, now=None) -> YieldPlan:
    """Accrue and persist a user's pending yields in one atomic write."""
    now = now or utcnow()

    def _accrue():
        user = load_user(user_id)
        products = PurchasedProduct.query.filter_by(
            user_id=user.id, status=ProductStatus.ACTIVE.value
        ).populate_existing().all()
        return apply_yields(user, products, now)

    plan = run_transaction(_accrue)
    if plan.has_changes:
        logger.info(f"Yields processed for user {user_id}: {plan.total_profit} over {len(plan.accruals)} product(s)")
    return plan


def process_all_yields(now=None):
    """Catch-up job over every user holding an active product."""
    now = now or utcnow()
    user_ids = [row[0] for row in db.session.query(PurchasedProduct.user_id).filter(
        PurchasedProduct.status == ProductStatus.ACTIVE.value,
        PurchasedProduct.user_id.isnot(None),
    ).distinct().all()]

    processed = 0
    credited = Decimal("0.00")
    failed = []
    for user_id in user_ids:
        try:
            plan = process_user_yields(user_id, now=now)
        except Exception as e:
            logger.error(f"Yield processing failed for user {user_id}: {e}", exc_info=True)
            failed.append(user_id)
            continue
        if plan.has_changes:
            processed += 1
            credited += plan.total_profit

    return {"users": len(user_ids), "processed": processed, "credited": credited, "failed": failed}
