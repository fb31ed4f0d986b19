from datetime import timedelta
from decimal import Decimal

import pytest

from models import PurchasedProduct, Transaction
from wallet.errors import (InsufficientBalanceError, LimitExceededError, NotFoundError,
                           ValidationError, WindowClosedError)
from wallet.products import catalogue, create_product, update_product
from wallet.purchase import purchase_product, remove_purchased_product


class TestPurchase:
    def test_two_units_debit_once_and_snapshot_each(self, db, make_user, make_product, now):
        user = make_user(balance=60000)
        product = make_product(price=25000, daily_yield=3, duration_days=40)

        _, units = purchase_product(user.id, product.id, 2, now=now)

        assert user.balance == Decimal("10000.00")
        assert user.version == 2
        assert len(units) == 2
        for unit in units:
            assert unit.price == Decimal("25000.00")
            assert unit.daily_yield == Decimal("3.00")
            assert unit.duration_days == 40
            assert unit.purchase_date == now
            assert unit.last_yield_date is None
            assert unit.status == "Active"

        entries = Transaction.query.filter_by(user_id=user.id).all()
        assert len(entries) == 1
        assert entries[0].type == "debit"
        assert entries[0].amount == Decimal("50000.00")
        assert entries[0].description == "Purchase: Plan Oro (x2)"

    def test_snapshot_survives_template_edit(self, db, make_user, make_product, now):
        user = make_user(balance=60000)
        product = make_product(price=25000)
        _, units = purchase_product(user.id, product.id, 1, now=now)

        update_product(product.id, {
            "name": "Plan Oro", "price": 99999, "dailyYield": 9,
            "purchaseLimit": 5, "durationDays": 30,
        }, now=now)

        assert units[0].price == Decimal("25000.00")

    def test_insufficient_balance_changes_nothing(self, db, make_user, make_product, now):
        user = make_user(balance=40000)
        product = make_product(price=25000)

        with pytest.raises(InsufficientBalanceError):
            purchase_product(user.id, product.id, 2, now=now)

        assert user.balance == Decimal("40000.00")
        assert PurchasedProduct.query.count() == 0
        assert Transaction.query.count() == 0

    def test_purchase_limit_counts_owned_units(self, db, make_user, make_product, now):
        user = make_user(balance=100000)
        product = make_product(price=10000, purchase_limit=2)
        purchase_product(user.id, product.id, 1, now=now)

        with pytest.raises(LimitExceededError) as exc:
            purchase_product(user.id, product.id, 2, now=now)

        assert "limit is 2 and you own 1" in exc.value.message
        assert user.balance == Decimal("90000.00")

    def test_closed_offer_cannot_be_bought(self, db, make_user, make_product, now):
        user = make_user(balance=100000)
        product = make_product(is_time_limited=True, time_limit_hours=1,
                               time_limit_set_at=now - timedelta(hours=2))
        with pytest.raises(WindowClosedError):
            purchase_product(user.id, product.id, 1, now=now)

    def test_unknown_product(self, db, make_user, now):
        user = make_user(balance=100000)
        with pytest.raises(NotFoundError):
            purchase_product(user.id, 999, 1, now=now)

    @pytest.mark.parametrize("quantity", [0, -1, "two", 1.5, True])
    def test_invalid_quantity(self, db, make_user, make_product, now, quantity):
        user = make_user(balance=100000)
        product = make_product()
        with pytest.raises(ValidationError):
            purchase_product(user.id, product.id, quantity, now=now)

    def test_admin_removal_of_owned_unit(self, db, make_user, make_product, now):
        user = make_user(balance=100000)
        product = make_product()
        _, units = purchase_product(user.id, product.id, 1, now=now)
        unit_id = units[0].id

        remove_purchased_product(user.id, unit_id)

        assert db.session.get(PurchasedProduct, unit_id) is None
        with pytest.raises(NotFoundError):
            remove_purchased_product(user.id, unit_id)


class TestCatalogue:
    def test_hides_closed_offers_and_lists_open_offers_first(self, db, make_product, now):
        make_product(name="Regular", created_at=now - timedelta(days=2))
        make_product(name="Newest", created_at=now - timedelta(days=1))
        make_product(name="Flash", is_time_limited=True, time_limit_hours=5,
                     time_limit_set_at=now - timedelta(hours=1), created_at=now - timedelta(days=3))
        make_product(name="Gone", is_time_limited=True, time_limit_hours=1,
                     time_limit_set_at=now - timedelta(hours=2))

        assert [p.name for p in catalogue(now)] == ["Flash", "Newest", "Regular"]

    def test_saving_time_limited_product_starts_window(self, db, now):
        product = create_product({
            "name": "Flash", "price": 10000, "dailyYield": 5, "purchaseLimit": 1,
            "durationDays": 7, "isTimeLimited": True, "timeLimitHours": 24,
        }, now=now)

        assert product.time_limit_set_at == now
        assert product.offer_ends_at == now + timedelta(hours=24)

        update_product(product.id, {
            "name": "Flash", "price": 10000, "dailyYield": 5, "purchaseLimit": 1, "durationDays": 7,
        }, now=now)
        assert product.time_limit_set_at is None
        assert product.is_offer_open(now + timedelta(days=10))

    @pytest.mark.parametrize("field,value", [
        ("name", "ab"), ("price", 0), ("dailyYield", 101), ("purchaseLimit", 0), ("durationDays", "x"),
        ("price", "1e30"), ("price", 1e20), ("dailyYield", "inf"),
    ])
    def test_product_validation(self, db, now, field, value):
        data = {"name": "Plan", "price": 10000, "dailyYield": 2, "purchaseLimit": 1, "durationDays": 30}
        data[field] = value
        with pytest.raises(ValidationError):
            create_product(data, now=now)
