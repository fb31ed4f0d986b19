import itertools
from datetime import datetime
from decimal import Decimal

import pytest

from app import create_app
from config import TestConfig
from extensions import db as _db
from models import Product, PurchasedProduct, User

# Monday 2026-10-19 12:00 in Bogota (UTC-5)
NOW = datetime(2026, 10, 19, 17, 0, 0)
PASSWORD = "secret123"


@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'saldoya-test.db'}"

    app = create_app(_Config)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    def _make(balance=0, role="user", referrer=None, phone=None, password=PASSWORD, **fields):
        n = next(counter)
        user = User(
            phone=phone or f"3{n:09d}",
            display_id=f"U{n:05d}",
            referral_code=f"REF{n:03d}",
            role=role,
            balance=Decimal(str(balance)),
            referred_by_id=referrer.id if referrer else None,
            has_made_first_recharge=False,
            **fields,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_product(db):
    def _make(name="Plan Oro", price=25000, daily_yield=2, purchase_limit=5, duration_days=30, **fields):
        product = Product(
            name=name,
            price=Decimal(str(price)),
            daily_yield=Decimal(str(daily_yield)),
            purchase_limit=purchase_limit,
            duration_days=duration_days,
            **fields,
        )
        db.session.add(product)
        db.session.commit()
        return product

    return _make


@pytest.fixture
def make_owned_product(db):
    def _make(user, purchase_date, price=10000, daily_yield=2, duration_days=30, **fields):
        unit = PurchasedProduct(
            user_id=user.id,
            name=fields.pop("name", "Plan Plata"),
            price=Decimal(str(price)),
            daily_yield=Decimal(str(daily_yield)),
            duration_days=duration_days,
            purchase_date=purchase_date,
            **fields,
        )
        db.session.add(unit)
        db.session.commit()
        return unit

    return _make


@pytest.fixture
def login(client):
    def _login(user, password=PASSWORD):
        response = client.post("/api/login", json={"phone": user.phone, "password": password})
        assert response.status_code == 200, response.get_json()
        return response

    return _login
