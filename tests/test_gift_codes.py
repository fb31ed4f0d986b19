from datetime import timedelta
from decimal import Decimal

import pytest

from models import GiftCode, GiftCodeRedemption, Transaction
from wallet.accounts import delete_user
from wallet.errors import (ConflictError, LimitExceededError, NotFoundError, ValidationError,
                           WindowClosedError)
from wallet.gift_codes import create_gift_code, delete_gift_code, redeem_gift_code


def test_create_generates_upper_case_code(db, now):
    gift = create_gift_code(5000, 10, 60, now=now)
    assert len(gift.code) == 8
    assert gift.code == gift.code.upper()
    assert gift.expires_at == now + timedelta(minutes=60)


def test_create_rejects_existing_code(db, now):
    create_gift_code(5000, 1, 60, code="bienvenida", now=now)
    with pytest.raises(ConflictError):
        create_gift_code(1000, 1, 60, code="BIENVENIDA", now=now)


@pytest.mark.parametrize("amount,limit,minutes", [
    (0, 1, 60), (1000, 0, 60), (1000, 1, 0), ("x", 1, 60), ("1e30", 1, 60), (10 ** 20, 1, 60),
])
def test_create_validation(db, now, amount, limit, minutes):
    with pytest.raises(ValidationError):
        create_gift_code(amount, limit, minutes, now=now)


class TestRedeem:
    def test_credits_balance_and_records_redemption(self, db, make_user, now):
        user = make_user(balance=100)
        create_gift_code(5000, 3, 60, code="PROMO1", now=now)

        _, gift = redeem_gift_code(user.id, " promo1 ", now=now + timedelta(minutes=5))

        assert user.balance == Decimal("5100.00")
        assert gift.redeemed_count == 1
        assert gift.redeemed_by == [user.id]
        entry = Transaction.query.filter_by(user_id=user.id).one()
        assert (entry.type, entry.amount) == ("credit", Decimal("5000.00"))

    def test_same_user_twice_has_no_effect(self, db, make_user, now):
        user = make_user()
        create_gift_code(5000, 3, 60, code="PROMO1", now=now)
        redeem_gift_code(user.id, "PROMO1", now=now)

        with pytest.raises(ConflictError):
            redeem_gift_code(user.id, "PROMO1", now=now)

        assert user.balance == Decimal("5000.00")
        assert GiftCode.query.one().redeemed_count == 1
        assert GiftCodeRedemption.query.count() == 1

    def test_usage_limit_caps_redemptions(self, db, make_user, now):
        first, second = make_user(), make_user()
        create_gift_code(5000, 1, 60, code="ONCE", now=now)
        redeem_gift_code(first.id, "ONCE", now=now)

        with pytest.raises(LimitExceededError):
            redeem_gift_code(second.id, "ONCE", now=now)

        assert second.balance == Decimal("0.00")
        assert GiftCode.query.one().redeemed_count == 1

    def test_expired_code_fails(self, db, make_user, now):
        user = make_user()
        create_gift_code(5000, 5, 30, code="LATE", now=now)
        with pytest.raises(WindowClosedError):
            redeem_gift_code(user.id, "LATE", now=now + timedelta(minutes=30))
        assert user.balance == Decimal("0.00")

    def test_unknown_code(self, db, make_user, now):
        with pytest.raises(NotFoundError):
            redeem_gift_code(make_user().id, "NOPE", now=now)

    def test_delete_removes_redemptions(self, db, make_user, now):
        user = make_user()
        gift = create_gift_code(5000, 5, 30, code="GONE", now=now)
        redeem_gift_code(user.id, "GONE", now=now)

        delete_gift_code(gift.id)

        assert GiftCode.query.count() == 0
        assert GiftCodeRedemption.query.count() == 0
        assert user.balance == Decimal("5000.00")

    def test_deleted_redeemer_drops_out_of_redeemed_by(self, db, make_user, now):
        kept, removed = make_user(), make_user()
        create_gift_code(5000, 5, 30, code="PAIR", now=now)
        redeem_gift_code(kept.id, "PAIR", now=now)
        redeem_gift_code(removed.id, "PAIR", now=now)

        delete_user(removed.id)
        db.session.expire_all()

        gift = GiftCode.query.one()
        assert gift.to_dict()["redeemedBy"] == [kept.id]
        assert gift.redeemed_count == 2
