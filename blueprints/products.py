from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from utils import format_cop
from wallet.gift_codes import redeem_gift_code
from wallet.products import catalogue
from wallet.purchase import purchase_product
import logging

logger = logging.getLogger(__name__)

bp = Blueprint("products", __name__, url_prefix="")


@bp.route("/api/products", methods=["GET"])
@login_required
def list_products():
    return jsonify({"products": [p.to_dict() for p in catalogue()]}), 200


@bp.route("/api/products/<int:product_id>/purchase", methods=["POST"])
@login_required
def purchase(product_id):
    data = request.get_json(silent=True) or {}
    user, units = purchase_product(current_user.id, product_id, data.get("quantity", 1))
    return jsonify({
        "message": f"Purchased {len(units)} unit(s) of {units[0].name}",
        "balance": float(user.balance),
        "products": [u.to_dict() for u in units],
    }), 201


# --------------------------------------------------
#      Gift codes
# --------------------------------------------------
@bp.route("/api/gift-codes/redeem", methods=["POST"])
@login_required
def redeem():
    data = request.get_json(silent=True) or {}
    user, gift = redeem_gift_code(current_user.id, data.get("code"))
    return jsonify({
        "message": f"Code redeemed: {format_cop(gift.amount)} added to your balance",
        "amount": float(gift.amount),
        "balance": float(user.balance),
    }), 200
