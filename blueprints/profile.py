from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from models import PurchasedProduct
from wallet.accounts import referral_summary
from wallet.ledger import user_transactions
from wallet.settings import site_info
from wallet.withdrawal import update_withdrawal_account
from wallet.yields import process_user_yields
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('profile', __name__, url_prefix="")


def _accrue_for_current_user():
    plan = process_user_yields(current_user.id)
    return plan


# ----------------------------------------------------------------------------------
# DASHBOARD DATA: yields are caught up on every read
# ----------------------------------------------------------------------------------
@bp.route("/api/me", methods=["GET"])
@login_required
def me():
    _accrue_for_current_user()
    return jsonify(current_user.to_dict()), 200


@bp.route("/api/transactions", methods=["GET"])
@login_required
def transactions():
    limit = request.args.get("limit", type=int)
    entries = user_transactions(current_user.id, limit=limit)
    return jsonify({"transactions": [t.to_dict() for t in entries]}), 200


@bp.route("/api/my-products", methods=["GET"])
@login_required
def my_products():
    _accrue_for_current_user()
    products = PurchasedProduct.query.filter_by(user_id=current_user.id).order_by(
        PurchasedProduct.purchase_date.desc()
    ).all()
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@bp.route("/api/yields/process", methods=["POST"])
@login_required
def process_yields():
    plan = _accrue_for_current_user()
    return jsonify({
        "changed": plan.has_changes,
        "credited": float(plan.total_profit),
        "balance": float(current_user.balance),
        "products": [
            {"id": a.product.id, "cycles": a.cycles, "profit": float(a.profit), "status": a.status}
            for a in plan.accruals
        ],
    }), 200


#=======================================================================================
#      REFERRALS
#=======================================================================================
@bp.route("/api/referrals", methods=["GET"])
@login_required
def referrals():
    return jsonify(referral_summary(current_user)), 200


#===================================================================================
@bp.route("/api/withdrawal-account", methods=["PUT"])
@login_required
def withdrawal_account():
    """Set the Nequi payout account; `expectedVersion` is optional."""
    data = request.get_json(silent=True) or {}
    user = update_withdrawal_account(
        current_user.id,
        data.get("nequiAccount"),
        data.get("fullName"),
        data.get("idNumber"),
        expected_version=data.get("expectedVersion"),
    )
    return jsonify({"message": "Withdrawal account saved", "user": user.to_dict()}), 200


@bp.route("/api/site-info", methods=["GET"])
def get_site_info():
    return jsonify(site_info()), 200
