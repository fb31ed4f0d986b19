from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from wallet.settings import WITHDRAWALS, get_settings
from wallet.withdrawal import list_withdrawals, request_withdrawal
import logging

logger = logging.getLogger(__name__)

bp = Blueprint("withdraw", __name__, url_prefix="")


@bp.route("/api/withdrawals", methods=["POST"])
@login_required
def create_withdrawal():
    """
    Expected JSON:
    {
        "amount": 20000
    }
    The amount leaves the balance now; a rejected request is refunded.
    """
    data = request.get_json(silent=True) or {}
    withdrawal = request_withdrawal(current_user.id, data.get("amount"))
    return jsonify({
        "message": "Withdrawal request submitted",
        "withdrawal": withdrawal.to_dict(),
    }), 201


@bp.route("/api/withdrawals", methods=["GET"])
@login_required
def my_withdrawals():
    return jsonify({
        "withdrawals": [w.to_dict() for w in list_withdrawals(user_id=current_user.id)],
        "rules": get_settings(WITHDRAWALS),
    }), 200
