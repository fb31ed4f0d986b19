#======================================================================================
#
#   RECHARGE: stage an amount, pay by bank transfer, submit the payment reference
#
#=======================================================================================
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from models import RechargeRequest
from wallet.recharge import get_staged_recharge, start_recharge, submit_recharge_request
from wallet.settings import QR_CODE, get_settings
import logging

logger = logging.getLogger(__name__)

bp = Blueprint("recharge", __name__, url_prefix="")


@bp.route("/api/recharge", methods=["POST"])
@login_required
def create_recharge():
    data = request.get_json(silent=True) or {}
    temp = start_recharge(current_user, data.get("amount"))
    return jsonify({"id": temp.id, "amount": float(temp.amount)}), 201


@bp.route("/api/recharge/<reference_id>", methods=["GET"])
@login_required
def staged_recharge(reference_id):
    temp = get_staged_recharge(reference_id, current_user)
    return jsonify({
        "id": temp.id,
        "amount": float(temp.amount),
        "qrUrl": get_settings(QR_CODE)["url"],
        "createdAt": temp.created_at.isoformat(),
    }), 200


@bp.route("/api/recharge/<reference_id>/confirm", methods=["POST"])
@login_required
def confirm_recharge(reference_id):
    """
    Expected JSON:
    {
        "reference": "<bank payment reference>"
    }
    """
    data = request.get_json(silent=True) or {}
    recharge = submit_recharge_request(current_user, reference_id, data.get("reference"))
    return jsonify({
        "message": "Recharge request submitted. It will be reviewed shortly.",
        "request": recharge.to_dict(),
    }), 201


@bp.route("/api/recharge-requests", methods=["GET"])
@login_required
def my_recharge_requests():
    requests = RechargeRequest.query.filter_by(user_id=current_user.id).order_by(
        RechargeRequest.requested_at.desc()
    ).all()
    return jsonify({"requests": [r.to_dict() for r in requests]}), 200
