#======================================================================================
#
# THIS IS THE ADMIN API
#
#=======================================================================================
from flask import Blueprint, abort, g, jsonify, request, session
from functools import wraps
from models import ADMIN_ROLES, PurchasedProduct, RequestStatus, User
from wallet import accounts, gift_codes, products, recharge, settings, withdrawal
from wallet.balance import adjust_balance
from wallet.purchase import remove_purchased_product
from blueprints.stream import admin_stream
import logging

logger = logging.getLogger(__name__)


def _role_required(roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if "user_id" not in session:
                abort(403)

            user = User.query.get(session["user_id"])
            if not user or user.role not in roles:
                abort(403)

            g.admin = user
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def admin_required(f):
    """
    Restrict a route to admins and superadmins.
    - Checks that 'user_id' exists in session.
    - Fetches the user from the database (to get the current role).
    - Aborts with 403 Forbidden otherwise.
    """
    return _role_required(ADMIN_ROLES)(f)


def superadmin_required(f):
    """Products, users, gift codes and settings are superadmin-only."""
    return _role_required(("superadmin",))(f)


admin_bp = Blueprint('admin', __name__, url_prefix='/admin/api')


def _status_arg(default=RequestStatus.PENDING.value):
    status = request.args.get("status", default)
    if status not in {s.value for s in RequestStatus}:
        abort(400, description=f"Unknown status '{status}'")
    return status


#======================================================================================
#   DASHBOARD
#======================================================================================
@admin_bp.route("/stats", methods=["GET"])
@admin_required
def stats():
    return jsonify(accounts.dashboard_stats()), 200


@admin_bp.route("/stream", methods=["GET"])
@admin_required
def stream():
    logger.info(f"Admin {g.admin.id} opened change stream")
    return admin_stream()


#======================================================================================
#   RECHARGE REQUESTS
#======================================================================================
@admin_bp.route("/recharge-requests", methods=["GET"])
@admin_required
def recharge_requests():
    items = recharge.list_recharge_requests(_status_arg())
    return jsonify({"requests": [r.to_dict() for r in items]}), 200


@admin_bp.route("/recharge-requests/<int:request_id>/approve", methods=["POST"])
@admin_required
def approve_recharge(request_id):
    approved, commission = recharge.approve_recharge(request_id, admin=g.admin)
    return jsonify({
        "message": "Recharge approved",
        "request": approved.to_dict(),
        "referralCommission": float(commission) if commission else None,
    }), 200


@admin_bp.route("/recharge-requests/<int:request_id>/reject", methods=["POST"])
@admin_required
def reject_recharge(request_id):
    rejected = recharge.reject_recharge(request_id, admin=g.admin)
    return jsonify({"message": "Recharge rejected", "request": rejected.to_dict()}), 200


#======================================================================================
#   WITHDRAWALS
#======================================================================================
@admin_bp.route("/withdrawals", methods=["GET"])
@admin_required
def withdrawals():
    items = withdrawal.list_withdrawals(status=_status_arg())
    return jsonify({"withdrawals": [w.to_dict() for w in items]}), 200


@admin_bp.route("/withdrawals/<int:withdrawal_id>/approve", methods=["POST"])
@admin_required
def approve_withdrawal(withdrawal_id):
    approved = withdrawal.approve_withdrawal(withdrawal_id, admin=g.admin)
    return jsonify({"message": "Withdrawal approved", "withdrawal": approved.to_dict()}), 200


@admin_bp.route("/withdrawals/<int:withdrawal_id>/reject", methods=["POST"])
@admin_required
def reject_withdrawal(withdrawal_id):
    rejected = withdrawal.reject_withdrawal(withdrawal_id, admin=g.admin)
    return jsonify({"message": "Withdrawal rejected and refunded", "withdrawal": rejected.to_dict()}), 200


#======================================================================================
#   PRODUCTS
#======================================================================================
@admin_bp.route("/products", methods=["GET"])
@superadmin_required
def list_products():
    return jsonify({"products": [p.to_dict() for p in products.all_products()]}), 200


@admin_bp.route("/products", methods=["POST"])
@superadmin_required
def create_product():
    product = products.create_product(request.get_json(silent=True) or {})
    return jsonify({"message": "Product created", "product": product.to_dict()}), 201


@admin_bp.route("/products/<int:product_id>", methods=["PUT"])
@superadmin_required
def update_product(product_id):
    product = products.update_product(product_id, request.get_json(silent=True) or {})
    return jsonify({"message": "Product updated", "product": product.to_dict()}), 200


@admin_bp.route("/products/<int:product_id>", methods=["DELETE"])
@superadmin_required
def delete_product(product_id):
    products.delete_product(product_id)
    return jsonify({"message": "Product deleted"}), 200


#======================================================================================
#   USERS
#======================================================================================
@admin_bp.route("/users", methods=["GET"])
@superadmin_required
def list_users():
    users = accounts.search_users(request.args.get("q"))
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@admin_bp.route("/users/<int:user_id>", methods=["GET"])
@superadmin_required
def user_detail(user_id):
    user = accounts.get_user(user_id)
    owned = PurchasedProduct.query.filter_by(user_id=user.id).order_by(
        PurchasedProduct.purchase_date.desc()
    ).all()
    return jsonify({
        "user": user.to_dict(),
        "products": [p.to_dict() for p in owned],
        "reconciliation": accounts.reconcile(user),
    }), 200


@admin_bp.route("/users/<int:user_id>/balance", methods=["POST"])
@superadmin_required
def adjust_user_balance(user_id):
    """
    Expected JSON:
    {
        "action": "add" | "subtract" | "set",
        "amount": 1000,
        "description": "",
        "expectedVersion": 3
    }
    """
    data = request.get_json(silent=True) or {}
    user = adjust_balance(
        user_id,
        data.get("action"),
        data.get("amount"),
        data.get("description"),
        data.get("expectedVersion"),
        actor=g.admin,
    )
    return jsonify({"message": "Balance updated", "user": user.to_dict()}), 200


@admin_bp.route("/users/<int:user_id>/role", methods=["PUT"])
@superadmin_required
def change_role(user_id):
    data = request.get_json(silent=True) or {}
    user = accounts.set_role(user_id, data.get("role"), actor=g.admin)
    return jsonify({"message": "Role updated", "user": user.to_dict()}), 200


@admin_bp.route("/users/<int:user_id>", methods=["DELETE"])
@superadmin_required
def delete_user(user_id):
    accounts.delete_user(user_id, actor=g.admin)
    return jsonify({"message": "User deleted"}), 200


@admin_bp.route("/users/<int:user_id>/products/<int:purchased_id>", methods=["DELETE"])
@superadmin_required
def delete_user_product(user_id, purchased_id):
    remove_purchased_product(user_id, purchased_id)
    return jsonify({"message": "Product removed"}), 200


#======================================================================================
#   GIFT CODES
#======================================================================================
@admin_bp.route("/gift-codes", methods=["GET"])
@superadmin_required
def list_gift_codes():
    return jsonify({"giftCodes": [c.to_dict() for c in gift_codes.list_gift_codes()]}), 200


@admin_bp.route("/gift-codes", methods=["POST"])
@superadmin_required
def create_gift_code():
    data = request.get_json(silent=True) or {}
    gift = gift_codes.create_gift_code(
        data.get("amount"),
        data.get("usageLimit", 1),
        data.get("expiresInMinutes"),
        code=data.get("code"),
    )
    return jsonify({"message": "Gift code created", "giftCode": gift.to_dict()}), 201


@admin_bp.route("/gift-codes/<int:gift_id>", methods=["DELETE"])
@superadmin_required
def delete_gift_code(gift_id):
    gift_codes.delete_gift_code(gift_id)
    return jsonify({"message": "Gift code deleted"}), 200


#======================================================================================
#   SETTINGS DOCUMENTS
#======================================================================================
@admin_bp.route("/settings/<key>", methods=["GET"])
@superadmin_required
def get_settings(key):
    return jsonify(settings.get_settings(key)), 200


@admin_bp.route("/settings/<key>", methods=["PUT"])
@superadmin_required
def update_settings(key):
    updated = settings.update_settings(key, request.get_json(silent=True))
    return jsonify({"message": "Settings saved", "settings": updated}), 200
