from flask import Blueprint, current_app, jsonify, request, session
from flask_login import login_user, logout_user
from models import User
from wallet.accounts import authenticate, register_user
import logging


logger = logging.getLogger(__name__)
#==================================================================================================================

bp = Blueprint("auth", __name__, url_prefix="")


def start_session(user):
    session.clear()
    session["user_id"] = user.id
    login_user(user)


#===========================================================================
#      SIGN UP ROUTE.
#==============================================================================
@bp.route("/api/register", methods=["POST"])
def register():
    """
    Create a new user with the signup bonus and log them in.
    Expected JSON:
    {
        "phone": "",
        "password": "",
        "referralCode": ""   (optional)
    }
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Invalid or missing JSON body"}), 400

    user = register_user(
        data.get("phone"),
        data.get("password"),
        referral_code=data.get("referralCode"),
    )
    start_session(user)
    current_app.logger.info(f"Registration complete for user {user.id}")
    return jsonify({
        "status": "success",
        "message": "Signup successful",
        "user": user.to_dict(),
    }), 201


# --------------------------------------------------
#      Login Route
# --------------------------------------------------
@bp.route("/api/login", methods=["POST"])
def login():
    """
    Authenticate a user.
    Expected JSON:
    {
        "phone": "",
        "password": ""
    }
    """
    data = request.get_json(silent=True) or {}
    user = authenticate(data.get("phone"), data.get("password"))
    start_session(user)
    return jsonify({
        "message": "Login successful",
        "user": user.to_dict()
    }), 200


#-----------------------------------------------------------------------------------------------------
@bp.route("/api/logout", methods=["POST"])
def logout():
    """
    Destroy User session
    """
    logout_user()
    session.clear()
    return jsonify({"message": "Logged out successfully"}), 200


# --------------------------------------------------
# Check Session (for frontend auto-login)
# --------------------------------------------------
@bp.route("/api/session", methods=["GET"])
def check_session():
    """Returns current logged-in user data if authenticated"""
    user_id = session.get("user_id")
    if not user_id:
        return jsonify({"authenticated": False}), 200

    user = User.query.get(user_id)
    if not user:
        session.clear()
        return jsonify({"authenticated": False}), 200

    return jsonify({
        "authenticated": True,
        "user": user.to_dict()
    }), 200
