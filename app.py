import os
import sqlite3
import click
from flask import Flask, g, jsonify, session
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from config import Config
from extensions import db, init_extensions, login_manager
from logger import app_logger, configure_app_logging
from models import User
from utils import utcnow
from wallet.errors import WalletError
from wallet.feed import init_feed


# --------------------------------------------------------------------------------------------------------
#       SQLite only enforces ON DELETE rules with foreign_keys switched on
# --------------------------------------------------------------------------------------------------------
@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    if not app.debug and not app.testing:
        app.config.update(
            SESSION_COOKIE_SECURE=True,
            REMEMBER_COOKIE_SECURE=True,
        )

    configure_app_logging(app)

    # ----------------------------------------------------------------------------------------------------------------------------------
    # DATABASE URI Fix
    # --------------------------------------------------------------------------------------------------------------------------------------------
    DATABASE_URI = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if DATABASE_URI.startswith("sqlite:///"):
        os.makedirs(os.path.dirname(DATABASE_URI.replace("sqlite:///", "", 1)) or ".", exist_ok=True)

    # --------------------------------------------------------------------------------------------------------------------------
    # Initialize extensions
    # ----------------------------------------------------------------------------------------------------------------------------
    init_extensions(app)
    init_feed(app)

    # ------------------------------------------------------------------------------------------------------------------------
    # Register blueprints
    # -----------------------------------------------------------------------------------------------------------------------
    def register_blueprints(app):
        from blueprints.auth import bp as auth_bp
        from blueprints.profile import bp as profile_bp
        from blueprints.recharge import bp as recharge_bp
        from blueprints.products import bp as products_bp
        from blueprints.withdraw import bp as withdraw_bp
        from blueprints.stream import bp as stream_bp
        from blueprints.admin import admin_bp

        app.register_blueprint(auth_bp)
        app.register_blueprint(profile_bp)
        app.register_blueprint(recharge_bp)
        app.register_blueprint(products_bp)
        app.register_blueprint(withdraw_bp)
        app.register_blueprint(stream_bp)
        app.register_blueprint(admin_bp)

    register_blueprints(app)
    register_error_handlers(app)
    register_commands(app)

    # ------------------------------------------------------------------------------------------------------------------------
    # Flask-Login
    # ------------------------------------------------------------------------------------------------------------------------
    @login_manager.user_loader
    def load_user(user_id):
        return User.query.get(int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Authentication required"}), 401

    # ----------------------
    # Global before_request
    # ----------------------
    @app.before_request
    def load_logged_in_user():
        g.user = None
        user_id = session.get("user_id")
        if user_id:
            g.user = User.query.get(user_id)

    # ----------------------
    # Basic routes
    # ----------------------
    @app.route("/")
    def home():
        return jsonify({"name": "SaldoYa", "status": "ok"}), 200

    @app.route("/healthz")
    def healthz():
        return {"status": "ok", "timestamp": utcnow().isoformat()}, 200

    return app


def register_error_handlers(app):

    @app.errorhandler(WalletError)
    def handle_wallet_error(e):
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(e):
        db.session.rollback()
        app.logger.error(f"Database error: {e}", exc_info=True)
        return jsonify({"error": "Something went wrong. Please try again."}), 500


def register_commands(app):

    @app.cli.command("process-yields")
    def process_yields_command():
        """Credit pending daily yields for every user with active products."""
        from wallet.yields import process_all_yields
        result = process_all_yields()
        click.echo(
            f"Users: {result['users']}, credited: {result['processed']} "
            f"({result['credited']}), failed: {len(result['failed'])}"
        )
        app_logger.info(f"process-yields: {result}")

    @app.cli.command("purge-temp-recharges")
    def purge_temp_recharges_command():
        """Delete recharge staging rows older than TEMP_RECHARGE_TTL_MINUTES."""
        from wallet.recharge import purge_staged_recharges
        deleted = purge_staged_recharges()
        click.echo(f"Deleted {deleted} expired recharge session(s)")
        app_logger.info(f"purge-temp-recharges: deleted {deleted}")


# ----------------------
# Create app instance
# ----------------------
app = create_app()

# ----------------------
# Local development
# ----------------------
if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug_mode = app.config.get("DEBUG", True)
    app.run(debug=debug_mode, host="0.0.0.0", port=port)
