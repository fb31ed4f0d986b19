# ==========================================================================================================
# -------------- Configuration file for the SaldoYa Flask application --------------------------------------
# ==========================================================================================================
import os
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _int_list(value, default):
    if not value:
        return default
    return [int(part) for part in value.split(",") if part.strip()]


class Config:

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")
    TESTING = False

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY:
        if os.getenv("FLASK_ENV") == "production":
            raise ValueError("SECRET_KEY must be set in production")
        SECRET_KEY = "dev_key_change_me"

    _database_url = os.getenv("DATABASE_URL")
    if not _database_url:
        _database_url = f"sqlite:///{os.path.join(basedir, 'instance', 'saldoya.db')}"

    if _database_url.startswith("postgres://"):
        _database_url = _database_url.replace("postgres://", "postgresql+pg8000://", 1)

    SQLALCHEMY_DATABASE_URI = _database_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    if _database_url.startswith("postgresql"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "pool_recycle": 300,
        }

    SESSION_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_HTTPONLY = True

    # ------------------------------------------------------------------
    # Business rules
    # ------------------------------------------------------------------
    SIGNUP_BONUS = int(os.getenv("SIGNUP_BONUS", "5000"))
    DEFAULT_REFERRAL_PERCENTAGE = float(os.getenv("DEFAULT_REFERRAL_PERCENTAGE", "10"))
    TEMP_RECHARGE_TTL_MINUTES = int(os.getenv("TEMP_RECHARGE_TTL_MINUTES", "60"))
    RECHARGE_PRESET_AMOUNTS = _int_list(os.getenv("RECHARGE_PRESET_AMOUNTS"), [10000, 20000, 50000, 100000])
    MIN_PAYMENT_REFERENCE_LENGTH = int(os.getenv("MIN_PAYMENT_REFERENCE_LENGTH", "4"))
    BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/Bogota")
    TRANSACTION_RETRIES = int(os.getenv("TRANSACTION_RETRIES", "3"))

    # Change feed broker; in-process when unset
    REDIS_URL = os.getenv("REDIS_URL")
    STREAM_KEEPALIVE_SECONDS = int(os.getenv("STREAM_KEEPALIVE_SECONDS", "15"))

    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")


class TestConfig(Config):
    TESTING = True
    DEBUG = False
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    REDIS_URL = None
    STREAM_KEEPALIVE_SECONDS = 1
