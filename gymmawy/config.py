# gymmawy/config.py
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _int(name, default):
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    ENV = os.getenv("FLASK_ENV", os.getenv("ENV", "development"))
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-session-secret-change-me")
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    # flask db upgrade owns the schema when this is off
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "1").lower() in ("1", "true", "yes")

    # JWT
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-change-me")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=_int("JWT_ACCESS_TTL_HOURS", 1))
    JWT_DECODE_ISSUER = "gymmawy"
    JWT_ENCODE_ISSUER = "gymmawy"
    REFRESH_TOKEN_TTL_DAYS = _int("REFRESH_TOKEN_TTL_DAYS", 30)

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")
    API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:5000").rstrip("/")

    # Mail
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = _int("SMTP_PORT", 587)
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASS = os.getenv("SMTP_PASS")
    EMAIL_FROM = os.getenv("EMAIL_FROM", "Gymmawy <no-reply@gymmawy.com>")

    # Paymob
    PAYMOB_BASE_URL = os.getenv("PAYMOB_BASE_URL", "https://ksa.paymob.com").rstrip("/")
    PAYMOB_SECRET_KEY = os.getenv("PAYMOB_SECRET_KEY")
    PAYMOB_PUBLIC_KEY = os.getenv("PAYMOB_PUBLIC_KEY")
    PAYMOB_INTEGRATION_ID = os.getenv("PAYMOB_INTEGRATION_ID")
    PAYMOB_HMAC_SECRET = os.getenv("PAYMOB_HMAC_SECRET")

    # Tabby
    TABBY_BASE_URL = os.getenv("TABBY_BASE_URL", "https://api.tabby.ai").rstrip("/")
    TABBY_SECRET_KEY = os.getenv("TABBY_SECRET_KEY")
    TABBY_PUBLIC_KEY = os.getenv("TABBY_PUBLIC_KEY")
    TABBY_MERCHANT_CODE_SAR = os.getenv("TABBY_MERCHANT_CODE_SAR", "CCSAU")
    TABBY_MERCHANT_CODE_AED = os.getenv("TABBY_MERCHANT_CODE_AED", "GUAE")
    TABBY_WEBHOOK_SECRET = os.getenv("TABBY_WEBHOOK_SECRET")

    # Currency
    FINDIP_API_KEY = os.getenv("FINDIP_API_KEY")
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD").upper()
    DEV_CURRENCY = os.getenv("DEV_CURRENCY")

    # Cleanup job
    PAYMENT_TIMEOUT_MINUTES = _int("PAYMENT_TIMEOUT_MINUTES", 30)
    CLEANUP_INTERVAL_MINUTES = _int("CLEANUP_INTERVAL_MINUTES", 15)

    @staticmethod
    def init_app(app):
        if not os.getenv("DATABASE_URL"):
            os.makedirs(app.instance_path, exist_ok=True)
            app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'gymmawy.db')}"
        else:
            app.config["SQLALCHEMY_DATABASE_URI"] = os.getenv("DATABASE_URL")
