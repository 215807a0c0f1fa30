# backend/config.py
import os

from dotenv import load_dotenv

load_dotenv()


def _to_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}

def _to_int(val: str | None, default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


class Config:
    # ── Core ─────────────────────────────────────────────────────────────────
    DEBUG = _to_bool(os.environ.get("DEBUG") or os.environ.get("FLASK_DEBUG"), True)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev_secret")  # ← override in prod!
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///edudata.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # ── Auth / JWT ──────────────────────────────────────────────────────────
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY") or SECRET_KEY
    JWT_TTL_HOURS = _to_int(os.environ.get("JWT_TTL_HOURS"), 24 * 7)

    # ── Login OTP ───────────────────────────────────────────────────────────
    ENABLE_OTP = _to_bool(os.environ.get("ENABLE_OTP"), True)
    OTP_LENGTH = _to_int(os.environ.get("OTP_LENGTH"), 6)
    OTP_EXPIRY_MINUTES = _to_int(os.environ.get("OTP_EXPIRY_MINUTES"), 5)
    OTP_RATE_LIMIT_COUNT = _to_int(os.environ.get("OTP_RATE_LIMIT_COUNT"), 3)
    OTP_RATE_LIMIT_WINDOW_MINUTES = _to_int(os.environ.get("OTP_RATE_LIMIT_WINDOW_MINUTES"), 10)
    OTP_HASH_METHOD = os.environ.get("OTP_HASH_METHOD", "scrypt")
    # dev fallback: print the plaintext code in the server log when no channel delivered it
    OTP_LOG_FALLBACK_CODES = _to_bool(os.environ.get("OTP_LOG_FALLBACK_CODES"), True)

    # ── Twilio (SMS OTP) ────────────────────────────────────────────────────
    TWILIO_ACCOUNT_SID  = os.environ.get("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN   = os.environ.get("TWILIO_AUTH_TOKEN")
    TWILIO_FROM         = os.environ.get("TWILIO_FROM")            # e.g. +12565550123
    TWILIO_MESSAGING_SID= os.environ.get("TWILIO_MESSAGING_SID")   # e.g. MGxxxxxxxx...

    # ── SMTP (email OTP) ────────────────────────────────────────────────────
    MAIL_HOST     = os.environ.get("MAIL_HOST", "smtp.gmail.com")
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")                # gmail app password
    MAIL_FROM     = os.environ.get("MAIL_FROM") or MAIL_USERNAME
    MAIL_TIMEOUT  = _to_int(os.environ.get("MAIL_TIMEOUT"), 20)

    # ── Seed admin (flask seed-admin) ───────────────────────────────────────
    ADMIN_EMAIL    = os.environ.get("ADMIN_EMAIL", "admin@edudata.local")
    ADMIN_LOGIN_ID = os.environ.get("ADMIN_LOGIN_ID", "admin")
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "admin123")


class ProductionConfig(Config):
    DEBUG = False
    SECRET_KEY = os.environ.get("SECRET_KEY")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY") or SECRET_KEY
    OTP_LOG_FALLBACK_CODES = _to_bool(os.environ.get("OTP_LOG_FALLBACK_CODES"), False)

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 180,
        "pool_size": _to_int(os.environ.get("DB_POOL_SIZE"), 5),
        "max_overflow": _to_int(os.environ.get("DB_MAX_OVERFLOW"), 10),
        "pool_timeout": _to_int(os.environ.get("DB_POOL_TIMEOUT"), 30),
    }


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    DEBUG = True
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///:memory:")
    SECRET_KEY = "test-secret"
    JWT_SECRET_KEY = "test-jwt-secret"
    ENABLE_OTP = True
    OTP_LENGTH = 6
    OTP_EXPIRY_MINUTES = 5
    OTP_RATE_LIMIT_COUNT = 3
    OTP_RATE_LIMIT_WINDOW_MINUTES = 10
    # cheap hash so the suite stays fast
    OTP_HASH_METHOD = "pbkdf2:sha256:1000"
    TWILIO_ACCOUNT_SID = None
    TWILIO_AUTH_TOKEN = None
    TWILIO_FROM = None
    TWILIO_MESSAGING_SID = None
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    MAIL_FROM = None


CONFIGS = {
    "production": ProductionConfig,
    "development": DevelopmentConfig,
    "testing": TestingConfig,
}


def config_for(env: str | None = None):
    """Pick a config class by name (APP_ENV), defaulting to development."""
    name = (env or os.environ.get("APP_ENV") or "development").strip().lower()
    return CONFIGS.get(name, DevelopmentConfig)
