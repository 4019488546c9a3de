import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as turfslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "turfslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Reconnect stale pooled connections before use
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "turfslot_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = False  # set True when using HTTPS

    # Booking policy
    CANCEL_CUTOFF_HOURS = 2
    DEFAULT_ADVANCE_BOOKING_DAYS = 30
    ALLOCATION_WINDOW_DAYS = 5
    BOOKING_CODE_ATTEMPTS = 5

    # Lifecycle sweep
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
    LIFECYCLE_SWEEP_MINUTES = int(os.getenv("LIFECYCLE_SWEEP_MINUTES", "5"))

    # Payments
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "inr")
    PAYMENT_KEY_SECRET = os.getenv("PAYMENT_KEY_SECRET")  # signs "order_id|payment_id"
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Links used in customer emails
    FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:5173")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE")  # optional rotating file, e.g. logs/turfslot.log

    # Basic app settings
    DEBUG = False
