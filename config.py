"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # Public base URL, used to build gateway callback and invite links
    APP_BASE_URL = os.getenv('APP_BASE_URL', 'http://localhost:5000')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'coursemart')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'coursemart')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'coursemart')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'

    # Paystack gateway
    PAYSTACK_SECRET_KEY = os.getenv('PAYSTACK_SECRET_KEY')
    PAYSTACK_BASE_URL = os.getenv('PAYSTACK_BASE_URL', 'https://api.paystack.co')
    PAYSTACK_TIMEOUT = float(os.getenv('PAYSTACK_TIMEOUT', '10'))

    # Pricing
    DEFAULT_CURRENCY = os.getenv('DEFAULT_CURRENCY', 'NGN')
    DEFAULT_VAT_RATE = os.getenv('DEFAULT_VAT_RATE', '0.075')
    PLATFORM_COMMISSION_RATE = os.getenv('PLATFORM_COMMISSION_RATE', '0.75')
    PLATFORM_PROMO_COMMISSION_RATE = os.getenv('PLATFORM_PROMO_COMMISSION_RATE', '0.80')
    INSTRUCTOR_PROMO_COMMISSION_RATE = os.getenv('INSTRUCTOR_PROMO_COMMISSION_RATE', '0.30')

    # Minutes a PENDING checkout keeps its promo slot (gateway session lifetime)
    PROMO_HOLD_MINUTES = int(os.getenv('PROMO_HOLD_MINUTES', '30'))

    # Group purchases
    INVITE_CODE_MAX_ATTEMPTS = int(os.getenv('INVITE_CODE_MAX_ATTEMPTS', '5'))
    GROUP_JOIN_MAX_RETRIES = int(os.getenv('GROUP_JOIN_MAX_RETRIES', '3'))

    # Email configuration (notification outbox delivery)
    MAIL_SERVER = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('SMTP_PORT', 587))
    MAIL_USE_TLS = True
    MAIL_USE_SSL = False
    MAIL_USERNAME = os.getenv('SMTP_USER') or ''
    MAIL_PASSWORD = os.getenv('SMTP_PASSWORD') or ''
    MAIL_DEFAULT_SENDER = (
        os.getenv('SMTP_FROM')
        or MAIL_USERNAME
        or 'no-reply@localhost'
    )
    MAIL_SUPPRESS_SEND = os.getenv('MAIL_SUPPRESS_SEND', 'false').lower() == 'true'
    OUTBOX_BATCH_SIZE = int(os.getenv('OUTBOX_BATCH_SIZE', '50'))
    OUTBOX_MAX_ATTEMPTS = int(os.getenv('OUTBOX_MAX_ATTEMPTS', '5'))


class TestConfig(Config):
    """Configuration used by the test suite (file-backed SQLite)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///coursemart_test.db')
    SQLALCHEMY_ECHO = False
    PAYSTACK_SECRET_KEY = 'sk_test_dummy'
    MAIL_SUPPRESS_SEND = True
