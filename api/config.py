"""
Environment-aware configuration.
Secrets, token lifetimes, refresh cookie flags, CORS and env flags.
Database URL selection lives in DBStorage; DATABASE_URL here is only passed through.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present

DEV_ACCESS_SECRET = "dev-access-secret-change-me-0123456789"
DEV_REFRESH_SECRET = "dev-refresh-secret-change-me-0123456789"


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    # CORS: comma-separated list of storefront origins; credentials (the refresh cookie) rule out "*"
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    DATABASE_URL = os.getenv("DATABASE_URL")

    # Two independent secrets: one per token kind
    JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET", DEV_ACCESS_SECRET)
    JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET", DEV_REFRESH_SECRET)
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "storefront-auth")
    JWT_LEEWAY_SECONDS = int(os.getenv("JWT_LEEWAY_SECONDS", "5"))
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "900")))
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("REFRESH_TOKEN_EXPIRES_SECONDS", "604800")))

    REFRESH_COOKIE_NAME = os.getenv("REFRESH_COOKIE_NAME", "refreshToken")
    REFRESH_COOKIE_SECURE = False
    REFRESH_COOKIE_SAMESITE = "Lax"

    PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "8"))
    ARGON2_TIME_COST = int(os.getenv("ARGON2_TIME_COST", "3"))
    ALLOWED_ROLES = os.getenv("ALLOWED_ROLES", "user,admin").split(",")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    APP_ENV = "dev"


class TestingConfig(BaseConfig):
    TESTING = True
    APP_ENV = "test"
    # Fast hashing keeps the suite quick; never use in production
    ARGON2_TIME_COST = 1


class ProductionConfig(BaseConfig):
    DEBUG = False
    APP_ENV = "prod"
    REFRESH_COOKIE_SECURE = True


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def validate_config(config) -> None:
    """Refuse to start a production app with development or shared JWT secrets."""
    if config.get("APP_ENV") != "prod":
        return
    access = config.get("JWT_ACCESS_SECRET")
    refresh = config.get("JWT_REFRESH_SECRET")
    if access in (None, "", DEV_ACCESS_SECRET) or refresh in (None, "", DEV_REFRESH_SECRET):
        raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must be set in production")
    if access == refresh:
        raise RuntimeError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
