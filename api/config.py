"""
Environment-aware configuration.

Token secrets and lifetimes have no defaults: create_app() refuses to start
when any of them is missing.
"""
import os
from dotenv import load_dotenv
from utils.tokens import parse_lifetime

load_dotenv()  # Read .env if present


def _seconds(name: str):
    return parse_lifetime(os.getenv(name), name)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    # Keep a copy of env for visibility
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Token signing: one key and lifetime per token kind
    ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET")
    ACCESS_TOKEN_EXPIRES = _seconds("ACCESS_TOKEN_EXPIRES_SECONDS")
    REFRESH_TOKEN_SECRET = os.getenv("REFRESH_TOKEN_SECRET")
    REFRESH_TOKEN_EXPIRES = _seconds("REFRESH_TOKEN_EXPIRES_SECONDS")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "session-auth-api")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///sessions.db")
    SQL_ECHO = _flag("SQL_ECHO", "false")

    # Cookies carrying the session pair
    COOKIE_SECURE = _flag("COOKIE_SECURE", "true")
    COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "Lax")

    UPLOAD_TMP_DIR = os.getenv("UPLOAD_TMP_DIR", os.path.join("public", "temp"))

    CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
    CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    COOKIE_SECURE = _flag("COOKIE_SECURE", "false")


class TestingConfig(BaseConfig):
    TESTING = True
    COOKIE_SECURE = False
    DATABASE_URL = "sqlite://"


class ProductionConfig(BaseConfig):
    DEBUG = False


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
