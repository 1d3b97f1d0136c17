from flask import Flask
from flasgger import Swagger
from flask_cors import CORS
import logging

from .config import get_config
from .errors import register_error_handlers
from models import storage  # DBStorage singleton (scoped_session)
from models.session_store import SessionStore
from models.user_store import UserStore
from services.session_manager import SessionManager
from utils.media import CloudinaryMediaStore
from utils.tokens import TokenCodec, TokenSettings

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Session Auth API",
        "version": "1.0.0",
        "description": "Password login with short-lived access tokens and rotating refresh tokens.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def create_app(config_name: str | None = None, media_store=None, **overrides) -> Flask:
    """
    Application factory: creates and configures the Flask app.

    ``overrides`` are applied on top of the selected config class; tests use
    them to point at a temporary database. ``media_store`` replaces the
    Cloudinary store.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    app.config.update(overrides)
    logging.getLogger().setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Fails fast when signing keys or lifetimes are missing
    settings = TokenSettings.from_config(app.config)

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        supports_credentials=True,
    )

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    storage.echo = app.config.get("SQL_ECHO", False)
    storage.reload(app.config["DATABASE_URL"])

    if media_store is None:
        media_store = CloudinaryMediaStore(
            app.config.get("CLOUDINARY_CLOUD_NAME"),
            app.config.get("CLOUDINARY_API_KEY"),
            app.config.get("CLOUDINARY_API_SECRET"),
        )
    app.extensions["session_manager"] = SessionManager(
        users=UserStore(storage),
        sessions=SessionStore(storage),
        codec=TokenCodec(settings),
        media=media_store,
    )

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        # This calls scoped_session.remove(), preventing connection leaks
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Session Auth API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
