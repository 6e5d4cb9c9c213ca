from __future__ import annotations

from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import AuthSettings, get_config
from .errors import register_error_handlers
from .commands import register_commands
from models import storage
from services.credentials import CredentialStore
from services.ledger import RefreshTokenLedger
from services.sessions import SessionService
from utils.security import build_password_hasher
from utils.tokens import TokenCodec

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Cosmos Session API",
        "version": "1.0.0",
        "description": "Sign-in, refresh-token rotation, sign-out and account administration.",
    },
    "basePath": "/",
    "schemes": ["http", "https"],
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


def init_auth(app: Flask, settings: AuthSettings | None = None) -> SessionService:
    """
    Build the auth core from app.config. Raises ConfigurationError when a
    signing secret is missing, so the app never starts without one.
    """
    settings = settings or AuthSettings.from_config(app.config)
    hasher = build_password_hasher(settings)
    service = SessionService(
        codec=TokenCodec(settings),
        credentials=CredentialStore(storage),
        ledger=RefreshTokenLedger(storage, settings.refresh_ttl),
        hasher=hasher,
        password_min_length=settings.password_min_length,
    )
    app.extensions["auth_settings"] = settings
    app.extensions["session_service"] = service
    return service


def create_app(config_name: str | None = None, config_overrides: dict | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    config_overrides is applied on top of the selected config class (tests).
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    if config_overrides:
        app.config.update(config_overrides)

    # Fail fast: secrets are validated before anything is wired up
    settings = AuthSettings.from_config(app.config)

    # Cross-Origin Resource Sharing: cookies require explicit credentials support
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        supports_credentials=app.config.get("CORS_ORIGINS", "*") != "*",
    )

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    register_error_handlers(app)
    register_commands(app)

    storage.connect(app.config["DATABASE_URL"], echo=app.config.get("SQL_ECHO", False))
    storage.reload()
    init_auth(app, settings)
    app.logger.debug("auth core ready: access ttl %s, refresh ttl %s", settings.access_ttl, settings.refresh_ttl)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Welcome to Cosmos Session API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
