"""Flask application factory."""

from __future__ import annotations

import time

import click
from flask import Flask, g
from sqlalchemy import select

from registro_horas.blueprints.auth import bp as auth_bp
from registro_horas.blueprints.main import bp as main_bp
from registro_horas.blueprints.vacations import bp as vacations_bp
from registro_horas.config import Config
from registro_horas.errors import register_error_handlers
from registro_horas.extensions import db, login_manager


def create_app(config_object: type[Config] = Config) -> Flask:
    app = Flask(__name__, instance_relative_config=False)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    login_manager.init_app(app)
    register_error_handlers(app)

    # Ensure model metadata is loaded for migrations and tests.
    from registro_horas import models as _models  # noqa: F401

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/users")
    app.register_blueprint(vacations_bp, url_prefix="/api/vacations")

    @app.before_request
    def reset_request_auth_context() -> None:
        # g outlives the request when an app context is already pushed.
        g.pop("_login_user", None)
        g.pop("auth_error", None)
        g.pop("token_expires_at", None)

    @app.after_request
    def add_token_expiry_headers(response):
        expires_at = g.get("token_expires_at")
        if expires_at is None:
            return response
        remaining = int(expires_at - time.time())
        if 0 < remaining <= app.config["JWT_EXPIRY_WARNING_SECONDS"]:
            response.headers["X-Token-Expiry-Warning"] = "true"
            response.headers["X-Token-Expires-In"] = str(remaining)
        return response

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("name")
    @click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin(email: str, name: str, password: str) -> None:
        """Create an administrator account."""
        from registro_horas.models import User, UserRole
        from registro_horas.security import hash_secret

        email = email.strip().lower()
        if db.session.execute(select(User).where(User.email == email)).scalar_one_or_none() is not None:
            raise click.ClickException(f"User {email} already exists")

        db.session.add(
            User(
                name=name.strip(),
                email=email,
                password_hash=hash_secret(password),
                role=UserRole.ADMINISTRADOR,
                is_active=True,
            )
        )
        db.session.commit()
        click.echo(f"Administrator {email} created")

    return app
