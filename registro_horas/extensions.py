"""Flask extension instances and authentication loaders."""

from __future__ import annotations

import uuid

from flask import Request, g
from flask_login import LoginManager
from flask_sqlalchemy import SQLAlchemy

from registro_horas.errors import Unauthorized


db = SQLAlchemy()
login_manager = LoginManager()


@login_manager.unauthorized_handler
def handle_unauthorized():
    message, error_code = g.get("auth_error") or ("Token no proporcionado", "NO_TOKEN")
    raise Unauthorized(message, error_code=error_code)


def _reject(message: str, error_code: str) -> None:
    g.auth_error = (message, error_code)
    return None


@login_manager.request_loader
def load_user_from_request(request: Request):
    """Resolve the caller from an ``Authorization: Bearer <token>`` header."""
    from registro_horas.models import User
    from registro_horas.security import decode_access_token

    header = request.headers.get("Authorization", "")
    if not header:
        return _reject("Token no proporcionado", "NO_TOKEN")

    scheme, _, token = header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        return _reject("Token malformado o ausente", "INVALID_TOKEN_FORMAT")

    try:
        payload = decode_access_token(token)
    except Unauthorized as exc:
        return _reject(exc.description, exc.error_code)

    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except ValueError:
        return _reject("Token inválido o expirado", "TOKEN_INVALID")

    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return _reject("Usuario no disponible", "USER_INACTIVE")

    g.token_expires_at = int(payload["exp"])
    return user
