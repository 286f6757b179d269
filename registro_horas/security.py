"""Security helpers: password hashing and bearer tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from registro_horas.errors import Unauthorized

ACCESS_TOKEN_TYPE = "access"


def hash_secret(raw_value: str) -> str:
    return generate_password_hash(raw_value, method="pbkdf2:sha256", salt_length=16)


def verify_secret(secret_hash: str, raw_value: str) -> bool:
    return check_password_hash(secret_hash, raw_value)


def issue_access_token(user) -> tuple[str, int]:
    """Sign an access token for ``user``; returns the token and its ``exp``."""
    issued_at = datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(seconds=current_app.config["JWT_EXPIRES_SECONDS"])
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": getattr(user.role, "value", str(user.role)),
        "type": ACCESS_TOKEN_TYPE,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(
        payload,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )
    return token, payload["exp"]


def decode_access_token(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except jwt.ExpiredSignatureError as exc:
        raise Unauthorized("Token inválido o expirado", error_code="TOKEN_EXPIRED") from exc
    except jwt.PyJWTError as exc:
        raise Unauthorized("Token inválido o expirado", error_code="TOKEN_INVALID") from exc

    if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
        raise Unauthorized("Token inválido o expirado", error_code="TOKEN_INVALID")
    return payload
