"""User authentication and account routes."""

from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone

from flask import Blueprint, current_app, g
from flask_login import current_user, login_required
from sqlalchemy import select

from registro_horas.audit import log_audit
from registro_horas.authorization import manage_users_required
from registro_horas.errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from registro_horas.extensions import db
from registro_horas.forms import (
    LoginForm,
    PasswordChangeForm,
    ProfileUpdateForm,
    UserCreateForm,
    UserEditForm,
    json_formdata,
    validate_or_raise,
)
from registro_horas.models import User, UserRole
from registro_horas.security import hash_secret, issue_access_token, verify_secret


bp = Blueprint("auth", __name__)


def user_payload(user: User) -> dict[str, str]:
    return {
        "id": str(user.id),
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
    }


def _expiry_iso(expires_at: int) -> str:
    return datetime.fromtimestamp(expires_at, tz=timezone.utc).isoformat()


def _token_payload(user: User) -> dict:
    token, expires_at = issue_access_token(user)
    return {
        "token": token,
        "user": user_payload(user),
        "expiresAt": _expiry_iso(expires_at),
        "expiresIn": current_app.config["JWT_EXPIRES_SECONDS"],
    }


@bp.post("/login")
def login():
    form = validate_or_raise(LoginForm(formdata=json_formdata()))
    stmt = select(User).where(User.email == form.email.data.lower())
    user = db.session.execute(stmt).scalar_one_or_none()
    if user is None or not verify_secret(user.password_hash, form.password.data):
        current_app.logger.info("Failed login for %s", form.email.data)
        raise Unauthorized("Credenciales inválidas", error_code="INVALID_CREDENTIALS")
    if not user.is_active:
        raise Forbidden("Usuario inactivo", error_code="USER_INACTIVE")

    return _token_payload(user), 200


@bp.post("/refresh-token")
@login_required
def refresh_token():
    return _token_payload(current_user), 200


@bp.get("/verify-token")
@login_required
def verify_token():
    expires_at = g.token_expires_at
    return {
        "valid": True,
        "user": user_payload(current_user),
        "expiresAt": _expiry_iso(expires_at),
        "timeUntilExpiry": max(int(expires_at - time.time()), 0),
    }, 200


@bp.post("/register")
@login_required
@manage_users_required
def register():
    form = validate_or_raise(UserCreateForm(formdata=json_formdata()))
    email = form.email.data.lower()
    if db.session.execute(select(User.id).where(User.email == email)).scalar_one_or_none() is not None:
        raise Conflict("El email ya está registrado", error_code="EMAIL_ALREADY_EXISTS")

    user = User(
        name=form.name.data,
        email=email,
        password_hash=hash_secret(form.password.data),
        role=UserRole(form.role.data),
        is_active=True,
    )
    try:
        db.session.add(user)
        db.session.flush()
        log_audit(
            action="USER_CREATED",
            entity_type="users",
            entity_id=user.id,
            payload={"email": user.email, "role": user.role.value},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("User %s created with role %s", user.email, user.role.value)
    return user_payload(user), 201


@bp.get("/me")
@login_required
def me():
    return user_payload(current_user), 200


@bp.put("/me")
@login_required
def update_me():
    form = validate_or_raise(ProfileUpdateForm(formdata=json_formdata()))
    user = db.session.get(User, current_user.id)
    try:
        user.name = form.name.data
        log_audit(
            action="USER_PROFILE_UPDATED",
            entity_type="users",
            entity_id=user.id,
            payload={"name": user.name},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return user_payload(user), 200


@bp.put("/change-password")
@login_required
def change_password():
    form = validate_or_raise(PasswordChangeForm(formdata=json_formdata()))
    user = db.session.get(User, current_user.id)
    if not verify_secret(user.password_hash, form.current_password.data):
        raise ValidationError("La contraseña actual es incorrecta", error_code="INVALID_CURRENT_PASSWORD")

    try:
        user.password_hash = hash_secret(form.new_password.data)
        log_audit(action="USER_PASSWORD_CHANGED", entity_type="users", entity_id=user.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Password changed for user %s", user.id)
    return {"message": "Contraseña actualizada correctamente"}, 200


def admin_user_payload(user: User) -> dict:
    return {
        **user_payload(user),
        "is_active": user.is_active,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _get_user_or_404(user_id: uuid.UUID) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("Usuario no encontrado", error_code="USER_NOT_FOUND")
    return user


@bp.get("")
@login_required
@manage_users_required
def list_users():
    users = db.session.execute(select(User).order_by(User.name.asc(), User.email.asc())).scalars().all()
    return [admin_user_payload(user) for user in users], 200


@bp.put("/<uuid:user_id>")
@login_required
@manage_users_required
def update_user(user_id: uuid.UUID):
    user = _get_user_or_404(user_id)
    form = validate_or_raise(UserEditForm(formdata=json_formdata()))
    email = form.email.data.lower()
    duplicate = db.session.execute(
        select(User.id).where(User.email == email, User.id != user.id)
    ).scalar_one_or_none()
    if duplicate is not None:
        raise Conflict("El email ya está registrado", error_code="EMAIL_ALREADY_EXISTS")

    try:
        user.name = form.name.data
        user.email = email
        user.role = UserRole(form.role.data)
        if form.password.data:
            user.password_hash = hash_secret(form.password.data)
        log_audit(
            action="USER_UPDATED",
            entity_type="users",
            entity_id=user.id,
            payload={"email": email, "role": user.role.value, "password_changed": bool(form.password.data)},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("User %s updated by %s", user.id, current_user.get_id())
    return admin_user_payload(user), 200


@bp.delete("/<uuid:user_id>")
@login_required
@manage_users_required
def deactivate_user(user_id: uuid.UUID):
    user = _get_user_or_404(user_id)
    if user.id == current_user.id:
        raise ValidationError("No puedes desactivar tu propio usuario", error_code="CANNOT_DEACTIVATE_SELF")

    # Vacation history is kept, so accounts are deactivated rather than deleted.
    try:
        user.is_active = False
        log_audit(action="USER_DEACTIVATED", entity_type="users", entity_id=user.id, payload={"email": user.email})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("User %s deactivated by %s", user.id, current_user.get_id())
    return {"message": "Usuario desactivado correctamente"}, 200
