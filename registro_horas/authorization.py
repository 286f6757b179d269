"""Authorization capabilities and semantic permission decorators."""

from __future__ import annotations

import functools
import uuid
from typing import Callable

from flask import current_app
from flask_login import current_user

from registro_horas.errors import Forbidden
from registro_horas.models import UserRole

ADMIN_ROLES = {UserRole.ADMINISTRADOR}


def can_manage_vacations(role: UserRole) -> bool:
    return role in ADMIN_ROLES


def can_manage_users(role: UserRole) -> bool:
    return role in ADMIN_ROLES


def can_view_vacation(role: UserRole, caller_id: uuid.UUID, owner_id: uuid.UUID) -> bool:
    return role in ADMIN_ROLES or caller_id == owner_id


def permission_required(permission_name: str, check: Callable[[UserRole], bool]):
    """Guard a view that already sits behind ``login_required``."""

    def decorator(view: Callable):
        @functools.wraps(view)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated or not check(current_user.role):
                current_app.logger.info("Permission %s denied for user %s", permission_name, current_user.get_id())
                raise Forbidden("Acceso denegado: se requiere rol de administrador", error_code="PERMISSION_DENIED")
            return view(*args, **kwargs)

        return wrapped

    return decorator


manage_vacations_required = permission_required("manage_vacations", can_manage_vacations)
manage_users_required = permission_required("manage_users", can_manage_users)
