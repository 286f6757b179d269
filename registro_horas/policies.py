"""Vacation policy store.

Policies live in ``vacation_policies`` as ``policy_key``/``policy_value``
string pairs. They are parsed once here into :class:`VacationPolicies`;
callers never see the raw strings. A missing or empty table means the
built-in defaults apply.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import OperationalError, ProgrammingError

from registro_horas.audit import log_audit
from registro_horas.errors import ValidationError
from registro_horas.extensions import db
from registro_horas.models import VacationPolicy


POLICY_DEFAULTS: dict[str, tuple[str, str]] = {
    "min_advance_days": ("7", "Días mínimos de anticipación"),
    "max_consecutive_days": ("30", "Días máximos consecutivos"),
    "max_requests_per_year": ("5", "Máximo solicitudes por año"),
    "default_days_per_year": ("20", "Días por defecto por año"),
    "max_carry_over_days": ("10", "Máximo días a arrastrar"),
    "auto_approve_days": ("3", "Días de aprobación automática"),
    "notify_on_request": ("true", "Notificar al admin"),
    "notify_on_decision": ("true", "Notificar al usuario"),
    "auto_reminder_days": ("30", "Días para recordatorio"),
}

PUBLIC_POLICY_KEYS = (
    "default_days_per_year",
    "max_consecutive_days",
    "max_requests_per_year",
    "min_advance_days",
)

BOOLEAN_POLICY_KEYS = {"notify_on_request", "notify_on_decision"}

_TRUE_VALUES = {"true", "1", "yes", "si", "sí"}
_FALSE_VALUES = {"false", "0", "no"}


@dataclass(frozen=True)
class VacationPolicies:
    min_advance_days: int = 7
    max_consecutive_days: int = 30
    max_requests_per_year: int = 5
    default_days_per_year: int = 20
    max_carry_over_days: int = 10
    # Stored and editable but not consumed by any workflow.
    auto_approve_days: int = 3
    notify_on_request: bool = True
    notify_on_decision: bool = True
    auto_reminder_days: int = 30

    @classmethod
    def from_mapping(cls, raw: Mapping[str, str]) -> "VacationPolicies":
        values: dict[str, int | bool] = {}
        for field in fields(cls):
            if field.name not in raw:
                continue
            try:
                values[field.name] = parse_policy_value(field.name, raw[field.name])
            except ValueError:
                current_app.logger.warning(
                    "Invalid stored value %r for vacation policy %s; using default.",
                    raw[field.name],
                    field.name,
                )
        return cls(**values)


def parse_policy_value(key: str, value: Any) -> int | bool:
    """Parse a raw policy value for ``key``; raises ``ValueError`` when it does not fit."""
    text = str(value).strip()
    if key in BOOLEAN_POLICY_KEYS:
        lowered = text.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"{key} expects a boolean, got {value!r}")

    if isinstance(value, bool):
        raise ValueError(f"{key} expects an integer, got {value!r}")
    number = int(text)
    if number < 0:
        raise ValueError(f"{key} must not be negative")
    return number


def _format_policy_value(value: int | bool) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _policy_rows() -> list[VacationPolicy]:
    try:
        return list(
            db.session.execute(select(VacationPolicy).order_by(VacationPolicy.policy_key.asc())).scalars().all()
        )
    except (OperationalError, ProgrammingError):
        db.session.rollback()
        current_app.logger.warning(
            "Vacation policies lookup failed. Falling back to default policies.",
            exc_info=True,
        )
        return []


def get_policy_values() -> dict[str, str]:
    rows = _policy_rows()
    if not rows:
        return {key: value for key, (value, _) in POLICY_DEFAULTS.items()}
    return {row.policy_key: row.policy_value for row in rows}


def load_policies() -> VacationPolicies:
    return VacationPolicies.from_mapping(get_policy_values())


def describe_policies() -> dict[str, dict[str, str | None]]:
    described: dict[str, dict[str, str | None]] = {
        key: {"value": value, "description": description} for key, (value, description) in POLICY_DEFAULTS.items()
    }
    for row in _policy_rows():
        described[row.policy_key] = {"value": row.policy_value, "description": row.description}
    return dict(sorted(described.items()))


def public_policy_values() -> dict[str, str]:
    values = get_policy_values()
    return {key: values.get(key, POLICY_DEFAULTS[key][0]) for key in PUBLIC_POLICY_KEYS}


def update_policies(changes: Mapping[str, Any]) -> dict[str, str]:
    """Validate every change first, then write them all in one transaction."""
    if not isinstance(changes, Mapping) or not changes:
        raise ValidationError("No hay políticas para actualizar", error_code="EMPTY_POLICY_UPDATE")

    normalized: dict[str, str] = {}
    for key, raw_value in changes.items():
        if key not in POLICY_DEFAULTS:
            raise ValidationError(f"Política desconocida: {key}", error_code="UNKNOWN_POLICY")
        try:
            normalized[key] = _format_policy_value(parse_policy_value(key, raw_value))
        except ValueError:
            raise ValidationError(f"Valor inválido para la política {key}", error_code="INVALID_POLICY_VALUE")

    try:
        for key, value in normalized.items():
            row = db.session.get(VacationPolicy, key)
            if row is None:
                db.session.add(VacationPolicy(policy_key=key, policy_value=value, description=POLICY_DEFAULTS[key][1]))
            else:
                row.policy_value = value
        log_audit(
            action="VACATION_POLICIES_UPDATED",
            entity_type="vacation_policies",
            entity_id=None,
            payload=normalized,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Vacation policies updated: %s", ", ".join(sorted(normalized)))
    return normalized
