"""Vacation request ledger.

Admission rules, listing, owner cancellation, admin decisions and the
per-user/per-year day balance. Every write commits (or rolls back) here so
the blueprints only translate HTTP to calls and rows to JSON.

The decision path is the only multi-statement transaction: the guarded
``status = 'pendiente'`` update is what serializes concurrent decisions,
the database re-checks the predicate under its row lock.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app
from sqlalchemy import Row, case, func, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import aliased

from registro_horas.audit import log_audit
from registro_horas.authorization import can_view_vacation
from registro_horas.errors import Forbidden, InvalidTransition, NotFound, PolicyViolation, ValidationError
from registro_horas.extensions import db
from registro_horas.models import (
    DECISION_STATUSES,
    User,
    UserRole,
    VacationBalance,
    VacationRequest,
    VacationStatus,
    now_utc,
)
from registro_horas.policies import load_policies


WEEKEND_WEEKDAYS = {5, 6}

Owner = aliased(User, name="owner")
Approver = aliased(User, name="approver")


def _app_timezone() -> ZoneInfo:
    tz_name = current_app.config.get("APP_TIMEZONE", "Europe/Madrid")
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        return ZoneInfo("UTC")


def app_today() -> date:
    return datetime.now(_app_timezone()).date()


def _year_bounds_utc(year: int) -> tuple[datetime, datetime]:
    tz = _app_timezone()
    start_local = datetime.combine(date(year, 1, 1), time.min, tzinfo=tz)
    end_local = datetime.combine(date(year + 1, 1, 1), time.min, tzinfo=tz)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def business_days_between(start_date: date, end_date: date) -> int:
    """Mon-Fri days in the inclusive range; 0 when the range is reversed."""
    if end_date < start_date:
        return 0
    full_weeks, remainder = divmod((end_date - start_date).days + 1, 7)
    first_weekday = start_date.weekday()
    partial = sum(1 for offset in range(remainder) if (first_weekday + offset) % 7 not in WEEKEND_WEEKDAYS)
    return full_weeks * (7 - len(WEEKEND_WEEKDAYS)) + partial


def _requests_created_in_year(user_id: uuid.UUID, year: int) -> int:
    start, end = _year_bounds_utc(year)
    stmt = select(func.count(VacationRequest.id)).where(
        VacationRequest.user_id == user_id,
        VacationRequest.created_at >= start,
        VacationRequest.created_at < end,
    )
    return int(db.session.execute(stmt).scalar_one())


def _balance_row(user_id: uuid.UUID, year: int) -> VacationBalance | None:
    stmt = select(VacationBalance).where(VacationBalance.user_id == user_id, VacationBalance.year == year)
    return db.session.execute(stmt).scalar_one_or_none()


def used_days(user_id: uuid.UUID, year: int) -> int:
    stmt = select(func.coalesce(func.sum(VacationRequest.total_days), 0)).where(
        VacationRequest.user_id == user_id,
        VacationRequest.status == VacationStatus.APROBADA,
        VacationRequest.start_date >= date(year, 1, 1),
        VacationRequest.start_date <= date(year, 12, 31),
    )
    return int(db.session.execute(stmt).scalar_one())


def available_days(days_allocated: int, days_carried: int, used: int) -> int:
    return max(days_allocated + days_carried - used, 0)


def create_request(
    user_id: uuid.UUID,
    start_date: date | None,
    end_date: date | None,
    reason: str | None,
    *,
    today: date | None = None,
) -> VacationRequest:
    if start_date is None or end_date is None:
        raise ValidationError("start_date y end_date son requeridos", error_code="MISSING_DATES")

    policies = load_policies()
    today = today or app_today()

    if (start_date - today).days < policies.min_advance_days:
        raise PolicyViolation(
            f"Debes solicitar con al menos {policies.min_advance_days} días de anticipación",
            error_code="INSUFFICIENT_ADVANCE_NOTICE",
        )

    total_days = business_days_between(start_date, end_date)
    if total_days <= 0:
        raise ValidationError("Rango de fechas inválido", error_code="INVALID_DATE_RANGE")
    if total_days > policies.max_consecutive_days:
        raise PolicyViolation(
            f"No puedes solicitar más de {policies.max_consecutive_days} días consecutivos",
            error_code="MAX_CONSECUTIVE_DAYS_EXCEEDED",
        )

    # Check-then-insert is not serialized; concurrent submissions may overshoot the cap.
    if _requests_created_in_year(user_id, today.year) >= policies.max_requests_per_year:
        raise PolicyViolation(
            f"Ya has alcanzado el máximo de {policies.max_requests_per_year} solicitudes por año",
            error_code="YEARLY_REQUEST_LIMIT_REACHED",
        )

    balance = _balance_row(user_id, start_date.year)
    if balance is not None:
        available = available_days(balance.days_allocated, balance.days_carried, used_days(user_id, start_date.year))
        if total_days > available:
            raise PolicyViolation(
                f"No tienes suficientes días disponibles. Tienes {available} días y solicitas {total_days} días",
                error_code="INSUFFICIENT_BALANCE",
            )

    vacation = VacationRequest(
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        total_days=total_days,
        status=VacationStatus.PENDIENTE,
        reason=(reason or "").strip() or None,
    )
    try:
        db.session.add(vacation)
        db.session.flush()
        log_audit(
            action="VACATION_REQUESTED",
            entity_type="vacation_requests",
            entity_id=vacation.id,
            payload={
                "user_id": str(user_id),
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "total_days": total_days,
                "status": VacationStatus.PENDIENTE.value,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Vacation request %s created for user %s (%s days)", vacation.id, user_id, total_days
    )
    return vacation


def _requests_with_people_stmt():
    return (
        select(VacationRequest, Owner, Approver)
        .join(Owner, Owner.id == VacationRequest.user_id)
        .outerjoin(Approver, Approver.id == VacationRequest.approver_id)
    )


def list_mine(user_id: uuid.UUID) -> list[Row]:
    stmt = (
        _requests_with_people_stmt()
        .where(VacationRequest.user_id == user_id)
        .order_by(VacationRequest.created_at.desc())
    )
    return list(db.session.execute(stmt).all())


def list_all(
    *,
    status: VacationStatus | None = None,
    user_id: uuid.UUID | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[Row]:
    stmt = _requests_with_people_stmt()
    if status is not None:
        stmt = stmt.where(VacationRequest.status == status)
    if user_id is not None:
        stmt = stmt.where(VacationRequest.user_id == user_id)
    if date_from is not None:
        stmt = stmt.where(VacationRequest.start_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(VacationRequest.end_date <= date_to)
    stmt = stmt.order_by(VacationRequest.created_at.desc())
    return list(db.session.execute(stmt).all())


def get_detail(request_id: uuid.UUID, caller_id: uuid.UUID, caller_role: UserRole) -> Row:
    row = db.session.execute(_requests_with_people_stmt().where(VacationRequest.id == request_id)).one_or_none()
    if row is None:
        raise NotFound("Solicitud no encontrada", error_code="VACATION_REQUEST_NOT_FOUND")
    if not can_view_vacation(caller_role, caller_id, row[0].user_id):
        raise Forbidden("No autorizado", error_code="VACATION_REQUEST_FORBIDDEN")
    return row


def cancel(request_id: uuid.UUID, user_id: uuid.UUID) -> VacationRequest:
    """Owner cancellation of a pending request.

    Not found, not owner and not pending all collapse into one
    ``InvalidTransition``: the single guarded update cannot tell them apart.
    """
    try:
        result = db.session.execute(
            update(VacationRequest)
            .where(
                VacationRequest.id == request_id,
                VacationRequest.user_id == user_id,
                VacationRequest.status == VacationStatus.PENDIENTE,
            )
            .values(status=VacationStatus.CANCELADA, updated_at=now_utc())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransition("No se puede cancelar esta solicitud", error_code="INVALID_CANCELLATION")
        log_audit(
            action="VACATION_CANCELLED",
            entity_type="vacation_requests",
            entity_id=request_id,
            payload={"status": VacationStatus.CANCELADA.value},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Vacation request %s cancelled by owner %s", request_id, user_id)
    return db.session.get(VacationRequest, request_id)


def _ensure_balance_row(user_id: uuid.UUID, year: int) -> None:
    """Insert an all-zero balance unless one exists; never overwrites."""
    values = {"user_id": user_id, "year": year, "days_allocated": 0, "days_carried": 0}
    dialect_name = db.session.get_bind().dialect.name
    if dialect_name == "postgresql":
        stmt = postgresql_insert(VacationBalance).values(**values)
    elif dialect_name == "sqlite":
        stmt = sqlite_insert(VacationBalance).values(**values)
    else:
        if _balance_row(user_id, year) is None:
            db.session.add(VacationBalance(**values))
            db.session.flush()
        return
    db.session.execute(stmt.on_conflict_do_nothing(index_elements=["user_id", "year"]))


def _debit_balance(user_id: uuid.UUID, year: int, days: int) -> None:
    _ensure_balance_row(user_id, year)
    db.session.execute(
        update(VacationBalance)
        .where(VacationBalance.user_id == user_id, VacationBalance.year == year)
        .values(
            days_allocated=case(
                (VacationBalance.days_allocated > days, VacationBalance.days_allocated - days),
                else_=0,
            ),
            updated_at=now_utc(),
        )
        .execution_options(synchronize_session=False)
    )


def decide(
    request_id: uuid.UUID,
    approver_id: uuid.UUID,
    status: VacationStatus,
    admin_comment: str | None = None,
) -> VacationRequest:
    if status not in DECISION_STATUSES:
        raise ValidationError("Decisión inválida", error_code="INVALID_DECISION")

    decided_at = now_utc()
    try:
        result = db.session.execute(
            update(VacationRequest)
            .where(VacationRequest.id == request_id, VacationRequest.status == VacationStatus.PENDIENTE)
            .values(
                status=status,
                approver_id=approver_id,
                decision_at=decided_at,
                admin_comment=(admin_comment or "").strip() or None,
                updated_at=decided_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransition("No se pudo aplicar la decisión", error_code="REQUEST_NOT_PENDING")

        vacation = db.session.execute(
            select(VacationRequest)
            .where(VacationRequest.id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

        if status == VacationStatus.APROBADA:
            _debit_balance(vacation.user_id, vacation.start_date.year, vacation.total_days)

        log_audit(
            action=f"VACATION_{status.value.upper()}",
            entity_type="vacation_requests",
            entity_id=vacation.id,
            payload={
                "user_id": str(vacation.user_id),
                "status": status.value,
                "total_days": vacation.total_days,
                "admin_comment": vacation.admin_comment,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Vacation request %s %s by %s", request_id, status.value, approver_id)
    return vacation


def get_balance(user_id: uuid.UUID, year: int) -> dict[str, Any]:
    balance = _balance_row(user_id, year)
    days_allocated = balance.days_allocated if balance is not None else 0
    days_carried = balance.days_carried if balance is not None else 0
    used = used_days(user_id, year)
    return {
        "user_id": str(user_id),
        "year": year,
        "days_allocated": days_allocated,
        "days_carried": days_carried,
        "used_days": used,
        "available_days": available_days(days_allocated, days_carried, used),
        "configured": balance is not None,
    }


def upsert_balance(user_id: uuid.UUID, year: int, days_allocated: int, days_carried: int) -> VacationBalance:
    if db.session.get(User, user_id) is None:
        raise NotFound("Usuario no encontrado", error_code="USER_NOT_FOUND")

    try:
        balance = _balance_row(user_id, year)
        if balance is None:
            balance = VacationBalance(user_id=user_id, year=year)
            db.session.add(balance)
        balance.days_allocated = days_allocated
        balance.days_carried = days_carried
        db.session.flush()
        log_audit(
            action="VACATION_BALANCE_UPDATED",
            entity_type="vacation_balances",
            entity_id=balance.id,
            payload={
                "user_id": str(user_id),
                "year": year,
                "days_allocated": days_allocated,
                "days_carried": days_carried,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Vacation balance %s/%s set to %s allocated, %s carried", user_id, year, days_allocated, days_carried
    )
    return balance


def stats() -> dict[str, int]:
    stmt = select(VacationRequest.status, func.count(VacationRequest.id)).group_by(VacationRequest.status)
    counts = {status: int(count) for status, count in db.session.execute(stmt).all()}
    return {
        "total": sum(counts.values()),
        "pendientes": counts.get(VacationStatus.PENDIENTE, 0),
        "aprobadas": counts.get(VacationStatus.APROBADA, 0),
        "rechazadas": counts.get(VacationStatus.RECHAZADA, 0),
        "canceladas": counts.get(VacationStatus.CANCELADA, 0),
    }
