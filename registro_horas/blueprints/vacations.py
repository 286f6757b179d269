"""Vacation request, balance and policy routes."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from flask import Blueprint, request
from flask_login import current_user, login_required
from werkzeug.datastructures import MultiDict

from registro_horas import policies, vacation_ledger
from registro_horas.authorization import manage_vacations_required
from registro_horas.forms import (
    BalanceYearForm,
    VacationBalanceForm,
    VacationDecisionForm,
    VacationFilterForm,
    VacationRequestForm,
    json_formdata,
    validate_or_raise,
)
from registro_horas.models import User, VacationRequest, VacationStatus


bp = Blueprint("vacations", __name__)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def vacation_payload(
    vacation: VacationRequest,
    owner: User | None = None,
    approver: User | None = None,
    *,
    detail: bool = False,
) -> dict:
    payload = {
        "id": str(vacation.id),
        "user_id": str(vacation.user_id),
        "start_date": _iso(vacation.start_date),
        "end_date": _iso(vacation.end_date),
        "total_days": int(vacation.total_days),
        "status": vacation.status.value,
        "reason": vacation.reason,
        "approver_id": str(vacation.approver_id) if vacation.approver_id else None,
        "decision_at": _iso(vacation.decision_at),
        "admin_comment": vacation.admin_comment,
        "created_at": _iso(vacation.created_at),
        "updated_at": _iso(vacation.updated_at),
        "user_name": owner.name if owner is not None else None,
        "approver_name": approver.name if approver is not None else None,
    }
    if detail:
        payload["user_email"] = owner.email if owner is not None else None
        payload["approver_email"] = approver.email if approver is not None else None
    return payload


def _detail_payload(request_id: uuid.UUID) -> dict:
    vacation, owner, approver = vacation_ledger.get_detail(request_id, current_user.id, current_user.role)
    return vacation_payload(vacation, owner, approver, detail=True)


def _requested_year() -> int:
    form = validate_or_raise(BalanceYearForm(formdata=request.args))
    return form.year.data or vacation_ledger.app_today().year


@bp.post("")
@login_required
def create_vacation():
    form = validate_or_raise(VacationRequestForm(formdata=json_formdata()))
    vacation = vacation_ledger.create_request(
        current_user.id,
        form.start_date.data,
        form.end_date.data,
        form.reason.data,
    )
    return vacation_payload(vacation, current_user), 201


@bp.get("/my")
@login_required
def my_vacations():
    rows = vacation_ledger.list_mine(current_user.id)
    return [vacation_payload(vacation, owner, approver) for vacation, owner, approver in rows], 200


@bp.get("")
@login_required
@manage_vacations_required
def list_vacations():
    args = MultiDict(request.args)
    # "from" is a Python keyword, the form names the range bounds date_from/date_to.
    for query_name, field_name in (("from", "date_from"), ("to", "date_to")):
        if query_name in args:
            args.setlist(field_name, args.poplist(query_name))
    form = validate_or_raise(VacationFilterForm(formdata=args))

    rows = vacation_ledger.list_all(
        status=VacationStatus(form.status.data) if form.status.data else None,
        user_id=uuid.UUID(form.user_id.data) if form.user_id.data else None,
        date_from=form.date_from.data,
        date_to=form.date_to.data,
    )
    return [vacation_payload(vacation, owner, approver) for vacation, owner, approver in rows], 200


@bp.get("/detail/<uuid:request_id>")
@login_required
def vacation_detail(request_id: uuid.UUID):
    return _detail_payload(request_id), 200


@bp.get("/<uuid:request_id>")
@login_required
def vacation_detail_alias(request_id: uuid.UUID):
    return _detail_payload(request_id), 200


@bp.post("/<uuid:request_id>/cancel")
@login_required
def cancel_vacation(request_id: uuid.UUID):
    vacation_ledger.cancel(request_id, current_user.id)
    return _detail_payload(request_id), 200


@bp.put("/<uuid:request_id>/decision")
@login_required
@manage_vacations_required
def decide_vacation(request_id: uuid.UUID):
    form = validate_or_raise(VacationDecisionForm(formdata=json_formdata()))
    vacation_ledger.decide(
        request_id,
        current_user.id,
        VacationStatus(form.status.data),
        form.admin_comment.data,
    )
    return _detail_payload(request_id), 200


@bp.get("/policies")
@login_required
@manage_vacations_required
def get_policies():
    return policies.describe_policies(), 200


@bp.put("/policies")
@login_required
@manage_vacations_required
def put_policies():
    policies.update_policies(request.get_json(silent=True))
    return {"message": "Políticas actualizadas correctamente"}, 200


@bp.get("/policies/public")
def public_policies():
    return policies.public_policy_values(), 200


@bp.get("/stats")
@login_required
@manage_vacations_required
def vacation_stats():
    return vacation_ledger.stats(), 200


@bp.get("/balance/my")
@login_required
def my_balance():
    return vacation_ledger.get_balance(current_user.id, _requested_year()), 200


@bp.get("/balance/<uuid:user_id>")
@login_required
@manage_vacations_required
def user_balance(user_id: uuid.UUID):
    return vacation_ledger.get_balance(user_id, _requested_year()), 200


@bp.put("/balance/<uuid:user_id>")
@login_required
@manage_vacations_required
def put_user_balance(user_id: uuid.UUID):
    form = validate_or_raise(VacationBalanceForm(formdata=json_formdata()))
    year = form.year.data or vacation_ledger.app_today().year
    vacation_ledger.upsert_balance(user_id, year, form.days_allocated.data, form.days_carried.data or 0)
    return vacation_ledger.get_balance(user_id, year), 200
