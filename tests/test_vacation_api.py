from __future__ import annotations

import uuid
from datetime import date

import pytest
from sqlalchemy import select

from registro_horas import vacation_ledger
from registro_horas.extensions import db
from registro_horas.models import VacationBalance, VacationPolicy, VacationRequest, VacationStatus


@pytest.fixture(autouse=True)
def fixed_today(monkeypatch):
    monkeypatch.setattr(vacation_ledger, "app_today", lambda: date(2025, 3, 1))


def _create(client, headers, start="2025-03-10", end="2025-03-14", **extra):
    return client.post("/api/vacations", json={"start_date": start, "end_date": end, **extra}, headers=headers)


def test_consultor_creates_request(client, consultor_headers, consultor):
    response = _create(client, consultor_headers, reason="Viaje")

    assert response.status_code == 201
    payload = response.get_json()
    assert payload["status"] == "pendiente"
    assert payload["total_days"] == 5
    assert payload["reason"] == "Viaje"
    assert payload["user_id"] == str(consultor.id)
    assert payload["user_name"] == "Carlos Consultor"
    assert payload["approver_name"] is None


def test_create_requires_token(client):
    response = _create(client, {})

    assert response.status_code == 401
    assert response.get_json()["code"] == "NO_TOKEN"


def test_create_rejects_malformed_token(client):
    response = _create(client, {"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.get_json()["code"] == "TOKEN_INVALID"


@pytest.mark.parametrize(
    ("body", "code"),
    [
        ({"end_date": "2025-03-14"}, "MISSING_DATES"),
        ({"start_date": "10/03/2025", "end_date": "2025-03-14"}, "MISSING_DATES"),
        ({"start_date": "2025-03-03", "end_date": "2025-03-04"}, "INSUFFICIENT_ADVANCE_NOTICE"),
        ({"start_date": "2025-03-15", "end_date": "2025-03-16"}, "INVALID_DATE_RANGE"),
    ],
)
def test_create_validation_errors(client, consultor_headers, body, code):
    response = client.post("/api/vacations", json=body, headers=consultor_headers)

    assert response.status_code == 400
    payload = response.get_json()
    assert payload["code"] == code
    assert payload["message"]


def test_create_rejects_range_reaching_year_9999(client, consultor_headers):
    response = _create(client, consultor_headers, start="2025-04-01", end="9999-12-31")

    assert response.status_code == 400
    assert response.get_json()["code"] == "MAX_CONSECUTIVE_DAYS_EXCEEDED"


def test_create_with_empty_policy_table_uses_default_limits(client, consultor_headers):
    assert db.session.execute(select(VacationPolicy)).scalars().all() == []

    too_long = _create(client, consultor_headers, start="2025-03-10", end="2025-04-30")
    assert too_long.get_json()["code"] == "MAX_CONSECUTIVE_DAYS_EXCEEDED"

    for _ in range(5):
        assert _create(client, consultor_headers).status_code == 201


def test_my_requests_only_lists_callers_requests(client, consultor_headers, other_consultor_headers):
    _create(client, consultor_headers)
    _create(client, other_consultor_headers, start="2025-04-07", end="2025-04-08")

    response = client.get("/api/vacations/my", headers=consultor_headers)

    assert response.status_code == 200
    payload = response.get_json()
    assert len(payload) == 1
    assert payload[0]["start_date"] == "2025-03-10"


def test_admin_list_requires_admin(client, consultor_headers):
    response = client.get("/api/vacations", headers=consultor_headers)

    assert response.status_code == 403
    assert response.get_json()["code"] == "PERMISSION_DENIED"


def test_admin_list_filters(client, admin_headers, consultor_headers, other_consultor_headers, consultor):
    _create(client, consultor_headers)
    _create(client, other_consultor_headers, start="2025-04-07", end="2025-04-08")

    everything = client.get("/api/vacations", headers=admin_headers).get_json()
    assert len(everything) == 2
    assert all(isinstance(item["total_days"], int) for item in everything)

    mine = client.get(f"/api/vacations?user_id={consultor.id}", headers=admin_headers).get_json()
    assert [item["user_name"] for item in mine] == ["Carlos Consultor"]

    april = client.get("/api/vacations?from=2025-04-01&to=2025-04-30", headers=admin_headers).get_json()
    assert [item["start_date"] for item in april] == ["2025-04-07"]

    approved = client.get("/api/vacations?status=aprobada", headers=admin_headers).get_json()
    assert approved == []


def test_admin_list_rejects_unknown_status(client, admin_headers):
    response = client.get("/api/vacations?status=archivada", headers=admin_headers)

    assert response.status_code == 400
    assert response.get_json()["code"] == "VALIDATION_ERROR"


def test_detail_visible_to_owner_and_admin_only(client, consultor_headers, other_consultor_headers, admin_headers):
    request_id = _create(client, consultor_headers).get_json()["id"]

    owner_view = client.get(f"/api/vacations/detail/{request_id}", headers=consultor_headers)
    assert owner_view.status_code == 200
    assert owner_view.get_json()["user_email"] == "consultor@example.com"

    admin_view = client.get(f"/api/vacations/{request_id}", headers=admin_headers)
    assert admin_view.status_code == 200
    assert admin_view.get_json()["id"] == request_id

    stranger_view = client.get(f"/api/vacations/{request_id}", headers=other_consultor_headers)
    assert stranger_view.status_code == 403

    missing = client.get(f"/api/vacations/detail/{uuid.uuid4()}", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.get_json()["message"] == "Solicitud no encontrada"


def test_owner_cancels_pending_request(client, consultor_headers, other_consultor_headers):
    request_id = _create(client, consultor_headers).get_json()["id"]

    foreign = client.post(f"/api/vacations/{request_id}/cancel", headers=other_consultor_headers)
    assert foreign.status_code == 400
    assert foreign.get_json()["code"] == "INVALID_CANCELLATION"

    response = client.post(f"/api/vacations/{request_id}/cancel", headers=consultor_headers)
    assert response.status_code == 200
    assert response.get_json()["status"] == "cancelada"

    again = client.post(f"/api/vacations/{request_id}/cancel", headers=consultor_headers)
    assert again.status_code == 400


def test_admin_approves_and_balance_is_debited(client, admin_headers, consultor_headers, consultor):
    put = client.put(
        f"/api/vacations/balance/{consultor.id}",
        json={"year": 2025, "days_allocated": 20, "days_carried": 3},
        headers=admin_headers,
    )
    assert put.status_code == 200
    assert put.get_json()["available_days"] == 23

    request_id = _create(client, consultor_headers).get_json()["id"]
    response = client.put(
        f"/api/vacations/{request_id}/decision",
        json={"status": "aprobada", "admin_comment": "OK"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["status"] == "aprobada"
    assert payload["approver_name"] == "Ana Admin"
    assert payload["admin_comment"] == "OK"

    balance = client.get("/api/vacations/balance/my?year=2025", headers=consultor_headers).get_json()
    assert balance["days_allocated"] == 15
    assert balance["days_carried"] == 3
    assert balance["used_days"] == 5
    assert balance["available_days"] == 13

    second = client.put(
        f"/api/vacations/{request_id}/decision", json={"status": "rechazada"}, headers=admin_headers
    )
    assert second.status_code == 400
    assert second.get_json()["code"] == "REQUEST_NOT_PENDING"
    row = db.session.execute(select(VacationBalance).where(VacationBalance.user_id == consultor.id)).scalar_one()
    assert row.days_allocated == 15


def test_decision_rejects_invalid_status(client, admin_headers, consultor_headers):
    request_id = _create(client, consultor_headers).get_json()["id"]

    response = client.put(
        f"/api/vacations/{request_id}/decision", json={"status": "cancelada"}, headers=admin_headers
    )

    assert response.status_code == 400
    assert response.get_json() == {"message": "Decisión inválida", "code": "INVALID_DECISION"}
    assert db.session.get(VacationRequest, uuid.UUID(request_id)).status == VacationStatus.PENDIENTE


def test_decision_requires_admin(client, consultor_headers):
    request_id = _create(client, consultor_headers).get_json()["id"]

    response = client.put(
        f"/api/vacations/{request_id}/decision", json={"status": "aprobada"}, headers=consultor_headers
    )

    assert response.status_code == 403


def test_balance_defaults_to_current_year(client, consultor_headers):
    response = client.get("/api/vacations/balance/my", headers=consultor_headers)

    assert response.status_code == 200
    assert response.get_json()["year"] == 2025
    assert response.get_json()["available_days"] == 0


def test_balance_edit_validates_input(client, admin_headers, consultor):
    negative = client.put(
        f"/api/vacations/balance/{consultor.id}",
        json={"year": 2025, "days_allocated": -1, "days_carried": 0},
        headers=admin_headers,
    )
    assert negative.status_code == 400

    unknown = client.put(
        f"/api/vacations/balance/{uuid.uuid4()}",
        json={"year": 2025, "days_allocated": 5, "days_carried": 0},
        headers=admin_headers,
    )
    assert unknown.status_code == 404


def test_other_users_balance_is_admin_only(client, consultor_headers, other_consultor):
    response = client.get(f"/api/vacations/balance/{other_consultor.id}", headers=consultor_headers)

    assert response.status_code == 403


def test_policies_round_trip(client, admin_headers):
    listing = client.get("/api/vacations/policies", headers=admin_headers)
    assert listing.status_code == 200
    assert listing.get_json()["min_advance_days"] == {"value": "7", "description": "Días mínimos de anticipación"}

    update = client.put(
        "/api/vacations/policies",
        json={"min_advance_days": 14, "notify_on_decision": False},
        headers=admin_headers,
    )
    assert update.status_code == 200
    assert update.get_json() == {"message": "Políticas actualizadas correctamente"}

    public = client.get("/api/vacations/policies/public")
    assert public.status_code == 200
    assert public.get_json()["min_advance_days"] == "14"
    assert "notify_on_decision" not in public.get_json()


def test_policy_update_rejects_unknown_keys(client, admin_headers):
    response = client.put("/api/vacations/policies", json={"bogus": "1"}, headers=admin_headers)

    assert response.status_code == 400
    assert response.get_json()["code"] == "UNKNOWN_POLICY"


def test_policies_admin_only(client, consultor_headers):
    assert client.get("/api/vacations/policies", headers=consultor_headers).status_code == 403
    assert client.put("/api/vacations/policies", json={"min_advance_days": 1}, headers=consultor_headers).status_code == 403


def test_stats(client, admin_headers, consultor_headers):
    first = _create(client, consultor_headers).get_json()["id"]
    _create(client, consultor_headers, start="2025-04-07", end="2025-04-08")
    client.post(f"/api/vacations/{first}/cancel", headers=consultor_headers)

    response = client.get("/api/vacations/stats", headers=admin_headers)

    assert response.status_code == 200
    assert response.get_json() == {
        "total": 2,
        "pendientes": 1,
        "aprobadas": 0,
        "rechazadas": 0,
        "canceladas": 1,
    }


def test_unexpected_errors_render_generic_message(client, consultor_headers, monkeypatch):
    def explode(*_args, **_kwargs):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(vacation_ledger, "list_mine", explode)

    response = client.get("/api/vacations/my", headers=consultor_headers)

    assert response.status_code == 500
    assert response.get_json() == {"message": "Error interno del servidor", "code": "INTERNAL_ERROR"}
