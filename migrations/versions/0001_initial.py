"""Initial schema.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


user_role = sa.Enum("administrador", "consultor", name="user_role")
vacation_status = sa.Enum("pendiente", "aprobada", "rechazada", "cancelada", name="vacation_status")

DEFAULT_POLICIES = [
    ("min_advance_days", "7", "Días mínimos de anticipación"),
    ("max_consecutive_days", "30", "Días máximos consecutivos"),
    ("max_requests_per_year", "5", "Máximo solicitudes por año"),
    ("default_days_per_year", "20", "Días por defecto por año"),
    ("max_carry_over_days", "10", "Máximo días a arrastrar"),
    ("auto_approve_days", "3", "Días de aprobación automática"),
    ("notify_on_request", "true", "Notificar al admin"),
    ("notify_on_decision", "true", "Notificar al usuario"),
    ("auto_reminder_days", "30", "Días para recordatorio"),
]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", user_role, nullable=False, server_default=sa.text("'consultor'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "vacation_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("total_days", sa.Integer(), nullable=False),
        sa.Column("status", vacation_status, nullable=False, server_default=sa.text("'pendiente'")),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("approver_id", sa.Uuid(), nullable=True),
        sa.Column("decision_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_comment", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("total_days > 0", name="ck_vacation_requests_total_days_positive"),
        sa.CheckConstraint("end_date >= start_date", name="ck_vacation_requests_dates"),
        sa.ForeignKeyConstraint(["approver_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vacation_requests_user_created", "vacation_requests", ["user_id", "created_at"], unique=False)
    op.create_index("ix_vacation_requests_status", "vacation_requests", ["status"], unique=False)

    op.create_table(
        "vacation_balances",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("days_allocated", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("days_carried", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "year", name="uq_vacation_balances_user_year"),
    )

    vacation_policies = op.create_table(
        "vacation_policies",
        sa.Column("policy_key", sa.String(length=64), nullable=False),
        sa.Column("policy_value", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("policy_key"),
    )
    op.bulk_insert(
        vacation_policies,
        [
            {"policy_key": key, "policy_value": value, "description": description}
            for key, value, description in DEFAULT_POLICIES
        ],
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_log_entity_ts", "audit_log", ["entity_type", "ts"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_log_entity_ts", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("vacation_policies")
    op.drop_table("vacation_balances")
    op.drop_index("ix_vacation_requests_status", table_name="vacation_requests")
    op.drop_index("ix_vacation_requests_user_created", table_name="vacation_requests")
    op.drop_table("vacation_requests")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    vacation_status.drop(op.get_bind(), checkfirst=True)
    user_role.drop(op.get_bind(), checkfirst=True)
