"""WTForms form classes for the JSON API.

Forms are bound explicitly with ``formdata=``: JSON bodies go through
:func:`json_formdata`, query strings are passed as ``request.args``.
"""

from __future__ import annotations

from typing import Any

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import DateField, IntegerField, PasswordField, SelectField, StringField, TextAreaField
from wtforms.validators import UUID, AnyOf, Email, EqualTo, InputRequired, Length, NumberRange, Optional

from registro_horas.errors import ValidationError
from registro_horas.models import UserRole, VacationStatus


def _strip(value):
    return value.strip() if value else value


def json_formdata(payload: Any = None) -> MultiDict:
    """Flatten a JSON object into form data; ``None`` values are dropped."""
    if payload is None:
        payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return MultiDict()
    items = []
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        items.append((key, str(value)))
    return MultiDict(items)


def validate_or_raise(form: FlaskForm) -> FlaskForm:
    """Validate ``form``; the first failing field becomes a ``ValidationError``."""
    if form.validate():
        return form
    field_name, messages = next(iter(form.errors.items()))
    message = getattr(form, "error_message", None) or f"{field_name}: {messages[0]}"
    raise ValidationError(message, error_code=getattr(form, "error_code", "VALIDATION_ERROR"))


class LoginForm(FlaskForm):
    error_message = "Email y contraseña son requeridos"

    email = StringField("Email", validators=[InputRequired(), Length(max=255)], filters=[_strip])
    password = PasswordField("Password", validators=[InputRequired(), Length(max=255)])


class UserCreateForm(FlaskForm):
    name = StringField("Nombre", validators=[InputRequired(message="El nombre es requerido"), Length(max=255)], filters=[_strip])
    email = StringField(
        "Email",
        validators=[InputRequired(message="El email es requerido"), Email(message="Email inválido"), Length(max=255)],
        filters=[_strip],
    )
    password = PasswordField(
        "Contraseña",
        validators=[InputRequired(message="La contraseña es requerida"), Length(min=8, max=255, message="La contraseña debe tener al menos 8 caracteres")],
    )
    role = SelectField(
        "Rol",
        choices=[
            (UserRole.ADMINISTRADOR.value, "Administrador"),
            (UserRole.CONSULTOR.value, "Consultor"),
        ],
        default=UserRole.CONSULTOR.value,
        validate_choice=True,
    )


class UserEditForm(FlaskForm):
    name = StringField("Nombre", validators=[InputRequired(message="El nombre es requerido"), Length(max=255)], filters=[_strip])
    email = StringField(
        "Email",
        validators=[InputRequired(message="El email es requerido"), Email(message="Email inválido"), Length(max=255)],
        filters=[_strip],
    )
    role = SelectField(
        "Rol",
        choices=[
            (UserRole.ADMINISTRADOR.value, "Administrador"),
            (UserRole.CONSULTOR.value, "Consultor"),
        ],
        validators=[InputRequired(message="Rol no válido")],
        validate_choice=True,
    )
    password = PasswordField(
        "Nueva contraseña",
        validators=[Optional(), Length(min=8, max=255, message="La contraseña debe tener al menos 8 caracteres")],
    )


class ProfileUpdateForm(FlaskForm):
    name = StringField("Nombre", validators=[InputRequired(message="El nombre es requerido"), Length(max=255)], filters=[_strip])


class PasswordChangeForm(FlaskForm):
    current_password = PasswordField(
        "Contraseña actual", validators=[InputRequired(message="Contraseña actual y nueva son requeridas")]
    )
    new_password = PasswordField(
        "Nueva contraseña",
        validators=[
            InputRequired(message="Contraseña actual y nueva son requeridas"),
            Length(min=8, max=255, message="La contraseña debe tener al menos 8 caracteres"),
        ],
    )
    confirm_password = PasswordField(
        "Confirmar nueva contraseña",
        validators=[
            Optional(),
            EqualTo("new_password", message="La nueva contraseña y la confirmación no coinciden"),
        ],
    )


class VacationRequestForm(FlaskForm):
    error_code = "MISSING_DATES"
    error_message = "start_date y end_date son requeridos"

    start_date = DateField("Fecha de inicio", validators=[InputRequired()], format="%Y-%m-%d")
    end_date = DateField("Fecha de fin", validators=[InputRequired()], format="%Y-%m-%d")
    reason = TextAreaField("Motivo", validators=[Optional()])


class VacationDecisionForm(FlaskForm):
    error_code = "INVALID_DECISION"
    error_message = "Decisión inválida"

    status = StringField(
        "Decisión",
        validators=[
            InputRequired(),
            AnyOf([VacationStatus.APROBADA.value, VacationStatus.RECHAZADA.value]),
        ],
        filters=[_strip],
    )
    admin_comment = TextAreaField("Comentario", validators=[Optional()])


class VacationFilterForm(FlaskForm):
    """Admin listing filters; ``from``/``to`` arrive renamed to ``date_from``/``date_to``."""

    status = StringField("Estado", validators=[Optional(), AnyOf([status.value for status in VacationStatus])])
    user_id = StringField("Usuario", validators=[Optional(), UUID(message="user_id inválido")])
    date_from = DateField("Desde", validators=[Optional()], format="%Y-%m-%d")
    date_to = DateField("Hasta", validators=[Optional()], format="%Y-%m-%d")


class BalanceYearForm(FlaskForm):
    year = IntegerField("Año", validators=[Optional(), NumberRange(min=1900, max=9999, message="Año inválido")])


class VacationBalanceForm(FlaskForm):
    year = IntegerField("Año", validators=[Optional(), NumberRange(min=1900, max=9999, message="Año inválido")])
    days_allocated = IntegerField(
        "Días asignados",
        validators=[InputRequired(message="days_allocated es requerido"), NumberRange(min=0, message="days_allocated no puede ser negativo")],
    )
    days_carried = IntegerField(
        "Días arrastrados",
        validators=[Optional(), NumberRange(min=0, message="days_carried no puede ser negativo")],
        default=0,
    )
