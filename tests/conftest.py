from __future__ import annotations

from typing import Iterator
import uuid

import pytest
from sqlalchemy import select
from sqlalchemy.pool import StaticPool

from registro_horas import create_app
from registro_horas.config import Config
from registro_horas.extensions import db
from registro_horas.models import User, UserRole
from registro_horas.security import hash_secret


ADMIN_EMAIL = "admin@example.com"
CONSULTOR_EMAIL = "consultor@example.com"
OTHER_CONSULTOR_EMAIL = "otro@example.com"
PASSWORD = "password123"


class TestConfig(Config):
    TESTING = True
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }
    JWT_SECRET = "test-secret-with-enough-length-for-hs256"
    APP_TIMEZONE = "Europe/Madrid"


@pytest.fixture()
def app() -> Iterator:
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()

        db.session.add_all(
            [
                User(
                    id=uuid.uuid4(),
                    name="Ana Admin",
                    email=ADMIN_EMAIL,
                    password_hash=hash_secret(PASSWORD),
                    role=UserRole.ADMINISTRADOR,
                    is_active=True,
                ),
                User(
                    id=uuid.uuid4(),
                    name="Carlos Consultor",
                    email=CONSULTOR_EMAIL,
                    password_hash=hash_secret(PASSWORD),
                    role=UserRole.CONSULTOR,
                    is_active=True,
                ),
                User(
                    id=uuid.uuid4(),
                    name="Olga Otra",
                    email=OTHER_CONSULTOR_EMAIL,
                    password_hash=hash_secret(PASSWORD),
                    role=UserRole.CONSULTOR,
                    is_active=True,
                ),
            ]
        )
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def user_by_email(email: str) -> User:
    return db.session.execute(select(User).where(User.email == email)).scalar_one()


def login_headers(client, email: str, password: str = PASSWORD) -> dict[str, str]:
    response = client.post("/api/users/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


@pytest.fixture()
def admin_user(app) -> User:
    return user_by_email(ADMIN_EMAIL)


@pytest.fixture()
def consultor(app) -> User:
    return user_by_email(CONSULTOR_EMAIL)


@pytest.fixture()
def other_consultor(app) -> User:
    return user_by_email(OTHER_CONSULTOR_EMAIL)


@pytest.fixture()
def admin_headers(client) -> dict[str, str]:
    return login_headers(client, ADMIN_EMAIL)


@pytest.fixture()
def consultor_headers(client) -> dict[str, str]:
    return login_headers(client, CONSULTOR_EMAIL)


@pytest.fixture()
def other_consultor_headers(client) -> dict[str, str]:
    return login_headers(client, OTHER_CONSULTOR_EMAIL)
