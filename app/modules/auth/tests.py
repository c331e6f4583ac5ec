"""
Tests for authentication: password hashing, tokens, login and role checks
"""

import pytest
from uuid import uuid4
from fastapi import HTTPException

from app.main import app
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext, UserCreate, UserRole
from app.modules.auth.service import AuthService
from app.modules.auth.utils import hash_password, verify_password, create_access_token, decode_token


@pytest.fixture
def cashier(db_session):
    return AuthService(db_session).create_user(UserCreate(
        email="cashier@example.com",
        password="s3cret-pass",
        full_name="Front Desk",
        role=UserRole.CASHIER
    ))


class TestAuthUtils:

    def test_password_hash_roundtrip(self):
        hashed = hash_password("s3cret-pass")
        assert hashed != "s3cret-pass"
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong-pass", hashed)

    def test_token_carries_subject(self):
        user_id = str(uuid4())
        payload = decode_token(create_access_token({"sub": user_id, "role": "admin"}))
        assert payload["sub"] == user_id
        assert payload["type"] == "access"
        assert "exp" in payload


class TestAuthService:

    def test_duplicate_email(self, db_session, cashier):
        with pytest.raises(HTTPException) as exc_info:
            AuthService(db_session).create_user(UserCreate(email="cashier@example.com", password="another-pass"))
        assert exc_info.value.status_code == 409

    def test_login(self, db_session, cashier):
        token = AuthService(db_session).login("cashier@example.com", "s3cret-pass")
        assert token.token_type == "bearer"
        assert token.user.role == UserRole.CASHIER
        assert token.user.last_login is not None

    def test_login_wrong_password(self, db_session, cashier):
        with pytest.raises(HTTPException) as exc_info:
            AuthService(db_session).login("cashier@example.com", "wrong-pass")
        assert exc_info.value.status_code == 401

    def test_login_inactive(self, db_session, cashier):
        cashier.is_active = False
        db_session.commit()
        with pytest.raises(HTTPException) as exc_info:
            AuthService(db_session).login("cashier@example.com", "s3cret-pass")
        assert exc_info.value.status_code == 403


class TestAuthAPI:

    def test_login_and_me(self, client, cashier):
        response = client.post("/auth/login", data={"username": "cashier@example.com", "password": "s3cret-pass"})
        assert response.status_code == 200
        token = response.json()["access_token"]

        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["email"] == "cashier@example.com"

    def test_me_rejects_bad_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_create_user_admin_only(self, client):
        response = client.post("/auth/users", json={"email": "new@example.com", "password": "long-enough"})
        assert response.status_code == 201
        assert response.json()["role"] == "cashier"

        app.dependency_overrides[AuthDependencies.get_auth_context] = lambda: AuthContext(
            user_id=uuid4(), user_role=UserRole.MANAGER
        )
        response = client.post("/auth/users", json={"email": "other@example.com", "password": "long-enough"})
        assert response.status_code == 403


class TestAdminBootstrap:

    def test_ensure_admin_is_idempotent(self, db_session):
        service = AuthService(db_session)
        first = service.ensure_admin("owner@example.com", "owner-pass-1")
        second = service.ensure_admin("owner@example.com", "ignored-pass")
        assert first.id == second.id
        assert first.role == "admin"

    def test_ensure_admin_refuses_other_roles(self, db_session, cashier):
        with pytest.raises(HTTPException) as exc_info:
            AuthService(db_session).ensure_admin("cashier@example.com", "whatever-pass")
        assert exc_info.value.status_code == 409
