"""
Authentication API Tests

Tests:
- Valid login for every role
- Invalid credentials, inactive users and orphan accounts
- Password change flow
- Token expiration and tampering
"""
import pytest
from httpx import AsyncClient
from datetime import timedelta

from tests.conftest import auth_header, seed_user, TEST_PASSWORD
from portal.core.security import create_access_token
from portal.db.paths import user_doc_path
from portal.models.records import UserRole


class TestAuthLogin:
    """Tests for /auth/login endpoint."""

    @pytest.mark.asyncio
    async def test_login_valid_credentials_teacher(
        self, async_client: AsyncClient, teacher_user, store
    ):
        """Test login with valid teacher credentials."""
        response = await async_client.post(
            "/auth/login",
            json={"email": teacher_user.email, "password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        data = response.json()

        assert "access_token" in data
        assert data["token_type"] == "bearer"
        assert data["role"] == "Teacher"
        assert data["user_id"] == teacher_user.id
        assert data["name"] == "Jane Teacher"
        assert store.docs[user_doc_path(teacher_user.id)]["lastLogin"] != "N/A"

    @pytest.mark.asyncio
    async def test_login_valid_credentials_admin(self, async_client: AsyncClient, admin_user):
        response = await async_client.post(
            "/auth/login",
            json={"email": "ADMIN@eesedu.com", "password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        assert response.json()["role"] == "Admin"

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, async_client: AsyncClient, admin_user):
        response = await async_client.post(
            "/auth/login",
            json={"email": admin_user.email, "password": "wrongpassword"}
        )

        assert response.status_code == 401
        assert "Invalid email or password" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_login_unknown_email(self, async_client: AsyncClient):
        response = await async_client.post(
            "/auth/login",
            json={"email": "nobody@eesedu.com", "password": TEST_PASSWORD}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_inactive_user(self, async_client: AsyncClient, directory, store):
        seed_user(directory, store, UserRole.TEACHER, "gone@eesedu.com", "Gone", status="Inactive")

        response = await async_client.post(
            "/auth/login",
            json={"email": "gone@eesedu.com", "password": TEST_PASSWORD}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_account_without_user_record(self, async_client: AsyncClient, directory):
        directory.add_account("orphan@eesedu.com", TEST_PASSWORD)

        response = await async_client.post(
            "/auth/login",
            json={"email": "orphan@eesedu.com", "password": TEST_PASSWORD}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_invalid_email_format(self, async_client: AsyncClient):
        response = await async_client.post(
            "/auth/login",
            json={"email": "not-an-email", "password": TEST_PASSWORD}
        )

        assert response.status_code == 422


class TestTokens:

    @pytest.mark.asyncio
    async def test_access_with_expired_token(self, async_client: AsyncClient):
        """Test that expired tokens are rejected."""
        expired_token = create_access_token(
            subject="admin@eesedu.com",
            user_id="some-uuid",
            role="Admin",
            expires_delta=timedelta(seconds=-10)
        )

        response = await async_client.get(
            "/admin/appraisals",
            headers=auth_header(expired_token)
        )

        assert response.status_code == 401
        assert "Invalid or expired token" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_token_with_tampered_signature(self, async_client: AsyncClient, admin_token):
        parts = admin_token.rsplit('.', 1)
        tampered_token = parts[0] + ".tampered_signature"

        response = await async_client.get(
            "/admin/appraisals",
            headers=auth_header(tampered_token)
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_token(self, async_client: AsyncClient):
        response = await async_client.get("/admin/appraisals")

        assert response.status_code in [401, 403]


class TestPasswordChange:

    @pytest.mark.asyncio
    async def test_change_password(self, async_client: AsyncClient, directory, store):
        user = seed_user(directory, store, UserRole.COORDINATOR, "new@eesedu.com", "New", status="Pending")

        response = await async_client.post(
            "/auth/change-password",
            headers=auth_header(create_access_token(user.email, user.id, user.role)),
            json={"current_password": TEST_PASSWORD, "new_password": "brand-new-pass"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert await directory.authenticate("new@eesedu.com", "brand-new-pass")
        assert store.docs[user_doc_path(user.id)]["status"] == "Active"

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, async_client: AsyncClient, teacher_token):
        response = await async_client.post(
            "/auth/change-password",
            headers=auth_header(teacher_token),
            json={"current_password": "not-it", "new_password": "brand-new-pass"}
        )

        assert response.status_code == 400
        assert "incorrect" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_change_password_too_short(self, async_client: AsyncClient, teacher_token):
        response = await async_client.post(
            "/auth/change-password",
            headers=auth_header(teacher_token),
            json={"current_password": TEST_PASSWORD, "new_password": "abc"}
        )

        assert response.status_code == 400
        assert "at least" in response.json()["detail"]
