"""
Role-Based Access Control Tests

Tests:
- Teacher accessing admin/coordinator endpoints → must fail
- Coordinator accessing admin/teacher endpoints → must fail
- Admin accessing teacher endpoints → must fail
- Students have no API surface beyond auth
"""
import pytest
from httpx import AsyncClient

from tests.conftest import auth_header, seed_user, token_for
from portal.models.records import UserRole


ADMIN_ENDPOINTS = [
    ("post", "/admin/users/provision", {"profile": {"role": "Teacher", "name": "X", "employee_code": "E1"}}),
    ("patch", "/admin/users/someone/status", {"status": "Inactive"}),
    ("post", "/admin/classes", {"class_id": "c", "name": "C"}),
    ("post", "/admin/teachers/t/assignments", {"type": "class_teacher", "class_id": "c"}),
    ("get", "/admin/appraisals", None),
    ("post", "/admin/appraisals/r/transition", {"decision": "Approved"}),
    ("post", "/admin/reconcile", {"dry_run": True}),
]

TEACHER_ENDPOINTS = [
    ("get", "/teacher/students", None),
    ("post", "/teacher/visibility", {"class_id": "c"}),
    ("post", "/teacher/students/c/p/remarks", {"subject": "Maths", "remark": "ok"}),
]

COORDINATOR_ENDPOINTS = [
    ("post", "/coordinator/appraisals", {"teacher_id": "t", "justification": "good"}),
]


async def call(client: AsyncClient, method: str, url: str, body, token: str):
    kwargs = {"headers": auth_header(token)}
    if body is not None:
        kwargs["json"] = body
    return await getattr(client, method)(url, **kwargs)


class TestTeacherRoleRestrictions:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,url,body", ADMIN_ENDPOINTS + COORDINATOR_ENDPOINTS)
    async def test_teacher_denied(self, async_client: AsyncClient, teacher_token, method, url, body):
        response = await call(async_client, method, url, body, teacher_token)

        assert response.status_code == 403
        assert "Access denied" in response.json()["detail"]


class TestCoordinatorRoleRestrictions:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,url,body", ADMIN_ENDPOINTS + TEACHER_ENDPOINTS)
    async def test_coordinator_denied(self, async_client: AsyncClient, coordinator_token, method, url, body):
        response = await call(async_client, method, url, body, coordinator_token)

        assert response.status_code == 403


class TestAdminRoleRestrictions:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method,url,body", TEACHER_ENDPOINTS + COORDINATOR_ENDPOINTS)
    async def test_admin_denied(self, async_client: AsyncClient, admin_token, method, url, body):
        response = await call(async_client, method, url, body, admin_token)

        assert response.status_code == 403


class TestStudentRoleRestrictions:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,url,body", ADMIN_ENDPOINTS + TEACHER_ENDPOINTS + COORDINATOR_ENDPOINTS
    )
    async def test_student_denied(self, async_client: AsyncClient, directory, store, method, url, body):
        student = seed_user(directory, store, UserRole.STUDENT, "s@ees-student.com", "Student")

        response = await call(async_client, method, url, body, token_for(student))

        assert response.status_code == 403


class TestAdminAccess:

    @pytest.mark.asyncio
    async def test_admin_can_list_appraisals(self, async_client: AsyncClient, admin_token):
        response = await async_client.get("/admin/appraisals", headers=auth_header(admin_token))

        assert response.status_code == 200
        assert response.json() == {"requests": []}

    @pytest.mark.asyncio
    async def test_public_endpoints(self, async_client: AsyncClient):
        response = await async_client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "running"
