"""
Pytest fixtures for the School Portal test suite.
Provides in-memory backends, an async test client wired to them, and test
data setup.
"""
import pytest
from typing import AsyncGenerator, Dict, List, Optional
from httpx import AsyncClient, ASGITransport

# Import the FastAPI app
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from portal.main import app
from portal.core.security import create_access_token
from portal.db.paths import USERS_COLLECTION, TEACHERS_COLLECTION, STUDENT_DATA_ROOT_COLLECTION
from portal.db.paths import student_profiles_collection_path
from portal.models.records import (
    UserRecord, UserRole, TeacherProfile, StudentProfile, ClassDocument, Assignment,
)
from portal.services.provisioning_service import ProvisioningCoordinator, wait_for_pending_compensations
from portal.api.dependencies import get_identity_directory, get_document_store, get_journal

from tests.fakes import InMemoryIdentityDirectory, InMemoryDocumentStore, FakeJournal


# ================== Backend Fixtures ==================

@pytest.fixture
def directory() -> InMemoryIdentityDirectory:
    return InMemoryIdentityDirectory()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def journal() -> FakeJournal:
    return FakeJournal()


@pytest.fixture
async def coordinator(directory, store, journal) -> AsyncGenerator[ProvisioningCoordinator, None]:
    """Provisioning coordinator over the in-memory backends."""
    yield ProvisioningCoordinator(directory, store, journal)
    await wait_for_pending_compensations()


@pytest.fixture
async def async_client(directory, store, journal) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for testing FastAPI app against in-memory backends."""
    app.dependency_overrides[get_identity_directory] = lambda: directory
    app.dependency_overrides[get_document_store] = lambda: store
    app.dependency_overrides[get_journal] = lambda: journal

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    await wait_for_pending_compensations()


# ================== Test Data Helpers ==================

TEST_CLASS_ID = "class-8"
TEST_PASSWORD = "secret123"


def seed_user(
    directory: InMemoryIdentityDirectory,
    store: InMemoryDocumentStore,
    role: UserRole,
    email: str,
    name: str,
    assignments: Optional[List[Assignment]] = None,
    password: str = TEST_PASSWORD,
    **fields
) -> UserRecord:
    """Create an account plus its user record; teachers also get a profile."""
    account_id = directory.add_account(email, password, display_name=name)
    user = UserRecord(
        id=account_id, name=name, email=email, role=role, assignments=assignments, **fields
    )
    store.seed(USERS_COLLECTION, account_id, user.to_document())
    if role == UserRole.TEACHER:
        profile = TeacherProfile(id=account_id, auth_uid=account_id, name=name, email=email)
        store.seed(TEACHERS_COLLECTION, account_id, profile.to_document())
    return user


def seed_class(store: InMemoryDocumentStore, class_id: str = TEST_CLASS_ID, **fields) -> ClassDocument:
    fields.setdefault("name", f"Class {class_id}")
    fields.setdefault("sections", ["A", "B"])
    class_doc = ClassDocument(id=class_id, **fields)
    store.seed(STUDENT_DATA_ROOT_COLLECTION, class_id, class_doc.to_document())
    return class_doc


def seed_student(
    store: InMemoryDocumentStore,
    profile_id: str,
    name: str,
    class_id: str = TEST_CLASS_ID,
    section_id: Optional[str] = None,
    group_id: Optional[str] = None
) -> StudentProfile:
    profile = StudentProfile(
        id=profile_id,
        auth_uid=f"auth-{profile_id}",
        name=name,
        admission_number=f"SATS-{profile_id}",
        class_id=class_id,
        section_id=section_id,
        group_id=group_id,
    )
    store.seed(student_profiles_collection_path(class_id), profile_id, profile.to_document())
    return profile


def token_for(user: UserRecord) -> str:
    return create_access_token(subject=user.email, user_id=user.id, role=user.role)


def auth_header(token: str) -> Dict[str, str]:
    """Create authorization header."""
    return {"Authorization": f"Bearer {token}"}


# ================== User Fixtures ==================

@pytest.fixture
def admin_user(directory, store) -> UserRecord:
    return seed_user(directory, store, UserRole.ADMIN, "admin@eesedu.com", "Test Admin")


@pytest.fixture
def coordinator_user(directory, store) -> UserRecord:
    return seed_user(directory, store, UserRole.COORDINATOR, "coordinator@eesedu.com", "Test Coordinator")


@pytest.fixture
def teacher_user(directory, store) -> UserRecord:
    """Class teacher of section A of the test class."""
    seed_class(store)
    return seed_user(
        directory, store, UserRole.TEACHER, "teacher@eesedu.com", "Jane Teacher",
        assignments=[Assignment(id="a-homeroom", type="class_teacher", class_id=TEST_CLASS_ID, section_id="A")]
    )


@pytest.fixture
def admin_token(admin_user) -> str:
    return token_for(admin_user)


@pytest.fixture
def coordinator_token(coordinator_user) -> str:
    return token_for(coordinator_user)


@pytest.fixture
def teacher_token(teacher_user) -> str:
    return token_for(teacher_user)
