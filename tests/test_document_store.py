"""
Document Store Batch Tests

Tests:
- A batch may only touch documents under its own root collection
- A batch that fails part way applies nothing
"""
from contextlib import asynccontextmanager
from unittest.mock import MagicMock
import pytest

from portal.core.errors import NotFound
from portal.services.document_store import PostgresDocumentStore, WriteOp, check_batch_root

from tests.fakes import InMemoryDocumentStore


MIXED_ROOTS = [
    WriteOp(kind="set", path="users/u1", data={"name": "A"}),
    WriteOp(kind="set", path="teachers/u1", data={"name": "A"}),
]


class RecordingSession:
    """Stands in for an AsyncSession and remembers how its transaction ended."""

    def __init__(self):
        self.executed = []
        self.outcome = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    @asynccontextmanager
    async def begin(self):
        try:
            yield
        except BaseException:
            self.outcome = "rolled back"
            raise
        self.outcome = "committed"

    async def execute(self, stmt):
        self.executed.append(stmt)

    async def get(self, model, path, with_for_update=False):
        return None


class TestBatchRoot:

    def test_same_root_including_subcollections(self):
        check_batch_root("student_data_by_class", [
            WriteOp(kind="set", path="student_data_by_class/class-8", data={}),
            WriteOp(kind="delete", path="student_data_by_class/class-8/profiles/s1"),
        ])

    def test_other_root_refused(self):
        with pytest.raises(ValueError) as exc_info:
            check_batch_root("users", MIXED_ROOTS)

        assert "teachers/u1" in str(exc_info.value)
        assert "users/u1" not in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_postgres_refuses_before_opening_session(self):
        session_factory = MagicMock()
        store = PostgresDocumentStore(session_factory)

        with pytest.raises(ValueError):
            await store.batch_write("users", MIXED_ROOTS)

        session_factory.assert_not_called()

    @pytest.mark.asyncio
    async def test_in_memory_refuses_and_applies_nothing(self):
        store = InMemoryDocumentStore()

        with pytest.raises(ValueError):
            await store.batch_write("users", MIXED_ROOTS)

        assert store.docs == {}


class TestBatchAtomicity:

    @pytest.mark.asyncio
    async def test_postgres_failed_update_rolls_back_earlier_set(self):
        session = RecordingSession()
        store = PostgresDocumentStore(lambda: session)

        with pytest.raises(NotFound):
            await store.batch_write("users", [
                WriteOp(kind="set", path="users/u1", data={"name": "A"}),
                WriteOp(kind="update", path="users/missing", data={"name": "B"}),
            ])

        assert len(session.executed) == 1
        assert session.outcome == "rolled back"

    @pytest.mark.asyncio
    async def test_in_memory_failed_update_applies_nothing(self):
        store = InMemoryDocumentStore()
        await store.write_document("users", {"name": "Kept"}, "u0")

        with pytest.raises(NotFound):
            await store.batch_write("users", [
                WriteOp(kind="set", path="users/u1", data={"name": "A"}),
                WriteOp(kind="delete", path="users/u0"),
                WriteOp(kind="update", path="users/missing", data={"name": "B"}),
            ])

        assert store.docs == {"users/u0": {"name": "Kept"}}

    @pytest.mark.asyncio
    async def test_in_memory_batch_applies_all(self):
        store = InMemoryDocumentStore()
        await store.write_document("users", {"name": "Old", "status": "Active"}, "u0")

        await store.batch_write("users", [
            WriteOp(kind="set", path="users/u1", data={"name": "A"}),
            WriteOp(kind="update", path="users/u0", data={"name": "New"}),
        ])

        assert store.docs["users/u0"] == {"name": "New", "status": "Active"}
        assert store.docs["users/u1"] == {"name": "A"}
