"""
Assignment service.
Decides which student records a teacher may see and which subjects are in
scope for them, and manages the assignment list on a teacher's user record.

The resolver functions are pure: no I/O, no state, same answer for the same
assignments in any order.
"""
from typing import Any, Iterable, List, Optional, Sequence, Union
from pydantic import BaseModel, ValidationError

from portal.models.records import (
    Assignment, AssignmentType, ClassDocument, StudentProfile, UserRecord, UserRole,
    GENERAL_SUBJECTS, PROGRAM_SUBJECTS, SECTION_SCOPED_TYPES, GROUP_SCOPED_TYPES, HOMEROOM_TYPES,
)
from portal.services.document_store import DocumentStore
from portal.db.paths import user_doc_path, class_doc_path, STUDENT_DATA_ROOT_COLLECTION
from portal.core.errors import (
    InvalidAssignmentConfiguration, StaleVisibilityInput, NotFound
)
from portal.core.logging import audit_log


AssignmentLike = Union[Assignment, dict[str, Any]]


class VisibilityTarget(BaseModel):
    """Where a record lives: class plus optional section or group."""
    class_id: str
    section_id: Optional[str] = None
    group_id: Optional[str] = None

    class Config:
        frozen = True

    @classmethod
    def from_student(cls, profile: StudentProfile) -> "VisibilityTarget":
        return cls(
            class_id=profile.class_id,
            section_id=profile.section_id,
            group_id=profile.group_id,
        )


class VisibilityResult(BaseModel):
    visible: bool
    subjects_in_scope: frozenset[str]
    matched_assignment_ids: tuple[str, ...] = ()

    class Config:
        frozen = True


NOT_VISIBLE = VisibilityResult(visible=False, subjects_in_scope=frozenset())


def validate_assignment(assignment: AssignmentLike) -> Assignment:
    """
    Coerce and structurally check one assignment.
    Raises InvalidAssignmentConfiguration for malformed data.
    """
    if not isinstance(assignment, Assignment):
        try:
            assignment = Assignment.model_validate(assignment)
        except ValidationError as e:
            raise InvalidAssignmentConfiguration(
                f"Malformed assignment: {e.errors()[0]['msg']}",
                {"assignment": assignment}
            )

    if not assignment.class_id:
        raise InvalidAssignmentConfiguration(
            "Assignment has no class", {"assignment_id": assignment.id}
        )

    if assignment.type == AssignmentType.SUBJECT_TEACHER.value:
        if not assignment.subject_id:
            raise InvalidAssignmentConfiguration(
                "Subject teacher assignment requires a subject",
                {"assignment_id": assignment.id}
            )
        if assignment.subject_id not in GENERAL_SUBJECTS:
            raise InvalidAssignmentConfiguration(
                f"Unknown subject {assignment.subject_id!r}",
                {"assignment_id": assignment.id}
            )
    elif assignment.type in PROGRAM_SUBJECTS and assignment.subject_id:
        if assignment.subject_id not in PROGRAM_SUBJECTS[assignment.type]:
            raise InvalidAssignmentConfiguration(
                f"{assignment.subject_id!r} is not taught in the {assignment.type} program",
                {"assignment_id": assignment.id}
            )

    return assignment


def assignment_matches(assignment: Assignment, target: VisibilityTarget) -> bool:
    if assignment.class_id != target.class_id:
        return False
    # An unset section/group is a full-class grant
    if assignment.type in SECTION_SCOPED_TYPES:
        return not assignment.section_id or assignment.section_id == target.section_id
    if assignment.type in GROUP_SCOPED_TYPES:
        return not assignment.group_id or assignment.group_id == target.group_id
    return False


def assignment_subjects(
    assignment: Assignment,
    subject_catalog: Sequence[str] = GENERAL_SUBJECTS
) -> frozenset[str]:
    if assignment.type in HOMEROOM_TYPES:
        return frozenset(subject_catalog)
    if assignment.type == AssignmentType.SUBJECT_TEACHER.value:
        return frozenset({assignment.subject_id})
    return frozenset(PROGRAM_SUBJECTS[assignment.type])


def resolve_visibility(
    assignments: Iterable[AssignmentLike],
    target: VisibilityTarget,
    subject_catalog: Sequence[str] = GENERAL_SUBJECTS
) -> VisibilityResult:
    """
    Visible when any assignment matches; subjects are the union over matches.
    Zero assignments resolve to not visible.
    """
    checked = [validate_assignment(a) for a in assignments]
    matched = [a for a in checked if assignment_matches(a, target)]
    if not matched:
        return NOT_VISIBLE

    subjects: frozenset[str] = frozenset()
    for assignment in matched:
        subjects = subjects | assignment_subjects(assignment, subject_catalog)

    return VisibilityResult(
        visible=True,
        subjects_in_scope=subjects,
        matched_assignment_ids=tuple(sorted(a.id for a in matched)),
    )


def filter_visible(
    assignments: Iterable[AssignmentLike],
    profiles: Iterable[StudentProfile],
    subject_catalog: Sequence[str] = GENERAL_SUBJECTS
) -> List[tuple[StudentProfile, VisibilityResult]]:
    """Profiles the assignments make visible, each with its subject scope."""
    checked = [validate_assignment(a) for a in assignments]
    visible = []
    for profile in profiles:
        result = resolve_visibility(checked, VisibilityTarget.from_student(profile), subject_catalog)
        if result.visible:
            visible.append((profile, result))
    return visible


def ensure_assignments_current(
    assignments: Iterable[AssignmentLike],
    classes: Iterable[ClassDocument]
) -> None:
    """
    Raise StaleVisibilityInput when an assignment points at a class, section
    or group missing from the class registry. The resolver never checks this.
    """
    registry = {c.id: c for c in classes}
    for assignment in (validate_assignment(a) for a in assignments):
        cls = registry.get(assignment.class_id)
        if cls is None:
            raise StaleVisibilityInput(
                f"Class {assignment.class_id} no longer exists",
                {"assignment_id": assignment.id}
            )
        if assignment.section_id and assignment.section_id not in cls.sections:
            raise StaleVisibilityInput(
                f"Section {assignment.section_id} no longer exists in {cls.id}",
                {"assignment_id": assignment.id}
            )
        if assignment.group_id and assignment.group_id not in cls.groups:
            raise StaleVisibilityInput(
                f"Group {assignment.group_id} no longer exists in {cls.id}",
                {"assignment_id": assignment.id}
            )


class AssignmentService:
    """
    Per-assignment edits of a teacher's user record.
    Each edit is one atomic read-modify-write, so concurrent edits to the
    same teacher cannot drop each other's changes.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_classes(self) -> List[ClassDocument]:
        docs = await self.store.list_documents(STUDENT_DATA_ROOT_COLLECTION)
        return [ClassDocument.from_document(doc) for doc in docs]

    async def get_class(self, class_id: str) -> Optional[ClassDocument]:
        return ClassDocument.from_document(await self.store.get_document(class_doc_path(class_id)))

    async def register_class(
        self,
        class_doc: ClassDocument,
        admin_id: Optional[str] = None
    ) -> ClassDocument:
        """Create or replace a class partition root with its sections and groups."""
        await self.store.write_document(
            STUDENT_DATA_ROOT_COLLECTION, class_doc.to_document(), class_doc.id
        )
        audit_log.info(
            "class.registered",
            actor_id=admin_id,
            actor_role="Admin",
            target_type="class",
            target_id=class_doc.id,
            details={"sections": class_doc.sections, "groups": class_doc.groups}
        )
        return class_doc

    async def get_teacher(self, teacher_id: str) -> UserRecord:
        user = UserRecord.from_document(await self.store.get_document(user_doc_path(teacher_id)))
        if user is None or user.role != UserRole.TEACHER.value:
            raise NotFound(f"Teacher {teacher_id} not found")
        return user

    async def list_assignments(self, teacher_id: str) -> List[Assignment]:
        teacher = await self.get_teacher(teacher_id)
        return list(teacher.assignments or [])

    async def _apply(self, teacher_id: str, change) -> List[Assignment]:
        def transform(doc: dict[str, Any]) -> dict[str, Any]:
            if doc.get("role") != UserRole.TEACHER.value:
                raise NotFound(f"Teacher {teacher_id} not found")
            current = [validate_assignment(a) for a in doc.get("assignments") or []]
            doc["assignments"] = [a.to_document() for a in change(current)]
            return doc

        updated = await self.store.transform_document(user_doc_path(teacher_id), transform)
        return [Assignment.from_document(a) for a in updated["assignments"]]

    async def add_assignment(
        self,
        teacher_id: str,
        assignment: Assignment,
        admin_id: Optional[str] = None
    ) -> List[Assignment]:
        assignment = validate_assignment(assignment)
        registered = await self.get_class(assignment.class_id)
        ensure_assignments_current([assignment], [registered] if registered else [])

        def change(current: List[Assignment]) -> List[Assignment]:
            if any(a.id == assignment.id for a in current):
                raise InvalidAssignmentConfiguration(
                    f"Assignment {assignment.id} already exists",
                    {"assignment_id": assignment.id}
                )
            return current + [assignment]

        result = await self._apply(teacher_id, change)
        audit_log.info(
            "assignment.added",
            actor_id=admin_id,
            actor_role="Admin",
            target_type="teacher",
            target_id=teacher_id,
            details={"assignment": assignment.to_document()}
        )
        return result

    async def update_assignment(
        self,
        teacher_id: str,
        assignment_id: str,
        changes: dict[str, Any],
        admin_id: Optional[str] = None
    ) -> List[Assignment]:
        """``changes`` uses the stored field names, e.g. ``sectionId``."""
        classes = await self.get_classes()

        def change(current: List[Assignment]) -> List[Assignment]:
            for index, existing in enumerate(current):
                if existing.id == assignment_id:
                    merged = {**existing.to_document(), **changes, "id": assignment_id}
                    replacement = validate_assignment(merged)
                    ensure_assignments_current([replacement], classes)
                    return current[:index] + [replacement] + current[index + 1:]
            raise NotFound(f"Assignment {assignment_id} not found")

        result = await self._apply(teacher_id, change)
        audit_log.info(
            "assignment.updated",
            actor_id=admin_id,
            actor_role="Admin",
            target_type="teacher",
            target_id=teacher_id,
            details={"assignment_id": assignment_id, "changes": changes}
        )
        return result

    async def remove_assignment(
        self,
        teacher_id: str,
        assignment_id: str,
        admin_id: Optional[str] = None
    ) -> List[Assignment]:
        def change(current: List[Assignment]) -> List[Assignment]:
            remaining = [a for a in current if a.id != assignment_id]
            if len(remaining) == len(current):
                raise NotFound(f"Assignment {assignment_id} not found")
            return remaining

        result = await self._apply(teacher_id, change)
        audit_log.info(
            "assignment.removed",
            actor_id=admin_id,
            actor_role="Admin",
            target_type="teacher",
            target_id=teacher_id,
            details={"assignment_id": assignment_id}
        )
        return result
