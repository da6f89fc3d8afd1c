"""
Student service.
Teacher-scoped access to student profiles: which students a teacher sees, and
remarks written against them.
"""
from datetime import date, datetime, timezone
from typing import List, Optional

from portal.models.records import StudentProfile, StudentRemark, UserRecord, UserRole
from portal.services.document_store import DocumentStore
from portal.services.assignment_service import (
    VisibilityResult, VisibilityTarget, AssignmentService,
    resolve_visibility, filter_visible, ensure_assignments_current,
)
from portal.db.paths import student_doc_path, student_profiles_collection_path, user_doc_path
from portal.core.errors import NotFound, VisibilityDenied, DuplicateRemark
from portal.core.logging import audit_log


class StudentService:
    """Service for student profile operations."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def _teacher(self, teacher_id: str) -> UserRecord:
        user = UserRecord.from_document(await self.store.get_document(user_doc_path(teacher_id)))
        if user is None or user.role != UserRole.TEACHER.value:
            raise NotFound(f"Teacher {teacher_id} not found")
        return user

    async def get_profile(self, class_id: str, profile_id: str) -> StudentProfile:
        doc = await self.store.get_document(student_doc_path(class_id, profile_id))
        if doc is None:
            raise NotFound(f"Student profile {profile_id} not found in class {class_id}")
        return StudentProfile.from_document(doc)

    async def list_class_profiles(self, class_id: str) -> List[StudentProfile]:
        docs = await self.store.list_documents(student_profiles_collection_path(class_id))
        return [StudentProfile.from_document(doc) for doc in docs]

    async def list_visible_students(
        self,
        teacher_id: str,
        class_id: Optional[str] = None
    ) -> List[tuple[StudentProfile, VisibilityResult]]:
        """
        Students the teacher's assignments make visible, with subjects in scope.
        No assignments means nothing to show, not an error.
        """
        teacher = await self._teacher(teacher_id)
        assignments = teacher.assignments or []
        if not assignments:
            return []

        classes = await AssignmentService(self.store).get_classes()
        ensure_assignments_current(assignments, classes)

        class_ids = sorted({a.class_id for a in assignments})
        if class_id is not None:
            class_ids = [c for c in class_ids if c == class_id]

        profiles: List[StudentProfile] = []
        for cid in class_ids:
            profiles.extend(await self.list_class_profiles(cid))

        return filter_visible(assignments, profiles)

    async def resolve_for_teacher(
        self,
        teacher_id: str,
        target: VisibilityTarget
    ) -> VisibilityResult:
        teacher = await self._teacher(teacher_id)
        return resolve_visibility(teacher.assignments or [], target)

    async def add_remark(
        self,
        teacher_id: str,
        class_id: str,
        profile_id: str,
        subject: str,
        remark: str,
        sentiment: str = "neutral",
        on_date: Optional[date] = None
    ) -> StudentRemark:
        """
        Record a remark in a subject the teacher covers for this student.
        At most one remark per subject per student per month.
        """
        teacher = await self._teacher(teacher_id)
        profile = await self.get_profile(class_id, profile_id)

        scope = resolve_visibility(teacher.assignments or [], VisibilityTarget.from_student(profile))
        if not scope.visible:
            raise VisibilityDenied(f"Student {profile_id} is not assigned to you")
        if subject not in scope.subjects_in_scope:
            raise VisibilityDenied(
                f"{subject} is not in your scope for this student",
                {"subjects_in_scope": sorted(scope.subjects_in_scope)}
            )

        new_remark = StudentRemark(
            teacher_id=teacher.id,
            teacher_name=teacher.name,
            teacher_subject=subject,
            remark=remark,
            date=(on_date or datetime.now(timezone.utc).date()).isoformat(),
            sentiment=sentiment,
        )
        month = new_remark.date[:7]

        def append(doc: dict) -> dict:
            current = StudentProfile.from_document(doc)
            if any(r.teacher_subject == subject and r.date[:7] == month for r in current.remarks):
                raise DuplicateRemark(
                    f"A {subject} remark for {month} already exists for this student"
                )
            current.remarks.append(new_remark)
            return current.to_document()

        await self.store.transform_document(student_doc_path(class_id, profile_id), append)

        audit_log.info(
            "student.remark.added",
            actor_id=teacher.id,
            actor_role="Teacher",
            target_type="student",
            target_id=profile_id,
            details={"class_id": class_id, "subject": subject}
        )
        return new_remark
