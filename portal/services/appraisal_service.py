"""
Appraisal service.
Coordinators escalate a teacher's salary review; an admin approves or rejects it.

Pending Admin Review -> Approved | Rejected. Both outcomes are terminal.
The status write and the teacher profile write are separate documents with no
atomicity between them. The profile write is idempotent, so a failure there is
reported and retried by the admin instead of being compensated.
"""
from datetime import datetime, timezone
from functools import partial
from typing import Any, List, Optional, Union
import uuid

from pydantic import BaseModel

from portal.models.records import (
    AppraisalRequest, AppraisalStatus, TeacherProfile, SalaryRevision, UserRecord,
)
from portal.services.document_store import DocumentStore
from portal.db.paths import (
    appraisal_request_doc_path, teacher_doc_path, user_doc_path,
    TEACHER_APPRAISAL_REQUESTS_COLLECTION,
)
from portal.core.errors import AppraisalTransitionConflict, NotFound
from portal.core.logging import audit_log


TERMINAL_STATUSES = frozenset({AppraisalStatus.APPROVED.value, AppraisalStatus.REJECTED.value})


class AppraisalTransitionResult(BaseModel):
    request: AppraisalRequest
    profile_updated: bool
    message: str


def _apply_outcome_to_profile(request: AppraisalRequest, doc: dict[str, Any]) -> dict[str, Any]:
    """Teacher profile after ``request``'s decision. Applying it twice changes nothing."""
    profile = TeacherProfile.from_document(doc)
    approved = request.status == AppraisalStatus.APPROVED.value

    details = f"{request.status} by Admin. Notes: {request.admin_notes or 'N/A'}"
    if approved and request.approved_salary:
        details += f" New salary: {request.approved_salary}."
        profile.current_salary = request.approved_salary
        if not any(rev.id == request.id for rev in profile.salary_revisions):
            profile.salary_revisions.append(SalaryRevision(
                id=request.id,
                amount=request.approved_salary,
                effective_date=(request.processed_date or "")[:10],
                note=request.admin_notes,
            ))

    profile.current_appraisal_status = "Appraised" if approved else AppraisalStatus.REJECTED.value
    profile.last_appraisal_date = (request.processed_date or "")[:10] or None
    profile.last_appraisal_details = details
    return profile.to_document()


class AppraisalService:
    """Service for appraisal requests."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_request(self, request_id: str) -> AppraisalRequest:
        doc = await self.store.get_document(appraisal_request_doc_path(request_id))
        if doc is None:
            raise NotFound(f"Appraisal request {request_id} not found")
        return AppraisalRequest.from_document(doc)

    async def list_appraisal_requests(self, status: Optional[str] = None) -> List[AppraisalRequest]:
        where = {"status": status} if status else None
        docs = await self.store.list_documents(TEACHER_APPRAISAL_REQUESTS_COLLECTION, where)
        return [AppraisalRequest.from_document(doc) for doc in docs]

    async def request_appraisal(
        self,
        teacher_id: str,
        coordinator_id: str,
        justification: str
    ) -> AppraisalRequest:
        """Open a request for an existing teacher on behalf of a coordinator."""
        teacher = TeacherProfile.from_document(
            await self.store.get_document(teacher_doc_path(teacher_id))
        )
        if teacher is None:
            raise NotFound(f"Teacher {teacher_id} not found")

        coordinator = UserRecord.from_document(
            await self.store.get_document(user_doc_path(coordinator_id))
        )
        if coordinator is None:
            raise NotFound(f"Coordinator {coordinator_id} not found")

        request = AppraisalRequest(
            id=uuid.uuid4().hex,
            teacher_id=teacher_id,
            teacher_name=teacher.name,
            requested_by=coordinator_id,
            coordinator_name=coordinator.name,
            request_date=datetime.now(timezone.utc).isoformat(),
            justification=justification,
        )
        await self.store.write_document(
            TEACHER_APPRAISAL_REQUESTS_COLLECTION, request.to_document(), request.id
        )

        audit_log.info(
            "appraisal.requested",
            actor_id=coordinator_id,
            actor_role="Coordinator",
            target_type="teacher",
            target_id=teacher_id,
            details={"request_id": request.id}
        )
        return request

    async def transition_appraisal(
        self,
        request_id: str,
        decision: Union[AppraisalStatus, str],
        admin_id: str,
        notes: Optional[str] = None,
        new_figure: Optional[float] = None
    ) -> AppraisalTransitionResult:
        """
        Approve or reject a pending request.
        Raises AppraisalTransitionConflict, without writing, when it is not pending.
        """
        decision = decision.value if isinstance(decision, AppraisalStatus) else decision
        if decision not in TERMINAL_STATUSES:
            raise ValueError(f"Unknown appraisal decision {decision!r}")
        if new_figure is not None:
            if decision != AppraisalStatus.APPROVED.value:
                raise ValueError("A new salary can only accompany an approval")
            if new_figure <= 0:
                raise ValueError("New salary must be positive")

        processed_date = datetime.now(timezone.utc).isoformat()

        def transition(doc: dict[str, Any]) -> dict[str, Any]:
            request = AppraisalRequest.from_document(doc)
            # Checked under the row lock: two admins cannot both transition
            if request.status != AppraisalStatus.PENDING.value:
                raise AppraisalTransitionConflict(
                    f"Appraisal request {request_id} is already {request.status}",
                    {"status": request.status}
                )
            request.status = decision
            request.admin_notes = notes or "Processed by Admin."
            request.processed_date = processed_date
            request.processed_by = admin_id
            request.approved_salary = new_figure
            return request.to_document()

        request = AppraisalRequest.from_document(
            await self.store.transform_document(appraisal_request_doc_path(request_id), transition)
        )

        profile_updated = await self._update_profile(request)
        audit_log.log_appraisal_transition(admin_id, request_id, decision, profile_updated)

        message = f"Appraisal request {decision.lower()}"
        if not profile_updated:
            message += "; teacher profile was not updated, retry to apply it"
        return AppraisalTransitionResult(
            request=request, profile_updated=profile_updated, message=message
        )

    async def reapply_appraisal_outcome(self, request_id: str, admin_id: str) -> AppraisalTransitionResult:
        """Retry the teacher profile write of an already decided request."""
        request = await self.get_request(request_id)
        if request.status not in TERMINAL_STATUSES:
            raise AppraisalTransitionConflict(
                f"Appraisal request {request_id} has not been decided yet",
                {"status": request.status}
            )

        profile_updated = await self._update_profile(request)
        audit_log.info(
            "appraisal.outcome.reapplied",
            actor_id=admin_id,
            actor_role="Admin",
            target_type="appraisal_request",
            target_id=request_id,
            details={"profile_updated": profile_updated}
        )
        message = "Teacher profile updated" if profile_updated else "Teacher profile update failed again"
        return AppraisalTransitionResult(
            request=request, profile_updated=profile_updated, message=message
        )

    async def _update_profile(self, request: AppraisalRequest) -> bool:
        try:
            await self.store.transform_document(
                teacher_doc_path(request.teacher_id),
                partial(_apply_outcome_to_profile, request)
            )
        except Exception as e:
            audit_log.warning(
                "appraisal.profile_update_failed",
                target_type="teacher",
                target_id=request.teacher_id,
                details={"request_id": request.id, "error": str(e)}
            )
            return False
        return True
