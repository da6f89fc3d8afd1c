"""
Teacher API endpoints.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query

from portal.services.assignment_service import VisibilityTarget
from portal.services.student_service import StudentService
from portal.services.document_store import DocumentStore
from portal.schemas.api_schemas import (
    VisibilityRequest, VisibilityResponse,
    VisibleStudentResponse, TeacherStudentsResponse,
    RemarkRequest, RemarkResponse,
    ErrorResponse, TokenPayload
)
from portal.api.dependencies import require_teacher, get_document_store


router = APIRouter(prefix="/teacher", tags=["Teacher"])


@router.get(
    "/students",
    response_model=TeacherStudentsResponse,
    responses={409: {"model": ErrorResponse}}
)
async def get_visible_students(
    class_id: Optional[str] = Query(default=None),
    current_user: TokenPayload = Depends(require_teacher),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Students the current teacher's assignments cover, with subjects in scope.
    """
    service = StudentService(store)
    visible = await service.list_visible_students(current_user.user_id, class_id)

    return TeacherStudentsResponse(
        students=[
            VisibleStudentResponse(
                profile_id=profile.id,
                name=profile.name,
                admission_number=profile.admission_number,
                class_id=profile.class_id,
                section_id=profile.section_id,
                group_id=profile.group_id,
                subjects_in_scope=sorted(result.subjects_in_scope)
            )
            for profile, result in visible
        ]
    )


@router.post(
    "/visibility",
    response_model=VisibilityResponse
)
async def check_visibility(
    request: VisibilityRequest,
    current_user: TokenPayload = Depends(require_teacher),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Whether a record at this class/section/group is visible to the current teacher.
    """
    result = await StudentService(store).resolve_for_teacher(
        current_user.user_id,
        VisibilityTarget(
            class_id=request.class_id,
            section_id=request.section_id,
            group_id=request.group_id
        )
    )
    return VisibilityResponse(
        visible=result.visible,
        subjects_in_scope=sorted(result.subjects_in_scope),
        matched_assignment_ids=list(result.matched_assignment_ids)
    )


@router.post(
    "/students/{class_id}/{profile_id}/remarks",
    response_model=RemarkResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def add_remark(
    class_id: str,
    profile_id: str,
    request: RemarkRequest,
    current_user: TokenPayload = Depends(require_teacher),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Add a remark for a visible student in one of the teacher's subjects.
    """
    remark = await StudentService(store).add_remark(
        teacher_id=current_user.user_id,
        class_id=class_id,
        profile_id=profile_id,
        subject=request.subject,
        remark=request.remark,
        sentiment=request.sentiment
    )
    return RemarkResponse(
        success=True,
        remark_id=remark.id,
        profile_id=profile_id,
        subject=remark.teacher_subject,
        date=remark.date,
        message="Remark added"
    )
