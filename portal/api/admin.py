"""
Admin API endpoints.
"""
import asyncio
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic.alias_generators import to_camel

from portal.core.config import settings
from portal.db.redis import RedisClient
from portal.models.records import Assignment, ClassDocument
from portal.services.auth_service import AuthService
from portal.services.assignment_service import AssignmentService
from portal.services.appraisal_service import AppraisalService
from portal.services.reconciliation_service import ReconciliationService, ReconciliationReport
from portal.services.provisioning_service import ProvisioningCoordinator
from portal.services.identity_directory import IdentityDirectory
from portal.services.document_store import DocumentStore
from portal.schemas.api_schemas import (
    ProvisionRequest, ProvisionResponse, UserStatusRequest, UserResponse,
    ClassRequest, ClassResponse,
    AssignmentRequest, AssignmentUpdateRequest, AssignmentResponse, TeacherAssignmentsResponse,
    AppraisalResponse, AppraisalListResponse,
    AppraisalTransitionRequest, AppraisalTransitionResponse,
    ReconcileRequest, ErrorResponse, TokenPayload
)
from portal.api.dependencies import (
    require_admin, get_identity_directory, get_document_store, get_journal,
    get_provisioning_coordinator,
)


router = APIRouter(prefix="/admin", tags=["Admin"])


def _assignments_response(teacher_id: str, assignments) -> TeacherAssignmentsResponse:
    return TeacherAssignmentsResponse(
        teacher_id=teacher_id,
        assignments=[AssignmentResponse(**a.model_dump()) for a in assignments]
    )


@router.post(
    "/users/provision",
    response_model=ProvisionResponse,
    responses={
        400: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
        504: {"model": ErrorResponse},
    }
)
async def provision_user(
    request: ProvisionRequest,
    current_user: TokenPayload = Depends(require_admin),
    coordinator: ProvisioningCoordinator = Depends(get_provisioning_coordinator)
):
    """
    Create a login account and all of its role's documents.
    Nothing is left behind on failure unless the response says otherwise.
    """
    profile = request.profile
    try:
        result = await asyncio.wait_for(
            coordinator.provision(profile.role, profile, actor_id=current_user.user_id),
            timeout=settings.PROVISION_TIMEOUT_SECONDS
        )
    except asyncio.TimeoutError:
        # The saga was cancelled and is rolling itself back in the background
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Provisioning timed out; partial work is being rolled back"
        )

    result.raise_for_error()

    return ProvisionResponse(
        success=True,
        outcome=result.outcome.value,
        account_id=result.account_id,
        login_email=result.login_email,
        role=result.role,
        generated_password=result.generated_password,
        message=result.message
    )


@router.patch(
    "/users/{user_id}/status",
    response_model=UserResponse,
    responses={404: {"model": ErrorResponse}}
)
async def update_user_status(
    user_id: str,
    request: UserStatusRequest,
    current_user: TokenPayload = Depends(require_admin),
    directory: IdentityDirectory = Depends(get_identity_directory),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Activate, deactivate or park a user. Inactive users cannot log in.
    """
    auth_service = AuthService(directory, store)
    user = await auth_service.set_user_status(user_id, request.status, current_user.user_id)

    return UserResponse(
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        status=user.status,
        last_login=user.last_login
    )


@router.post(
    "/classes",
    response_model=ClassResponse
)
async def register_class(
    request: ClassRequest,
    current_user: TokenPayload = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Register a class with its sections and groups.
    """
    service = AssignmentService(store)
    class_doc = await service.register_class(
        ClassDocument(
            id=request.class_id,
            name=request.name,
            sections=request.sections,
            groups=request.groups
        ),
        admin_id=current_user.user_id
    )
    return ClassResponse(
        class_id=class_doc.id,
        name=class_doc.name,
        sections=class_doc.sections,
        groups=class_doc.groups
    )


@router.get(
    "/teachers/{teacher_id}/assignments",
    response_model=TeacherAssignmentsResponse,
    responses={404: {"model": ErrorResponse}}
)
async def list_assignments(
    teacher_id: str,
    current_user: TokenPayload = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store)
):
    assignments = await AssignmentService(store).list_assignments(teacher_id)
    return _assignments_response(teacher_id, assignments)


@router.post(
    "/teachers/{teacher_id}/assignments",
    response_model=TeacherAssignmentsResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}}
)
async def add_assignment(
    teacher_id: str,
    request: AssignmentRequest,
    current_user: TokenPayload = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Add one assignment to a teacher.
    """
    fields = request.model_dump(exclude_none=True)
    assignments = await AssignmentService(store).add_assignment(
        teacher_id, Assignment(**fields), admin_id=current_user.user_id
    )
    return _assignments_response(teacher_id, assignments)


@router.patch(
    "/teachers/{teacher_id}/assignments",
    response_model=TeacherAssignmentsResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}}
)
async def update_assignment(
    teacher_id: str,
    request: AssignmentUpdateRequest,
    current_user: TokenPayload = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Change fields of one assignment. Fields sent as null are cleared.
    """
    changes = {
        to_camel(field): value
        for field, value in request.model_dump(
            mode="json", exclude_unset=True, exclude={"assignment_id"}
        ).items()
    }
    assignments = await AssignmentService(store).update_assignment(
        teacher_id, request.assignment_id, changes, admin_id=current_user.user_id
    )
    return _assignments_response(teacher_id, assignments)


@router.delete(
    "/teachers/{teacher_id}/assignments",
    response_model=TeacherAssignmentsResponse,
    responses={404: {"model": ErrorResponse}}
)
async def remove_assignment(
    teacher_id: str,
    assignment_id: str = Query(...),
    current_user: TokenPayload = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Remove one assignment from a teacher.
    """
    assignments = await AssignmentService(store).remove_assignment(
        teacher_id, assignment_id, admin_id=current_user.user_id
    )
    return _assignments_response(teacher_id, assignments)


@router.get(
    "/appraisals",
    response_model=AppraisalListResponse
)
async def list_appraisals(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    current_user: TokenPayload = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store)
):
    """
    List appraisal requests, optionally by status.
    """
    requests = await AppraisalService(store).list_appraisal_requests(status_filter)
    return AppraisalListResponse(
        requests=[AppraisalResponse(**r.model_dump()) for r in requests]
    )


@router.post(
    "/appraisals/{request_id}/transition",
    response_model=AppraisalTransitionResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def transition_appraisal(
    request_id: str,
    request: AppraisalTransitionRequest,
    current_user: TokenPayload = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Approve or reject a pending appraisal request.
    """
    service = AppraisalService(store)
    try:
        result = await service.transition_appraisal(
            request_id,
            request.decision,
            admin_id=current_user.user_id,
            notes=request.notes,
            new_figure=request.new_salary
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    return AppraisalTransitionResponse(
        success=True,
        request=AppraisalResponse(**result.request.model_dump()),
        profile_updated=result.profile_updated,
        message=result.message
    )


@router.post(
    "/appraisals/{request_id}/reapply",
    response_model=AppraisalTransitionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)
async def reapply_appraisal(
    request_id: str,
    current_user: TokenPayload = Depends(require_admin),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Retry the teacher profile update of a decided appraisal.
    """
    result = await AppraisalService(store).reapply_appraisal_outcome(
        request_id, current_user.user_id
    )
    return AppraisalTransitionResponse(
        success=result.profile_updated,
        request=AppraisalResponse(**result.request.model_dump()),
        profile_updated=result.profile_updated,
        message=result.message
    )


@router.post(
    "/reconcile",
    response_model=ReconciliationReport
)
async def reconcile(
    request: ReconcileRequest,
    current_user: TokenPayload = Depends(require_admin),
    directory: IdentityDirectory = Depends(get_identity_directory),
    store: DocumentStore = Depends(get_document_store),
    journal: Optional[RedisClient] = Depends(get_journal)
):
    """
    Find accounts and documents left inconsistent by failed provisioning.
    Orphan accounts are deleted only when dry_run is false.
    """
    service = ReconciliationService(directory, store, journal)
    return await service.sweep(
        dry_run=request.dry_run,
        admin_id=current_user.user_id,
        grace_minutes=request.grace_minutes
    )
