"""
Coordinator API endpoints.
"""
from fastapi import APIRouter, Depends

from portal.services.appraisal_service import AppraisalService
from portal.services.document_store import DocumentStore
from portal.schemas.api_schemas import (
    AppraisalCreateRequest, AppraisalResponse,
    ErrorResponse, TokenPayload
)
from portal.api.dependencies import require_coordinator, get_document_store


router = APIRouter(prefix="/coordinator", tags=["Coordinator"])


@router.post(
    "/appraisals",
    response_model=AppraisalResponse,
    responses={404: {"model": ErrorResponse}}
)
async def request_appraisal(
    request: AppraisalCreateRequest,
    current_user: TokenPayload = Depends(require_coordinator),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Escalate a teacher for salary review by an admin.
    """
    appraisal = await AppraisalService(store).request_appraisal(
        teacher_id=request.teacher_id,
        coordinator_id=current_user.user_id,
        justification=request.justification
    )
    return AppraisalResponse(**appraisal.model_dump())
