"""
Authentication API endpoints.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from portal.services.auth_service import AuthService
from portal.services.identity_directory import IdentityDirectory
from portal.services.document_store import DocumentStore
from portal.schemas.api_schemas import (
    LoginRequest, LoginResponse,
    ChangePasswordRequest, ChangePasswordResponse,
    ErrorResponse, TokenPayload
)
from portal.api.dependencies import get_current_user, get_identity_directory, get_document_store


router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse}}
)
async def login(
    request: LoginRequest,
    directory: IdentityDirectory = Depends(get_identity_directory),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Authenticate user and return JWT token.
    """
    auth_service = AuthService(directory, store)
    result = await auth_service.login(request.email, request.password)

    if not result:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    return LoginResponse(**result)


@router.post(
    "/change-password",
    response_model=ChangePasswordResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}}
)
async def change_password(
    request: ChangePasswordRequest,
    current_user: TokenPayload = Depends(get_current_user),
    directory: IdentityDirectory = Depends(get_identity_directory),
    store: DocumentStore = Depends(get_document_store)
):
    """
    Change the current user's password.
    """
    auth_service = AuthService(directory, store)
    success, message = await auth_service.change_password(
        user_id=current_user.user_id,
        current_password=request.current_password,
        new_password=request.new_password
    )

    if not success:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message
        )

    return ChangePasswordResponse(success=True, message=message)
