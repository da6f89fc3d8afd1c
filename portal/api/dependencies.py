"""
FastAPI dependencies.
Provides JWT token validation, role-based access control and the storage
backends the services run against.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, List

from portal.core.security import decode_token
from portal.schemas.api_schemas import TokenPayload
from portal.db.mongodb import get_mongodb
from portal.db.postgres import async_session_factory
from portal.db.redis import get_redis, RedisClient
from portal.services.identity_directory import IdentityDirectory, MongoIdentityDirectory
from portal.services.document_store import DocumentStore, PostgresDocumentStore
from portal.services.provisioning_service import ProvisioningCoordinator


security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """
    Validate JWT token and return current user payload.
    Raises HTTPException if token is invalid.
    """
    token = credentials.credentials
    payload = decode_token(token)

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return TokenPayload(**payload)


def require_roles(allowed_roles: List[str]):
    """
    Dependency factory for role-based access control.
    Returns a dependency that checks if user has required role.
    """
    async def role_checker(
        current_user: TokenPayload = Depends(get_current_user)
    ) -> TokenPayload:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {allowed_roles}"
            )
        return current_user

    return role_checker


# Convenience dependencies for specific roles
require_admin = require_roles(["Admin"])
require_teacher = require_roles(["Teacher"])
require_coordinator = require_roles(["Coordinator"])


# ============ Backends ============

async def get_identity_directory(
    db: AsyncIOMotorDatabase = Depends(get_mongodb)
) -> IdentityDirectory:
    return MongoIdentityDirectory(db)


async def get_document_store() -> DocumentStore:
    return PostgresDocumentStore(async_session_factory)


async def get_journal(
    redis: RedisClient = Depends(get_redis)
) -> Optional[RedisClient]:
    """Provisioning journal; None when Redis was never connected."""
    return redis if redis.client is not None else None


async def get_provisioning_coordinator(
    directory: IdentityDirectory = Depends(get_identity_directory),
    store: DocumentStore = Depends(get_document_store),
    journal: Optional[RedisClient] = Depends(get_journal)
) -> ProvisioningCoordinator:
    return ProvisioningCoordinator(directory, store, journal)
