"""
Authentication service.
Handles login, password management and user status, combining the identity
directory (credentials) with the user record (role and status).
"""
from datetime import datetime, timezone
from typing import Optional

from portal.models.records import UserRecord, UserStatus
from portal.services.identity_directory import IdentityDirectory
from portal.services.document_store import DocumentStore
from portal.db.paths import user_doc_path
from portal.core.security import create_access_token
from portal.core.errors import WeakCredential, NotFound
from portal.core.logging import audit_log


class AuthService:
    """Service for authentication operations."""

    def __init__(self, directory: IdentityDirectory, store: DocumentStore):
        self.directory = directory
        self.store = store

    async def get_user(self, account_id: str) -> Optional[UserRecord]:
        """Get a user record by account id."""
        return UserRecord.from_document(await self.store.get_document(user_doc_path(account_id)))

    async def authenticate_user(self, email: str, password: str) -> Optional[UserRecord]:
        """
        Authenticate a user with email and password.
        Returns the user record if authentication succeeds, None otherwise.
        """
        account = await self.directory.authenticate(email, password)
        if not account:
            audit_log.info("auth.login.failure", details={"email": email})
            return None

        user = await self.get_user(account.account_id)
        if not user:
            # Account without a user record: an unreconciled orphan
            audit_log.warning(
                "auth.login.no_user_record",
                actor_id=account.account_id,
                details={"email": account.email}
            )
            return None

        if user.status == UserStatus.INACTIVE.value:
            audit_log.info(
                "auth.login.inactive_user",
                actor_id=user.id,
                details={"status": user.status}
            )
            return None

        await self.store.update_document(
            user_doc_path(user.id),
            {"lastLogin": datetime.now(timezone.utc).isoformat()}
        )

        audit_log.log_login(user.id, user.role, success=True)
        return user

    async def login(self, email: str, password: str) -> Optional[dict]:
        """
        Full login flow: authenticate and return token.
        """
        user = await self.authenticate_user(email, password)

        if not user:
            return None

        access_token = create_access_token(
            subject=user.email,
            user_id=user.id,
            role=user.role
        )

        return {
            "access_token": access_token,
            "token_type": "bearer",
            "user_id": user.id,
            "role": user.role,
            "name": user.name
        }

    async def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str
    ) -> tuple[bool, str]:
        """
        Change a user's password.
        Returns (success, message).
        """
        account = await self.directory.get_account(user_id)
        if not account:
            return False, "User not found"

        if not await self.directory.authenticate(account.email, current_password):
            audit_log.warning(
                "auth.password.change_failed",
                actor_id=user_id,
                details={"reason": "incorrect_current_password"}
            )
            return False, "Current password is incorrect"

        try:
            await self.directory.set_password(user_id, new_password)
        except WeakCredential as e:
            return False, e.message

        user = await self.get_user(user_id)
        if user and user.status == UserStatus.PENDING.value:
            await self.store.update_document(
                user_doc_path(user_id), {"status": UserStatus.ACTIVE.value}
            )

        audit_log.log_password_change(user_id, user.role if user else "unknown")
        return True, "Password changed successfully"

    async def set_user_status(
        self,
        user_id: str,
        status: UserStatus,
        admin_id: str
    ) -> UserRecord:
        """Admin edit of a user's status."""
        status = status.value if isinstance(status, UserStatus) else status
        path = user_doc_path(user_id)

        def apply(doc: dict) -> dict:
            doc["status"] = status
            return doc

        try:
            updated = await self.store.transform_document(path, apply)
        except NotFound:
            raise NotFound(f"User {user_id} not found")

        audit_log.info(
            "admin.user.status_changed",
            actor_id=admin_id,
            actor_role="Admin",
            target_type="user",
            target_id=user_id,
            details={"status": status}
        )
        return UserRecord.from_document(updated)
