"""
Identity directory.
Issues login credentials and account identifiers. Uniqueness of the login
email is enforced here and nowhere else.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, List
from email_validator import validate_email, EmailNotValidError
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from portal.models.records import Account, AccountDocument
from portal.core.config import settings
from portal.core.security import hash_password, verify_password
from portal.core.errors import (
    DuplicateIdentity, WeakCredential, InvalidIdentity, IdentityDirectoryUnavailable
)


def normalize_email(email: str) -> str:
    """Validate and normalize a login email, raising InvalidIdentity."""
    try:
        return validate_email(email, check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise InvalidIdentity(f"Invalid login email {email!r}: {e}", {"email": email})


def check_password_strength(password: str) -> None:
    if not password or len(password) < settings.MIN_PASSWORD_LENGTH:
        raise WeakCredential(
            f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters"
        )


class IdentityDirectory(ABC):
    """Interface of the identity directory."""

    @abstractmethod
    async def create_account(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None
    ) -> str:
        """
        Create a login account atomically and return its account id.
        Raises DuplicateIdentity, WeakCredential or InvalidIdentity.
        """

    @abstractmethod
    async def delete_account(self, account_id: str) -> None:
        """Delete an account. Deleting a missing account is not an error."""

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        ...

    @abstractmethod
    async def authenticate(self, email: str, password: str) -> Optional[Account]:
        """Return the account when the credentials match, None otherwise."""

    @abstractmethod
    async def set_password(self, account_id: str, new_password: str) -> None:
        ...

    @abstractmethod
    async def list_accounts(self, created_before: Optional[datetime] = None) -> List[Account]:
        ...


class MongoIdentityDirectory(IdentityDirectory):
    """Identity directory on the MongoDB ``accounts`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.accounts = db.accounts

    async def create_account(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None
    ) -> str:
        email = normalize_email(email)
        check_password_strength(password)

        doc = AccountDocument(
            email=email,
            display_name=display_name,
            password_hash=hash_password(password),
        )

        # The unique index on email makes this a single create-or-reject
        try:
            await self.accounts.insert_one(doc.model_dump())
        except DuplicateKeyError:
            raise DuplicateIdentity(
                f"The email address {email} is already in use by another account",
                {"email": email}
            )
        except PyMongoError as e:
            raise IdentityDirectoryUnavailable(f"Could not create account: {e}")

        return doc.account_id

    async def delete_account(self, account_id: str) -> None:
        try:
            await self.accounts.delete_one({"account_id": account_id})
        except PyMongoError as e:
            raise IdentityDirectoryUnavailable(f"Could not delete account {account_id}: {e}")

    async def get_account(self, account_id: str) -> Optional[Account]:
        try:
            doc = await self.accounts.find_one({"account_id": account_id})
        except PyMongoError as e:
            raise IdentityDirectoryUnavailable(str(e))
        if doc:
            return Account.from_mongo(doc)
        return None

    async def authenticate(self, email: str, password: str) -> Optional[Account]:
        try:
            email = normalize_email(email)
        except InvalidIdentity:
            return None
        try:
            doc = await self.accounts.find_one({"email": email})
        except PyMongoError as e:
            raise IdentityDirectoryUnavailable(str(e))
        if not doc or not verify_password(password, doc["password_hash"]):
            return None
        return Account.from_mongo(doc)

    async def set_password(self, account_id: str, new_password: str) -> None:
        check_password_strength(new_password)
        try:
            await self.accounts.update_one(
                {"account_id": account_id},
                {
                    "$set": {
                        "password_hash": hash_password(new_password),
                        "password_last_changed": datetime.now(timezone.utc),
                    }
                }
            )
        except PyMongoError as e:
            raise IdentityDirectoryUnavailable(str(e))

    async def list_accounts(self, created_before: Optional[datetime] = None) -> List[Account]:
        query = {}
        if created_before is not None:
            query["created_at"] = {"$lt": created_before}
        try:
            docs = await self.accounts.find(query).to_list(length=None)
        except PyMongoError as e:
            raise IdentityDirectoryUnavailable(str(e))
        return [Account.from_mongo(doc) for doc in docs]
