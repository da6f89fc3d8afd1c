#!/usr/bin/env python3
"""
Script to create an admin user.
Admins are never provisioned through the API; this creates the directory
account and its user record directly, using the configured backends.
"""

import argparse
import asyncio

from portal.db.mongodb import mongodb, init_mongodb, close_mongodb
from portal.db.postgres import async_session_factory, init_postgres, close_postgres
from portal.db.paths import USERS_COLLECTION
from portal.models.records import UserRecord, UserRole, UserStatus
from portal.services.identity_directory import MongoIdentityDirectory
from portal.services.document_store import PostgresDocumentStore
from portal.core.errors import PortalError


async def create_admin(email: str, password: str, name: str) -> bool:
    print("Connecting to MongoDB and PostgreSQL...")
    await init_mongodb()
    await init_postgres()

    directory = MongoIdentityDirectory(mongodb.db)
    store = PostgresDocumentStore(async_session_factory)

    try:
        account_id = await directory.create_account(email, password, display_name=name)
    except PortalError as e:
        print(f"⚠️ Could not create account: {e.message}")
        await close_postgres()
        await close_mongodb()
        return False

    user = UserRecord(
        id=account_id,
        name=name,
        email=email,
        role=UserRole.ADMIN,
        status=UserStatus.ACTIVE,
    )
    try:
        await store.write_document(USERS_COLLECTION, user.to_document(), account_id)
    except PortalError as e:
        print(f"✗ Could not write user record: {e.message}")
        await directory.delete_account(account_id)
        print("   Account removed again")
        await close_postgres()
        await close_mongodb()
        return False

    print("✅ Admin user created successfully!")
    print(f"   Email: {email}")
    print(f"   User ID: {account_id}")
    print("   Role: Admin")

    await close_postgres()
    await close_mongodb()
    return True


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create an admin user")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--name", default="Administrator")
    args = parser.parse_args()

    asyncio.run(create_admin(email=args.email, password=args.password, name=args.name))
