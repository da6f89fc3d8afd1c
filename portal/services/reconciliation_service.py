"""
Reconciliation service.
Finds accounts without a user record, user records without an account or
role profile, such as orphans left behind by a failed rollback, and optionally
removes orphan accounts. Never touches a saga that is still in flight.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from portal.models.records import UserRecord, UserRole
from portal.services.identity_directory import IdentityDirectory
from portal.services.document_store import DocumentStore
from portal.db.paths import (
    USERS_COLLECTION, teacher_doc_path, coordinator_doc_path, student_doc_path,
)
from portal.db.redis import RedisClient
from portal.core.config import settings
from portal.core.logging import audit_log


FindingKind = Literal[
    "account_without_user_record",
    "user_record_without_account",
    "missing_role_profile",
]


class OrphanFinding(BaseModel):
    kind: FindingKind
    account_id: str
    email: Optional[str] = None
    path: Optional[str] = None
    resolved: bool = False


class ReconciliationReport(BaseModel):
    dry_run: bool
    scanned_accounts: int = 0
    scanned_user_records: int = 0
    skipped_in_flight: List[str] = Field(default_factory=list)
    findings: List[OrphanFinding] = Field(default_factory=list)


def role_profile_path(user: UserRecord) -> Optional[str]:
    """Where the role's second document must live; None for roles without one."""
    if user.role == UserRole.TEACHER.value:
        return teacher_doc_path(user.id)
    if user.role == UserRole.COORDINATOR.value:
        return coordinator_doc_path(user.id)
    if user.role == UserRole.STUDENT.value:
        if not user.class_id or not user.student_profile_id:
            return ""
        return student_doc_path(user.class_id, user.student_profile_id)
    return None


class ReconciliationService:
    """Service for the orphan sweep."""

    def __init__(
        self,
        directory: IdentityDirectory,
        store: DocumentStore,
        journal: Optional[RedisClient] = None
    ):
        self.directory = directory
        self.store = store
        self.journal = journal

    async def sweep(
        self,
        dry_run: bool = True,
        admin_id: Optional[str] = None,
        grace_minutes: Optional[int] = None
    ) -> ReconciliationReport:
        """
        Report inconsistencies. Outside a dry run, accounts without a
        user record are deleted; document-side findings are only reported.
        """
        grace = settings.RECONCILE_GRACE_MINUTES if grace_minutes is None else grace_minutes
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=grace)
        report = ReconciliationReport(dry_run=dry_run)

        in_flight = await self.journal.in_flight_emails() if self.journal else set()
        accounts = await self.directory.list_accounts()
        users = {
            doc["id"]: UserRecord.from_document(doc)
            for doc in await self.store.list_documents(USERS_COLLECTION)
        }
        report.scanned_accounts = len(accounts)
        report.scanned_user_records = len(users)

        for account in accounts:
            if account.account_id in users:
                continue
            created = account.created_at
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            if created >= cutoff:
                continue
            if account.email in in_flight:
                report.skipped_in_flight.append(account.email)
                continue

            finding = OrphanFinding(
                kind="account_without_user_record",
                account_id=account.account_id,
                email=account.email,
            )
            if not dry_run:
                try:
                    await self.directory.delete_account(account.account_id)
                    finding.resolved = True
                except Exception as e:
                    audit_log.error(
                        "reconciliation.account_delete_failed",
                        error=str(e),
                        target_type="account",
                        target_id=account.account_id
                    )
            report.findings.append(finding)

        account_ids = {a.account_id for a in accounts}
        for user in users.values():
            if user.id not in account_ids:
                report.findings.append(OrphanFinding(
                    kind="user_record_without_account",
                    account_id=user.id,
                    email=user.email,
                    path=f"{USERS_COLLECTION}/{user.id}",
                ))
                continue

            profile_path = role_profile_path(user)
            if profile_path is None:
                continue
            if not profile_path or await self.store.get_document(profile_path) is None:
                report.findings.append(OrphanFinding(
                    kind="missing_role_profile",
                    account_id=user.id,
                    email=user.email,
                    path=profile_path or None,
                ))

        audit_log.info(
            "reconciliation.sweep",
            actor_id=admin_id,
            actor_role="Admin",
            details={
                "dry_run": dry_run,
                "findings": len(report.findings),
                "resolved": sum(1 for f in report.findings if f.resolved),
                "skipped_in_flight": len(report.skipped_in_flight),
            }
        )
        return report
