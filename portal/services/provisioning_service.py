"""
Provisioning service.
Creates a login account and its dependent documents as one logical unit.

The identity directory and the document store share no transaction, so the
steps run as a saga: directory account first, then the user record, then the
role profile. A failure after the account exists undoes every completed step
in reverse order, ending with the account deletion. If an undo fails the
caller gets MANUAL_CLEANUP_REQUIRED naming what was left behind.
"""
import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, List, Optional, Union
import uuid

from portal.models.records import (
    UserRecord, UserRole, UserStatus, TeacherProfile, CoordinatorProfile, StudentProfile,
)
from portal.models.provisioning import (
    ProvisionInput, TeacherProvisionInput, StudentProvisionInput, CoordinatorProvisionInput,
    ProvisionOutcome, ProvisionResult, OrphanReport,
)
from portal.services.identity_directory import IdentityDirectory, normalize_email
from portal.services.document_store import DocumentStore
from portal.services.assignment_service import validate_assignment
from portal.db.paths import (
    USERS_COLLECTION, TEACHERS_COLLECTION, COORDINATORS_COLLECTION,
    student_profiles_collection_path,
)
from portal.db.redis import RedisClient
from portal.core.config import settings
from portal.core.security import default_password, derive_login_email, generate_login_handle
from portal.core.errors import DuplicateIdentity, WeakCredential, InvalidIdentity
from portal.core.logging import audit_log


PROVISIONABLE_ROLES = frozenset({
    UserRole.TEACHER.value, UserRole.STUDENT.value, UserRole.COORDINATOR.value,
})

# Compensations outlive the request that started them; hold references until done
_pending_compensations: set[asyncio.Task] = set()


def resolve_login_email(profile: ProvisionInput) -> str:
    """Caller-supplied email, else an opaque handle or one derived from the business key."""
    if profile.login_email:
        return normalize_email(profile.login_email)

    domain = (
        settings.STUDENT_LOGIN_DOMAIN
        if profile.role == UserRole.STUDENT.value
        else settings.STAFF_LOGIN_DOMAIN
    )
    if settings.OPAQUE_LOGIN_HANDLES:
        return generate_login_handle(profile.role, domain)
    if not profile.business_key:
        raise InvalidIdentity(f"A login email or business key is required for a {profile.role}")
    try:
        return normalize_email(derive_login_email(profile.role, profile.business_key, domain))
    except ValueError as e:
        raise InvalidIdentity(f"Cannot derive a login email: {e}")


class _SagaRun:
    """State of one provisioning call."""

    def __init__(self, role: str, login_email: str):
        self.role = role
        self.login_email = login_email
        self.account_id: Optional[str] = None
        self.run_id = uuid.uuid4().hex  # owns this run's journal marker
        self.undo_stack: List[tuple[str, str, Callable[[], Awaitable[None]]]] = []
        self.compensation: Optional[asyncio.Task] = None

    def push(self, step: str, target: str, undo: Callable[[], Awaitable[None]]) -> None:
        self.undo_stack.append((step, target, undo))


class ProvisioningCoordinator:
    """Orchestrates the provisioning saga and its compensation."""

    def __init__(
        self,
        directory: IdentityDirectory,
        store: DocumentStore,
        journal: Optional[RedisClient] = None
    ):
        self.directory = directory
        self.store = store
        self.journal = journal

    async def provision(
        self,
        role: Union[UserRole, str],
        profile: ProvisionInput,
        actor_id: Optional[str] = None
    ) -> ProvisionResult:
        """
        Provision ``role`` from ``profile``.

        Directory rejections return before anything is created. Document
        failures roll back and return DOCUMENT_WRITE_FAILED, or
        MANUAL_CLEANUP_REQUIRED when the rollback itself fails. Malformed
        teacher assignments raise InvalidAssignmentConfiguration up front.
        """
        role = role.value if isinstance(role, UserRole) else role
        if role not in PROVISIONABLE_ROLES:
            return self._result(
                ProvisionOutcome.INVALID_IDENTITY, role,
                f"{role} accounts cannot be provisioned here"
            )
        if profile.role != role:
            return self._result(
                ProvisionOutcome.INVALID_IDENTITY, role,
                f"Profile for {profile.role} supplied for role {role}"
            )

        if isinstance(profile, TeacherProvisionInput):
            for assignment in profile.assignments:
                validate_assignment(assignment)

        try:
            login_email = resolve_login_email(profile)
        except InvalidIdentity as e:
            return self._result(ProvisionOutcome.INVALID_IDENTITY, role, e.message)

        password = profile.password or default_password(role)
        run = _SagaRun(role, login_email)

        await self._journal_mark(run)
        try:
            result = await self._execute(run, profile, password)
        finally:
            # A running compensation clears the marker itself when it settles
            if run.compensation is None:
                await self._journal_clear(run)

        if result.ok:
            if not profile.password:
                result.generated_password = password
            audit_log.log_account_provisioned(actor_id, result.account_id, role, login_email)
        return result

    async def _execute(
        self,
        run: _SagaRun,
        profile: ProvisionInput,
        password: str
    ) -> ProvisionResult:
        # Step 1: the directory is the single source of truth for uniqueness.
        # Shielded: a create already sent may still commit after the caller is cancelled.
        creation = asyncio.ensure_future(
            self.directory.create_account(run.login_email, password, display_name=profile.name)
        )
        try:
            run.account_id = await asyncio.shield(creation)
        except DuplicateIdentity as e:
            return self._result(ProvisionOutcome.DUPLICATE_IDENTITY, run.role, e.message, run)
        except WeakCredential as e:
            return self._result(ProvisionOutcome.WEAK_CREDENTIAL, run.role, e.message, run)
        except InvalidIdentity as e:
            return self._result(ProvisionOutcome.INVALID_IDENTITY, run.role, e.message, run)
        except asyncio.CancelledError:
            self._start_compensation(run, "cancelled during account creation", creation)
            raise
        except Exception as e:
            audit_log.error(
                "provisioning.account.failed",
                error=str(e),
                details={"login_email": run.login_email}
            )
            return self._result(
                ProvisionOutcome.UNKNOWN, run.role,
                f"Failed to create authentication account: {e}", run
            )

        account_id = run.account_id
        run.push("account", account_id, partial(self.directory.delete_account, account_id))

        # Steps 2 and 3: user record, then role profile
        for step, collection, doc_id, data in self._documents(account_id, run.login_email, profile):
            path = f"{collection}/{doc_id}"
            # Registered before the write: a failed write may still have landed
            run.push(step, path, partial(self.store.delete_document, path))
            try:
                await self.store.write_document(collection, data, doc_id)
            except asyncio.CancelledError:
                self._start_compensation(run, f"cancelled during {step}")
                raise
            except Exception as e:
                return await self._roll_back(run, step, e)

        return self._result(
            ProvisionOutcome.CREATED, run.role,
            f"User {profile.name} ({run.role}) created successfully with id {account_id}",
            run
        )

    def _documents(
        self,
        account_id: str,
        login_email: str,
        profile: ProvisionInput
    ) -> List[tuple[str, str, str, dict[str, Any]]]:
        """(step, collection path, document id, body) in write order."""
        user = UserRecord(
            id=account_id,
            name=profile.name,
            email=login_email,
            role=profile.role,
            status=UserStatus.ACTIVE,
            business_key=profile.business_key,
        )

        if isinstance(profile, TeacherProvisionInput):
            user.assignments = [validate_assignment(a) for a in profile.assignments]
            role_doc = TeacherProfile(
                id=account_id,
                auth_uid=account_id,
                name=profile.name,
                email=login_email,
                phone_number=profile.phone_number,
                address=profile.address,
                employee_code=profile.employee_code,
                subjects_taught=profile.subjects_taught,
                **({"year_of_joining": profile.year_of_joining} if profile.year_of_joining else {}),
            )
            role_step = (TEACHERS_COLLECTION, account_id)

        elif isinstance(profile, CoordinatorProvisionInput):
            role_doc = CoordinatorProfile(
                id=account_id,
                auth_uid=account_id,
                name=profile.name,
                email=login_email,
                phone_number=profile.phone_number,
                employee_code=profile.employee_code,
            )
            role_step = (COORDINATORS_COLLECTION, account_id)

        elif isinstance(profile, StudentProvisionInput):
            profile_id = uuid.uuid4().hex
            user.class_id = profile.class_id
            user.student_profile_id = profile_id
            role_doc = StudentProfile(
                id=profile_id,
                auth_uid=account_id,
                name=profile.name,
                admission_number=profile.admission_number,
                class_id=profile.class_id,
                class_name=profile.class_name,
                section_id=profile.section_id,
                group_id=profile.group_id,
                date_of_birth=profile.date_of_birth,
                father_name=profile.father_name,
                mother_name=profile.mother_name,
                parent_contact_number=profile.parent_contact_number,
                caste=profile.caste,
                religion=profile.religion,
                address=profile.address,
            )
            role_step = (student_profiles_collection_path(profile.class_id), profile_id)

        else:
            raise InvalidIdentity(f"No profile layout for {profile.role}")

        return [
            ("user_record", USERS_COLLECTION, account_id, user.to_document()),
            ("role_profile", role_step[0], role_step[1], role_doc.to_document()),
        ]

    # ============ Compensation ============

    def _start_compensation(
        self,
        run: _SagaRun,
        cause: str,
        creation: Optional[asyncio.Future] = None
    ) -> asyncio.Task:
        audit_log.warning(
            "provisioning.compensation.started",
            target_type="account",
            target_id=run.account_id,
            details={"login_email": run.login_email, "cause": cause}
        )
        task = asyncio.get_running_loop().create_task(self._compensate(run, cause, creation))
        _pending_compensations.add(task)
        task.add_done_callback(_pending_compensations.discard)
        run.compensation = task
        return task

    async def _compensate(
        self,
        run: _SagaRun,
        cause: str,
        creation: Optional[asyncio.Future] = None
    ) -> List[tuple[str, str]]:
        """
        Undo completed steps newest first. Returns the (step, target) pairs
        that could not be undone. ``creation`` is an account creation whose
        outcome the cancelled caller never saw; it is awaited first.
        """
        leftovers = []
        try:
            if creation is not None:
                await self._settle_creation(run, creation)
            for step, target, undo in reversed(run.undo_stack):
                try:
                    await undo()
                except Exception as e:
                    leftovers.append((step, target))
                    audit_log.log_compensation(run.account_id, step, success=False, error=str(e))
                else:
                    audit_log.log_compensation(run.account_id, step, success=True)

            if leftovers:
                audit_log.log_manual_cleanup_required(
                    run.account_id, run.login_email, [target for _, target in leftovers], cause
                )
            return leftovers
        finally:
            await self._journal_clear(run)

    async def _settle_creation(self, run: _SagaRun, creation: asyncio.Future) -> None:
        try:
            run.account_id = await creation
        except Exception as e:
            # Rejected or failed: there is no account to undo
            audit_log.info(
                "provisioning.cancelled_creation.not_created",
                details={"login_email": run.login_email, "error": str(e)}
            )
            return
        audit_log.warning(
            "provisioning.cancelled_creation.landed",
            target_type="account",
            target_id=run.account_id,
            details={"login_email": run.login_email}
        )
        run.push("account", run.account_id, partial(self.directory.delete_account, run.account_id))

    async def _roll_back(self, run: _SagaRun, step: str, cause: Exception) -> ProvisionResult:
        task = self._start_compensation(run, f"{step} failed: {cause}")
        # Cancelling the caller leaves the compensation running
        leftovers = await asyncio.shield(task)

        if not leftovers:
            return self._result(
                ProvisionOutcome.DOCUMENT_WRITE_FAILED, run.role,
                f"Failed to create documents for {run.login_email} ({step}: {cause}). "
                f"Account was rolled back.",
                run
            )

        orphan = OrphanReport(
            account_id=run.account_id,
            login_email=run.login_email,
            account_deleted=all(s != "account" for s, _ in leftovers),
            leftover_documents=[target for s, target in leftovers if s != "account"],
        )
        result = self._result(
            ProvisionOutcome.MANUAL_CLEANUP_REQUIRED, run.role,
            f"Manual cleanup required for account {run.account_id} ({run.login_email}). "
            f"Original error: {cause}",
            run
        )
        result.orphan = orphan
        return result

    # ============ Journal ============

    async def _journal_mark(self, run: _SagaRun) -> None:
        if self.journal is None:
            return
        try:
            await self.journal.mark_in_flight(run.login_email, run.run_id, run.role)
        except Exception as e:
            audit_log.warning(
                "provisioning.journal.unavailable",
                details={"login_email": run.login_email, "error": str(e)}
            )

    async def _journal_clear(self, run: _SagaRun) -> None:
        if self.journal is None:
            return
        try:
            await self.journal.clear_in_flight(run.login_email, run.run_id)
        except Exception as e:
            audit_log.warning(
                "provisioning.journal.unavailable",
                details={"login_email": run.login_email, "error": str(e)}
            )

    @staticmethod
    def _result(
        outcome: ProvisionOutcome,
        role: str,
        message: str,
        run: Optional[_SagaRun] = None
    ) -> ProvisionResult:
        return ProvisionResult(
            outcome=outcome,
            message=message,
            role=role,
            login_email=run.login_email if run else None,
            account_id=run.account_id if run else None,
        )


async def wait_for_pending_compensations() -> None:
    """Block until every background compensation has finished (used at shutdown)."""
    if _pending_compensations:
        await asyncio.gather(*list(_pending_compensations), return_exceptions=True)
