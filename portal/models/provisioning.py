"""
Provisioning inputs and results.

The input is a closed union keyed by ``role``: each role carries exactly the
fields its dependent documents need.
"""
from pydantic import BaseModel, Field
from typing import Annotated, Literal, Optional, List, Union
from enum import Enum

from portal.core import errors
from portal.models.records import Assignment


class _ProvisionBase(BaseModel):
    name: str = Field(..., min_length=1)
    login_email: Optional[str] = None  # Derived from the business key when omitted
    password: Optional[str] = None  # Default password generated when omitted


class TeacherProvisionInput(_ProvisionBase):
    role: Literal["Teacher"] = "Teacher"
    employee_code: Optional[str] = None
    phone_number: str = ""
    address: str = ""
    year_of_joining: Optional[int] = None
    subjects_taught: List[str] = Field(default_factory=list)
    assignments: List[Assignment] = Field(default_factory=list)

    @property
    def business_key(self) -> Optional[str]:
        return self.employee_code


class CoordinatorProvisionInput(_ProvisionBase):
    role: Literal["Coordinator"] = "Coordinator"
    employee_code: Optional[str] = None
    phone_number: str = ""

    @property
    def business_key(self) -> Optional[str]:
        return self.employee_code


class StudentProvisionInput(_ProvisionBase):
    role: Literal["Student"] = "Student"
    admission_number: str = Field(..., min_length=1)  # SATS number
    class_id: str = Field(..., min_length=1)
    class_name: Optional[str] = None
    section_id: Optional[str] = None
    group_id: Optional[str] = None
    date_of_birth: Optional[str] = None
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    parent_contact_number: Optional[str] = None
    caste: Optional[str] = None
    religion: Optional[str] = None
    address: Optional[str] = None

    @property
    def business_key(self) -> Optional[str]:
        return self.admission_number


ProvisionInput = Annotated[
    Union[TeacherProvisionInput, StudentProvisionInput, CoordinatorProvisionInput],
    Field(discriminator="role"),
]


class ProvisionOutcome(str, Enum):
    CREATED = "created"
    DUPLICATE_IDENTITY = "duplicate_identity"
    WEAK_CREDENTIAL = "weak_credential"
    INVALID_IDENTITY = "invalid_identity"
    DOCUMENT_WRITE_FAILED = "document_write_failed"
    MANUAL_CLEANUP_REQUIRED = "manual_cleanup_required"
    UNKNOWN = "unknown"


_OUTCOME_ERRORS = {
    ProvisionOutcome.DUPLICATE_IDENTITY: errors.DuplicateIdentity,
    ProvisionOutcome.WEAK_CREDENTIAL: errors.WeakCredential,
    ProvisionOutcome.INVALID_IDENTITY: errors.InvalidIdentity,
    ProvisionOutcome.DOCUMENT_WRITE_FAILED: errors.DocumentWriteFailed,
    ProvisionOutcome.MANUAL_CLEANUP_REQUIRED: errors.ManualCleanupRequired,
    ProvisionOutcome.UNKNOWN: errors.ProvisioningError,
}


class OrphanReport(BaseModel):
    """What a failed rollback left behind."""
    account_id: str
    login_email: str
    account_deleted: bool
    leftover_documents: List[str] = Field(default_factory=list)


class ProvisionResult(BaseModel):
    outcome: ProvisionOutcome
    message: str
    role: str
    login_email: Optional[str] = None
    account_id: Optional[str] = None
    generated_password: Optional[str] = None
    orphan: Optional[OrphanReport] = None

    @property
    def ok(self) -> bool:
        return self.outcome == ProvisionOutcome.CREATED

    def raise_for_error(self) -> None:
        """Raise the taxonomy error matching a failed outcome."""
        if self.ok:
            return
        details = {"login_email": self.login_email}
        if self.orphan:
            details["orphan"] = self.orphan.model_dump()
        raise _OUTCOME_ERRORS[self.outcome](self.message, details)
