"""
Document models.
These define the shape of every document the portal persists: the account kept
by the identity directory and the record documents kept by the document store.
Record documents use camelCase field names on the wire.
"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal, Any
from datetime import datetime, timezone
from enum import Enum
import uuid


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    """User roles in the system."""
    ADMIN = "Admin"
    TEACHER = "Teacher"
    STUDENT = "Student"
    COORDINATOR = "Coordinator"


class UserStatus(str, Enum):
    """User account status."""
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    PENDING = "Pending"


class AssignmentType(str, Enum):
    """Kinds of teaching responsibility."""
    CLASS_TEACHER = "class_teacher"
    MOTHER_TEACHER = "mother_teacher"
    SUBJECT_TEACHER = "subject_teacher"
    NIOS_TEACHER = "nios_teacher"
    NCLP_TEACHER = "nclp_teacher"


class AppraisalStatus(str, Enum):
    PENDING = "Pending Admin Review"
    APPROVED = "Approved"
    REJECTED = "Rejected"


# Subjects offered in regular classes
GENERAL_SUBJECTS: tuple[str, ...] = (
    "English", "Kannada", "Hindi", "Science", "Maths", "Social Science",
)

# Open-schooling and bridge programs teach their own fixed subject sets
PROGRAM_SUBJECTS: dict[str, tuple[str, ...]] = {
    AssignmentType.NIOS_TEACHER.value: (
        "English", "Hindi", "Mathematics", "Science and Technology",
        "Social Science", "Data Entry Operations",
    ),
    AssignmentType.NCLP_TEACHER.value: (
        "Kannada", "English", "Arithmetic", "Environmental Studies",
        "Vocational Training",
    ),
}

SECTION_SCOPED_TYPES = frozenset({
    AssignmentType.CLASS_TEACHER.value,
    AssignmentType.MOTHER_TEACHER.value,
    AssignmentType.SUBJECT_TEACHER.value,
})
GROUP_SCOPED_TYPES = frozenset(PROGRAM_SUBJECTS)
HOMEROOM_TYPES = frozenset({
    AssignmentType.CLASS_TEACHER.value,
    AssignmentType.MOTHER_TEACHER.value,
})


class DocumentModel(BaseModel):
    """Base for record documents stored with camelCase keys."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        use_enum_values = True

    def to_document(self) -> dict[str, Any]:
        """JSON-ready dict in the stored (camelCase) shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, doc: Optional[dict[str, Any]]):
        if doc is None:
            return None
        return cls.model_validate(doc)


# ============ Identity directory ============

class AccountDocument(BaseModel):
    """
    Account as stored by the identity directory.
    The password hash never leaves the directory implementation.
    """
    account_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: str
    display_name: Optional[str] = None
    password_hash: str
    password_last_changed: datetime = Field(default_factory=_now)
    created_at: datetime = Field(default_factory=_now)


class Account(BaseModel):
    """Public view of a directory account."""
    account_id: str
    email: str
    display_name: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_mongo(cls, doc: dict) -> "Account":
        """Create Account from a MongoDB document."""
        return cls(
            account_id=doc["account_id"],
            email=doc["email"],
            display_name=doc.get("display_name"),
            created_at=doc["created_at"],
        )


# ============ Users ============

class Assignment(DocumentModel):
    """Scoping rule binding a teacher to a class/section/subject/group."""
    id: str = Field(default_factory=_new_id)
    type: AssignmentType
    class_id: str
    class_name: Optional[str] = None
    section_id: Optional[str] = None
    subject_id: Optional[str] = None
    group_id: Optional[str] = None


class UserRecord(DocumentModel):
    """Generic user document, keyed by the directory's account id."""
    id: str
    name: str
    email: str
    role: UserRole
    status: UserStatus = UserStatus.ACTIVE
    last_login: str = "N/A"
    created_at: datetime = Field(default_factory=_now)
    # Teacher
    assignments: Optional[List[Assignment]] = None
    # Student
    class_id: Optional[str] = None
    student_profile_id: Optional[str] = None
    # Searchable human key when the login email is an opaque handle
    business_key: Optional[str] = None


# ============ Role profiles ============

class SalaryRecord(DocumentModel):
    """One month of payroll."""
    id: str = Field(default_factory=_new_id)
    month_year: str
    date_issued: str
    amount_issued: float
    amount_deducted: float = 0
    days_absent: int = 0
    reason_for_absence: Optional[str] = None


class SalaryRevision(DocumentModel):
    """Salary change granted by an approved appraisal; ``id`` is the request id."""
    id: str
    amount: float
    effective_date: str
    note: Optional[str] = None


class TeacherProfile(DocumentModel):
    """HR profile of a teacher."""
    id: str
    auth_uid: str
    name: str
    email: str
    phone_number: str = ""
    address: str = ""
    employee_code: Optional[str] = None
    year_of_joining: int = Field(default_factory=lambda: _now().year)
    subjects_taught: List[str] = Field(default_factory=list)
    salary_history: List[SalaryRecord] = Field(default_factory=list)
    salary_revisions: List[SalaryRevision] = Field(default_factory=list)
    current_salary: Optional[float] = None
    current_appraisal_status: str = "No Active Appraisal"
    last_appraisal_date: Optional[str] = None
    last_appraisal_details: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class CoordinatorProfile(DocumentModel):
    id: str
    auth_uid: str
    name: str
    email: str
    phone_number: str = ""
    employee_code: Optional[str] = None
    role: UserRole = UserRole.COORDINATOR
    status: UserStatus = UserStatus.ACTIVE
    created_at: datetime = Field(default_factory=_now)


# ============ Students ============

class StudentRemark(DocumentModel):
    id: str = Field(default_factory=_new_id)
    teacher_id: str
    teacher_name: str
    teacher_subject: str
    remark: str
    date: str  # YYYY-MM-DD
    sentiment: Literal["good", "neutral", "bad"] = "neutral"


class StudentProfile(DocumentModel):
    """Academic profile, stored under its class partition."""
    id: str
    auth_uid: str
    name: str
    admission_number: str
    class_id: str
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
    remarks: List[StudentRemark] = Field(default_factory=list)
    scholarships: List[dict[str, Any]] = Field(default_factory=list)
    exam_records: List[dict[str, Any]] = Field(default_factory=list)
    raw_attendance_records: List[dict[str, Any]] = Field(default_factory=list)
    background_info: str = ""
    created_at: datetime = Field(default_factory=_now)


class ClassDocument(DocumentModel):
    """Class partition root: ``student_data_by_class/{id}``."""
    id: str
    name: str
    sections: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)


# ============ Appraisals ============

class AppraisalRequest(DocumentModel):
    id: str
    teacher_id: str
    teacher_name: str
    requested_by: str
    coordinator_name: str
    request_date: str
    justification: str
    status: AppraisalStatus = AppraisalStatus.PENDING
    admin_notes: Optional[str] = None
    processed_date: Optional[str] = None
    processed_by: Optional[str] = None
    approved_salary: Optional[float] = None
