"""
Pydantic schemas for API request/response validation.
"""
from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal, Any
from datetime import datetime

from portal.models.records import AssignmentType, UserStatus
from portal.models.provisioning import ProvisionInput


# ============ Auth Schemas ============

class LoginRequest(BaseModel):
    """Login request body."""
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    """Login response with JWT token."""
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str
    name: str


class ChangePasswordRequest(BaseModel):
    """Change password request body."""
    current_password: str
    new_password: str


class ChangePasswordResponse(BaseModel):
    """Change password response."""
    success: bool
    message: str


# ============ Admin Schemas ============

class ProvisionRequest(BaseModel):
    """Request to provision a user; the profile's role selects its shape."""
    profile: ProvisionInput


class ProvisionResponse(BaseModel):
    """Response after provisioning a user."""
    success: bool
    outcome: str
    account_id: str
    login_email: str
    role: str
    generated_password: Optional[str] = None  # Only when no password was supplied
    message: str


class UserStatusRequest(BaseModel):
    """Request to change a user's status."""
    status: UserStatus


class UserResponse(BaseModel):
    """User record summary."""
    user_id: str
    name: str
    email: str
    role: str
    status: str
    last_login: str


class ClassRequest(BaseModel):
    """Request to register a class."""
    class_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    sections: List[str] = Field(default_factory=list)
    groups: List[str] = Field(default_factory=list)


class ClassResponse(BaseModel):
    """Registered class."""
    class_id: str
    name: str
    sections: List[str]
    groups: List[str]


class AssignmentRequest(BaseModel):
    """Request to add an assignment to a teacher."""
    id: Optional[str] = None  # Generated when omitted
    type: AssignmentType
    class_id: str
    class_name: Optional[str] = None
    section_id: Optional[str] = None
    subject_id: Optional[str] = None
    group_id: Optional[str] = None


class AssignmentUpdateRequest(BaseModel):
    """Request to change fields of one assignment; unset fields are kept."""
    assignment_id: str
    type: Optional[AssignmentType] = None
    class_id: Optional[str] = None
    class_name: Optional[str] = None
    section_id: Optional[str] = None
    subject_id: Optional[str] = None
    group_id: Optional[str] = None


class AssignmentResponse(BaseModel):
    id: str
    type: str
    class_id: str
    class_name: Optional[str] = None
    section_id: Optional[str] = None
    subject_id: Optional[str] = None
    group_id: Optional[str] = None


class TeacherAssignmentsResponse(BaseModel):
    """A teacher's assignments after a change."""
    teacher_id: str
    assignments: List[AssignmentResponse]


class ReconcileRequest(BaseModel):
    """Request to run the orphan sweep."""
    dry_run: bool = True
    grace_minutes: Optional[int] = Field(default=None, ge=0)


# ============ Appraisal Schemas ============

class AppraisalCreateRequest(BaseModel):
    """Coordinator request to open an appraisal."""
    teacher_id: str
    justification: str = Field(..., min_length=1)


class AppraisalResponse(BaseModel):
    """Appraisal request."""
    id: str
    teacher_id: str
    teacher_name: str
    requested_by: str
    coordinator_name: str
    request_date: str
    justification: str
    status: str
    admin_notes: Optional[str] = None
    processed_date: Optional[str] = None
    processed_by: Optional[str] = None
    approved_salary: Optional[float] = None


class AppraisalListResponse(BaseModel):
    requests: List[AppraisalResponse]


class AppraisalTransitionRequest(BaseModel):
    """Admin decision on a pending appraisal."""
    decision: Literal["Approved", "Rejected"]
    notes: Optional[str] = None
    new_salary: Optional[float] = Field(default=None, gt=0)


class AppraisalTransitionResponse(BaseModel):
    """Result of a decision; profile_updated is false when the profile write must be retried."""
    success: bool
    request: AppraisalResponse
    profile_updated: bool
    message: str


# ============ Teacher Schemas ============

class VisibilityRequest(BaseModel):
    """Where a student record lives."""
    class_id: str
    section_id: Optional[str] = None
    group_id: Optional[str] = None


class VisibilityResponse(BaseModel):
    visible: bool
    subjects_in_scope: List[str]
    matched_assignment_ids: List[str]


class VisibleStudentResponse(BaseModel):
    """Student a teacher may see, with the subjects they cover for them."""
    profile_id: str
    name: str
    admission_number: str
    class_id: str
    section_id: Optional[str] = None
    group_id: Optional[str] = None
    subjects_in_scope: List[str]


class TeacherStudentsResponse(BaseModel):
    students: List[VisibleStudentResponse]


class RemarkRequest(BaseModel):
    """Request to add a remark to a student."""
    subject: str
    remark: str = Field(..., min_length=1)
    sentiment: Literal["good", "neutral", "bad"] = "neutral"


class RemarkResponse(BaseModel):
    """Response after adding a remark."""
    success: bool
    remark_id: str
    profile_id: str
    subject: str
    date: str
    message: str


# ============ Common Schemas ============

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    details: Optional[dict[str, Any]] = None


class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str
    user_id: str
    role: str
    exp: datetime
    iat: datetime
