"""
Error taxonomy shared by services and the HTTP layer.

Each error carries a stable ``code`` (surfaced to API callers) and the HTTP
status the API exception handler answers with.
"""
from typing import Any, Optional


class PortalError(Exception):
    """Base class for all domain errors."""

    code = "unknown"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============ Identity directory ============

class DuplicateIdentity(PortalError):
    """The login email is already registered in the identity directory."""
    code = "duplicate_identity"
    status_code = 409


class WeakCredential(PortalError):
    """The identity directory rejected the password."""
    code = "weak_credential"
    status_code = 400


class InvalidIdentity(PortalError):
    """The login email (or role) cannot be used to create an account."""
    code = "invalid_identity"
    status_code = 400


class IdentityDirectoryUnavailable(PortalError):
    code = "identity_directory_unavailable"
    status_code = 503


# ============ Document store ============

class DocumentStoreUnavailable(PortalError):
    code = "document_store_unavailable"
    status_code = 503


class DocumentWriteFailed(PortalError):
    """A document write failed and everything before it was rolled back."""
    code = "document_write_failed"
    status_code = 503


class ManualCleanupRequired(PortalError):
    """
    Rollback itself failed. The orphaned account and documents named in
    ``details`` stay behind until an operator removes them.
    """
    code = "manual_cleanup_required"
    status_code = 500


class ProvisioningError(PortalError):
    """Provisioning failed for a reason outside the known taxonomy."""
    code = "unknown"
    status_code = 500


class NotFound(PortalError):
    code = "not_found"
    status_code = 404


# ============ Assignments and visibility ============

class InvalidAssignmentConfiguration(PortalError):
    """An assignment is structurally malformed."""
    code = "invalid_assignment_configuration"
    status_code = 422


class StaleVisibilityInput(PortalError):
    """Assignments reference a class, section or group that no longer exists."""
    code = "stale_visibility_input"
    status_code = 409


class VisibilityDenied(PortalError):
    code = "visibility_denied"
    status_code = 403


class DuplicateRemark(PortalError):
    code = "duplicate_remark"
    status_code = 409


# ============ Appraisals ============

class AppraisalTransitionConflict(PortalError):
    """The appraisal request is no longer pending."""
    code = "appraisal_transition_conflict"
    status_code = 409
