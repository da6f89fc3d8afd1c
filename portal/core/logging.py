"""
Structured audit logging.

Every write against the identity directory or the document store, and every
compensating undo, is emitted as one JSON line on stdout.
"""
import logging
import sys
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional
import json


class AuditEncoder(json.JSONEncoder):
    """Encodes salaries, dates and subject scopes found in event details."""
    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


class AuditLogger:
    """
    Emits one structured record per side effect.
    Records without an actor come from the system itself (saga compensation,
    startup scripts).
    """

    def __init__(self, name: str = "portal"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def _log(
        self,
        level: int,
        event: str,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        target_type: Optional[str] = None,
        target_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        error: Optional[str] = None
    ) -> None:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "event": event,
        }
        if actor_id:
            entry["actor"] = {"id": actor_id, "role": actor_role}
        if target_type:
            entry["target"] = {"type": target_type, "id": target_id}
        if details:
            entry["details"] = details
        if error is not None:
            entry["error"] = error

        self.logger.log(level, json.dumps(entry, cls=AuditEncoder, default=str))

    def info(self, event: str, **fields: Any) -> None:
        self._log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._log(logging.WARNING, event, **fields)

    def error(self, event: str, error: str, **fields: Any) -> None:
        """Log a failed side effect; ``error`` is the cause as text."""
        self._log(logging.ERROR, event, error=error, **fields)

    # Specific audit events
    def log_login(self, user_id: str, role: str, success: bool, ip: Optional[str] = None) -> None:
        """Log a login attempt."""
        event = "auth.login.success" if success else "auth.login.failure"
        self.info(event, actor_id=user_id, actor_role=role, details={"ip": ip})

    def log_password_change(self, user_id: str, role: str) -> None:
        """Log a password change."""
        self.info("auth.password.changed", actor_id=user_id, actor_role=role)

    def log_account_provisioned(
        self,
        actor_id: Optional[str],
        account_id: str,
        role: str,
        login_email: str
    ) -> None:
        """Log a fully provisioned account (credential plus all documents)."""
        self.info(
            "provisioning.account.created",
            actor_id=actor_id,
            actor_role="Admin",
            target_type="account",
            target_id=account_id,
            details={"role": role, "login_email": login_email}
        )

    def log_compensation(
        self,
        account_id: str,
        step: str,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Log a single compensating action of the provisioning saga."""
        if success:
            self.info(
                "provisioning.compensation.undone",
                target_type="account",
                target_id=account_id,
                details={"step": step}
            )
        else:
            self.error(
                "provisioning.compensation.failed",
                error=error or "unknown",
                target_type="account",
                target_id=account_id,
                details={"step": step}
            )

    def log_manual_cleanup_required(
        self,
        account_id: str,
        login_email: str,
        leftovers: list[str],
        cause: str
    ) -> None:
        """Log an orphan that an operator has to remove by hand."""
        self.error(
            "provisioning.manual_cleanup_required",
            error=cause,
            target_type="account",
            target_id=account_id,
            details={"login_email": login_email, "leftovers": leftovers}
        )

    def log_appraisal_transition(
        self,
        admin_id: str,
        request_id: str,
        decision: str,
        profile_updated: bool
    ) -> None:
        """Log an admin decision on an appraisal request."""
        self.info(
            "appraisal.transitioned",
            actor_id=admin_id,
            actor_role="Admin",
            target_type="appraisal_request",
            target_id=request_id,
            details={"decision": decision, "profile_updated": profile_updated}
        )


# Global audit logger instance
audit_log = AuditLogger()
