"""
Audit logging for security-critical and ledger-changing operations.

These are log lines, not rows: the stock_movements table is the system of
record for inventory history. This logger covers who logged in, who sold what,
who touched the catalogue, and who was refused.

LOGGING SENSITIVE DATA: never log passwords or tokens.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _emit(level: int, entry: Dict[str, Any]) -> None:
    audit_logger.log(level, json.dumps(entry, default=str))


class AuditLog:
    """Central audit logging for security-critical events."""

    @staticmethod
    def log_authentication(
        action: str,  # "login", "logout", "register", "failed_login"
        email: str,
        ip_address: str,
        success: bool,
        reason: str = "",
    ):
        """
        Usage:
            AuditLog.log_authentication("login", "staff@pharmacy.co.ke", "10.0.0.4", True)
        """
        log_entry = {
            "timestamp": _now(),
            "event_type": f"auth.{action}",
            "email": email,
            "ip_address": ip_address,
            "success": success,
        }
        if reason and not success:
            log_entry["reason"] = reason
        _emit(logging.INFO if success else logging.WARNING, log_entry)

    @staticmethod
    def log_action(
        action: str,  # "create", "update", "delete", "adjust"
        resource_type: str,  # "sale", "medicine", "prescription", "stock", "supplier", "category"
        resource_id: Any,
        actor: Optional[str],
        changes: Optional[Dict[str, Any]] = None,
    ):
        """
        Log a ledger or catalogue change with the acting identity.

        Usage:
            AuditLog.log_action("create", "sale", sale.id, actor, changes={"total": "250.00"})
        """
        log_entry = {
            "timestamp": _now(),
            "event_type": f"{resource_type}.{action}",
            "actor": actor,
            "resource_id": resource_id,
        }
        if changes:
            log_entry["changes"] = changes
        _emit(logging.INFO, log_entry)

    @staticmethod
    def log_access_denied(
        action: str,
        resource_type: str,
        user_id: Optional[int],
        reason: str,
    ):
        """
        Log refused operations (role checks that failed).

        Usage:
            AuditLog.log_access_denied("delete", "medicine", 7, "role cashier")
        """
        log_entry = {
            "timestamp": _now(),
            "event_severity": "WARNING",
            "event_type": "access_denied",
            "action": action,
            "resource_type": resource_type,
            "user_id": user_id,
            "reason": reason,
        }
        _emit(logging.WARNING, log_entry)
