"""Canonical enumerations shared by the detector and the rollback engine."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEV_ORDER[self]


_SEV_ORDER = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class AlertType(str, Enum):
    DATABASE_BREACH = "database_breach"
    AUTH_FLOOD = "auth_flood"
    SYSTEM_ANOMALY = "system_anomaly"


class AlertStatus(str, Enum):
    NEW = "new"
    ASSIGNED = "assigned"
    RESOLVED = "resolved"
    FALSE_POSITIVE = "false_positive"

    @property
    def is_terminal(self) -> bool:
        return self in (AlertStatus.RESOLVED, AlertStatus.FALSE_POSITIVE)


class ChangeClass(str, Enum):
    """Classification of a configuration-file change."""

    CREDENTIAL_MODIFICATION = "credential_modification"
    PRIVILEGE_ESCALATION = "privilege_escalation"
    NETWORK_CONFIGURATION = "network_configuration"
    GENERAL_CONFIGURATION = "general_configuration"

    @classmethod
    def parse(cls, value: str | ChangeClass) -> ChangeClass:
        """Map a label onto the closed set; unknown labels are general."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.GENERAL_CONFIGURATION


class DeploymentStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"


class RollbackStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RollbackStatus.REJECTED, RollbackStatus.COMPLETED, RollbackStatus.FAILED)


class FailureCategory(str, Enum):
    DATABASE = "database"
    FILESYSTEM = "filesystem"
    NETWORK = "network"
    TIMEOUT = "timeout"
    RESOURCES = "resources"
    INTEGRITY = "integrity"
    SNAPSHOT = "snapshot"
    UNKNOWN = "unknown"
