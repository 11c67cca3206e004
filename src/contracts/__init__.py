"""Data contracts shared by the detector, the stores and the rollback engine."""

from src.contracts.alert import SecurityAlert
from src.contracts.audit import AuditLogEntry
from src.contracts.enums import (
    AlertStatus,
    AlertType,
    ChangeClass,
    DeploymentStatus,
    FailureCategory,
    RollbackStatus,
    Severity,
)
from src.contracts.rollback import (
    FailureAnalysis,
    IntegrityCheck,
    RollbackOption,
    RollbackRequest,
    RollbackResult,
)
from src.contracts.snapshot import Deployment, Snapshot
from src.contracts.status import SecurityStatus

__all__ = [
    "AlertStatus",
    "AlertType",
    "AuditLogEntry",
    "ChangeClass",
    "Deployment",
    "DeploymentStatus",
    "FailureAnalysis",
    "FailureCategory",
    "IntegrityCheck",
    "RollbackOption",
    "RollbackRequest",
    "RollbackResult",
    "RollbackStatus",
    "SecurityAlert",
    "SecurityStatus",
    "Severity",
    "Snapshot",
]
