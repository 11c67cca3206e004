"""Rollback request / result records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.contracts.enums import FailureCategory, RollbackStatus
from src.shared.timeutil import iso


@dataclass(slots=True)
class RollbackOption:
    """A verified snapshot offered as a rollback candidate."""

    snapshot_id: str
    deployment_id: str
    environment: str
    version: str
    source_revision: str
    created_at: datetime
    verified: bool
    description: str
    ai_reasoning: str


@dataclass(slots=True)
class RollbackRequest:
    """Request to restore *environment* to *snapshot_id*.

    Lifecycle
    ─────────
      pending_approval ─┬─► approved ─► execute ─┬─► completed
                        │                        └─► failed
                        └─► rejected

    ``execution_started_at`` is stored before the environment is touched;
    an approved request carrying it is never applied again.
    """

    environment: str
    snapshot_id: str
    reason: str
    requested_by: str
    explanation: str
    created_at: datetime
    status: RollbackStatus = RollbackStatus.PENDING_APPROVAL
    id: str = ""
    audit_entry_id: str = ""
    alert_id: str | None = None
    approved_by: str | None = None
    decided_by: str | None = None
    decided_at: datetime | None = None
    execution_started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(slots=True)
class IntegrityCheck:
    checks_count: int
    passed_count: int
    completed_at: datetime
    failed_checks: list[str] = field(default_factory=list)

    @property
    def verified(self) -> bool:
        return not self.failed_checks and self.passed_count == self.checks_count


@dataclass(slots=True)
class FailureAnalysis:
    category: FailureCategory
    severity: str
    root_cause: str
    affected_components: list[str]
    summary: str


@dataclass(slots=True)
class RollbackResult:
    """Outcome of one executed request.  A failure always lists alternatives."""

    request_id: str
    success: bool
    completed_at: datetime
    message: str
    integrity_check: IntegrityCheck | None = None
    error: str | None = None
    alternative_options: list[str] = field(default_factory=list)
    failure_category: FailureCategory | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "request_id": self.request_id,
            "success": self.success,
            "completed_at": iso(self.completed_at),
            "message": self.message,
        }
        if self.integrity_check is not None:
            d["integrity_check"] = {
                "checks_count": self.integrity_check.checks_count,
                "passed_count": self.integrity_check.passed_count,
                "failed_checks": list(self.integrity_check.failed_checks),
                "completed_at": iso(self.integrity_check.completed_at),
            }
        if not self.success:
            d["error"] = self.error
            d["alternative_options"] = list(self.alternative_options)
            d["failure_category"] = self.failure_category.value if self.failure_category else None
        return d
