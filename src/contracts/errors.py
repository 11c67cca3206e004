"""Exception hierarchy for the detector, the stores and the rollback engine.

Validation and authorization errors are raised straight to the caller.
Store errors carry ``retryable`` so the caller layer can decide whether to
try again.  Execution errors never reach the caller: the rollback engine
folds them into a failed ``RollbackResult``.
"""

from __future__ import annotations

from src.contracts.enums import FailureCategory
from src.contracts.rollback import IntegrityCheck


class SentinelError(Exception):
    """Base class for every error raised by this package."""

    retryable: bool = False


# ── validation ───────────────────────────────────────────────────────────


class ValidationError(SentinelError):
    pass


class UnverifiedSnapshotError(ValidationError):
    def __init__(self, snapshot_id: str) -> None:
        super().__init__(f"Cannot rollback to unverified snapshot {snapshot_id}")
        self.snapshot_id = snapshot_id


class SnapshotNotFoundError(ValidationError):
    def __init__(self, snapshot_id: str) -> None:
        super().__init__(f"Snapshot not found: {snapshot_id}")
        self.snapshot_id = snapshot_id


class RequestNotFoundError(ValidationError):
    def __init__(self, request_id: str) -> None:
        super().__init__(f"Rollback request not found: {request_id}")
        self.request_id = request_id


class AlertNotFoundError(ValidationError):
    def __init__(self, alert_id: str) -> None:
        super().__init__(f"Security alert not found: {alert_id}")
        self.alert_id = alert_id


class InvalidRequestStateError(ValidationError):
    def __init__(self, request_id: str, status: str, action: str) -> None:
        super().__init__(
            f"Cannot {action} rollback request {request_id}: status is '{status}'"
        )
        self.request_id = request_id
        self.status = status


class AlertStateError(ValidationError):
    pass


# ── authorization / concurrency ─────────────────────────────────────────


class AuthorizationError(SentinelError):
    def __init__(self, principal: str, action: str) -> None:
        super().__init__(f"Principal '{principal}' is not allowed to {action} rollbacks")
        self.principal = principal


class RollbackInProgressError(SentinelError):
    def __init__(self, environment: str) -> None:
        super().__init__(f"A rollback is already executing in environment '{environment}'")
        self.environment = environment


# ── stores ───────────────────────────────────────────────────────────────


class StoreError(SentinelError):
    retryable = True


class StoreTimeoutError(StoreError):
    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(f"Store call '{operation}' timed out after {timeout:.1f}s")
        self.operation = operation
        self.timeout = timeout


class StoreUnavailableError(StoreError):
    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"Store call '{operation}' failed: {cause}")
        self.operation = operation


# ── rollback execution ──────────────────────────────────────────────────


class RollbackExecutionError(SentinelError):
    """Raised inside an execution step; contained by the engine."""

    category: FailureCategory = FailureCategory.UNKNOWN


class ApplyError(RollbackExecutionError):
    def __init__(self, message: str, category: FailureCategory = FailureCategory.UNKNOWN) -> None:
        super().__init__(message)
        self.category = category


class IntegrityCheckError(RollbackExecutionError):
    category = FailureCategory.INTEGRITY

    def __init__(self, failed_checks: list[str], check: IntegrityCheck | None = None) -> None:
        super().__init__(
            "Integrity verification failed: " + ", ".join(failed_checks)
        )
        self.failed_checks = failed_checks
        self.check = check


class SnapshotRevokedError(RollbackExecutionError):
    category = FailureCategory.SNAPSHOT

    def __init__(self, snapshot_id: str) -> None:
        super().__init__(f"Snapshot {snapshot_id} is no longer verified")
        self.snapshot_id = snapshot_id
