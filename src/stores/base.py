"""Abstract store contracts.

Every method is a coroutine: real backends suspend on I/O.  Implementations
return copies, so callers never mutate stored state by accident; changes
go through ``update`` / ``mark_*`` / ``approve``.
"""

from __future__ import annotations

import abc
from typing import Any

from src.contracts.alert import SecurityAlert
from src.contracts.audit import AuditLogEntry
from src.contracts.enums import AlertStatus, AlertType, Severity
from src.contracts.rollback import RollbackRequest, RollbackResult
from src.contracts.snapshot import Deployment, Snapshot


class AlertStore(abc.ABC):
    @abc.abstractmethod
    async def create(self, alert: SecurityAlert) -> str:
        """Persist *alert*, assign its id and return it."""

    @abc.abstractmethod
    async def get(self, alert_id: str) -> SecurityAlert | None: ...

    @abc.abstractmethod
    async def list_by_type(self, alert_type: AlertType) -> list[SecurityAlert]: ...

    @abc.abstractmethod
    async def list_by_severity(self, severity: Severity) -> list[SecurityAlert]: ...

    @abc.abstractmethod
    async def list_by_status(self, status: AlertStatus) -> list[SecurityAlert]: ...

    @abc.abstractmethod
    async def list_recent(self, limit: int = 10) -> list[SecurityAlert]:
        """Most recently detected first."""

    @abc.abstractmethod
    async def update(self, alert: SecurityAlert) -> None: ...


class SnapshotStore(abc.ABC):
    @abc.abstractmethod
    async def create(self, snapshot: Snapshot) -> str: ...

    @abc.abstractmethod
    async def get(self, snapshot_id: str) -> Snapshot | None: ...

    @abc.abstractmethod
    async def mark_verified(self, snapshot_id: str, verified_by: str) -> None: ...

    @abc.abstractmethod
    async def revoke(self, snapshot_id: str) -> None: ...

    @abc.abstractmethod
    async def list_by_environment(self, environment: str) -> list[Snapshot]:
        """Most recent first."""


class DeploymentStore(abc.ABC):
    @abc.abstractmethod
    async def create(self, deployment: Deployment) -> str: ...

    @abc.abstractmethod
    async def get(self, deployment_id: str) -> Deployment | None: ...

    @abc.abstractmethod
    async def list_by_environment(self, environment: str, limit: int = 50) -> list[Deployment]:
        """Most recent first."""

    @abc.abstractmethod
    async def mark_failed(self, deployment_id: str, reason: str) -> None: ...

    @abc.abstractmethod
    async def set_rollback_available(self, deployment_id: str, available: bool) -> None: ...


class AuditLog(abc.ABC):
    @abc.abstractmethod
    async def append(self, entry: AuditLogEntry) -> str: ...

    @abc.abstractmethod
    async def get(self, entry_id: str) -> AuditLogEntry | None: ...

    @abc.abstractmethod
    async def list_requiring_approval(self) -> list[AuditLogEntry]:
        """Entries with ``requires_approval`` that are not yet approved."""

    @abc.abstractmethod
    async def list_by_action_type(self, action_type: str) -> list[AuditLogEntry]:
        """Most recent first."""

    @abc.abstractmethod
    async def approve(self, entry_id: str, approver_id: str) -> None: ...

    @abc.abstractmethod
    async def statistics(self) -> dict[str, Any]:
        """``{total_logs, ai_actions, pending_approvals, approved_actions}``."""


class RollbackRequestStore(abc.ABC):
    @abc.abstractmethod
    async def create(self, request: RollbackRequest) -> str: ...

    @abc.abstractmethod
    async def get(self, request_id: str) -> RollbackRequest | None: ...

    @abc.abstractmethod
    async def update(self, request: RollbackRequest) -> None: ...

    @abc.abstractmethod
    async def list_by_environment(self, environment: str) -> list[RollbackRequest]:
        """Most recent first."""

    @abc.abstractmethod
    async def save_result(self, result: RollbackResult) -> None: ...

    @abc.abstractmethod
    async def get_result(self, request_id: str) -> RollbackResult | None: ...
