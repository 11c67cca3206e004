"""In-process async stores.

Each store keeps its records in an insertion-ordered dict guarded by an
``asyncio.Lock`` and hands out deep copies.  "Most recent first" queries
sort by timestamp and fall back to reverse insertion order on ties.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, TypeVar

from src.contracts.alert import SecurityAlert
from src.contracts.audit import AuditLogEntry
from src.contracts.enums import AlertStatus, AlertType, DeploymentStatus, Severity
from src.contracts.errors import ValidationError
from src.contracts.rollback import RollbackRequest, RollbackResult
from src.contracts.snapshot import Deployment, Snapshot
from src.stores.base import (
    AlertStore,
    AuditLog,
    DeploymentStore,
    RollbackRequestStore,
    SnapshotStore,
)

log = logging.getLogger(__name__)

T = TypeVar("T")


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _newest_first(items: Iterable[T], key: Callable[[T], datetime]) -> list[T]:
    return sorted(reversed(list(items)), key=key, reverse=True)


class InMemoryAlertStore(AlertStore):
    def __init__(self) -> None:
        self._alerts: dict[str, SecurityAlert] = {}
        self._lock = asyncio.Lock()

    async def create(self, alert: SecurityAlert) -> str:
        async with self._lock:
            alert.id = alert.id or _new_id("ALR")
            self._alerts[alert.id] = copy.deepcopy(alert)
            return alert.id

    async def get(self, alert_id: str) -> SecurityAlert | None:
        alert = self._alerts.get(alert_id)
        return copy.deepcopy(alert) if alert else None

    async def _select(self, pred: Callable[[SecurityAlert], bool]) -> list[SecurityAlert]:
        hits = [copy.deepcopy(a) for a in self._alerts.values() if pred(a)]
        return _newest_first(hits, key=lambda a: a.detected_at)

    async def list_by_type(self, alert_type: AlertType) -> list[SecurityAlert]:
        return await self._select(lambda a: a.type == alert_type)

    async def list_by_severity(self, severity: Severity) -> list[SecurityAlert]:
        return await self._select(lambda a: a.severity == severity)

    async def list_by_status(self, status: AlertStatus) -> list[SecurityAlert]:
        return await self._select(lambda a: a.status == status)

    async def list_recent(self, limit: int = 10) -> list[SecurityAlert]:
        return (await self._select(lambda a: True))[:limit]

    async def update(self, alert: SecurityAlert) -> None:
        async with self._lock:
            if alert.id not in self._alerts:
                raise ValidationError(f"Security alert not found: {alert.id}")
            self._alerts[alert.id] = copy.deepcopy(alert)


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self) -> None:
        self._snapshots: dict[str, Snapshot] = {}
        self._lock = asyncio.Lock()

    async def create(self, snapshot: Snapshot) -> str:
        async with self._lock:
            snapshot.id = snapshot.id or _new_id("SNP")
            self._snapshots[snapshot.id] = copy.deepcopy(snapshot)
            return snapshot.id

    async def get(self, snapshot_id: str) -> Snapshot | None:
        snap = self._snapshots.get(snapshot_id)
        return copy.deepcopy(snap) if snap else None

    async def mark_verified(self, snapshot_id: str, verified_by: str) -> None:
        async with self._lock:
            snap = self._snapshots.get(snapshot_id)
            if snap is None:
                raise ValidationError(f"Snapshot not found: {snapshot_id}")
            snap.verified = True
            snap.verified_by = verified_by

    async def revoke(self, snapshot_id: str) -> None:
        """Drop the verified flag (e.g. after a failed re-verification)."""
        async with self._lock:
            snap = self._snapshots.get(snapshot_id)
            if snap is not None:
                snap.verified = False

    async def list_by_environment(self, environment: str) -> list[Snapshot]:
        hits = [copy.deepcopy(s) for s in self._snapshots.values() if s.environment == environment]
        return _newest_first(hits, key=lambda s: s.created_at)


class InMemoryDeploymentStore(DeploymentStore):
    def __init__(self) -> None:
        self._deployments: dict[str, Deployment] = {}
        self._lock = asyncio.Lock()

    async def create(self, deployment: Deployment) -> str:
        async with self._lock:
            deployment.id = deployment.id or _new_id("DEP")
            self._deployments[deployment.id] = copy.deepcopy(deployment)
            return deployment.id

    async def get(self, deployment_id: str) -> Deployment | None:
        dep = self._deployments.get(deployment_id)
        return copy.deepcopy(dep) if dep else None

    async def list_by_environment(self, environment: str, limit: int = 50) -> list[Deployment]:
        hits = [copy.deepcopy(d) for d in self._deployments.values() if d.environment == environment]
        return _newest_first(hits, key=lambda d: d.deployed_at)[:limit]

    async def mark_failed(self, deployment_id: str, reason: str) -> None:
        async with self._lock:
            dep = self._deployments.get(deployment_id)
            if dep is None:
                raise ValidationError(f"Deployment not found: {deployment_id}")
            dep.status = DeploymentStatus.FAILED
            dep.failure_reason = reason
            dep.rollback_available = False

    async def set_rollback_available(self, deployment_id: str, available: bool) -> None:
        async with self._lock:
            dep = self._deployments.get(deployment_id)
            if dep is None:
                raise ValidationError(f"Deployment not found: {deployment_id}")
            dep.rollback_available = available


class InMemoryAuditLog(AuditLog):
    def __init__(self) -> None:
        self._entries: dict[str, AuditLogEntry] = {}
        self._lock = asyncio.Lock()

    async def append(self, entry: AuditLogEntry) -> str:
        async with self._lock:
            entry.id = entry.id or _new_id("AUD")
            self._entries[entry.id] = copy.deepcopy(entry)
            log.debug("audit %s %s", entry.action_type, entry.id)
            return entry.id

    async def get(self, entry_id: str) -> AuditLogEntry | None:
        entry = self._entries.get(entry_id)
        return copy.deepcopy(entry) if entry else None

    async def all(self) -> list[AuditLogEntry]:
        """Every entry in append order."""
        return [copy.deepcopy(e) for e in self._entries.values()]

    async def list_requiring_approval(self) -> list[AuditLogEntry]:
        hits = [
            copy.deepcopy(e)
            for e in self._entries.values()
            if e.requires_approval and not e.approved
        ]
        return _newest_first(hits, key=lambda e: e.timestamp)

    async def list_by_action_type(self, action_type: str) -> list[AuditLogEntry]:
        hits = [copy.deepcopy(e) for e in self._entries.values() if e.action_type == action_type]
        return _newest_first(hits, key=lambda e: e.timestamp)

    async def approve(self, entry_id: str, approver_id: str) -> None:
        async with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise ValidationError(f"Audit entry not found: {entry_id}")
            if entry.approved:
                raise ValidationError(f"Audit entry {entry_id} is already approved")
            entry.approved = True
            entry.approved_by = approver_id

    async def statistics(self) -> dict[str, Any]:
        entries = list(self._entries.values())
        return {
            "total_logs": len(entries),
            "ai_actions": sum(1 for e in entries if e.ai_reasoning),
            "pending_approvals": sum(1 for e in entries if e.requires_approval and not e.approved),
            "approved_actions": sum(1 for e in entries if e.approved),
        }


class InMemoryRollbackRequestStore(RollbackRequestStore):
    def __init__(self) -> None:
        self._requests: dict[str, RollbackRequest] = {}
        self._results: dict[str, RollbackResult] = {}
        self._lock = asyncio.Lock()

    async def create(self, request: RollbackRequest) -> str:
        async with self._lock:
            request.id = request.id or _new_id("RBK")
            self._requests[request.id] = copy.deepcopy(request)
            return request.id

    async def get(self, request_id: str) -> RollbackRequest | None:
        req = self._requests.get(request_id)
        return copy.deepcopy(req) if req else None

    async def update(self, request: RollbackRequest) -> None:
        async with self._lock:
            if request.id not in self._requests:
                raise ValidationError(f"Rollback request not found: {request.id}")
            self._requests[request.id] = copy.deepcopy(request)

    async def list_by_environment(self, environment: str) -> list[RollbackRequest]:
        hits = [copy.deepcopy(r) for r in self._requests.values() if r.environment == environment]
        return _newest_first(hits, key=lambda r: r.completed_at or r.decided_at or r.created_at)

    async def save_result(self, result: RollbackResult) -> None:
        async with self._lock:
            self._results[result.request_id] = copy.deepcopy(result)

    async def get_result(self, request_id: str) -> RollbackResult | None:
        res = self._results.get(request_id)
        return copy.deepcopy(res) if res else None
