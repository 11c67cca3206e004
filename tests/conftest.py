"""Shared fixtures for the sentinel and rollback engine tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from src.contracts.alert import SecurityAlert
from src.contracts.audit import AuditLogEntry
from src.contracts.enums import AlertStatus, AlertType, DeploymentStatus, Severity
from src.contracts.snapshot import Deployment, Snapshot
from src.rollback.engine import RollbackEngine
from src.rollback.environment import InMemoryEnvironmentTarget
from src.rollback.settings import RollbackSettings
from src.sentinel.detector import AnomalyDetector
from src.sentinel.settings import DetectorSettings
from src.stores.memory import (
    InMemoryAlertStore,
    InMemoryAuditLog,
    InMemoryDeploymentStore,
    InMemoryRollbackRequestStore,
    InMemorySnapshotStore,
)

BASE_TS = datetime(2026, 3, 1, 10, 0, 0, tzinfo=UTC)


# ── Helper: records with sensible defaults ───────────────────────────────


def make_alert(
    *,
    type: AlertType = AlertType.SYSTEM_ANOMALY,
    severity: Severity = Severity.MEDIUM,
    title: str = "Test Alert",
    description: str = "test alert",
    explanation: str = "OFF-HOURS ACCESS: test. Recommended actions: monitor.",
    detected_at: datetime = BASE_TS,
    evidence: dict[str, str] | None = None,
    rollback_suggested: bool = False,
    status: AlertStatus = AlertStatus.NEW,
    id: str = "",
) -> SecurityAlert:
    return SecurityAlert(
        type=type,
        severity=severity,
        title=title,
        description=description,
        explanation=explanation,
        detected_at=detected_at,
        evidence=evidence or {},
        rollback_suggested=rollback_suggested,
        status=status,
        id=id,
    )


def make_snapshot(
    *,
    environment: str = "staging",
    source_revision: str = "a1b2c3d4e5f60718",
    created_at: datetime = BASE_TS,
    file_manifest: frozenset[str] = frozenset({"config/app.yaml", "config/database.yaml"}),
    verified: bool = True,
    verified_by: str | None = "qa-bot",
    database_backup: str | None = None,
    id: str = "",
) -> Snapshot:
    return Snapshot(
        environment=environment,
        source_revision=source_revision,
        created_at=created_at,
        file_manifest=file_manifest,
        verified=verified,
        verified_by=verified_by if verified else None,
        database_backup=database_backup,
        id=id,
    )


def make_deployment(
    *,
    environment: str = "staging",
    version: str = "v1.4.0",
    snapshot_id: str = "SNP-000000000001",
    deployed_by: str = "ci",
    deployed_at: datetime = BASE_TS,
    status: DeploymentStatus = DeploymentStatus.SUCCESS,
    rollback_available: bool = True,
) -> Deployment:
    return Deployment(
        environment=environment,
        version=version,
        snapshot_id=snapshot_id,
        deployed_by=deployed_by,
        deployed_at=deployed_at,
        status=status,
        rollback_available=rollback_available,
    )


def make_audit_entry(
    *,
    action_type: str = "test_action",
    description: str = "test entry",
    timestamp: datetime = BASE_TS,
    requires_approval: bool = False,
    ai_reasoning: str | None = None,
    context_data: dict | None = None,
) -> AuditLogEntry:
    return AuditLogEntry(
        action_type=action_type,
        description=description,
        timestamp=timestamp,
        requires_approval=requires_approval,
        ai_reasoning=ai_reasoning,
        context_data=context_data or {},
    )


# ── Clock ────────────────────────────────────────────────────────────────


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = BASE_TS) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ── Stores ───────────────────────────────────────────────────────────────


@pytest.fixture
def alert_store() -> InMemoryAlertStore:
    return InMemoryAlertStore()


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def snapshot_store() -> InMemorySnapshotStore:
    return InMemorySnapshotStore()


@pytest.fixture
def deployment_store() -> InMemoryDeploymentStore:
    return InMemoryDeploymentStore()


@pytest.fixture
def request_store() -> InMemoryRollbackRequestStore:
    return InMemoryRollbackRequestStore()


@pytest.fixture
def target() -> InMemoryEnvironmentTarget:
    return InMemoryEnvironmentTarget()


# ── Components ───────────────────────────────────────────────────────────


@pytest.fixture
def detector_settings() -> DetectorSettings:
    return DetectorSettings(known_login_sources=frozenset({"10.0.0.5"}))


@pytest.fixture
def detector(alert_store, audit_log, detector_settings, clock) -> AnomalyDetector:
    return AnomalyDetector(alert_store, audit_log, settings=detector_settings, clock=clock)


@pytest.fixture
def rollback_settings() -> RollbackSettings:
    return RollbackSettings(approvers=frozenset({"lead", "ops"}))


@pytest.fixture
def engine(
    snapshot_store, deployment_store, request_store, audit_log, target, rollback_settings, clock
) -> RollbackEngine:
    return RollbackEngine(
        snapshot_store,
        deployment_store,
        request_store,
        audit_log,
        target,
        settings=rollback_settings,
        clock=clock,
    )
