"""Snapshot and Deployment records — the rollback targets."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from src.contracts.enums import DeploymentStatus


@dataclass(slots=True)
class Snapshot:
    """Captured deployable state of an environment.

    ``verified`` is the only gate for rollback eligibility.
    """

    environment: str
    source_revision: str
    created_at: datetime
    file_manifest: frozenset[str] = field(default_factory=frozenset)
    verified: bool = False
    verified_by: str | None = None
    database_backup: str | None = None
    id: str = ""

    @property
    def short_revision(self) -> str:
        return self.source_revision[:8]


@dataclass(slots=True)
class Deployment:
    """Rollout of one snapshot to an environment."""

    environment: str
    version: str
    snapshot_id: str
    deployed_by: str
    deployed_at: datetime
    status: DeploymentStatus = DeploymentStatus.PENDING
    rollback_available: bool = False
    failure_reason: str | None = None
    id: str = ""
