"""Persistence collaborators consumed by the detector and the rollback engine.

  base     — abstract async contracts (AlertStore, SnapshotStore, ...)
  memory   — in-process implementations used by the CLI and the tests
  timeouts — bounded store calls: timeout / connectivity → retryable errors
"""

from src.stores.base import (
    AlertStore,
    AuditLog,
    DeploymentStore,
    RollbackRequestStore,
    SnapshotStore,
)
from src.stores.memory import (
    InMemoryAlertStore,
    InMemoryAuditLog,
    InMemoryDeploymentStore,
    InMemoryRollbackRequestStore,
    InMemorySnapshotStore,
)

__all__ = [
    "AlertStore",
    "AuditLog",
    "DeploymentStore",
    "InMemoryAlertStore",
    "InMemoryAuditLog",
    "InMemoryDeploymentStore",
    "InMemoryRollbackRequestStore",
    "InMemorySnapshotStore",
    "RollbackRequestStore",
    "SnapshotStore",
]
