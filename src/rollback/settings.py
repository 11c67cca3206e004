"""Rollback engine settings built from ``config/rollback.yaml``.

    store_timeout_sec: 5.0
    apply_timeout_sec: 60.0
    approvers: [alice, bob]      # empty → any principal may decide
    integrity:
      reject_unexpected_files: true
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from src.stores.timeouts import DEFAULT_STORE_TIMEOUT_SEC

log = logging.getLogger(__name__)

DEFAULT_APPLY_TIMEOUT_SEC = 60.0


@dataclass(slots=True)
class RollbackSettings:
    store_timeout_sec: float = DEFAULT_STORE_TIMEOUT_SEC
    apply_timeout_sec: float = DEFAULT_APPLY_TIMEOUT_SEC
    approvers: frozenset[str] = frozenset()
    reject_unexpected_files: bool = True

    def may_decide(self, principal: str) -> bool:
        return not self.approvers or principal in self.approvers

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> RollbackSettings:
        integrity = cfg.get("integrity", {}) or {}
        settings = cls(
            store_timeout_sec=float(cfg.get("store_timeout_sec", DEFAULT_STORE_TIMEOUT_SEC)),
            apply_timeout_sec=float(cfg.get("apply_timeout_sec", DEFAULT_APPLY_TIMEOUT_SEC)),
            approvers=frozenset(str(a) for a in cfg.get("approvers", []) or []),
            reject_unexpected_files=bool(integrity.get("reject_unexpected_files", True)),
        )
        if settings.store_timeout_sec <= 0 or settings.apply_timeout_sec <= 0:
            raise ValueError("timeouts must be positive")
        log.debug(
            "Rollback settings: %d approvers, apply timeout %.1fs",
            len(settings.approvers), settings.apply_timeout_sec,
        )
        return settings
