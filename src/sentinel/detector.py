"""AnomalyDetector — the stateful front of the sentinel.

Holds the mutable detection state (per-identity login-failure streaks,
configuration hash baselines, the deployed honeytoken registry, known login
sources), turns public ``record_*`` calls into typed signals, runs them
through :func:`src.sentinel.rules.evaluate` and persists whatever fires.

Every emitted alert is written to the AlertStore and produces exactly one
AuditLog entry ``<alert_type>_detected``.  Store failures propagate to the
caller unchanged; the detector never retries.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import TypeVar

from src.contracts.alert import SecurityAlert
from src.contracts.audit import AuditLogEntry
from src.contracts.enums import AlertStatus, ChangeClass, Severity
from src.contracts.errors import AlertNotFoundError, AlertStateError
from src.contracts.signals import (
    AlertSignal,
    ConfigChange,
    DatabaseAccess,
    DataExportSample,
    HoneytokenAccess,
    LoginFailureBurst,
    LoginSource,
)
from src.contracts.status import SecurityStatus
from src.sentinel import policy
from src.sentinel.rules import evaluate
from src.sentinel.settings import DetectorSettings, HoneytokenSpec
from src.shared.config_loader import load_optional_yaml
from src.shared.timeutil import utc_now
from src.stores.base import AlertStore, AuditLog
from src.stores.timeouts import bounded

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class _FailureStreak:
    failures: list[datetime] = field(default_factory=list)
    alerted: Severity | None = None  # highest tier already reported


def sha256_file(path: str | Path) -> str:
    """Hex SHA-256 of a file's bytes."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


class AnomalyDetector:
    """Converts operational signals into persisted, audited SecurityAlerts."""

    def __init__(
        self,
        alerts: AlertStore,
        audit: AuditLog,
        settings: DetectorSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._alerts = alerts
        self._audit = audit
        self.settings = settings or DetectorSettings()
        self._clock = clock

        self._streaks: dict[str, _FailureStreak] = {}
        self._streak_lock = asyncio.Lock()
        self._config_hashes: dict[str, str] = {}
        self._config_lock = asyncio.Lock()
        self._honeytokens: dict[str, HoneytokenSpec] = {}
        self._known_sources: set[str] = set(self.settings.known_login_sources)

    # ── plumbing ──────────────────────────────────────────────────────────

    async def _call(self, operation: str, call: Awaitable[T]) -> T:
        return await bounded(call, operation=operation, timeout=self.settings.store_timeout_sec)

    async def _emit(self, alert: SecurityAlert) -> SecurityAlert:
        alert_id = await self._call("alerts.create", self._alerts.create(alert))
        alert.id = alert_id
        await self._call(
            "audit.append",
            self._audit.append(
                AuditLogEntry(
                    action_type=f"{alert.type.value}_detected",
                    description=f"Security alert created: {alert.title} ({alert.severity.value})",
                    timestamp=self._clock(),
                    ai_reasoning=alert.explanation,
                    context_data={
                        "alert_id": alert_id,
                        "type": alert.type.value,
                        "severity": alert.severity.value,
                        "rollback_suggested": alert.rollback_suggested,
                    },
                )
            ),
        )
        log.warning(
            "Alert %s [%s/%s] %s%s",
            alert_id, alert.type.value, alert.severity.value, alert.title,
            " (rollback suggested)" if alert.rollback_suggested else "",
        )
        return alert

    async def process(self, signal: AlertSignal) -> SecurityAlert | None:
        """Evaluate a typed signal and persist the alert it raises, if any."""
        alert = evaluate(signal, self.settings)
        if alert is None:
            log.debug("Signal %s raised no alert", type(signal).__name__)
            return None
        return await self._emit(alert)

    # ═══════════════════════════════════════════════════════════════════════
    #  Honeytokens
    # ═══════════════════════════════════════════════════════════════════════

    async def deploy_honeytokens(self) -> int:
        """Register the configured decoys and audit each deployment."""
        deployed = 0
        for token in self.settings.honeytokens:
            if token.value in self._honeytokens:
                continue
            await self._call(
                "audit.append",
                self._audit.append(
                    AuditLogEntry(
                        action_type="honeytoken_deployed",
                        description=f"Deployed {token.type} honeytoken",
                        timestamp=self._clock(),
                        context_data={
                            "token_type": token.type,
                            "table_name": token.table,
                            "column_name": token.column,
                        },
                    )
                ),
            )
            self._honeytokens[token.value] = token
            deployed += 1
        log.info("Deployed %d honeytokens (%d active)", deployed, len(self._honeytokens))
        return deployed

    async def record_honeytoken_access(
        self,
        token_value: str,
        source_ip: str,
        access_context: str = "",
    ) -> SecurityAlert | None:
        """Report that *token_value* was read; decoys always alert critical."""
        token = self._honeytokens.get(token_value)
        if token is None:
            log.debug("Value read from %s is not an instrumented honeytoken", source_ip)
            return None
        return await self.process(
            HoneytokenAccess(
                token_type=token.type,
                token_value=token.value,
                source_ip=source_ip,
                accessed_at=self._clock(),
                table=token.table,
                column=token.column,
                access_context=access_context,
            )
        )

    # ═══════════════════════════════════════════════════════════════════════
    #  Logins
    # ═══════════════════════════════════════════════════════════════════════

    async def record_login_attempt(
        self,
        identity: str,
        successful: bool,
        source_ip: str | None = None,
    ) -> SecurityAlert | None:
        """Track consecutive failures per identity.

        A success clears the streak.  A failure that pushes the streak into
        a severity tier not yet reported for this streak raises an
        ``auth_flood`` alert (medium above the threshold, high above the
        high threshold).  Failures older than the window fall out of the
        streak, which re-arms the tiers.
        """
        now = self._clock()
        window = timedelta(seconds=self.settings.auth_flood_window_sec)

        async with self._streak_lock:
            if successful:
                if self._streaks.pop(identity, None) is not None:
                    log.debug("Login success for %s, failure streak reset", identity)
                return None

            streak = self._streaks.setdefault(identity, _FailureStreak())
            streak.failures = [t for t in streak.failures if now - t <= window]
            if streak.alerted is not None and self._flood_tier(len(streak.failures)) is None:
                streak.alerted = None
            streak.failures.append(now)

            count = len(streak.failures)
            tier = self._flood_tier(count)
            if tier is None or (streak.alerted is not None and tier.rank <= streak.alerted.rank):
                return None
            previous_tier = streak.alerted
            streak.alerted = tier

        try:
            return await self.process(
                LoginFailureBurst(
                    identity=identity,
                    failed_attempts=count,
                    last_attempt=now,
                    source_ip=source_ip or "",
                )
            )
        except Exception:
            # the caller retries this attempt: forget it and re-arm the tier
            async with self._streak_lock:
                if self._streaks.get(identity) is streak:
                    if now in streak.failures:
                        streak.failures.remove(now)
                    if streak.alerted is tier:
                        streak.alerted = previous_tier
            log.warning("Auth flood alert for %s not stored, attempt rolled back", identity)
            raise

    def _flood_tier(self, count: int) -> Severity | None:
        return policy.auth_flood_severity(
            count,
            self.settings.auth_flood_threshold,
            self.settings.auth_flood_high_threshold,
        )

    def failed_attempts(self, identity: str) -> int:
        streak = self._streaks.get(identity)
        return len(streak.failures) if streak else 0

    async def record_login_source(self, identity: str, source: str) -> SecurityAlert | None:
        if source in self._known_sources:
            return None
        return await self.process(LoginSource(identity=identity, source=source, observed_at=self._clock()))

    def trust_login_source(self, source: str) -> None:
        self._known_sources.add(source)
        log.info("Login source %s added to the known set", source)

    # ═══════════════════════════════════════════════════════════════════════
    #  Database activity
    # ═══════════════════════════════════════════════════════════════════════

    async def record_data_export_sample(
        self,
        current: int,
        baseline: int,
        affected_tables: Iterable[str] = (),
    ) -> SecurityAlert | None:
        if current < 0:
            raise ValueError(f"current must be non-negative, got {current}")
        if baseline <= 0:
            raise ValueError(f"baseline must be positive, got {baseline}")
        return await self.process(
            DataExportSample(
                current=current,
                baseline=baseline,
                observed_at=self._clock(),
                affected_tables=tuple(affected_tables),
            )
        )

    async def record_database_access(self, query_count: int, hour: int) -> SecurityAlert | None:
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be in 0..23, got {hour}")
        return await self.process(
            DatabaseAccess(query_count=query_count, hour=hour, observed_at=self._clock())
        )

    # ═══════════════════════════════════════════════════════════════════════
    #  Configuration drift
    # ═══════════════════════════════════════════════════════════════════════

    async def record_config_hash(
        self,
        file_path: str,
        content_hash: str,
        change_type: ChangeClass | str = ChangeClass.GENERAL_CONFIGURATION,
    ) -> SecurityAlert | None:
        """Compare *content_hash* with the tracked baseline for *file_path*.

        The first hash seen for a path becomes its baseline.  A different
        hash raises a drift alert and becomes the new baseline.
        """
        async with self._config_lock:
            previous = self._config_hashes.get(file_path)
            self._config_hashes[file_path] = content_hash
        if previous is None:
            log.debug("Baseline recorded for %s", file_path)
            return None
        if previous == content_hash:
            return None
        try:
            return await self.process(
                ConfigChange(
                    file_path=file_path,
                    change_type=ChangeClass.parse(change_type),
                    baseline_hash=previous,
                    current_hash=content_hash,
                    observed_at=self._clock(),
                )
            )
        except Exception:
            async with self._config_lock:
                if self._config_hashes.get(file_path) == content_hash:
                    self._config_hashes[file_path] = previous
            log.warning("Drift alert for %s not stored, baseline kept", file_path)
            raise

    async def scan_config_files(self, paths: Iterable[str] | None = None) -> list[SecurityAlert]:
        """Hash tracked files off the event loop and feed the drift rule.

        Files that do not exist are skipped.
        """
        tracked = self.settings.tracked_files
        targets = list(paths) if paths is not None else list(tracked)
        raised: list[SecurityAlert] = []
        for path in targets:
            if not Path(path).is_file():
                log.debug("Tracked file %s not found, skipped", path)
                continue
            digest = await asyncio.to_thread(sha256_file, path)
            change = tracked.get(path, ChangeClass.GENERAL_CONFIGURATION)
            alert = await self.record_config_hash(path, digest, change)
            if alert is not None:
                raised.append(alert)
        return raised

    # ═══════════════════════════════════════════════════════════════════════
    #  Alert triage
    # ═══════════════════════════════════════════════════════════════════════

    async def _load_open_alert(self, alert_id: str) -> SecurityAlert:
        alert = await self._call("alerts.get", self._alerts.get(alert_id))
        if alert is None:
            raise AlertNotFoundError(alert_id)
        if alert.status.is_terminal:
            raise AlertStateError(
                f"Security alert {alert_id} is already {alert.status.value}"
            )
        return alert

    async def assign_alert(
        self,
        alert_id: str,
        assignee: str,
        assigned_by: str | None = None,
    ) -> SecurityAlert:
        alert = await self._load_open_alert(alert_id)
        alert.status = AlertStatus.ASSIGNED
        alert.assigned_to = assignee
        await self._call("alerts.update", self._alerts.update(alert))
        await self._call(
            "audit.append",
            self._audit.append(
                AuditLogEntry(
                    action_type="security_alert_assigned",
                    description=f"Assigned security alert: {alert.title} to {assignee}",
                    timestamp=self._clock(),
                    context_data={
                        "alert_id": alert_id,
                        "assigned_to": assignee,
                        "assigned_by": assigned_by,
                    },
                    user_id=assigned_by,
                )
            ),
        )
        log.info("Alert %s assigned to %s", alert_id, assignee)
        return alert

    async def resolve_alert(
        self,
        alert_id: str,
        resolution: AlertStatus,
        resolved_by: str,
    ) -> SecurityAlert:
        """Close an alert as ``resolved`` or ``false_positive`` (terminal)."""
        if not resolution.is_terminal:
            raise AlertStateError(f"'{resolution.value}' is not a resolution status")
        alert = await self._load_open_alert(alert_id)
        alert.status = resolution
        alert.resolved_at = self._clock()
        await self._call("alerts.update", self._alerts.update(alert))
        await self._call(
            "audit.append",
            self._audit.append(
                AuditLogEntry(
                    action_type="security_alert_resolved",
                    description=f"Resolved security alert: {alert.title} as {resolution.value}",
                    timestamp=self._clock(),
                    context_data={
                        "alert_id": alert_id,
                        "resolution": resolution.value,
                        "resolved_by": resolved_by,
                    },
                    user_id=resolved_by,
                    requires_approval=True,
                    approved=True,
                    approved_by=resolved_by,
                )
            ),
        )
        log.info("Alert %s closed as %s by %s", alert_id, resolution.value, resolved_by)
        return alert

    # ═══════════════════════════════════════════════════════════════════════
    #  Status
    # ═══════════════════════════════════════════════════════════════════════

    async def get_recent_alerts(self, limit: int = 10) -> list[SecurityAlert]:
        return await self._call("alerts.list_recent", self._alerts.list_recent(limit))

    async def get_security_status(self) -> SecurityStatus:
        active: list[SecurityAlert] = []
        for status in (AlertStatus.NEW, AlertStatus.ASSIGNED):
            active.extend(await self._call("alerts.list_by_status", self._alerts.list_by_status(status)))
        by_sev = Counter(a.severity.value for a in active)
        by_type = Counter(a.type.value for a in active)
        return SecurityStatus(
            honeytokens_deployed=len(self._honeytokens),
            config_files_monitored=len(self._config_hashes),
            known_login_sources=len(self._known_sources),
            active_alerts=len(active),
            critical_alerts=by_sev.get(Severity.CRITICAL.value, 0),
            rollback_suggested_alerts=sum(1 for a in active if a.rollback_suggested),
            last_check=self._clock(),
            alerts_by_severity=dict(by_sev),
            alerts_by_type=dict(by_type),
        )


def build_detector(
    config_dir: str,
    alerts: AlertStore,
    audit: AuditLog,
    clock: Callable[[], datetime] = utc_now,
) -> AnomalyDetector:
    """Create a detector from ``<config_dir>/detector.yaml`` (defaults if absent)."""
    settings = DetectorSettings.from_config(load_optional_yaml(f"{config_dir}/detector.yaml"))
    return AnomalyDetector(alerts, audit, settings=settings, clock=clock)
