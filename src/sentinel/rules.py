"""Detector rules — one pure function per signal variant.

``evaluate`` dispatches on the signal's class and returns a new
``SecurityAlert`` (without an id) or ``None``.  Rules do not touch stores
or counters; the stateful parts (failure streaks, hash baselines, the
honeytoken registry) live in :mod:`src.sentinel.detector`.
"""

from __future__ import annotations

import logging

from src.contracts.alert import SecurityAlert
from src.contracts.enums import AlertType
from src.contracts.signals import (
    AlertSignal,
    ConfigChange,
    DatabaseAccess,
    DataExportSample,
    HoneytokenAccess,
    LoginFailureBurst,
    LoginSource,
)
from src.sentinel import explanations, policy
from src.sentinel.settings import DetectorSettings
from src.shared.timeutil import iso

log = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Public API
# ═══════════════════════════════════════════════════════════════════════════


def evaluate(signal: AlertSignal, settings: DetectorSettings) -> SecurityAlert | None:
    """Apply the rule matching *signal* and return the alert it raises."""
    if isinstance(signal, HoneytokenAccess):
        return _honeytoken_access(signal)
    if isinstance(signal, LoginFailureBurst):
        return _auth_flood(signal, settings)
    if isinstance(signal, DataExportSample):
        return _data_export(signal, settings)
    if isinstance(signal, DatabaseAccess):
        return _off_hours_access(signal, settings)
    if isinstance(signal, ConfigChange):
        return _config_drift(signal)
    if isinstance(signal, LoginSource):
        return _unusual_login_source(signal)
    raise TypeError(f"Unsupported signal type: {type(signal).__name__}")


# ═══════════════════════════════════════════════════════════════════════════
#  Rule implementations
# ═══════════════════════════════════════════════════════════════════════════


def _honeytoken_access(sig: HoneytokenAccess) -> SecurityAlert:
    sev = policy.HONEYTOKEN_SEVERITY
    return SecurityAlert(
        type=AlertType.DATABASE_BREACH,
        severity=sev,
        title="Honeytoken Access Detected",
        description=f"Unauthorized access to honeytoken detected: {sig.token_type}",
        explanation=explanations.honeytoken(
            sig.token_type, sig.source_ip, sig.accessed_at, sig.table, sig.column
        ),
        detected_at=sig.accessed_at,
        rollback_suggested=policy.suggests_rollback(sev),
        evidence={
            "honeytoken_type": sig.token_type,
            "access_time": iso(sig.accessed_at),
            "source_ip": sig.source_ip,
            "table": sig.table,
            "column": sig.column,
            "access_context": sig.access_context,
        },
    )


def _auth_flood(sig: LoginFailureBurst, settings: DetectorSettings) -> SecurityAlert | None:
    sev = policy.auth_flood_severity(
        sig.failed_attempts,
        settings.auth_flood_threshold,
        settings.auth_flood_high_threshold,
    )
    if sev is None:
        return None
    origin = f" from {sig.source_ip}" if sig.source_ip else ""
    return SecurityAlert(
        type=AlertType.AUTH_FLOOD,
        severity=sev,
        title="Failed Login Flood Detected",
        description=(
            f"{sig.failed_attempts} failed login attempts for {sig.identity}{origin}"
        ),
        explanation=explanations.auth_flood(
            sig.identity, sig.failed_attempts, settings.auth_flood_window_sec, sev, sig.source_ip
        ),
        detected_at=sig.last_attempt,
        # access-control signal: never a rollback trigger
        rollback_suggested=False,
        evidence={
            "username": sig.identity,
            "failed_attempts": str(sig.failed_attempts),
            "source_ip": sig.source_ip,
            "last_attempt": iso(sig.last_attempt),
            "window_sec": f"{settings.auth_flood_window_sec:.0f}",
        },
    )


def _data_export(sig: DataExportSample, settings: DetectorSettings) -> SecurityAlert | None:
    pct = policy.export_increase_pct(sig.current, sig.baseline)
    sev = policy.export_severity(pct, settings.export_high_pct, settings.export_critical_pct)
    if sev is None:
        return None
    return SecurityAlert(
        type=AlertType.DATABASE_BREACH,
        severity=sev,
        title="Abnormal Data Export Volume",
        description=(
            f"Query volume {pct:.0f}% above baseline "
            f"({sig.current} vs {sig.baseline})"
        ),
        explanation=explanations.data_export(
            sig.current, sig.baseline, pct, sev, sig.affected_tables
        ),
        detected_at=sig.observed_at,
        rollback_suggested=policy.suggests_rollback(sev),
        evidence={
            "current_query_count": str(sig.current),
            "baseline_count": str(sig.baseline),
            "percentage_increase": f"{pct:.1f}",
            "affected_tables": ",".join(sig.affected_tables),
        },
    )


def _off_hours_access(sig: DatabaseAccess, settings: DetectorSettings) -> SecurityAlert | None:
    sev = policy.off_hours_severity(
        sig.query_count,
        sig.hour,
        settings.business_start_hour,
        settings.business_end_hour,
        settings.off_hours_query_floor,
    )
    if sev is None:
        return None
    return SecurityAlert(
        type=AlertType.SYSTEM_ANOMALY,
        severity=sev,
        title="Off-Hours Database Access",
        description=f"{sig.query_count} database queries at {sig.hour:02d}:00",
        explanation=explanations.off_hours(
            sig.query_count, sig.hour, settings.business_start_hour, settings.business_end_hour
        ),
        detected_at=sig.observed_at,
        rollback_suggested=policy.suggests_rollback(sev),
        evidence={
            "query_count": str(sig.query_count),
            "access_hour": f"{sig.hour:02d}:00",
            "business_hours": (
                f"{settings.business_start_hour:02d}:00-{settings.business_end_hour:02d}:00"
            ),
        },
    )


def _config_drift(sig: ConfigChange) -> SecurityAlert:
    sev = policy.drift_severity(sig.change_type)
    return SecurityAlert(
        type=AlertType.SYSTEM_ANOMALY,
        severity=sev,
        title="Configuration Drift Detected",
        description=(
            f"Unexpected change in configuration file {sig.file_path} "
            f"({sig.change_type.value})"
        ),
        explanation=explanations.config_drift(
            sig.file_path, sig.change_type, sig.baseline_hash, sig.current_hash, sev
        ),
        detected_at=sig.observed_at,
        rollback_suggested=policy.suggests_rollback(sev),
        evidence={
            "file_path": sig.file_path,
            "change_type": sig.change_type.value,
            "baseline_hash": sig.baseline_hash,
            "current_hash": sig.current_hash,
        },
    )


def _unusual_login_source(sig: LoginSource) -> SecurityAlert:
    sev = policy.UNUSUAL_SOURCE_SEVERITY
    return SecurityAlert(
        type=AlertType.SYSTEM_ANOMALY,
        severity=sev,
        title="Unusual Login Source",
        description=f"Login for {sig.identity} from unrecognised source {sig.source}",
        explanation=explanations.unusual_login_source(sig.identity, sig.source),
        detected_at=sig.observed_at,
        rollback_suggested=policy.suggests_rollback(sev),
        evidence={
            "username": sig.identity,
            "source_ip": sig.source,
            "login_time": iso(sig.observed_at),
        },
    )
