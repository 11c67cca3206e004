"""Severity decision tables.

Pure functions of their inputs.  The rollback-suggestion policy is a single
rule: an alert suggests rollback iff its severity is critical.  Every
critical outcome below (honeytoken access, ≥300% export growth, credential
or privilege config change) is a data-integrity signal; auth floods top
out at high, so they never suggest rollback.
"""

from __future__ import annotations

from src.contracts.enums import ChangeClass, Severity

HONEYTOKEN_SEVERITY = Severity.CRITICAL
OFF_HOURS_SEVERITY = Severity.MEDIUM
UNUSUAL_SOURCE_SEVERITY = Severity.MEDIUM

_DRIFT_SEVERITY: dict[ChangeClass, Severity] = {
    ChangeClass.CREDENTIAL_MODIFICATION: Severity.CRITICAL,
    ChangeClass.PRIVILEGE_ESCALATION: Severity.CRITICAL,
    ChangeClass.NETWORK_CONFIGURATION: Severity.MEDIUM,
    ChangeClass.GENERAL_CONFIGURATION: Severity.LOW,
}


def suggests_rollback(severity: Severity) -> bool:
    return severity is Severity.CRITICAL


def auth_flood_severity(
    failed_attempts: int,
    threshold: int = 5,
    high_threshold: int = 10,
) -> Severity | None:
    """``> threshold`` failures → medium, ``> high_threshold`` → high."""
    if failed_attempts > high_threshold:
        return Severity.HIGH
    if failed_attempts > threshold:
        return Severity.MEDIUM
    return None


def export_increase_pct(current: int, baseline: int) -> float:
    """Percentage growth of *current* over *baseline*."""
    if baseline <= 0:
        raise ValueError(f"baseline must be positive, got {baseline}")
    return (current - baseline) / baseline * 100


def export_severity(
    increase_pct: float,
    high_pct: float = 50.0,
    critical_pct: float = 300.0,
) -> Severity | None:
    if increase_pct >= critical_pct:
        return Severity.CRITICAL
    if increase_pct >= high_pct:
        return Severity.HIGH
    return None


def is_off_hours(hour: int, business_start: int = 6, business_end: int = 22) -> bool:
    """True when *hour* falls outside ``[business_start, business_end)``."""
    if not 0 <= hour <= 23:
        raise ValueError(f"hour must be in 0..23, got {hour}")
    return hour < business_start or hour >= business_end


def off_hours_severity(
    query_count: int,
    hour: int,
    business_start: int = 6,
    business_end: int = 22,
    query_floor: int = 3,
) -> Severity | None:
    if is_off_hours(hour, business_start, business_end) and query_count > query_floor:
        return OFF_HOURS_SEVERITY
    return None


def drift_severity(change: ChangeClass) -> Severity:
    return _DRIFT_SEVERITY[change]
