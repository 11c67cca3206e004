"""Explanation templates.

Each function renders the human-facing explanation of one alert class from
structured inputs only, so identical inputs always give identical text.
Every explanation opens with the class name in upper case, states the
evidence, and ends with recommended actions.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from src.contracts.enums import ChangeClass, Severity
from src.shared.timeutil import iso

_CHANGE_LABELS: dict[ChangeClass, str] = {
    ChangeClass.CREDENTIAL_MODIFICATION: "credential modification",
    ChangeClass.PRIVILEGE_ESCALATION: "privilege escalation",
    ChangeClass.NETWORK_CONFIGURATION: "network configuration change",
    ChangeClass.GENERAL_CONFIGURATION: "general configuration change",
}


def _actions(items: Sequence[str]) -> str:
    return "Recommended actions: " + "; ".join(items) + "."


def honeytoken(
    token_type: str,
    source_ip: str,
    accessed_at: datetime,
    table: str = "",
    column: str = "",
) -> str:
    where = f" in {table}.{column}" if table and column else ""
    origin = source_ip or "an unknown source"
    return (
        f"CRITICAL SECURITY BREACH: the {token_type} honeytoken{where} was accessed "
        f"from {origin} at {iso(accessed_at)}. Honeytokens are decoy records that no "
        "legitimate workload reads, so this access indicates a probable database breach "
        "and an attempt to extract sensitive data. "
        + _actions([
            f"block {origin} immediately",
            "rotate database credentials and API keys",
            "investigate query logs for further exfiltration",
            "roll back to the last verified snapshot if tampering is confirmed",
        ])
    )


def auth_flood(
    identity: str,
    failed_attempts: int,
    window_sec: float,
    severity: Severity,
    source_ip: str = "",
) -> str:
    origin = f" from {source_ip}" if source_ip else ""
    actions = [
        "block the source address",
        "temporarily lock the account",
        "investigate whether any attempt succeeded",
        "strengthen authentication with MFA",
    ]
    if severity is Severity.HIGH:
        actions.insert(0, "escalate to the security on-call")
    return (
        f"BRUTE FORCE ATTACK: {failed_attempts} failed login attempts for '{identity}'"
        f"{origin} within {window_sec:.0f}s. The pattern matches password guessing or "
        "credential stuffing. "
        + _actions(actions)
    )


def data_export(
    current: int,
    baseline: int,
    increase_pct: float,
    severity: Severity,
    affected_tables: Sequence[str] = (),
) -> str:
    tables = f" Affected tables: {', '.join(affected_tables)}." if affected_tables else ""
    actions = [
        "investigate the sessions issuing bulk reads",
        "block the offending accounts if the export is not authorised",
        "rotate credentials if exfiltration is confirmed",
    ]
    if severity is Severity.CRITICAL:
        actions.append("consider rolling back to the last verified snapshot")
    return (
        f"ANOMALOUS DATA EXPORT: query volume is {increase_pct:.0f}% above baseline "
        f"({current} queries vs a baseline of {baseline}). A jump of this size is a "
        f"typical sign of data exfiltration.{tables} "
        + _actions(actions)
    )


def off_hours(query_count: int, hour: int, business_start: int, business_end: int) -> str:
    return (
        f"OFF-HOURS ACCESS: {query_count} database queries at {hour:02d}:00, outside "
        f"business hours ({business_start:02d}:00-{business_end:02d}:00). "
        + _actions([
            "verify the activity with the account owner",
            "investigate the queried tables",
            "monitor the account for further off-hours sessions",
        ])
    )


def config_drift(
    file_path: str,
    change_type: ChangeClass,
    baseline_hash: str,
    current_hash: str,
    severity: Severity,
) -> str:
    label = _CHANGE_LABELS[change_type]
    heading = (
        "UNAUTHORIZED CONFIGURATION CHANGE"
        if severity is Severity.CRITICAL
        else "CONFIGURATION DRIFT"
    )
    actions = ["review the configuration diff against the change log"]
    if severity is Severity.CRITICAL:
        actions += [
            "rotate credentials referenced by the file",
            "investigate who had write access",
            "roll back to the last verified snapshot",
        ]
    else:
        actions.append("monitor the file for further changes")
    return (
        f"{heading}: {file_path} changed ({label}); hash "
        f"{baseline_hash[:8]}... -> {current_hash[:8]}.... "
        + _actions(actions)
    )


def unusual_login_source(identity: str, source: str) -> str:
    return (
        f"UNUSUAL LOGIN SOURCE: '{identity}' logged in from {source}, which is not "
        "among the known login sources. "
        + _actions([
            "verify the login with the account owner",
            "investigate the session activity",
            "block the source if the login is not recognised",
            "trust the source if it is a legitimate new location",
        ])
    )
