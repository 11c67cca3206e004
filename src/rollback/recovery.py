"""Failure analysis and recovery options for failed rollbacks.

The category comes from the exception type raised by the failing step,
never from its message.  Every option list covers database-level and
configuration-level recovery plus escalation to an administrator.
"""

from __future__ import annotations

from src.contracts.enums import FailureCategory
from src.contracts.errors import (
    RollbackExecutionError,
    StoreTimeoutError,
    StoreUnavailableError,
)
from src.contracts.rollback import FailureAnalysis

# category → (severity, root cause, affected components, summary)
_PROFILES: dict[FailureCategory, tuple[str, str, list[str], str]] = {
    FailureCategory.DATABASE: (
        "high",
        "Database connection or query failure during rollback",
        ["database", "data_layer"],
        "Database-related rollback failure detected. Data integrity may be at risk.",
    ),
    FailureCategory.FILESYSTEM: (
        "medium",
        "File system access or permission issue",
        ["filesystem", "configuration"],
        "File system access issue during rollback. Configuration files may be affected.",
    ),
    FailureCategory.NETWORK: (
        "medium",
        "Network connectivity issue during rollback",
        ["network", "external_services"],
        "Network connectivity problem during rollback. External dependencies unavailable.",
    ),
    FailureCategory.TIMEOUT: (
        "medium",
        "Operation timed out during rollback execution",
        ["system_resources"],
        "Rollback operation timed out. System may be under heavy load.",
    ),
    FailureCategory.RESOURCES: (
        "high",
        "Insufficient system resources for rollback",
        ["system_resources", "memory"],
        "Insufficient system resources for rollback. Memory or disk space may be limited.",
    ),
    FailureCategory.INTEGRITY: (
        "high",
        "Environment state does not match the snapshot after apply",
        ["configuration", "deployment"],
        "Post-rollback integrity verification failed. Environment state is inconsistent.",
    ),
    FailureCategory.SNAPSHOT: (
        "high",
        "Target snapshot lost its verified status before apply",
        ["snapshot_store"],
        "Rollback target is no longer verified. No changes were applied.",
    ),
    FailureCategory.UNKNOWN: (
        "medium",
        "Unclassified error during rollback",
        ["system"],
        "Rollback failed due to an unidentified issue. Manual investigation required.",
    ),
}

_OPTIONS: dict[FailureCategory, list[str]] = {
    FailureCategory.DATABASE: [
        "Perform manual database restoration from verified backup",
        "Execute database integrity check and repair",
        "Rollback database schema changes only",
        "Switch to read-only mode while investigating database issues",
        "Contact database administrator for emergency recovery",
    ],
    FailureCategory.FILESYSTEM: [
        "Manually restore configuration files from backup",
        "Check and fix file permissions",
        "Partial rollback of specific configuration files only",
        "Restore from file system snapshot if available",
        "Reset file permissions to default values",
    ],
    FailureCategory.NETWORK: [
        "Retry rollback when network connectivity is restored",
        "Perform offline rollback without external dependencies",
        "Use cached/local copies of external resources",
        "Switch to maintenance mode until network issues resolved",
        "Manual configuration of network-dependent components",
    ],
    FailureCategory.TIMEOUT: [
        "Retry rollback with extended timeout values",
        "Perform rollback in smaller incremental steps",
        "Schedule rollback during low-traffic period",
        "Increase system resources and retry",
        "Manual step-by-step rollback process",
    ],
    FailureCategory.RESOURCES: [
        "Free up system resources and retry rollback",
        "Perform rollback on system with more resources",
        "Use incremental rollback to reduce resource usage",
        "Clear temporary files and caches before retry",
        "Schedule rollback during off-peak hours",
    ],
    FailureCategory.INTEGRITY: [
        "Compare live environment with the snapshot manifest and restore missing files",
        "Remove files not present in the snapshot manifest",
        "Re-run integrity verification after manual correction",
        "Restore from older verified snapshot",
    ],
    FailureCategory.SNAPSHOT: [
        "Select another verified snapshot for this environment",
        "Re-verify the snapshot before requesting a new rollback",
        "Restore from older verified snapshot",
    ],
    FailureCategory.UNKNOWN: [
        "Manual investigation and custom recovery procedure",
        "Contact system administrator for specialized assistance",
        "Restore from older verified snapshot",
        "Emergency maintenance mode activation",
        "Full system restore from backup",
    ],
}

BASELINE_OPTIONS: tuple[str, ...] = (
    "Perform manual database restoration from verified backup",
    "Manually restore configuration files from backup",
    "Contact system administrator for specialized assistance",
)

FOLLOW_UP_OPTIONS: tuple[str, ...] = (
    "Create incident report for post-mortem analysis",
    "Document current system state for future reference",
    "Notify stakeholders of rollback failure and recovery plan",
)


def classify(exc: BaseException) -> FailureCategory:
    if isinstance(exc, RollbackExecutionError):
        return exc.category
    if isinstance(exc, (StoreTimeoutError, TimeoutError)):
        return FailureCategory.TIMEOUT
    if isinstance(exc, (StoreUnavailableError, ConnectionError)):
        return FailureCategory.NETWORK
    if isinstance(exc, MemoryError):
        return FailureCategory.RESOURCES
    if isinstance(exc, OSError):
        return FailureCategory.FILESYSTEM
    return FailureCategory.UNKNOWN


def analyze_failure(exc: BaseException) -> FailureAnalysis:
    category = classify(exc)
    severity, root_cause, components, summary = _PROFILES[category]
    return FailureAnalysis(
        category=category,
        severity=severity,
        root_cause=root_cause,
        affected_components=list(components),
        summary=summary,
    )


def recovery_options(analysis: FailureAnalysis) -> list[str]:
    """Targeted options first, then the baseline set, then follow-ups."""
    options: list[str] = []
    for opt in (*_OPTIONS[analysis.category], *BASELINE_OPTIONS, *FOLLOW_UP_OPTIONS):
        if opt not in options:
            options.append(opt)
    return options
