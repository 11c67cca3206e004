"""Deterministic explanation text for rollback options and requests."""

from __future__ import annotations

from datetime import datetime

from src.contracts.snapshot import Deployment, Snapshot
from src.shared.timeutil import describe_age, iso


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def option_description(snapshot: Snapshot, deployment: Deployment, now: datetime) -> str:
    return (
        f"Rollback to {deployment.version} ({snapshot.short_revision}) "
        f"- Created {describe_age(snapshot.created_at, now)}"
    )


def option_reasoning(snapshot: Snapshot, deployment: Deployment, now: datetime) -> str:
    """Explain why a verified snapshot is a rollback candidate."""
    return (
        f"Candidate state: {deployment.version} deployed to {deployment.environment} "
        f"by {deployment.deployed_by}.\n"
        f"Source revision: {snapshot.source_revision}\n"
        f"Captured {describe_age(snapshot.created_at, now)} ({iso(snapshot.created_at)}), "
        f"verified by {snapshot.verified_by or 'unknown'}.\n"
        f"Restores {len(snapshot.file_manifest)} configuration files"
        + (f" and database backup {snapshot.database_backup}." if snapshot.database_backup else ".")
    )


def rollback_reasoning(snapshot: Snapshot, reason: str) -> str:
    """Explanation attached to a new rollback request."""
    return (
        "Rollback Analysis:\n"
        "\n"
        f"Target State: {snapshot.source_revision}\n"
        f"Created: {iso(snapshot.created_at)}\n"
        f"Verified: {_yes_no(snapshot.verified)}\n"
        "\n"
        f"Reason for Rollback: {reason}\n"
        "\n"
        "Risk Assessment:\n"
        f"- Configuration files will be restored to previous state "
        f"({len(snapshot.file_manifest)} files)\n"
        f"- Database backup available: {_yes_no(snapshot.database_backup is not None)}\n"
        f"- System integrity verified: {_yes_no(snapshot.verified)}\n"
        "\n"
        "Recommendation: This rollback appears safe to execute. "
        "All necessary components are available and verified.\n"
        "Human approval is required before execution."
    )
