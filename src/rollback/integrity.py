"""Post-apply integrity verification."""

from __future__ import annotations

from datetime import datetime

from src.contracts.rollback import IntegrityCheck
from src.contracts.snapshot import Snapshot
from src.rollback.environment import EnvironmentState


def verify_integrity(
    snapshot: Snapshot,
    state: EnvironmentState,
    now: datetime,
    *,
    reject_unexpected_files: bool = True,
) -> IntegrityCheck:
    """Compare the live *state* with *snapshot*.

    Checks, in order: ``snapshot_verified``, ``source_revision``, one
    ``file:<path>`` per manifest entry and, unless disabled,
    ``unexpected_files``.  The names of the checks that did not pass are
    returned in ``failed_checks``.
    """
    results: list[tuple[str, bool]] = [
        ("snapshot_verified", snapshot.verified),
        ("source_revision", state.source_revision == snapshot.source_revision),
    ]
    for path in sorted(snapshot.file_manifest):
        results.append((f"file:{path}", path in state.files))
    if reject_unexpected_files:
        results.append(("unexpected_files", not (state.files - snapshot.file_manifest)))

    failed = [name for name, ok in results if not ok]
    return IntegrityCheck(
        checks_count=len(results),
        passed_count=len(results) - len(failed),
        completed_at=now,
        failed_checks=failed,
    )
