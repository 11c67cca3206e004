"""Environment targets: where a snapshot is applied and how live state is read.

The engine only talks to :class:`EnvironmentTarget`.  Two implementations:

  InMemoryEnvironmentTarget  — state held in a dict; used by tests and demos
  DirectoryEnvironmentTarget — one directory per environment under a root;
                               the manifest is materialised as files and the
                               revision is written to ``.revision``
"""

from __future__ import annotations

import abc
import asyncio
import errno
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from src.contracts.enums import FailureCategory
from src.contracts.errors import ApplyError, RollbackExecutionError
from src.contracts.snapshot import Snapshot

log = logging.getLogger(__name__)

REVISION_FILE = ".revision"


@dataclass(slots=True, frozen=True)
class EnvironmentState:
    environment: str
    source_revision: str | None
    files: frozenset[str] = field(default_factory=frozenset)


class EnvironmentTarget(abc.ABC):
    @abc.abstractmethod
    async def apply(self, environment: str, snapshot: Snapshot) -> None:
        """Bring *environment* to *snapshot*; raise ``RollbackExecutionError`` on failure."""

    @abc.abstractmethod
    async def describe(self, environment: str) -> EnvironmentState: ...


# ═══════════════════════════════════════════════════════════════════════════
#  In-memory
# ═══════════════════════════════════════════════════════════════════════════


class InMemoryEnvironmentTarget(EnvironmentTarget):
    def __init__(self) -> None:
        self._states: dict[str, EnvironmentState] = {}
        self._failures: dict[str, RollbackExecutionError] = {}
        self._drift: dict[str, tuple[frozenset[str], frozenset[str]]] = {}
        self.applied: list[tuple[str, str]] = []  # (environment, snapshot_id)

    def set_state(
        self,
        environment: str,
        source_revision: str | None,
        files: set[str] | frozenset[str] = frozenset(),
    ) -> None:
        self._states[environment] = EnvironmentState(environment, source_revision, frozenset(files))

    def inject_failure(self, environment: str, error: RollbackExecutionError) -> None:
        """Make the next ``apply`` for *environment* raise *error*."""
        self._failures[environment] = error

    def inject_drift(
        self,
        environment: str,
        missing: set[str] | frozenset[str] = frozenset(),
        extra: set[str] | frozenset[str] = frozenset(),
    ) -> None:
        """Alter the state left behind by the next ``apply``."""
        self._drift[environment] = (frozenset(missing), frozenset(extra))

    async def apply(self, environment: str, snapshot: Snapshot) -> None:
        self.applied.append((environment, snapshot.id))
        error = self._failures.pop(environment, None)
        if error is not None:
            raise error
        files = set(snapshot.file_manifest)
        missing, extra = self._drift.pop(environment, (frozenset(), frozenset()))
        files = (files - missing) | extra
        self._states[environment] = EnvironmentState(
            environment, snapshot.source_revision, frozenset(files)
        )

    async def describe(self, environment: str) -> EnvironmentState:
        return self._states.get(environment, EnvironmentState(environment, None))


# ═══════════════════════════════════════════════════════════════════════════
#  Directory-backed
# ═══════════════════════════════════════════════════════════════════════════


def _safe_relpath(path: str) -> PurePosixPath:
    rel = PurePosixPath(path)
    if rel.is_absolute() or ".." in rel.parts or not rel.parts:
        raise ApplyError(f"Manifest path escapes the environment root: {path!r}", FailureCategory.FILESYSTEM)
    return rel


def _os_error_category(exc: OSError) -> FailureCategory:
    if exc.errno in (errno.ENOSPC, errno.ENOMEM):
        return FailureCategory.RESOURCES
    return FailureCategory.FILESYSTEM


class DirectoryEnvironmentTarget(EnvironmentTarget):
    """Materialise snapshots as files under ``<root>/<environment>/``.

    Manifest files that already exist keep their content; missing ones are
    created empty; files not in the manifest are removed.  Filesystem work
    runs in a worker thread.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _env_dir(self, environment: str) -> Path:
        return self.root / _safe_relpath(environment)

    def _apply_sync(self, environment: str, snapshot: Snapshot) -> None:
        env_dir = self._env_dir(environment)
        wanted = {_safe_relpath(p) for p in snapshot.file_manifest}
        env_dir.mkdir(parents=True, exist_ok=True)

        for rel in sorted(self._walk(env_dir)):
            if PurePosixPath(rel) not in wanted:
                (env_dir / rel).unlink()
                log.debug("Removed %s/%s", environment, rel)
        for rel in sorted(wanted):
            target = env_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.touch(exist_ok=True)

        (env_dir / REVISION_FILE).write_text(snapshot.source_revision + "\n", encoding="utf-8")

    @staticmethod
    def _walk(env_dir: Path) -> set[str]:
        found: set[str] = set()
        for dirpath, _dirs, files in os.walk(env_dir):
            for name in files:
                rel = (Path(dirpath) / name).relative_to(env_dir).as_posix()
                if rel != REVISION_FILE:
                    found.add(rel)
        return found

    def _describe_sync(self, environment: str) -> EnvironmentState:
        env_dir = self._env_dir(environment)
        if not env_dir.is_dir():
            return EnvironmentState(environment, None)
        rev_file = env_dir / REVISION_FILE
        revision = rev_file.read_text(encoding="utf-8").strip() if rev_file.is_file() else None
        return EnvironmentState(environment, revision, frozenset(self._walk(env_dir)))

    async def apply(self, environment: str, snapshot: Snapshot) -> None:
        try:
            await asyncio.to_thread(self._apply_sync, environment, snapshot)
        except OSError as exc:
            raise ApplyError(
                f"Applying snapshot {snapshot.id} to {environment} failed: {exc}",
                _os_error_category(exc),
            ) from exc
        log.info("Applied snapshot %s to %s (%d files)", snapshot.id, environment, len(snapshot.file_manifest))

    async def describe(self, environment: str) -> EnvironmentState:
        try:
            return await asyncio.to_thread(self._describe_sync, environment)
        except OSError as exc:
            raise ApplyError(
                f"Reading state of {environment} failed: {exc}", FailureCategory.FILESYSTEM
            ) from exc
