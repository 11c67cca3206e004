"""RollbackEngine — approval-gated restoration of an environment.

Lifecycle of a request::

    initiate ─► pending_approval ─┬─► approve ─► approved ─► execute ─┬─► completed
                                  │                                   └─► failed
                                  └─► reject ─► rejected

Only verified snapshots can be targeted.  Every transition writes exactly
one audit entry; refused operations on a request are audited as
``rollback_request_refused``.  Execution failures are not raised: they
are folded into a failed :class:`RollbackResult` carrying recovery
options.  At most one execution runs per environment, and once the apply
phase starts it is shielded from caller cancellation.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from src.contracts.audit import AuditLogEntry
from src.contracts.enums import DeploymentStatus, FailureCategory, RollbackStatus
from src.contracts.errors import (
    ApplyError,
    AuthorizationError,
    IntegrityCheckError,
    InvalidRequestStateError,
    RequestNotFoundError,
    RollbackExecutionError,
    RollbackInProgressError,
    SentinelError,
    SnapshotNotFoundError,
    SnapshotRevokedError,
    StoreError,
    UnverifiedSnapshotError,
    ValidationError,
)
from src.contracts.rollback import (
    IntegrityCheck,
    RollbackOption,
    RollbackRequest,
    RollbackResult,
)
from src.contracts.snapshot import Deployment, Snapshot
from src.rollback import reasoning
from src.rollback.environment import EnvironmentTarget
from src.rollback.integrity import verify_integrity
from src.rollback.recovery import analyze_failure, recovery_options
from src.rollback.settings import RollbackSettings
from src.shared.config_loader import load_optional_yaml
from src.shared.timeutil import utc_now
from src.stores.base import AuditLog, DeploymentStore, RollbackRequestStore, SnapshotStore
from src.stores.timeouts import bounded

log = logging.getLogger(__name__)

T = TypeVar("T")

_HISTORY_DESCRIPTIONS = {
    RollbackStatus.COMPLETED: "Rollback executed successfully",
    RollbackStatus.FAILED: "Rollback execution failed",
    RollbackStatus.REJECTED: "Rollback request rejected",
}


def _request_id() -> str:
    return f"RBK-{uuid.uuid4().hex[:12]}"


@dataclass(slots=True)
class _Outcome:
    """A finished execution waiting to be recorded."""

    request: RollbackRequest
    status: RollbackStatus
    result: RollbackResult
    entry: AuditLogEntry
    audited: bool = False


class RollbackEngine:
    def __init__(
        self,
        snapshots: SnapshotStore,
        deployments: DeploymentStore,
        requests: RollbackRequestStore,
        audit: AuditLog,
        target: EnvironmentTarget,
        settings: RollbackSettings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._snapshots = snapshots
        self._deployments = deployments
        self._requests = requests
        self._audit = audit
        self._target = target
        self.settings = settings or RollbackSettings()
        self._clock = clock

        self._request_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._active_envs: set[str] = set()
        self._running: set[asyncio.Task[RollbackResult]] = set()
        self._unrecorded: dict[str, _Outcome] = {}

    # ── plumbing ──────────────────────────────────────────────────────────

    async def _call(self, operation: str, call: Awaitable[T]) -> T:
        return await bounded(call, operation=operation, timeout=self.settings.store_timeout_sec)

    async def _log(self, entry: AuditLogEntry) -> str:
        return await self._call("audit.append", self._audit.append(entry))

    async def _load_request(self, request_id: str) -> RollbackRequest:
        req = await self._call("requests.get", self._requests.get(request_id))
        if req is None:
            raise RequestNotFoundError(request_id)
        return req

    async def _refuse(self, action: str, principal: str, error: SentinelError, **context: Any) -> None:
        await self._log(
            AuditLogEntry(
                action_type="rollback_request_refused",
                description=f"Rollback {action} refused: {error}",
                timestamp=self._clock(),
                context_data={"action": action, "principal": principal, "error": str(error), **context},
                user_id=principal,
            )
        )
        log.warning("Rollback %s by %s refused: %s", action, principal, error)

    async def _authorize(self, principal: str, action: str, request_id: str) -> None:
        if not self.settings.may_decide(principal):
            err = AuthorizationError(principal, action)
            await self._refuse(action, principal, err, request_id=request_id)
            raise err

    # ═══════════════════════════════════════════════════════════════════════
    #  Snapshots and deployments
    # ═══════════════════════════════════════════════════════════════════════

    async def capture_snapshot(
        self,
        environment: str,
        source_revision: str,
        file_manifest: set[str] | frozenset[str],
        database_backup: str | None = None,
    ) -> Snapshot:
        """Record a new (unverified) snapshot of *environment*."""
        snap = Snapshot(
            environment=environment,
            source_revision=source_revision,
            created_at=self._clock(),
            file_manifest=frozenset(file_manifest),
            database_backup=database_backup,
        )
        snap.id = await self._call("snapshots.create", self._snapshots.create(snap))
        log.info("Snapshot %s captured for %s at %s", snap.id, environment, snap.short_revision)
        return snap

    async def verify_snapshot(self, snapshot_id: str, verified_by: str) -> Snapshot:
        snap = await self._call("snapshots.get", self._snapshots.get(snapshot_id))
        if snap is None:
            raise SnapshotNotFoundError(snapshot_id)
        await self._call("snapshots.mark_verified", self._snapshots.mark_verified(snapshot_id, verified_by))
        await self._log(
            AuditLogEntry(
                action_type="snapshot_verified",
                description=f"Snapshot {snapshot_id} verified for {snap.environment}",
                timestamp=self._clock(),
                context_data={
                    "snapshot_id": snapshot_id,
                    "environment": snap.environment,
                    "source_revision": snap.source_revision,
                },
                user_id=verified_by,
            )
        )
        snap.verified = True
        snap.verified_by = verified_by
        await self._sync_availability(snap.environment, snapshot_id, available=True)
        log.info("Snapshot %s verified by %s", snapshot_id, verified_by)
        return snap

    async def revoke_snapshot(self, snapshot_id: str, revoked_by: str, reason: str) -> Snapshot:
        """Withdraw verification; linked deployments stop offering a rollback."""
        snap = await self._call("snapshots.get", self._snapshots.get(snapshot_id))
        if snap is None:
            raise SnapshotNotFoundError(snapshot_id)
        await self._call("snapshots.revoke", self._snapshots.revoke(snapshot_id))
        await self._sync_availability(snap.environment, snapshot_id, available=False)
        await self._log(
            AuditLogEntry(
                action_type="snapshot_revoked",
                description=f"Snapshot {snapshot_id} revoked for {snap.environment}",
                timestamp=self._clock(),
                context_data={"snapshot_id": snapshot_id, "environment": snap.environment, "reason": reason},
                user_id=revoked_by,
            )
        )
        snap.verified = False
        log.warning("Snapshot %s revoked by %s: %s", snapshot_id, revoked_by, reason)
        return snap

    async def _sync_availability(self, environment: str, snapshot_id: str, available: bool) -> None:
        """Only the newest deployment of a snapshot can carry the flag, and not once it failed.

        Older deployments of the same snapshot are superseded by it.
        """
        deployments = await self._call(
            "deployments.list_by_environment", self._deployments.list_by_environment(environment)
        )
        linked = [d for d in deployments if d.snapshot_id == snapshot_id]
        for i, dep in enumerate(linked):
            wanted = available and i == 0 and dep.status != DeploymentStatus.FAILED
            if dep.rollback_available != wanted:
                await self._call(
                    "deployments.set_rollback_available",
                    self._deployments.set_rollback_available(dep.id, wanted),
                )

    async def record_deployment(
        self,
        environment: str,
        version: str,
        snapshot_id: str,
        deployed_by: str,
        status: DeploymentStatus = DeploymentStatus.SUCCESS,
    ) -> Deployment:
        snap = await self._call("snapshots.get", self._snapshots.get(snapshot_id))
        if snap is None:
            raise SnapshotNotFoundError(snapshot_id)
        if snap.environment != environment:
            raise ValidationError(
                f"Snapshot {snapshot_id} belongs to '{snap.environment}', not '{environment}'"
            )
        dep = Deployment(
            environment=environment,
            version=version,
            snapshot_id=snapshot_id,
            deployed_by=deployed_by,
            deployed_at=self._clock(),
            status=status,
            rollback_available=snap.verified and status != DeploymentStatus.FAILED,
        )
        dep.id = await self._call("deployments.create", self._deployments.create(dep))
        await self._sync_availability(environment, snapshot_id, available=snap.verified)
        log.info("Deployment %s of %s to %s recorded", dep.id, version, environment)
        return dep

    async def disable_rollback(self, deployment_id: str, disabled_by: str, reason: str = "Manual disable") -> None:
        dep = await self._call("deployments.get", self._deployments.get(deployment_id))
        if dep is None:
            raise ValidationError(f"Deployment not found: {deployment_id}")
        await self._call(
            "deployments.set_rollback_available",
            self._deployments.set_rollback_available(deployment_id, False),
        )
        await self._log(
            AuditLogEntry(
                action_type="rollback_disabled",
                description=f"Rollback disabled for deployment: {dep.version}",
                timestamp=self._clock(),
                context_data={"deployment_id": deployment_id, "reason": reason},
                user_id=disabled_by,
            )
        )
        log.info("Rollback disabled for deployment %s by %s", deployment_id, disabled_by)

    # ═══════════════════════════════════════════════════════════════════════
    #  Options and initiation
    # ═══════════════════════════════════════════════════════════════════════

    async def get_rollback_options(self, environment: str) -> list[RollbackOption]:
        """Verified snapshots behind a rollback-available deployment, newest first."""
        snaps = await self._call(
            "snapshots.list_by_environment", self._snapshots.list_by_environment(environment)
        )
        verified = {s.id: s for s in snaps if s.verified}
        deployments = await self._call(
            "deployments.list_by_environment", self._deployments.list_by_environment(environment)
        )
        now = self._clock()
        options: list[RollbackOption] = []
        seen: set[str] = set()
        for dep in deployments:
            snap = verified.get(dep.snapshot_id)
            if snap is None or not dep.rollback_available or snap.id in seen:
                continue
            seen.add(snap.id)
            options.append(
                RollbackOption(
                    snapshot_id=snap.id,
                    deployment_id=dep.id,
                    environment=environment,
                    version=dep.version,
                    source_revision=snap.source_revision,
                    created_at=snap.created_at,
                    verified=True,
                    description=reasoning.option_description(snap, dep, now),
                    ai_reasoning=reasoning.option_reasoning(snap, dep, now),
                )
            )
        options.sort(key=lambda o: o.created_at, reverse=True)
        log.debug("%d rollback options for %s", len(options), environment)
        return options

    async def initiate_rollback(
        self,
        environment: str,
        snapshot_id: str,
        reason: str,
        requested_by: str,
        alert_id: str | None = None,
    ) -> RollbackRequest:
        """Open a request awaiting human approval.

        The ``rollback_requested`` audit entry is written before the
        request is stored, so a stored request always has its entry.
        """
        snap = await self._call("snapshots.get", self._snapshots.get(snapshot_id))
        err: ValidationError | None = None
        if snap is None:
            err = SnapshotNotFoundError(snapshot_id)
        elif snap.environment != environment:
            err = ValidationError(
                f"Snapshot {snapshot_id} belongs to '{snap.environment}', not '{environment}'"
            )
        elif not snap.verified:
            err = UnverifiedSnapshotError(snapshot_id)
        if err is not None:
            await self._refuse(
                "initiate", requested_by, err, environment=environment, snapshot_id=snapshot_id
            )
            raise err

        request_id = _request_id()
        explanation = reasoning.rollback_reasoning(snap, reason)
        audit_id = await self._log(
            AuditLogEntry(
                action_type="rollback_requested",
                description=f"Rollback requested for {environment} environment",
                timestamp=self._clock(),
                ai_reasoning=explanation,
                context_data={
                    "request_id": request_id,
                    "environment": environment,
                    "snapshot_id": snapshot_id,
                    "reason": reason,
                    "source_revision": snap.source_revision,
                    "alert_id": alert_id,
                },
                user_id=requested_by,
                requires_approval=True,
            )
        )
        request = RollbackRequest(
            environment=environment,
            snapshot_id=snapshot_id,
            reason=reason,
            requested_by=requested_by,
            explanation=explanation,
            created_at=self._clock(),
            id=request_id,
            audit_entry_id=audit_id,
            alert_id=alert_id,
        )
        await self._call("requests.create", self._requests.create(request))
        log.info(
            "Rollback %s requested for %s → %s by %s",
            request_id, environment, snap.short_revision, requested_by,
        )
        return request

    # ═══════════════════════════════════════════════════════════════════════
    #  Decisions
    # ═══════════════════════════════════════════════════════════════════════

    async def approve_rollback(self, request_id: str, approver_id: str) -> RollbackRequest:
        await self._authorize(approver_id, "approve", request_id)
        async with self._request_locks[request_id]:
            req = await self._load_request(request_id)
            if req.status != RollbackStatus.PENDING_APPROVAL:
                err = InvalidRequestStateError(request_id, req.status.value, "approve")
                await self._refuse("approve", approver_id, err, request_id=request_id)
                raise err

            await self._call("audit.approve", self._audit.approve(req.audit_entry_id, approver_id))
            now = self._clock()
            await self._log(
                AuditLogEntry(
                    action_type="rollback_approved",
                    description="Rollback request approved",
                    timestamp=now,
                    context_data={
                        "request_id": request_id,
                        "environment": req.environment,
                        "snapshot_id": req.snapshot_id,
                        "approved_by": approver_id,
                    },
                    user_id=approver_id,
                    requires_approval=True,
                    approved=True,
                    approved_by=approver_id,
                )
            )
            req.status = RollbackStatus.APPROVED
            req.approved_by = approver_id
            req.decided_by = approver_id
            req.decided_at = now
            await self._call("requests.update", self._requests.update(req))
        log.info("Rollback %s approved by %s", request_id, approver_id)
        return req

    async def reject_rollback(self, request_id: str, rejected_by: str, reason: str) -> RollbackRequest:
        await self._authorize(rejected_by, "reject", request_id)
        async with self._request_locks[request_id]:
            req = await self._load_request(request_id)
            if req.status != RollbackStatus.PENDING_APPROVAL:
                err = InvalidRequestStateError(request_id, req.status.value, "reject")
                await self._refuse("reject", rejected_by, err, request_id=request_id)
                raise err

            now = self._clock()
            await self._log(
                AuditLogEntry(
                    action_type="rollback_rejected",
                    description="Rollback request rejected",
                    timestamp=now,
                    context_data={
                        "request_id": request_id,
                        "rejected_by": rejected_by,
                        "reason": reason,
                    },
                    user_id=rejected_by,
                )
            )
            req.status = RollbackStatus.REJECTED
            req.decided_by = rejected_by
            req.decided_at = now
            await self._call("requests.update", self._requests.update(req))
        log.info("Rollback %s rejected by %s: %s", request_id, rejected_by, reason)
        return req

    # ═══════════════════════════════════════════════════════════════════════
    #  Execution
    # ═══════════════════════════════════════════════════════════════════════

    async def execute_rollback(self, request_id: str, approver_id: str) -> RollbackResult:
        """Apply an approved request and verify the environment.

        A request that already completed or failed returns its stored
        result without touching the environment again.  The request is
        marked as executing in the store before the apply starts, so a
        request whose outcome was never recorded is refused rather than
        applied a second time.
        """
        async with self._request_locks[request_id]:
            req = await self._load_request(request_id)
            if req.status in (RollbackStatus.COMPLETED, RollbackStatus.FAILED):
                result = await self._call("requests.get_result", self._requests.get_result(request_id))
                if result is None:
                    raise InvalidRequestStateError(request_id, req.status.value, "execute")
                log.info("Rollback %s already %s; returning stored result", request_id, req.status.value)
                return result

            pending = self._unrecorded.get(request_id)
            err: SentinelError | None = None
            if req.status != RollbackStatus.APPROVED:
                err = InvalidRequestStateError(request_id, req.status.value, "execute")
            elif not self.settings.may_decide(approver_id):
                err = AuthorizationError(approver_id, "execute")
            elif pending is None and req.environment in self._active_envs:
                err = RollbackInProgressError(req.environment)
            elif pending is None and req.execution_started_at is not None:
                err = InvalidRequestStateError(request_id, "executing", "execute")
            if err is not None:
                await self._refuse("execute", approver_id, err, request_id=request_id)
                raise err

            if pending is not None:
                log.info("Rollback %s already ran; recording its outcome", request_id)
                await self._record(pending)
                return pending.result

            self._active_envs.add(req.environment)
            try:
                req.execution_started_at = self._clock()
                await self._call("requests.update", self._requests.update(req))
            except BaseException:
                self._active_envs.discard(req.environment)
                raise

            task = asyncio.create_task(self._run(req, approver_id))
            self._running.add(task)
            task.add_done_callback(self._task_done)

        return await asyncio.shield(task)

    def _task_done(self, task: asyncio.Task[RollbackResult]) -> None:
        self._running.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error("Rollback task ended with an unhandled error: %r", task.exception())

    async def _run(self, req: RollbackRequest, approver_id: str) -> RollbackResult:
        log.info("Executing rollback %s on %s", req.id, req.environment)
        try:
            try:
                check = await self._apply_and_verify(req)
            except RollbackExecutionError as exc:
                return await self._fail(req, approver_id, exc)
            except Exception as exc:
                log.exception("Unexpected error while executing rollback %s", req.id)
                return await self._fail(req, approver_id, exc)
            return await self._complete(req, approver_id, check)
        finally:
            self._active_envs.discard(req.environment)

    async def _apply_and_verify(self, req: RollbackRequest) -> IntegrityCheck:
        snap = await self._call("snapshots.get", self._snapshots.get(req.snapshot_id))
        if snap is None or not snap.verified:
            raise SnapshotRevokedError(req.snapshot_id)

        timeout = self.settings.apply_timeout_sec
        try:
            await asyncio.wait_for(self._target.apply(req.environment, snap), timeout)
            state = await asyncio.wait_for(self._target.describe(req.environment), timeout)
        except TimeoutError as exc:
            raise ApplyError(
                f"Applying snapshot {snap.id} to {req.environment} timed out after {timeout:.1f}s",
                FailureCategory.TIMEOUT,
            ) from exc

        check = verify_integrity(
            snap, state, self._clock(),
            reject_unexpected_files=self.settings.reject_unexpected_files,
        )
        if not check.verified:
            raise IntegrityCheckError(check.failed_checks, check)
        return check

    async def _complete(self, req: RollbackRequest, approver_id: str, check: IntegrityCheck) -> RollbackResult:
        now = self._clock()
        entry = AuditLogEntry(
            action_type="rollback_completed",
            description="Rollback executed successfully",
            timestamp=now,
            context_data={
                "request_id": req.id,
                "environment": req.environment,
                "snapshot_id": req.snapshot_id,
                "integrity_verified": True,
                "checks_count": check.checks_count,
                "passed_count": check.passed_count,
            },
            user_id=approver_id,
            requires_approval=True,
            approved=True,
            approved_by=approver_id,
        )
        result = RollbackResult(
            request_id=req.id,
            success=True,
            completed_at=now,
            message="Rollback completed successfully. System integrity verified.",
            integrity_check=check,
        )
        await self._record(_Outcome(req, RollbackStatus.COMPLETED, result, entry))
        log.info("Rollback %s completed (%d/%d checks)", req.id, check.passed_count, check.checks_count)
        return result

    async def _fail(self, req: RollbackRequest, approver_id: str, exc: BaseException) -> RollbackResult:
        analysis = analyze_failure(exc)
        options = recovery_options(analysis)
        now = self._clock()
        entry = AuditLogEntry(
            action_type="rollback_failed",
            description=f"Rollback execution failed: {analysis.summary}",
            timestamp=now,
            ai_reasoning="Rollback failure analyzed to provide targeted recovery options",
            context_data={
                "request_id": req.id,
                "environment": req.environment,
                "snapshot_id": req.snapshot_id,
                "error": str(exc),
                "failure_category": analysis.category.value,
                "root_cause": analysis.root_cause,
                "affected_components": analysis.affected_components,
                "alternative_options": len(options),
            },
            user_id=approver_id,
        )
        result = RollbackResult(
            request_id=req.id,
            success=False,
            completed_at=now,
            message=f"Rollback failed. {analysis.summary} Alternative recovery options available.",
            integrity_check=exc.check if isinstance(exc, IntegrityCheckError) else None,
            error=str(exc),
            alternative_options=options,
            failure_category=analysis.category,
        )
        await self._record(_Outcome(req, RollbackStatus.FAILED, result, entry))
        log.error("Rollback %s failed [%s]: %s", req.id, analysis.category.value, exc)
        return result

    async def _record(self, outcome: _Outcome) -> bool:
        """Write the audit entry, the result and the terminal status.

        A store failure is not raised: the outcome is kept and the next
        ``execute_rollback`` for the request finishes recording it.  The
        audit entry is appended at most once.
        """
        req = outcome.request
        try:
            if not outcome.audited:
                await self._log(outcome.entry)
                outcome.audited = True
            await self._call("requests.save_result", self._requests.save_result(outcome.result))
            req.status = outcome.status
            req.completed_at = outcome.result.completed_at
            await self._call("requests.update", self._requests.update(req))
        except StoreError as exc:
            req.status = RollbackStatus.APPROVED
            req.completed_at = None
            self._unrecorded[req.id] = outcome
            log.error(
                "Rollback %s finished as %s but could not be recorded: %s",
                req.id, outcome.status.value, exc,
            )
            return False
        self._unrecorded.pop(req.id, None)
        return True

    # ═══════════════════════════════════════════════════════════════════════
    #  Queries
    # ═══════════════════════════════════════════════════════════════════════

    async def get_request(self, request_id: str) -> RollbackRequest:
        return await self._load_request(request_id)

    async def get_result(self, request_id: str) -> RollbackResult | None:
        return await self._call("requests.get_result", self._requests.get_result(request_id))

    async def get_rollback_history(self, environment: str) -> list[dict[str, Any]]:
        """Finished requests (completed, failed, rejected), newest first."""
        reqs = await self._call(
            "requests.list_by_environment", self._requests.list_by_environment(environment)
        )
        history = [
            {
                "id": r.id,
                "timestamp": r.completed_at or r.decided_at,
                "description": f"{_HISTORY_DESCRIPTIONS[r.status]}: {r.reason}",
                "approved_by": r.approved_by,
                "status": r.status.value,
            }
            for r in reqs
            if r.status.is_terminal
        ]
        history.sort(key=lambda h: h["timestamp"], reverse=True)
        return history


def build_engine(
    config_dir: str,
    snapshots: SnapshotStore,
    deployments: DeploymentStore,
    requests: RollbackRequestStore,
    audit: AuditLog,
    target: EnvironmentTarget,
    clock: Callable[[], datetime] = utc_now,
) -> RollbackEngine:
    """Create an engine from ``<config_dir>/rollback.yaml`` (defaults if absent)."""
    settings = RollbackSettings.from_config(load_optional_yaml(f"{config_dir}/rollback.yaml"))
    return RollbackEngine(
        snapshots, deployments, requests, audit, target, settings=settings, clock=clock
    )
