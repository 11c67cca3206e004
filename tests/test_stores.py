"""Tests for src.stores.memory — in-process async stores."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.contracts.enums import AlertStatus, AlertType, DeploymentStatus, RollbackStatus, Severity
from src.contracts.errors import ValidationError
from src.contracts.rollback import RollbackRequest, RollbackResult
from tests.conftest import BASE_TS, make_alert, make_audit_entry, make_deployment, make_snapshot

# ═══════════════════════════════════════════════════════════════════════════
#  AlertStore
# ═══════════════════════════════════════════════════════════════════════════


class TestAlertStore:
    @pytest.mark.asyncio
    async def test_create_assigns_id(self, alert_store):
        alert = make_alert()
        alert_id = await alert_store.create(alert)
        assert alert_id.startswith("ALR-")
        assert alert.id == alert_id
        assert (await alert_store.get(alert_id)).title == "Test Alert"

    @pytest.mark.asyncio
    async def test_returns_copies(self, alert_store):
        alert_id = await alert_store.create(make_alert())
        copy_ = await alert_store.get(alert_id)
        copy_.status = AlertStatus.RESOLVED
        assert (await alert_store.get(alert_id)).status is AlertStatus.NEW

    @pytest.mark.asyncio
    async def test_filters(self, alert_store):
        await alert_store.create(make_alert(type=AlertType.AUTH_FLOOD, severity=Severity.HIGH))
        await alert_store.create(make_alert(type=AlertType.DATABASE_BREACH, severity=Severity.CRITICAL))
        await alert_store.create(make_alert(status=AlertStatus.ASSIGNED))
        assert len(await alert_store.list_by_type(AlertType.AUTH_FLOOD)) == 1
        assert len(await alert_store.list_by_severity(Severity.CRITICAL)) == 1
        assert len(await alert_store.list_by_status(AlertStatus.NEW)) == 2
        assert len(await alert_store.list_by_status(AlertStatus.ASSIGNED)) == 1

    @pytest.mark.asyncio
    async def test_list_recent_newest_first_with_ties(self, alert_store):
        a = await alert_store.create(make_alert(title="a"))
        b = await alert_store.create(make_alert(title="b"))
        c = await alert_store.create(make_alert(title="c", detected_at=BASE_TS + timedelta(minutes=1)))
        assert [x.id for x in await alert_store.list_recent(10)] == [c, b, a]
        assert len(await alert_store.list_recent(2)) == 2

    @pytest.mark.asyncio
    async def test_update_unknown(self, alert_store):
        with pytest.raises(ValidationError):
            await alert_store.update(make_alert(id="ALR-missing"))


# ═══════════════════════════════════════════════════════════════════════════
#  Snapshot / Deployment stores
# ═══════════════════════════════════════════════════════════════════════════


class TestSnapshotStore:
    @pytest.mark.asyncio
    async def test_mark_verified(self, snapshot_store):
        sid = await snapshot_store.create(make_snapshot(verified=False))
        await snapshot_store.mark_verified(sid, "qa")
        snap = await snapshot_store.get(sid)
        assert snap.verified and snap.verified_by == "qa"

    @pytest.mark.asyncio
    async def test_revoke(self, snapshot_store):
        sid = await snapshot_store.create(make_snapshot())
        await snapshot_store.revoke(sid)
        assert not (await snapshot_store.get(sid)).verified

    @pytest.mark.asyncio
    async def test_list_by_environment(self, snapshot_store):
        old = await snapshot_store.create(make_snapshot())
        new = await snapshot_store.create(make_snapshot(created_at=BASE_TS + timedelta(days=1)))
        await snapshot_store.create(make_snapshot(environment="prod"))
        assert [s.id for s in await snapshot_store.list_by_environment("staging")] == [new, old]

    @pytest.mark.asyncio
    async def test_mark_verified_missing(self, snapshot_store):
        with pytest.raises(ValidationError, match="not found"):
            await snapshot_store.mark_verified("SNP-missing", "qa")


class TestDeploymentStore:
    @pytest.mark.asyncio
    async def test_mark_failed(self, deployment_store):
        did = await deployment_store.create(make_deployment())
        await deployment_store.mark_failed(did, "health check failed")
        dep = await deployment_store.get(did)
        assert dep.status is DeploymentStatus.FAILED
        assert dep.rollback_available is False
        assert dep.failure_reason == "health check failed"

    @pytest.mark.asyncio
    async def test_set_rollback_available(self, deployment_store):
        did = await deployment_store.create(make_deployment(rollback_available=False))
        await deployment_store.set_rollback_available(did, True)
        assert (await deployment_store.get(did)).rollback_available is True
        await deployment_store.set_rollback_available(did, False)
        assert (await deployment_store.get(did)).rollback_available is False
        with pytest.raises(ValidationError, match="not found"):
            await deployment_store.set_rollback_available("DEP-missing", True)

    @pytest.mark.asyncio
    async def test_list_limit(self, deployment_store):
        for i in range(5):
            await deployment_store.create(make_deployment(deployed_at=BASE_TS + timedelta(hours=i)))
        deps = await deployment_store.list_by_environment("staging", limit=3)
        assert len(deps) == 3
        assert deps[0].deployed_at == BASE_TS + timedelta(hours=4)


# ═══════════════════════════════════════════════════════════════════════════
#  AuditLog
# ═══════════════════════════════════════════════════════════════════════════


class TestAuditLog:
    @pytest.mark.asyncio
    async def test_approve_once(self, audit_log):
        eid = await audit_log.append(make_audit_entry(requires_approval=True))
        assert len(await audit_log.list_requiring_approval()) == 1
        await audit_log.approve(eid, "lead")
        entry = await audit_log.get(eid)
        assert entry.approved and entry.approved_by == "lead"
        assert await audit_log.list_requiring_approval() == []
        with pytest.raises(ValidationError):
            await audit_log.approve(eid, "lead")

    @pytest.mark.asyncio
    async def test_statistics(self, audit_log):
        await audit_log.append(make_audit_entry(ai_reasoning="because"))
        eid = await audit_log.append(make_audit_entry(requires_approval=True))
        await audit_log.append(make_audit_entry(requires_approval=True))
        await audit_log.approve(eid, "lead")
        assert await audit_log.statistics() == {
            "total_logs": 3,
            "ai_actions": 1,
            "pending_approvals": 1,
            "approved_actions": 1,
        }

    @pytest.mark.asyncio
    async def test_all_in_append_order(self, audit_log):
        for name in ("a", "b", "c"):
            await audit_log.append(make_audit_entry(action_type=name))
        assert [e.action_type for e in await audit_log.all()] == ["a", "b", "c"]


# ═══════════════════════════════════════════════════════════════════════════
#  RollbackRequestStore
# ═══════════════════════════════════════════════════════════════════════════


class TestRequestStore:
    def _request(self, **kw) -> RollbackRequest:
        base = dict(
            environment="staging",
            snapshot_id="SNP-1",
            reason="bad deploy",
            requested_by="ops",
            explanation="Rollback Analysis:",
            created_at=BASE_TS,
        )
        base.update(kw)
        return RollbackRequest(**base)

    @pytest.mark.asyncio
    async def test_keeps_caller_id(self, request_store):
        rid = await request_store.create(self._request(id="RBK-fixed"))
        assert rid == "RBK-fixed"

    @pytest.mark.asyncio
    async def test_update_and_result(self, request_store):
        req = self._request()
        await request_store.create(req)
        req.status = RollbackStatus.COMPLETED
        await request_store.update(req)
        await request_store.save_result(
            RollbackResult(request_id=req.id, success=True, completed_at=BASE_TS, message="ok")
        )
        assert (await request_store.get(req.id)).status is RollbackStatus.COMPLETED
        assert (await request_store.get_result(req.id)).success
        assert await request_store.get_result("RBK-other") is None

    @pytest.mark.asyncio
    async def test_list_orders_by_latest_activity(self, request_store):
        early = self._request(created_at=BASE_TS)
        late = self._request(created_at=BASE_TS + timedelta(minutes=5))
        await request_store.create(early)
        await request_store.create(late)
        early.decided_at = BASE_TS + timedelta(minutes=10)
        await request_store.update(early)
        ids = [r.id for r in await request_store.list_by_environment("staging")]
        assert ids == [early.id, late.id]
