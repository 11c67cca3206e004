"""Tests for src.contracts — records, enums and the error hierarchy."""

from __future__ import annotations

import csv
import io
import json

import pytest

from src.contracts.alert import ALERT_CSV_COLUMNS, SecurityAlert
from src.contracts.audit import AUDIT_CSV_COLUMNS, AuditLogEntry
from src.contracts.enums import (
    AlertStatus,
    AlertType,
    ChangeClass,
    FailureCategory,
    RollbackStatus,
    Severity,
)
from src.contracts.errors import (
    ApplyError,
    IntegrityCheckError,
    InvalidRequestStateError,
    SentinelError,
    SnapshotNotFoundError,
    SnapshotRevokedError,
    StoreTimeoutError,
    StoreUnavailableError,
    UnverifiedSnapshotError,
    ValidationError,
)
from src.contracts.rollback import IntegrityCheck, RollbackResult
from tests.conftest import BASE_TS, make_alert, make_audit_entry, make_snapshot

# ═══════════════════════════════════════════════════════════════════════════
#  Enums
# ═══════════════════════════════════════════════════════════════════════════


class TestEnums:
    def test_severity_rank_order(self):
        ranks = [s.rank for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4

    def test_alert_status_terminal(self):
        assert AlertStatus.RESOLVED.is_terminal
        assert AlertStatus.FALSE_POSITIVE.is_terminal
        assert not AlertStatus.NEW.is_terminal
        assert not AlertStatus.ASSIGNED.is_terminal

    def test_rollback_status_terminal(self):
        terminal = {s for s in RollbackStatus if s.is_terminal}
        assert terminal == {RollbackStatus.REJECTED, RollbackStatus.COMPLETED, RollbackStatus.FAILED}

    @pytest.mark.parametrize(
        "label, expected",
        [
            ("credential_modification", ChangeClass.CREDENTIAL_MODIFICATION),
            ("  Privilege_Escalation ", ChangeClass.PRIVILEGE_ESCALATION),
            ("network_configuration", ChangeClass.NETWORK_CONFIGURATION),
            ("schema_tweak", ChangeClass.GENERAL_CONFIGURATION),
            (ChangeClass.NETWORK_CONFIGURATION, ChangeClass.NETWORK_CONFIGURATION),
        ],
    )
    def test_change_class_parse(self, label, expected):
        assert ChangeClass.parse(label) is expected

    def test_str_enums_compare_to_values(self):
        assert AlertType.AUTH_FLOOD == "auth_flood"
        assert Severity("critical") is Severity.CRITICAL


# ═══════════════════════════════════════════════════════════════════════════
#  SecurityAlert
# ═══════════════════════════════════════════════════════════════════════════


class TestSecurityAlert:
    @pytest.fixture
    def sample_alert(self):
        return make_alert(
            id="ALR-1",
            type=AlertType.DATABASE_BREACH,
            severity=Severity.CRITICAL,
            title="Honeytoken Access Detected",
            description="Unauthorized access, with a comma",
            evidence={"source_ip": "198.51.100.23", "honeytoken_type": "ssn"},
            rollback_suggested=True,
        )

    def test_csv_header_matches_columns(self):
        assert SecurityAlert.csv_header() == ",".join(ALERT_CSV_COLUMNS)

    def test_to_csv_row(self, sample_alert):
        values = next(csv.reader(io.StringIO(sample_alert.to_csv_row())))
        assert len(values) == len(ALERT_CSV_COLUMNS)
        row = dict(zip(ALERT_CSV_COLUMNS, values))
        assert row["id"] == "ALR-1"
        assert row["severity"] == "critical"
        assert row["description"] == "Unauthorized access, with a comma"
        assert row["rollback_suggested"] == "true"
        assert row["detected_at"] == "2026-03-01T10:00:00Z"
        assert row["resolved_at"] == ""
        assert json.loads(row["evidence"])["honeytoken_type"] == "ssn"

    def test_to_dict(self, sample_alert):
        d = sample_alert.to_dict()
        assert d["type"] == "database_breach"
        assert d["status"] == "new"
        assert d["evidence"] == sample_alert.evidence
        assert d["evidence"] is not sample_alert.evidence

    def test_is_active(self):
        assert make_alert().is_active
        assert not make_alert(status=AlertStatus.RESOLVED).is_active


# ═══════════════════════════════════════════════════════════════════════════
#  AuditLogEntry / Snapshot / RollbackResult
# ═══════════════════════════════════════════════════════════════════════════


class TestAuditLogEntry:
    def test_csv_row(self):
        entry = make_audit_entry(
            action_type="rollback_requested",
            requires_approval=True,
            context_data={"request_id": "RBK-1", "reason": "bad deploy"},
        )
        entry.id = "AUD-1"
        values = next(csv.reader(io.StringIO(entry.to_csv_row())))
        row = dict(zip(AUDIT_CSV_COLUMNS, values))
        assert row["action_type"] == "rollback_requested"
        assert row["requires_approval"] == "true"
        assert row["approved"] == "false"
        assert json.loads(row["context_data"]) == {"request_id": "RBK-1", "reason": "bad deploy"}

    def test_defaults(self):
        entry = make_audit_entry()
        assert entry.approved is False
        assert entry.approved_by is None
        assert entry.user_id is None


class TestSnapshot:
    def test_short_revision(self):
        assert make_snapshot(source_revision="0123456789abcdef").short_revision == "01234567"

    def test_unverified_by_default(self):
        from src.contracts.snapshot import Snapshot

        snap = Snapshot(environment="prod", source_revision="abc", created_at=BASE_TS)
        assert snap.verified is False
        assert snap.file_manifest == frozenset()


class TestRollbackResult:
    def test_success_dict_omits_failure_fields(self):
        check = IntegrityCheck(checks_count=3, passed_count=3, completed_at=BASE_TS)
        res = RollbackResult(
            request_id="RBK-1", success=True, completed_at=BASE_TS, message="ok", integrity_check=check
        )
        d = res.to_dict()
        assert d["integrity_check"]["passed_count"] == 3
        assert "alternative_options" not in d

    def test_failure_dict_carries_options(self):
        res = RollbackResult(
            request_id="RBK-1",
            success=False,
            completed_at=BASE_TS,
            message="failed",
            error="boom",
            alternative_options=["Contact system administrator for specialized assistance"],
            failure_category=FailureCategory.NETWORK,
        )
        d = res.to_dict()
        assert d["error"] == "boom"
        assert d["failure_category"] == "network"
        assert d["alternative_options"]

    def test_integrity_check_verified(self):
        assert IntegrityCheck(2, 2, BASE_TS).verified
        assert not IntegrityCheck(2, 1, BASE_TS, ["file:a"]).verified


# ═══════════════════════════════════════════════════════════════════════════
#  Errors
# ═══════════════════════════════════════════════════════════════════════════


class TestErrors:
    def test_unverified_message(self):
        err = UnverifiedSnapshotError("SNP-1")
        assert "unverified" in str(err)
        assert isinstance(err, ValidationError)

    def test_not_found_message(self):
        assert "not found" in str(SnapshotNotFoundError("SNP-9"))

    def test_invalid_state_message(self):
        err = InvalidRequestStateError("RBK-1", "rejected", "execute")
        assert "rejected" in str(err)
        assert err.status == "rejected"

    def test_store_errors_are_retryable(self):
        assert StoreTimeoutError("alerts.create", 5.0).retryable
        assert StoreUnavailableError("alerts.create", ConnectionError("down")).retryable
        assert not ValidationError("x").retryable
        assert isinstance(StoreTimeoutError("x", 1.0), SentinelError)

    def test_execution_error_categories(self):
        assert ApplyError("disk", FailureCategory.RESOURCES).category is FailureCategory.RESOURCES
        assert IntegrityCheckError(["file:a"]).category is FailureCategory.INTEGRITY
        assert SnapshotRevokedError("SNP-1").category is FailureCategory.SNAPSHOT
