"""Tests for src.sentinel.rules — signal → SecurityAlert."""

from __future__ import annotations

import pytest

from src.contracts.enums import AlertStatus, AlertType, ChangeClass, Severity
from src.contracts.signals import (
    ConfigChange,
    DatabaseAccess,
    DataExportSample,
    HoneytokenAccess,
    LoginFailureBurst,
    LoginSource,
)
from src.sentinel.rules import evaluate
from src.sentinel.settings import DetectorSettings
from tests.conftest import BASE_TS


@pytest.fixture
def settings() -> DetectorSettings:
    return DetectorSettings()


# ═══════════════════════════════════════════════════════════════════════════
#  Honeytokens
# ═══════════════════════════════════════════════════════════════════════════


class TestHoneytokenRule:
    @pytest.mark.parametrize("token_type", ["credit_card", "ssn", "api_key", "password_hash", "email"])
    def test_every_kind_is_critical_breach(self, settings, token_type):
        sig = HoneytokenAccess(token_type, "decoy", "198.51.100.23", BASE_TS, "users", token_type)
        alert = evaluate(sig, settings)
        assert alert.type is AlertType.DATABASE_BREACH
        assert alert.severity is Severity.CRITICAL
        assert alert.rollback_suggested is True
        assert alert.status is AlertStatus.NEW
        assert alert.id == ""
        assert token_type in alert.explanation
        assert alert.evidence["honeytoken_type"] == token_type
        assert alert.evidence["source_ip"] == "198.51.100.23"
        assert alert.evidence["access_time"] == "2026-03-01T10:00:00Z"


# ═══════════════════════════════════════════════════════════════════════════
#  Authentication flood
# ═══════════════════════════════════════════════════════════════════════════


class TestAuthFloodRule:
    def test_below_threshold(self, settings):
        assert evaluate(LoginFailureBurst("admin", 5, BASE_TS), settings) is None

    def test_medium(self, settings):
        alert = evaluate(LoginFailureBurst("admin", 6, BASE_TS, "203.0.113.7"), settings)
        assert alert.type is AlertType.AUTH_FLOOD
        assert alert.severity is Severity.MEDIUM
        assert alert.rollback_suggested is False
        assert alert.description == "6 failed login attempts for admin from 203.0.113.7"
        assert alert.evidence["failed_attempts"] == "6"

    def test_high_never_suggests_rollback(self, settings):
        alert = evaluate(LoginFailureBurst("admin", 12, BASE_TS), settings)
        assert alert.severity is Severity.HIGH
        assert alert.rollback_suggested is False


# ═══════════════════════════════════════════════════════════════════════════
#  Data export
# ═══════════════════════════════════════════════════════════════════════════


class TestDataExportRule:
    def test_no_alert_below_high(self, settings):
        assert evaluate(DataExportSample(12, 10, BASE_TS), settings) is None

    def test_high(self, settings):
        alert = evaluate(DataExportSample(15, 10, BASE_TS, ("orders",)), settings)
        assert alert.severity is Severity.HIGH
        assert alert.type is AlertType.DATABASE_BREACH
        assert alert.rollback_suggested is False
        assert alert.evidence == {
            "current_query_count": "15",
            "baseline_count": "10",
            "percentage_increase": "50.0",
            "affected_tables": "orders",
        }

    @pytest.mark.parametrize("current", [40, 60])
    def test_critical(self, settings, current):
        alert = evaluate(DataExportSample(current, 10, BASE_TS), settings)
        assert alert.severity is Severity.CRITICAL
        assert alert.rollback_suggested is True

    def test_zero_baseline_raises(self, settings):
        with pytest.raises(ValueError):
            evaluate(DataExportSample(5, 0, BASE_TS), settings)


# ═══════════════════════════════════════════════════════════════════════════
#  Off-hours, drift, login source
# ═══════════════════════════════════════════════════════════════════════════


class TestOtherRules:
    def test_off_hours(self, settings):
        alert = evaluate(DatabaseAccess(12, 23, BASE_TS), settings)
        assert alert.type is AlertType.SYSTEM_ANOMALY
        assert alert.severity is Severity.MEDIUM
        assert alert.rollback_suggested is False
        assert alert.evidence["access_hour"] == "23:00"

    def test_business_hours_quiet(self, settings):
        assert evaluate(DatabaseAccess(500, 14, BASE_TS), settings) is None

    @pytest.mark.parametrize(
        "change, severity, rollback",
        [
            (ChangeClass.CREDENTIAL_MODIFICATION, Severity.CRITICAL, True),
            (ChangeClass.PRIVILEGE_ESCALATION, Severity.CRITICAL, True),
            (ChangeClass.NETWORK_CONFIGURATION, Severity.MEDIUM, False),
            (ChangeClass.GENERAL_CONFIGURATION, Severity.LOW, False),
        ],
    )
    def test_config_drift(self, settings, change, severity, rollback):
        alert = evaluate(ConfigChange("config/x.yaml", change, "aaa", "bbb", BASE_TS), settings)
        assert alert.type is AlertType.SYSTEM_ANOMALY
        assert alert.severity is severity
        assert alert.rollback_suggested is rollback
        assert alert.evidence["change_type"] == change.value
        assert alert.evidence["baseline_hash"] == "aaa"
        assert alert.evidence["current_hash"] == "bbb"

    def test_unusual_login_source(self, settings):
        alert = evaluate(LoginSource("alice", "203.0.113.7", BASE_TS), settings)
        assert alert.severity is Severity.MEDIUM
        assert alert.rollback_suggested is False
        assert alert.evidence["source_ip"] == "203.0.113.7"

    def test_unknown_signal_type(self, settings):
        with pytest.raises(TypeError):
            evaluate(object(), settings)

    def test_rollback_suggested_iff_critical(self, settings):
        signals = [
            HoneytokenAccess("ssn", "v", "ip", BASE_TS),
            LoginFailureBurst("u", 20, BASE_TS),
            DataExportSample(15, 10, BASE_TS),
            DataExportSample(50, 10, BASE_TS),
            DatabaseAccess(10, 2, BASE_TS),
            ConfigChange("f", ChangeClass.PRIVILEGE_ESCALATION, "a", "b", BASE_TS),
            ConfigChange("f", ChangeClass.NETWORK_CONFIGURATION, "a", "b", BASE_TS),
            LoginSource("u", "s", BASE_TS),
        ]
        for sig in signals:
            alert = evaluate(sig, settings)
            assert alert.rollback_suggested == (alert.severity is Severity.CRITICAL)
