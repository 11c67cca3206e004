"""Pipeline — replay a JSONL signal file through the detector and report.

Each JSONL line is one signal record::

    {"timestamp": "2026-03-01T02:14:00Z", "kind": "login_attempt",
     "identity": "admin", "successful": false, "source_ip": "203.0.113.7"}

Supported kinds and their fields:

    login_attempt     identity, successful, source_ip?
    login_source      identity, source
    honeytoken_access token_value, source_ip, access_context?
    data_export       current, baseline, affected_tables?
    database_access   query_count, hour
    config_hash       file_path, content_hash, change_type?

The record timestamp drives the detector clock, so window-based rules
behave as they did when the signals were captured.  Retryable store
failures are retried per record with exponential backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from src.contracts.alert import SecurityAlert
from src.contracts.audit import AuditLogEntry
from src.contracts.status import SecurityStatus
from src.sentinel.detector import AnomalyDetector, build_detector
from src.sentinel.reporter import (
    write_alerts_csv,
    write_audit_csv,
    write_plots,
    write_report_txt,
)
from src.shared.retry import retry_async
from src.shared.timeutil import parse_ts, utc_now
from src.stores.memory import InMemoryAlertStore, InMemoryAuditLog

log = logging.getLogger(__name__)

SIGNAL_KINDS = (
    "login_attempt",
    "login_source",
    "honeytoken_access",
    "data_export",
    "database_access",
    "config_hash",
)


class ReplayClock:
    """Clock pinned to the timestamp of the record being replayed."""

    def __init__(self) -> None:
        self._now: datetime | None = None

    def set(self, ts: datetime | None) -> None:
        self._now = ts

    def __call__(self) -> datetime:
        return self._now or utc_now()


@dataclass(slots=True)
class SignalRecord:
    kind: str
    fields: dict[str, Any]
    timestamp: datetime | None = None
    line_no: int = 0


@dataclass(slots=True)
class ReplayResult:
    records: int = 0
    alerts: list[SecurityAlert] = field(default_factory=list)
    audit: list[AuditLogEntry] = field(default_factory=list)
    status: SecurityStatus | None = None
    rejected: int = 0


# ═══════════════════════════════════════════════════════════════════════════
#  Signal loader
# ═══════════════════════════════════════════════════════════════════════════


def _parse_record(obj: dict[str, Any], line_no: int) -> SignalRecord:
    kind = str(obj["kind"])
    if kind not in SIGNAL_KINDS:
        raise KeyError(f"unknown kind '{kind}'")
    ts = obj.get("timestamp")
    fields = {k: v for k, v in obj.items() if k not in ("kind", "timestamp")}
    return SignalRecord(
        kind=kind,
        fields=fields,
        timestamp=parse_ts(ts) if ts else None,
        line_no=line_no,
    )


def load_signals(path: str) -> list[SignalRecord]:
    """Load signal records from a JSONL file, skipping malformed lines."""
    records: list[SignalRecord] = []
    with open(path, encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, 1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(_parse_record(json.loads(line), line_no))
            except (json.JSONDecodeError, KeyError, ValueError) as exc:
                log.warning("Skipping JSONL line %d: %s", line_no, exc)
    log.info("Loaded %d signals from JSONL: %s", len(records), path)
    return records


# ═══════════════════════════════════════════════════════════════════════════
#  Replay
# ═══════════════════════════════════════════════════════════════════════════


async def dispatch(detector: AnomalyDetector, rec: SignalRecord) -> SecurityAlert | None:
    """Route one record to the matching ``record_*`` call."""
    f = rec.fields
    if rec.kind == "login_attempt":
        return await detector.record_login_attempt(
            str(f["identity"]), bool(f["successful"]), f.get("source_ip")
        )
    if rec.kind == "login_source":
        return await detector.record_login_source(str(f["identity"]), str(f["source"]))
    if rec.kind == "honeytoken_access":
        return await detector.record_honeytoken_access(
            str(f["token_value"]), str(f["source_ip"]), str(f.get("access_context", ""))
        )
    if rec.kind == "data_export":
        return await detector.record_data_export_sample(
            int(f["current"]), int(f["baseline"]), f.get("affected_tables", ())
        )
    if rec.kind == "database_access":
        return await detector.record_database_access(int(f["query_count"]), int(f["hour"]))
    if rec.kind == "config_hash":
        return await detector.record_config_hash(
            str(f["file_path"]),
            str(f["content_hash"]),
            f.get("change_type", "general_configuration"),
        )
    raise ValueError(f"Unsupported signal kind: {rec.kind}")


async def replay(
    records: list[SignalRecord],
    detector: AnomalyDetector,
    clock: ReplayClock | None = None,
) -> tuple[list[SecurityAlert], int]:
    """Feed *records* to *detector* in order.

    Returns the raised alerts and the number of records rejected as
    invalid.  Store errors that stay failing after retries propagate.
    """
    raised: list[SecurityAlert] = []
    rejected = 0
    for rec in records:
        if clock is not None:
            clock.set(rec.timestamp)
        try:
            alert = await retry_async(
                lambda rec=rec: dispatch(detector, rec),
                what=f"signal line {rec.line_no} ({rec.kind})",
            )
        except (KeyError, TypeError, ValueError) as exc:
            log.warning("Rejected signal line %d (%s): %s", rec.line_no, rec.kind, exc)
            rejected += 1
            continue
        if alert is not None:
            raised.append(alert)
    return raised, rejected


async def run_replay(
    input_path: str,
    config_dir: str = "config",
) -> ReplayResult:
    """Build in-memory stores and a detector, then replay *input_path*."""
    records = load_signals(input_path)
    alerts_store = InMemoryAlertStore()
    audit = InMemoryAuditLog()
    clock = ReplayClock()
    detector = build_detector(config_dir, alerts_store, audit, clock=clock)

    if records:
        clock.set(records[0].timestamp)
    await detector.deploy_honeytokens()

    raised, rejected = await replay(records, detector, clock)
    log.info(
        "Replayed %d signals: %d alerts raised, %d rejected",
        len(records), len(raised), rejected,
    )
    return ReplayResult(
        records=len(records),
        alerts=raised,
        audit=await audit.all(),
        status=await detector.get_security_status(),
        rejected=rejected,
    )


def run_pipeline(
    input_path: str,
    out_dir: str = "out",
    config_dir: str = "config",
) -> ReplayResult:
    """Replay the signal file and write alerts.csv, audit.csv, report.txt and plots."""
    result = asyncio.run(run_replay(input_path, config_dir))
    if not result.records:
        log.warning("No signals loaded from %s, nothing to replay.", input_path)

    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    write_alerts_csv(result.alerts, str(out / "alerts.csv"))
    write_audit_csv(result.audit, str(out / "audit.csv"))
    write_report_txt(result, str(out / "report.txt"))
    write_plots(result.alerts, str(out))

    log.info("Pipeline complete. Outputs in %s/", out_dir)
    return result
