"""SecurityAlert — a classified alert raised by the anomaly detector."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.contracts.enums import AlertStatus, AlertType, Severity
from src.shared.timeutil import iso

ALERT_CSV_COLUMNS: list[str] = [
    "id",
    "type",
    "severity",
    "status",
    "title",
    "description",
    "rollback_suggested",
    "detected_at",
    "resolved_at",
    "assigned_to",
    "evidence",
]


@dataclass(slots=True)
class SecurityAlert:
    """One alert.  Only status, assignment and resolution fields change."""

    type: AlertType
    severity: Severity
    title: str
    description: str
    explanation: str
    detected_at: datetime
    evidence: dict[str, str] = field(default_factory=dict)
    rollback_suggested: bool = False
    status: AlertStatus = AlertStatus.NEW
    id: str = ""  # assigned by the AlertStore
    resolved_at: datetime | None = None
    assigned_to: str | None = None

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    # ── serialisation ─────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "explanation": self.explanation,
            "status": self.status.value,
            "evidence": dict(self.evidence),
            "rollback_suggested": self.rollback_suggested,
            "detected_at": iso(self.detected_at),
            "resolved_at": iso(self.resolved_at),
            "assigned_to": self.assigned_to or "",
        }

    def to_csv_row(self) -> str:
        """Return a single CSV line (no trailing newline)."""
        d = self.to_dict()
        d["evidence"] = json.dumps(self.evidence, sort_keys=True, separators=(",", ":"))
        d["rollback_suggested"] = "true" if self.rollback_suggested else "false"
        buf = io.StringIO()
        writer = csv.writer(buf)
        writer.writerow([d[c] for c in ALERT_CSV_COLUMNS])
        return buf.getvalue().rstrip("\r\n")

    @staticmethod
    def csv_header() -> str:
        return ",".join(ALERT_CSV_COLUMNS)
