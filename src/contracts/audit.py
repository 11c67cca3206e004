"""AuditLogEntry — one record of the append-only audit trail."""

from __future__ import annotations

import csv
import io
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.shared.timeutil import iso

AUDIT_CSV_COLUMNS: list[str] = [
    "id",
    "timestamp",
    "action_type",
    "description",
    "user_id",
    "requires_approval",
    "approved",
    "approved_by",
    "context_data",
]


@dataclass(slots=True)
class AuditLogEntry:
    """Append-only.  ``approved``/``approved_by`` flip once, false → true."""

    action_type: str
    description: str
    timestamp: datetime
    context_data: dict[str, Any] = field(default_factory=dict)
    ai_reasoning: str | None = None
    user_id: str | None = None
    requires_approval: bool = False
    approved: bool = False
    approved_by: str | None = None
    id: str = ""

    def to_csv_row(self) -> str:
        row = {
            "id": self.id,
            "timestamp": iso(self.timestamp),
            "action_type": self.action_type,
            "description": self.description,
            "user_id": self.user_id or "",
            "requires_approval": "true" if self.requires_approval else "false",
            "approved": "true" if self.approved else "false",
            "approved_by": self.approved_by or "",
            "context_data": json.dumps(self.context_data, sort_keys=True, default=str),
        }
        buf = io.StringIO()
        csv.writer(buf).writerow([row[c] for c in AUDIT_CSV_COLUMNS])
        return buf.getvalue().rstrip("\r\n")

    @staticmethod
    def csv_header() -> str:
        return ",".join(AUDIT_CSV_COLUMNS)
