"""Security status summary returned by the detector."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class SecurityStatus:
    honeytokens_deployed: int
    config_files_monitored: int
    known_login_sources: int
    active_alerts: int
    critical_alerts: int
    rollback_suggested_alerts: int
    last_check: datetime
    alerts_by_severity: dict[str, int] = field(default_factory=dict)
    alerts_by_type: dict[str, int] = field(default_factory=dict)
