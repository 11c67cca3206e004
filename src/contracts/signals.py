"""Typed operational signals, one variant per detector rule.

The detector dispatches on the concrete class; no free-text parsing is
involved in choosing a rule or a severity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from src.contracts.enums import ChangeClass


@dataclass(slots=True, frozen=True)
class HoneytokenAccess:
    token_type: str
    token_value: str
    source_ip: str
    accessed_at: datetime
    table: str = ""
    column: str = ""
    access_context: str = ""


@dataclass(slots=True, frozen=True)
class LoginFailureBurst:
    """Snapshot of an identity's failure streak after a failed attempt."""

    identity: str
    failed_attempts: int
    last_attempt: datetime
    source_ip: str = ""


@dataclass(slots=True, frozen=True)
class DataExportSample:
    current: int
    baseline: int
    observed_at: datetime
    affected_tables: tuple[str, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class DatabaseAccess:
    query_count: int
    hour: int
    observed_at: datetime


@dataclass(slots=True, frozen=True)
class ConfigChange:
    file_path: str
    change_type: ChangeClass
    baseline_hash: str
    current_hash: str
    observed_at: datetime


@dataclass(slots=True, frozen=True)
class LoginSource:
    identity: str
    source: str
    observed_at: datetime


AlertSignal = (
    HoneytokenAccess
    | LoginFailureBurst
    | DataExportSample
    | DatabaseAccess
    | ConfigChange
    | LoginSource
)
