"""Detector settings built from ``config/detector.yaml``.

Every key is optional; a missing section keeps the built-in default.

    auth_flood:    {threshold: 5, high_threshold: 10, window_sec: 300}
    data_export:   {high_pct: 50, critical_pct: 300}
    off_hours:     {business_start: 6, business_end: 22, query_floor: 3}
    config_drift:  {tracked_files: {path: change_class, ...}}
    login_sources: {known: [ip, ...]}
    honeytokens:   [{type, value, table, column}, ...]
    store_timeout_sec: 5.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from src.contracts.enums import ChangeClass
from src.stores.timeouts import DEFAULT_STORE_TIMEOUT_SEC

log = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class HoneytokenSpec:
    type: str
    value: str
    table: str = ""
    column: str = ""


DEFAULT_HONEYTOKENS: tuple[HoneytokenSpec, ...] = (
    HoneytokenSpec("credit_card", "4111-1111-1111-1111", "users", "credit_card"),
    HoneytokenSpec("ssn", "123-45-6789", "users", "ssn"),
    HoneytokenSpec("api_key", "sk-fake-api-key-12345", "api_keys", "key_value"),
    HoneytokenSpec("password_hash", "$2b$12$fake.hash.for.honeytoken", "users", "password_hash"),
    HoneytokenSpec("email", "admin@honeytrap.internal", "users", "email"),
)


@dataclass(slots=True)
class DetectorSettings:
    auth_flood_threshold: int = 5
    auth_flood_high_threshold: int = 10
    auth_flood_window_sec: float = 300.0
    export_high_pct: float = 50.0
    export_critical_pct: float = 300.0
    business_start_hour: int = 6
    business_end_hour: int = 22
    off_hours_query_floor: int = 3
    tracked_files: dict[str, ChangeClass] = field(default_factory=dict)
    known_login_sources: frozenset[str] = frozenset()
    honeytokens: tuple[HoneytokenSpec, ...] = DEFAULT_HONEYTOKENS
    store_timeout_sec: float = DEFAULT_STORE_TIMEOUT_SEC

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> DetectorSettings:
        auth = cfg.get("auth_flood", {}) or {}
        export = cfg.get("data_export", {}) or {}
        off = cfg.get("off_hours", {}) or {}
        drift = cfg.get("config_drift", {}) or {}
        sources = cfg.get("login_sources", {}) or {}

        tokens = cfg.get("honeytokens")
        if tokens is None:
            honeytokens = DEFAULT_HONEYTOKENS
        else:
            honeytokens = tuple(
                HoneytokenSpec(
                    type=str(t["type"]),
                    value=str(t["value"]),
                    table=str(t.get("table", "")),
                    column=str(t.get("column", "")),
                )
                for t in tokens
            )

        tracked = drift.get("tracked_files", {}) or {}
        if isinstance(tracked, list):
            tracked = {p: ChangeClass.GENERAL_CONFIGURATION.value for p in tracked}

        settings = cls(
            auth_flood_threshold=int(auth.get("threshold", 5)),
            auth_flood_high_threshold=int(auth.get("high_threshold", 10)),
            auth_flood_window_sec=float(auth.get("window_sec", 300)),
            export_high_pct=float(export.get("high_pct", 50)),
            export_critical_pct=float(export.get("critical_pct", 300)),
            business_start_hour=int(off.get("business_start", 6)),
            business_end_hour=int(off.get("business_end", 22)),
            off_hours_query_floor=int(off.get("query_floor", 3)),
            tracked_files={str(p): ChangeClass.parse(c) for p, c in tracked.items()},
            known_login_sources=frozenset(str(s) for s in sources.get("known", []) or []),
            honeytokens=honeytokens,
            store_timeout_sec=float(cfg.get("store_timeout_sec", DEFAULT_STORE_TIMEOUT_SEC)),
        )
        if settings.auth_flood_high_threshold < settings.auth_flood_threshold:
            raise ValueError("auth_flood.high_threshold must be >= auth_flood.threshold")
        if settings.export_critical_pct < settings.export_high_pct:
            raise ValueError("data_export.critical_pct must be >= data_export.high_pct")
        log.debug(
            "Detector settings: %d honeytokens, %d tracked files, %d known sources",
            len(settings.honeytokens), len(settings.tracked_files), len(settings.known_login_sources),
        )
        return settings
