"""Reporting: alerts/audit CSV, a text summary and a severity chart."""

from __future__ import annotations

import logging
import os
import tempfile
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING

from src.contracts.alert import SecurityAlert
from src.contracts.audit import AuditLogEntry
from src.contracts.enums import Severity
from src.shared.timeutil import iso

if TYPE_CHECKING:
    from src.sentinel.pipeline import ReplayResult

log = logging.getLogger(__name__)

_SEVERITY_COLORS = {
    Severity.LOW: "#27ae60",
    Severity.MEDIUM: "#f39c12",
    Severity.HIGH: "#e67e22",
    Severity.CRITICAL: "#e74c3c",
}


def _atomic_write(path: str, content: str) -> None:
    """Write *content* to *path* through a temp file and an atomic rename."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".{target.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


# ═══════════════════════════════════════════════════════════════════════════
#  CSV writers
# ═══════════════════════════════════════════════════════════════════════════


def write_alerts_csv(alerts: list[SecurityAlert], path: str) -> None:
    lines = [SecurityAlert.csv_header()]
    for a in alerts:
        lines.append(a.to_csv_row())
    _atomic_write(path, "\n".join(lines) + "\n")
    log.info("Wrote alerts → %s (%d rows)", path, len(alerts))


def write_audit_csv(entries: list[AuditLogEntry], path: str) -> None:
    lines = [AuditLogEntry.csv_header()]
    for e in entries:
        lines.append(e.to_csv_row())
    _atomic_write(path, "\n".join(lines) + "\n")
    log.info("Wrote audit trail → %s (%d rows)", path, len(entries))


# ═══════════════════════════════════════════════════════════════════════════
#  TXT report
# ═══════════════════════════════════════════════════════════════════════════


def render_report(result: ReplayResult) -> str:
    lines: list[str] = []
    lines.append("=" * 60)
    lines.append("  Security Monitoring Report")
    lines.append("=" * 60)
    lines.append("")

    lines.append("--- Replay ---")
    lines.append(f"  Signals replayed:  {result.records}")
    lines.append(f"  Signals rejected:  {result.rejected}")
    lines.append(f"  Alerts raised:     {len(result.alerts)}")
    lines.append(f"  Audit entries:     {len(result.audit)}")
    lines.append("")

    status = result.status
    if status is not None:
        lines.append("--- Security status ---")
        lines.append(f"  Honeytokens deployed:     {status.honeytokens_deployed}")
        lines.append(f"  Config files monitored:   {status.config_files_monitored}")
        lines.append(f"  Known login sources:      {status.known_login_sources}")
        lines.append(f"  Active alerts:            {status.active_alerts}")
        lines.append(f"  Critical alerts:          {status.critical_alerts}")
        lines.append(f"  Rollback suggested:       {status.rollback_suggested_alerts}")
        sev_str = ", ".join(f"{k}={v}" for k, v in sorted(status.alerts_by_severity.items()))
        lines.append(f"  By severity:              {sev_str or '-'}")
        type_str = ", ".join(f"{k}={v}" for k, v in sorted(status.alerts_by_type.items()))
        lines.append(f"  By type:                  {type_str or '-'}")
        lines.append(f"  Last check:               {iso(status.last_check)}")
        lines.append("")

    lines.append("--- Alerts ---")
    if not result.alerts:
        lines.append("  (none)")
    for a in sorted(result.alerts, key=lambda a: (-a.severity.rank, a.detected_at)):
        flag = "  [ROLLBACK SUGGESTED]" if a.rollback_suggested else ""
        lines.append(
            f"  {iso(a.detected_at)}  {a.severity.value.upper():<8} {a.id}  {a.title}{flag}"
        )
        lines.append(f"      {a.description}")
    lines.append("")
    lines.append("=" * 60)
    return "\n".join(lines) + "\n"


def write_report_txt(result: ReplayResult, path: str) -> None:
    _atomic_write(path, render_report(result))
    log.info("Wrote report → %s", path)


# ═══════════════════════════════════════════════════════════════════════════
#  Plots (matplotlib)
# ═══════════════════════════════════════════════════════════════════════════


def write_plots(alerts: list[SecurityAlert], out_dir: str) -> None:
    """Render ``plots/alerts_by_severity.png`` under *out_dir*."""
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    plots_dir = Path(out_dir) / "plots"
    plots_dir.mkdir(parents=True, exist_ok=True)

    counts = Counter(a.severity for a in alerts)
    levels = list(Severity)
    values = [counts.get(s, 0) for s in levels]

    fig, ax = plt.subplots(figsize=(8, 5))
    bars = ax.bar(
        [s.value for s in levels],
        values,
        color=[_SEVERITY_COLORS[s] for s in levels],
        edgecolor="black",
        linewidth=0.5,
    )
    for bar, v in zip(bars, values):
        ax.text(
            bar.get_x() + bar.get_width() / 2,
            bar.get_height() + 0.05,
            str(v),
            ha="center",
            va="bottom",
            fontweight="bold",
        )
    ax.set_ylabel("Alerts")
    ax.set_title("Security Alerts by Severity")
    fig.tight_layout()
    fig.savefig(str(plots_dir / "alerts_by_severity.png"), dpi=150)
    plt.close(fig)
    log.info("Wrote plots/alerts_by_severity.png")
