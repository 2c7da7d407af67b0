from datetime import datetime
from html import escape
from pathlib import Path
from typing import Sequence

from .models import BackupResult, DiskUsage, RunStatus, RunSummary
from .storage import format_timestamp
from .utils import human_size

STATUS_COLORS = {
    RunStatus.SUCCESS: "#28a745",
    RunStatus.PARTIAL: "#ffc107",
    RunStatus.FAILED: "#dc3545",
}

_STYLE = """\
body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 800px; margin: 0 auto; padding: 20px; }
.header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; border-radius: 8px; text-align: center; }
.header h1 { margin: 0; font-size: 28px; }
.status { color: white; padding: 20px; margin: 20px 0; border-radius: 8px; text-align: center; }
.status h2 { margin: 0; font-size: 24px; }
.summary { background: #f8f9fa; padding: 20px; border-radius: 8px; margin: 20px 0; }
.summary-item { display: inline-block; background: white; padding: 15px; margin: 5px; border-radius: 6px; text-align: center; border-left: 4px solid #667eea; min-width: 120px; }
.summary-item .value { font-size: 32px; font-weight: bold; color: #667eea; }
.summary-item .label { color: #666; font-size: 14px; }
.database-item { background: white; padding: 15px; margin: 10px 0; border-radius: 6px; border-left: 4px solid #28a745; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }
.database-item.failed { border-left-color: #dc3545; }
.database-item h3 { margin: 0 0 10px 0; font-size: 18px; }
.database-item .detail { color: #666; font-size: 14px; margin: 5px 0; }
.footer { text-align: center; margin-top: 30px; padding-top: 20px; border-top: 2px solid #e9ecef; color: #666; font-size: 14px; }
.timestamp { color: #999; font-size: 12px; }"""


def summarize(results: Sequence[BackupResult], retention_days: int, disk_usage: DiskUsage,
              generated_at: datetime) -> RunSummary:
    succeeded = sum(1 for r in results if r.succeeded)
    return RunSummary(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        retention_days=retention_days,
        disk_usage=disk_usage,
        generated_at=generated_at,
    )


def subject(summary: RunSummary, run_timestamp: datetime) -> str:
    return f"[{summary.status.value}] Database Backup - {format_timestamp(run_timestamp)}"


def _summary_item(value, label: str, color: str = None) -> str:
    style = f' style="color: {color};"' if color else ""
    return (
        '<div class="summary-item">'
        f'<div class="value"{style}>{escape(str(value))}</div>'
        f'<div class="label">{escape(label)}</div>'
        "</div>"
    )


def _database_item(result: BackupResult, run_timestamp: str) -> str:
    entry = result.entry
    css_class = "database-item" if result.succeeded else "database-item failed"
    details = [
        f"<strong>Type:</strong> {escape(entry.engine.label)}",
        f"<strong>Status:</strong> {escape(result.outcome.value)}",
    ]
    if result.succeeded:
        details.append(f"<strong>Size:</strong> {escape(human_size(result.size_bytes))}")
    elif result.error_summary:
        details.append(f"<strong>Error:</strong> {escape(result.error_summary)}")
    details.append(f"<strong>Timestamp:</strong> {escape(run_timestamp)}")

    lines = [f'<div class="{css_class}">', f"<h3>{escape(entry.name)}</h3>"]
    lines.extend(f'<div class="detail">{d}</div>' for d in details)
    lines.append("</div>")
    return "\n".join(lines)


def _disk_line(disk_usage: DiskUsage) -> str:
    line = human_size(disk_usage.backups_bytes)
    if disk_usage.free_bytes is not None:
        line += f" (free: {human_size(disk_usage.free_bytes)})"
    return line


def render_html(results: Sequence[BackupResult], summary: RunSummary, backups_root: Path,
                run_timestamp: datetime) -> str:
    """
    Renders the status report e-mailed after a run.

    Depends only on its arguments; the disk usage snapshot is taken by the
    caller before rendering.
    """
    status = summary.status
    ts = format_timestamp(run_timestamp)

    items = "\n".join([
        _summary_item(summary.total, "Total Databases"),
        _summary_item(summary.succeeded, "Successful", STATUS_COLORS[RunStatus.SUCCESS]),
        _summary_item(summary.failed, "Failed", STATUS_COLORS[RunStatus.FAILED]),
        _summary_item(summary.retention_days, "Retention (days)"),
    ])
    databases = "\n".join(_database_item(r, ts) for r in results) or "<p>No databases were backed up.</p>"
    generated = summary.generated_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()

    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<style>
{_STYLE}
</style>
</head>
<body>
<div class="header">
<h1>Database Backup Report</h1>
<p>Automated backup execution summary</p>
</div>
<div class="status" style="background: {STATUS_COLORS[status]};">
<h2>{status.value}</h2>
</div>
<div class="summary">
<h2 style="margin-top: 0;">Backup Summary</h2>
{items}
</div>
<div class="database-list">
<h2>Database Details</h2>
{databases}
</div>
<div class="footer">
<p><strong>Backup Location:</strong> {escape(str(backups_root))}</p>
<p><strong>Total Disk Usage:</strong> {escape(_disk_line(summary.disk_usage))}</p>
<p class="timestamp">Report generated: {escape(generated)}</p>
</div>
</body>
</html>
"""
