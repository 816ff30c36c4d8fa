"""
stepstone/report.py — Human and JSON renderings of a CheckResult.

Both renderers return a string; printing is left to the caller (cli.py).
The JSON document shape is consumed by deployment tooling, keep keys stable:

    component, config_file, timestamp, overall_result (PASS|FAIL),
    total_checks, passed_checks, failed_checks, warning_checks,
    total_duration_ms, message,
    details[]: item, status (PASS|FAIL|WARNING), message, duration_ms, suggestion
"""

from __future__ import annotations

import json
from datetime import UTC, datetime

from stepstone.health import CheckResult

_RULE = "═" * 60


def _ms(seconds: float | None) -> int | None:
    return None if seconds is None else int(seconds * 1000)


def render_human(result: CheckResult, component: str, config_file: str | None = None) -> str:
    lines = [
        "",
        f"╔{_RULE}╗",
        "  GreptimeDB Self-Test Report",
        f"  Component: {component}",
    ]
    if config_file:
        lines.append(f"  Configuration: {config_file}")
    if result.total_duration is not None:
        lines.append(f"  Total Duration: {result.total_duration * 1000:.1f}ms")
    lines.append(f"╚{_RULE}╝")
    lines.append("")

    lines.extend(str(detail) for detail in result.details)

    lines.append("")
    lines.append(f"╔{_RULE}╗")
    lines.append(f"  {result.message}")
    lines.append(f"  Overall Result: {'PASS' if result.success else 'FAIL'}")
    lines.append(f"╚{_RULE}╝")
    return "\n".join(lines)


def to_document(
    result: CheckResult,
    component: str,
    config_file: str | None = None,
    *,
    now: datetime | None = None,
) -> dict:
    timestamp = (now or datetime.now(UTC)).isoformat()
    return {
        "component": component,
        "config_file": config_file,
        "timestamp": timestamp,
        "overall_result": "PASS" if result.success else "FAIL",
        "total_checks": len(result.details),
        "passed_checks": result.passed_count,
        "failed_checks": result.failed_count,
        "warning_checks": result.warning_count,
        "total_duration_ms": _ms(result.total_duration),
        "message": result.message,
        "details": [
            {
                "item": d.item,
                "status": d.status.value,
                "message": d.message,
                "duration_ms": _ms(d.duration),
                "suggestion": d.suggestion,
            }
            for d in result.details
        ],
    }


def render_json(result: CheckResult, component: str, config_file: str | None = None) -> str:
    return json.dumps(to_document(result, component, config_file), indent=2, ensure_ascii=False)
