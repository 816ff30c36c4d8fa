"""
stepstone/health — Verification protocols and the shared result model.

Each verifier module exposes an async run_checks(...) that returns a list of
CheckDetail objects. stepstone.checkers concatenates them per role and reduces
the list with CheckResult.from_details.

Usage:
    from stepstone.health import CheckDetail, CheckResult, CheckStatus
    from stepstone.health.connectivity import probe_endpoints
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class CheckStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    WARNING = "WARNING"

    @property
    def label(self) -> str:
        return "WARN" if self is CheckStatus.WARNING else self.value


@dataclass(frozen=True)
class CheckDetail:
    item: str
    status: CheckStatus
    message: str
    duration: float | None = None
    suggestion: str | None = None

    @classmethod
    def passed(cls, item: str, message: str, duration: float | None = None) -> CheckDetail:
        return cls(item, CheckStatus.PASS, message, duration)

    @classmethod
    def failed(
        cls,
        item: str,
        message: str,
        duration: float | None = None,
        suggestion: str | None = None,
    ) -> CheckDetail:
        return cls(item, CheckStatus.FAIL, message, duration, suggestion)

    @classmethod
    def warning(
        cls,
        item: str,
        message: str,
        duration: float | None = None,
        suggestion: str | None = None,
    ) -> CheckDetail:
        return cls(item, CheckStatus.WARNING, message, duration, suggestion)

    def __str__(self) -> str:
        line = f"  [{self.status.label}] {self.item}: {self.message}"
        if self.duration is not None:
            line += f" ({self.duration * 1000:.1f}ms)"
        if self.suggestion and self.status is not CheckStatus.PASS:
            line += f"\n         suggestion: {self.suggestion}"
        return line


def _total_duration(details: tuple[CheckDetail, ...]) -> float | None:
    durations = [d.duration for d in details if d.duration is not None]
    if not durations:
        return None
    return sum(durations)


@dataclass(frozen=True)
class CheckResult:
    success: bool
    message: str
    details: tuple[CheckDetail, ...]
    total_duration: float | None = None

    @classmethod
    def from_details(cls, details: Iterable[CheckDetail]) -> CheckResult:
        items = tuple(details)
        passed = sum(1 for d in items if d.status is CheckStatus.PASS)
        warnings = sum(1 for d in items if d.status is CheckStatus.WARNING)
        failed = sum(1 for d in items if d.status is CheckStatus.FAIL)

        if failed:
            message = f"Some checks failed ({passed} passed, {warnings} warnings, {failed} failed)"
        elif warnings:
            message = f"Checks completed with warnings ({passed} passed, {warnings} warnings)"
        else:
            message = f"All checks passed ({passed} passed)"

        return cls(failed == 0, message, items, _total_duration(items))

    @classmethod
    def success_result(cls, message: str, details: Iterable[CheckDetail]) -> CheckResult:
        """Build a passing result without deriving the verdict from ``details``."""
        items = tuple(details)
        return cls(True, message, items, _total_duration(items))

    @classmethod
    def failure_result(cls, message: str, details: Iterable[CheckDetail]) -> CheckResult:
        """Build a failing result without deriving the verdict from ``details``."""
        items = tuple(details)
        return cls(False, message, items, _total_duration(items))

    @property
    def passed_count(self) -> int:
        return sum(1 for d in self.details if d.status is CheckStatus.PASS)

    @property
    def warning_count(self) -> int:
        return sum(1 for d in self.details if d.status is CheckStatus.WARNING)

    @property
    def failed_count(self) -> int:
        return sum(1 for d in self.details if d.status is CheckStatus.FAIL)
