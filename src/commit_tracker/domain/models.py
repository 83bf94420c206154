from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


# ── Outcomes ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Value computed normally."""

    value: T


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """Value fell back to its defaults; *reason* says why."""

    value: T
    reason: str


@dataclass(frozen=True)
class Failed:
    """Nothing usable could be produced."""

    reason: str


Outcome = Union[Ok[T], Degraded[T], Failed]


# ── Commit data ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class DiffStats:
    additions: int = 0
    deletions: int = 0

    @property
    def total(self) -> int:
        return self.additions + self.deletions


@dataclass(frozen=True)
class TestResults:
    """Outcome of one test-runner invocation, reduced to counts."""

    __test__ = False  # not a pytest class

    test_count: int = 0
    failed_tests: int = 0
    coverage: float = 0.0  # percentage, 2 decimals

    @property
    def conclusion(self) -> str:
        return derive_conclusion(self.test_count, self.failed_tests)


def derive_conclusion(test_count: int, failed_tests: int) -> str:
    if test_count <= 0:
        return "neutral"
    return "failure" if failed_tests > 0 else "success"


@dataclass(frozen=True)
class CommitMetadata:
    sha: str
    message: str
    date: datetime
    author: str


_RECORD_KEYS = frozenset(
    {"sha", "author", "commit", "stats", "coverage", "test_count", "failed_tests", "conclusion"}
)
_NESTED_KEYS = {
    "commit": frozenset({"date", "message", "url"}),
    "stats": frozenset({"total", "additions", "deletions", "date"}),
}


def _unknown_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Keys written by other tools, kept so a rewrite does not drop them."""
    extra = {k: v for k, v in data.items() if k not in _RECORD_KEYS}
    for section, known in _NESTED_KEYS.items():
        part = data.get(section)
        if isinstance(part, dict):
            nested = {k: v for k, v in part.items() if k not in known}
            if nested:
                extra[section] = nested
    return extra


@dataclass(frozen=True)
class CommitRecord:
    """Health snapshot of a single commit, as persisted in the history."""

    sha: str
    author: str
    date: datetime  # always timezone-aware
    message: str
    url: str | None = None
    stats: DiffStats = field(default_factory=DiffStats)
    coverage: float = 0.0
    test_count: int = 0
    failed_tests: int = 0
    conclusion: str = "neutral"
    # Foreign keys from the loaded entry; "commit"/"stats" hold nested extras
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def stats_date(self) -> str:
        return self.date.astimezone(timezone.utc).date().isoformat()

    def with_url(self, url: str) -> CommitRecord:
        return replace(self, url=url)

    def to_dict(self) -> dict[str, Any]:
        commit: dict[str, Any] = {
            "date": format_commit_date(self.date),
            "message": self.message,
        }
        if self.url:
            commit["url"] = self.url
        data: dict[str, Any] = {
            "sha": self.sha,
            "author": self.author,
            "commit": {**copy.deepcopy(self.extra.get("commit", {})), **commit},
            "stats": {
                **copy.deepcopy(self.extra.get("stats", {})),
                "total": self.stats.total,
                "additions": self.stats.additions,
                "deletions": self.stats.deletions,
                "date": self.stats_date,
            },
            "coverage": self.coverage,
            "test_count": self.test_count,
            "failed_tests": self.failed_tests,
            "conclusion": self.conclusion,
        }
        for key, value in self.extra.items():
            if key not in _NESTED_KEYS:
                data[key] = copy.deepcopy(value)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommitRecord:
        """Rebuild a record from its JSON form.

        Raises ValueError when the entry has no sha, no parsable date or
        non-numeric counts. Missing numeric fields default to zero. Keys
        outside the record layout are carried in ``extra``.
        """
        sha = data.get("sha")
        if not sha or not isinstance(sha, str):
            raise ValueError("record has no sha")
        commit = data.get("commit") or {}
        stats = data.get("stats") or {}
        test_count = int(data.get("test_count") or 0)
        failed_tests = int(data.get("failed_tests") or 0)
        return cls(
            sha=sha,
            author=str(data.get("author") or ""),
            date=parse_commit_date(commit.get("date")),
            message=str(commit.get("message") or ""),
            url=commit.get("url") or None,
            stats=DiffStats(
                additions=max(int(stats.get("additions") or 0), 0),
                deletions=max(int(stats.get("deletions") or 0), 0),
            ),
            coverage=float(data.get("coverage") or 0.0),
            test_count=test_count,
            failed_tests=failed_tests,
            conclusion=data.get("conclusion")
            or derive_conclusion(test_count, failed_tests),
            extra=copy.deepcopy(_unknown_keys(data)),
        )


def parse_commit_date(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid commit date: {value!r}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_commit_date(value: datetime) -> str:
    """UTC, millisecond precision, 'Z' suffix (e.g. 2024-01-01T12:00:00.000Z)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class CommitHistory:
    """Ordered, sha-unique collection of commit records.

    ``unparsed`` holds stored entries that could not be read as records.
    They are written back after the records, untouched apart from URL
    backfill, until a new record with the same sha replaces them.
    """

    records: tuple[CommitRecord, ...] = ()
    unparsed: tuple[Any, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def get(self, sha: str) -> CommitRecord | None:
        for record in self.records:
            if record.sha == sha:
                return record
        return None

    @property
    def shas(self) -> list[str]:
        return [r.sha for r in self.records]

    def to_list(self) -> list[Any]:
        return [r.to_dict() for r in self.records] + [
            copy.deepcopy(entry) for entry in self.unparsed
        ]


# ── Test-run ledger ──────────────────────────────────────────────────


@dataclass(frozen=True)
class TestRunEntry:
    """One line of the append-only test-run ledger."""

    __test__ = False

    num_passed_tests: int
    failed_tests: int
    num_total_tests: int
    timestamp: int | None  # runner start time, epoch millis
    success: bool
    test_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "numPassedTests": self.num_passed_tests,
            "failedTests": self.failed_tests,
            "numTotalTests": self.num_total_tests,
            "timestamp": self.timestamp,
            "success": self.success,
            "testId": self.test_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestRunEntry:
        return cls(
            num_passed_tests=int(data.get("numPassedTests") or 0),
            failed_tests=int(data.get("failedTests") or 0),
            num_total_tests=int(data.get("numTotalTests") or 0),
            timestamp=data.get("timestamp"),
            success=bool(data.get("success")),
            test_id=str(data.get("testId") or ""),
        )
