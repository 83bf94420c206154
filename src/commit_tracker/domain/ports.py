from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Protocol

from commit_tracker.domain.models import CommitHistory, DiffStats, TestRunEntry


class VersionControl(Protocol):
    def resolve_sha(self, ref: str = "HEAD") -> str: ...

    def commit_message(self, sha: str) -> str: ...

    def commit_date(self, sha: str) -> datetime: ...

    def commit_author(self, sha: str) -> str: ...

    def commit_parents(self, sha: str) -> list[str]: ...

    def remote_url(self) -> str | None: ...

    def diff_stats(
        self, base: str | None, sha: str, exclude_path: str | None = None
    ) -> DiffStats:
        """Line totals between *base* and *sha*; base None means a root commit."""
        ...


class TestRunner(Protocol):
    def run(self, output_path: Path, coverage: bool = True) -> int:
        """Run the suite, writing a JSON report to *output_path*; return exit status."""
        ...


class HistoryRepository(Protocol):
    def ensure_exists(self) -> None: ...

    def load(self) -> CommitHistory: ...

    def persist(self, history: CommitHistory) -> None: ...


class TestRunLedger(Protocol):
    def ensure_exists(self) -> None: ...

    def append(self, entry: TestRunEntry) -> None: ...

    def read(self) -> list[TestRunEntry]: ...
