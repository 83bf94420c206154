from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class CommitRow(BaseModel):
    sha: str
    author: str
    date: datetime
    message: str
    url: str | None
    additions: int
    deletions: int
    total: int
    coverage: float
    test_count: int
    failed_tests: int
    conclusion: str


class ConclusionCounts(BaseModel):
    success: int
    failure: int
    neutral: int


class HistorySummary(BaseModel):
    commit_count: int
    total_additions: int
    total_deletions: int
    latest_sha: str | None
    latest_coverage: float
    latest_conclusion: str
    conclusions: ConclusionCounts
    test_runs: int
    successful_test_runs: int


class LedgerRow(BaseModel):
    test_id: str
    num_passed_tests: int
    failed_tests: int
    num_total_tests: int
    timestamp: int | None
    success: bool
