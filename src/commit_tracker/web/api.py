from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query

from commit_tracker.application.use_cases import summarize_history
from commit_tracker.config import DEFAULT_LEDGER_PATH, DEFAULT_STORE_PATH
from commit_tracker.domain.models import CommitRecord, TestRunEntry
from commit_tracker.infrastructure.history_store import JsonHistoryStore
from commit_tracker.infrastructure.test_run_ledger import NdjsonTestRunLedger
from commit_tracker.web.models import CommitRow, HistorySummary, LedgerRow


@asynccontextmanager
async def lifespan(app: FastAPI):
    store_path = getattr(app.state, "store_path", None) or DEFAULT_STORE_PATH
    ledger_path = getattr(app.state, "ledger_path", None) or DEFAULT_LEDGER_PATH
    app.state.store = JsonHistoryStore(store_path)
    app.state.ledger = NdjsonTestRunLedger(ledger_path)
    yield


app = FastAPI(title="commit-tracker", lifespan=lifespan)


def _store() -> JsonHistoryStore:
    return app.state.store


def _ledger() -> NdjsonTestRunLedger:
    return app.state.ledger


def _commit_row(record: CommitRecord) -> CommitRow:
    return CommitRow(
        sha=record.sha,
        author=record.author,
        date=record.date,
        message=record.message,
        url=record.url,
        additions=record.stats.additions,
        deletions=record.stats.deletions,
        total=record.stats.total,
        coverage=record.coverage,
        test_count=record.test_count,
        failed_tests=record.failed_tests,
        conclusion=record.conclusion,
    )


def _ledger_row(entry: TestRunEntry) -> LedgerRow:
    return LedgerRow(
        test_id=entry.test_id,
        num_passed_tests=entry.num_passed_tests,
        failed_tests=entry.failed_tests,
        num_total_tests=entry.num_total_tests,
        timestamp=entry.timestamp,
        success=entry.success,
    )


@app.get("/api/commits", response_model=list[CommitRow])
def list_commits(
    conclusion: str | None = Query(None, description="Only commits with this conclusion"),
):
    records = _store().load().records
    if conclusion:
        records = tuple(r for r in records if r.conclusion == conclusion)
    return [_commit_row(r) for r in records]


@app.get("/api/commits/{sha}", response_model=CommitRow)
def get_commit(sha: str):
    record = _store().load().get(sha)
    if record is None:
        raise HTTPException(status_code=404, detail="Commit not found")
    return _commit_row(record)


@app.get("/api/summary", response_model=HistorySummary)
def get_summary():
    return HistorySummary(**summarize_history(_store().load(), _ledger().read()))


@app.get("/api/test-runs", response_model=list[LedgerRow])
def list_test_runs():
    return [_ledger_row(e) for e in _ledger().read()]
