import json
import logging
import re
import secrets
import tempfile
import uuid
from datetime import timezone
from pathlib import Path
from typing import Any, Callable, Iterable

from commit_tracker.config import DEFAULT_SOURCE_MARKERS, TrackerConfig
from commit_tracker.domain.models import (
    CommitHistory,
    CommitMetadata,
    CommitRecord,
    Degraded,
    DiffStats,
    Failed,
    Ok,
    Outcome,
    TestResults,
    TestRunEntry,
)
from commit_tracker.domain.ports import (
    HistoryRepository,
    TestRunLedger,
    TestRunner,
    VersionControl,
)

logger = logging.getLogger(__name__)

_SCP_REMOTE = re.compile(r"^[\w.-]+@([^:/]+):(.+)$")
_SSH_REMOTE = re.compile(r"^ssh://(?:[^@/]+@)?([^:/]+)(?::\d+)?/(.+)$")
_HTTP_USERINFO = re.compile(r"^(https?://)[^@/]+@")


# ── Remote URL ───────────────────────────────────────────────────────


def normalize_remote_url(url: str | None) -> str | None:
    """Turn a remote URL into the repository's web URL.

    git@github.com:org/repo.git -> https://github.com/org/repo
    """
    if not url:
        return None
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[: -len(".git")]
    match = _SCP_REMOTE.match(url) or _SSH_REMOTE.match(url)
    if match:
        return f"https://{match.group(1)}/{match.group(2)}"
    return _HTTP_USERINFO.sub(r"\1", url) or None


def resolve_repo_url(vcs: VersionControl) -> str | None:
    try:
        remote = vcs.remote_url()
    except (RuntimeError, OSError) as e:
        logger.warning("Cannot read remote origin: %s", e)
        return None
    if not remote:
        logger.warning("No remote repository found; commit URLs left empty")
        return None
    return normalize_remote_url(remote)


def commit_url(repo_url: str, sha: str) -> str:
    return f"{repo_url}/commit/{sha}"


def url_base(url: str) -> str:
    return url.split("/commit/")[0]


# ── Diff statistics ──────────────────────────────────────────────────


def extract_diff_stats(
    vcs: VersionControl, sha: str, exclude_path: str | None = None
) -> Outcome[DiffStats]:
    """Lines added/removed by *sha* relative to its first parent.

    Root commits are measured against the empty tree. Never raises: any git
    failure degrades to zero counts.
    """
    try:
        parents = vcs.commit_parents(sha)
    except (RuntimeError, OSError, ValueError) as e:
        logger.warning("Cannot resolve parent of %s: %s", sha, e)
        return Degraded(DiffStats(), f"parent lookup failed: {e}")

    base = parents[0] if parents else None
    try:
        stats = vcs.diff_stats(base, sha, exclude_path)
    except (RuntimeError, OSError, ValueError) as e:
        logger.warning("Cannot compute diff statistics for %s: %s", sha, e)
        return Degraded(DiffStats(), f"diff failed: {e}")
    return Ok(stats)


# ── Test results ─────────────────────────────────────────────────────


def has_test_sources(
    project_root: Path, markers: Iterable[str] = DEFAULT_SOURCE_MARKERS
) -> bool:
    return any((project_root / marker).exists() for marker in markers)


def compute_coverage(coverage_map: dict[str, Any] | None) -> float:
    """Statement coverage percentage across all files, 2 decimals."""
    if not coverage_map:
        return 0.0
    covered = 0
    total = 0
    for file_coverage in coverage_map.values():
        if not isinstance(file_coverage, dict):
            continue
        # Some reporters nest the istanbul data under "data"
        data = file_coverage.get("data", file_coverage)
        statements = data.get("s") or {}
        total += len(statements)
        covered += sum(1 for hits in statements.values() if hits and hits > 0)
    if total == 0:
        return 0.0
    return round(covered / total * 100, 2)


def reduce_test_report(report: dict[str, Any]) -> TestResults:
    return TestResults(
        test_count=int(report.get("numTotalTests") or 0),
        failed_tests=int(report.get("numFailedTests") or 0),
        coverage=compute_coverage(report.get("coverageMap")),
    )


def _report_path(tmp_dir: Path | None) -> Path:
    directory = Path(tmp_dir) if tmp_dir else Path(tempfile.gettempdir())
    return directory / f"jest-results-{secrets.token_hex(8)}.json"


def _remove_report(path: Path) -> None:
    try:
        path.unlink()
    except OSError as e:
        logger.warning("Could not remove temporary report %s: %s", path, e)


def correlate_test_results(
    runner: TestRunner,
    project_root: Path,
    markers: Iterable[str] = DEFAULT_SOURCE_MARKERS,
    tmp_dir: Path | None = None,
) -> Outcome[TestResults]:
    """Run the suite with coverage and reduce its report.

    Projects without sources skip the run entirely and report neutral.
    """
    if not has_test_sources(Path(project_root), markers):
        logger.debug("No test sources under %s; skipping test run", project_root)
        return Ok(TestResults())

    report_path = _report_path(tmp_dir)
    try:
        runner.run(report_path, coverage=True)
    except (RuntimeError, OSError) as e:
        # The runner may still have written a report before failing
        logger.warning("Test runner failed: %s", e)

    if not report_path.exists():
        logger.warning("Test report %s was not created", report_path)
        return Degraded(TestResults(), "test report not created")

    try:
        report = json.loads(report_path.read_text(encoding="utf-8"))
        if not isinstance(report, dict):
            raise ValueError("report is not a JSON object")
        results = reduce_test_report(report)
    except (OSError, ValueError, TypeError, AttributeError) as e:
        logger.warning("Cannot process test report %s: %s", report_path, e)
        return Degraded(TestResults(), f"unreadable test report: {e}")
    finally:
        _remove_report(report_path)
    return Ok(results)


# ── Record builder ───────────────────────────────────────────────────


def fetch_commit_metadata(vcs: VersionControl, sha: str) -> Outcome[CommitMetadata]:
    try:
        message = vcs.commit_message(sha)
        date = vcs.commit_date(sha)
        author = vcs.commit_author(sha)
    except (RuntimeError, OSError, ValueError) as e:
        logger.error("Cannot read commit information for %s: %s", sha, e)
        return Failed(f"cannot read commit {sha}: {e}")
    return Ok(CommitMetadata(sha=sha, message=message.strip(), date=date, author=author.strip()))


def compose_commit_record(
    metadata: CommitMetadata,
    stats: DiffStats,
    tests: TestResults,
    repo_url: str | None = None,
) -> CommitRecord:
    date = metadata.date
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return CommitRecord(
        sha=metadata.sha,
        author=metadata.author,
        date=date,
        message=metadata.message,
        url=commit_url(repo_url, metadata.sha) if repo_url else None,
        stats=stats,
        coverage=tests.coverage,
        test_count=tests.test_count,
        failed_tests=tests.failed_tests,
        conclusion=tests.conclusion,
    )


def build_commit_record(
    vcs: VersionControl,
    runner: TestRunner,
    sha: str,
    config: TrackerConfig,
    tmp_dir: Path | None = None,
) -> Outcome[CommitRecord]:
    metadata = fetch_commit_metadata(vcs, sha)
    if isinstance(metadata, Failed):
        return metadata

    repo_url = resolve_repo_url(vcs)
    stats = extract_diff_stats(vcs, sha, config.exclude_path)
    tests = correlate_test_results(
        runner, config.repo_path, config.source_markers, tmp_dir=tmp_dir
    )
    for part in (stats, tests):
        if isinstance(part, Degraded):
            logger.warning("Recording %s with defaults: %s", sha, part.reason)

    return Ok(compose_commit_record(metadata.value, stats.value, tests.value, repo_url))


# ── History ──────────────────────────────────────────────────────────


def _entry_sha(entry: Any) -> str | None:
    if isinstance(entry, dict) and isinstance(entry.get("sha"), str):
        return entry["sha"] or None
    return None


def upsert_record(history: CommitHistory, record: CommitRecord | None) -> CommitHistory:
    """Replace the record with the same sha, or append it.

    An unreadable stored entry with that sha is replaced as well.
    """
    if record is None or not record.sha:
        return history
    records = list(history.records)
    for i, existing in enumerate(records):
        if existing.sha == record.sha:
            records[i] = record
            break
    else:
        records.append(record)
    unparsed = tuple(e for e in history.unparsed if _entry_sha(e) != record.sha)
    return CommitHistory(tuple(records), unparsed)


def _backfill_entry(entry: Any, base: str) -> Any:
    sha = _entry_sha(entry)
    commit = entry.get("commit") if isinstance(entry, dict) else None
    if sha is None or (commit is not None and not isinstance(commit, dict)):
        return entry
    if commit and commit.get("url"):
        return entry
    return {**entry, "commit": {**(commit or {}), "url": commit_url(base, sha)}}


def backfill_urls(history: CommitHistory, record: CommitRecord | None) -> CommitHistory:
    """Give every URL-less record a URL built from *record*'s base.

    Only a record that itself carries a URL triggers the backfill.
    """
    if record is None or not record.url:
        return history
    base = url_base(record.url)
    return CommitHistory(
        tuple(r if r.url else r.with_url(commit_url(base, r.sha)) for r in history.records),
        tuple(_backfill_entry(e, base) for e in history.unparsed),
    )


def reorder_history(history: CommitHistory) -> CommitHistory:
    """Stable sort by commit date, oldest first; unreadable entries stay last."""
    return CommitHistory(
        tuple(sorted(history.records, key=lambda r: r.date)), history.unparsed
    )


def merge_record(history: CommitHistory, record: CommitRecord | None) -> CommitHistory:
    history = upsert_record(history, record)
    history = backfill_urls(history, record)
    return reorder_history(history)


def save_commit_record(
    repo: HistoryRepository, record: CommitRecord | None
) -> CommitHistory:
    """load -> upsert -> backfill -> reorder -> persist, for a single writer."""
    history = repo.load()
    if record is None or not record.sha:
        return history
    merged = merge_record(history, record)
    repo.persist(merged)
    logger.info("Saved commit %s (%d records)", record.sha, len(merged))
    return merged


def track_commit(
    vcs: VersionControl,
    runner: TestRunner,
    repo: HistoryRepository,
    config: TrackerConfig,
    ref: str = "HEAD",
    tmp_dir: Path | None = None,
) -> Outcome[CommitRecord]:
    """Record the commit at *ref* into the history and return its record.

    Store write errors propagate; every other fault is folded into the
    returned outcome.
    """
    repo.ensure_exists()
    try:
        sha = vcs.resolve_sha(ref)
    except (RuntimeError, OSError) as e:
        logger.error("Cannot resolve %s: %s", ref, e)
        return Failed(f"cannot resolve {ref}: {e}")

    built = build_commit_record(vcs, runner, sha, config, tmp_dir=tmp_dir)
    if isinstance(built, Failed):
        return built
    save_commit_record(repo, built.value)
    return built


# ── Test-run ledger ──────────────────────────────────────────────────


def make_test_run_entry(
    report: dict[str, Any], id_factory: Callable[[], str] = lambda: str(uuid.uuid4())
) -> TestRunEntry:
    return TestRunEntry(
        num_passed_tests=int(report.get("numPassedTests") or 0),
        failed_tests=int(report.get("numFailedTests") or 0),
        num_total_tests=int(report.get("numTotalTests") or 0),
        timestamp=report.get("startTime"),
        success=bool(report.get("success")),
        test_id=id_factory(),
    )


def record_test_run(
    runner: TestRunner,
    ledger: TestRunLedger,
    report_path: Path,
    id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
) -> Outcome[TestRunEntry]:
    """Run the suite once and append its summary to the ledger.

    A report left over from an earlier run is removed first; only a report
    written by this run is ever logged.
    """
    try:
        Path(report_path).unlink(missing_ok=True)
    except OSError as e:
        logger.error("Cannot clear previous test report %s: %s", report_path, e)
        return Failed(f"cannot clear previous test report: {e}")
    try:
        runner.run(report_path, coverage=False)
    except (RuntimeError, OSError) as e:
        logger.error("Test runner failed: %s", e)
        return Failed(f"test runner failed: {e}")

    ledger.ensure_exists()
    try:
        report = json.loads(Path(report_path).read_text(encoding="utf-8"))
        entry = make_test_run_entry(report, id_factory)
    except (OSError, ValueError, TypeError, AttributeError) as e:
        logger.error("Cannot read test report %s: %s", report_path, e)
        return Failed(f"cannot read test report: {e}")

    ledger.append(entry)
    return Ok(entry)


def summarize_history(
    history: CommitHistory, test_runs: list[TestRunEntry] | None = None
) -> dict[str, Any]:
    """Aggregate figures shown by the API and the dashboard."""
    records = history.records
    runs = test_runs or []
    latest = records[-1] if records else None
    return {
        "commit_count": len(records),
        "total_additions": sum(r.stats.additions for r in records),
        "total_deletions": sum(r.stats.deletions for r in records),
        "latest_sha": latest.sha if latest else None,
        "latest_coverage": latest.coverage if latest else 0.0,
        "latest_conclusion": latest.conclusion if latest else "neutral",
        "conclusions": {
            c: sum(1 for r in records if r.conclusion == c)
            for c in ("success", "failure", "neutral")
        },
        "test_runs": len(runs),
        "successful_test_runs": sum(1 for e in runs if e.success),
    }
