import argparse
import logging
import sys

from commit_tracker.application.use_cases import record_test_run, track_commit
from commit_tracker.config import TrackerConfig
from commit_tracker.domain.models import CommitHistory, CommitRecord, Failed
from commit_tracker.infrastructure.git_cli_reader import GitCliReader
from commit_tracker.infrastructure.history_store import JsonHistoryStore
from commit_tracker.infrastructure.jest_runner import JestCliRunner
from commit_tracker.infrastructure.test_run_ledger import NdjsonTestRunLedger


def _error_exit(msg: str) -> None:
    """Print error message to stderr and exit with code 1."""
    print(f"Error: {msg}", file=sys.stderr)
    sys.exit(1)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _short_message(message: str, width: int = 40) -> str:
    first_line = message.splitlines()[0] if message else ""
    if len(first_line) > width:
        return first_line[: width - 3] + "..."
    return first_line


def _print_history(history: CommitHistory) -> None:
    """Print tracked commits in a table, oldest first."""
    if not len(history):
        print("No commits tracked.")
        return

    header = (
        f"{'SHA':<10}  "
        f"{'Date':<10}  "
        f"{'Author':<20}  "
        f"{'+':>6}  "
        f"{'-':>6}  "
        f"{'Tests':>5}  "
        f"{'Fail':>4}  "
        f"{'Cov %':>6}  "
        f"{'Result':<8}  "
        f"Message"
    )
    print(header)
    print("-" * len(header))

    for r in history:
        author = r.author if len(r.author) <= 20 else r.author[:17] + "..."
        print(
            f"{r.sha[:10]:<10}  "
            f"{r.stats_date:<10}  "
            f"{author:<20}  "
            f"{r.stats.additions:>6}  "
            f"{r.stats.deletions:>6}  "
            f"{r.test_count:>5}  "
            f"{r.failed_tests:>4}  "
            f"{r.coverage:>6.2f}  "
            f"{r.conclusion:<8}  "
            f"{_short_message(r.message)}"
        )


def _print_record(record: CommitRecord) -> None:
    print(f"Commit:     {record.sha}")
    print(f"Author:     {record.author}")
    print(f"Changes:    +{record.stats.additions} -{record.stats.deletions} ({record.stats.total} lines)")
    print(f"Tests:      {record.test_count} run, {record.failed_tests} failed")
    print(f"Coverage:   {record.coverage:.2f}%")
    print(f"Conclusion: {record.conclusion}")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="commit-tracker",
        description="Record per-commit health snapshots into a JSON history",
    )
    parser.add_argument(
        "repo_path", nargs="?", default=".",
        help="Path to a local git repository (default: current directory)",
    )
    parser.add_argument(
        "--store",
        metavar="PATH",
        default=None,
        help="History file (default: <repo>/script/commit-history.json)",
    )
    parser.add_argument(
        "--exclude",
        metavar="PATH",
        default=None,
        help="Repository-relative path left out of diff statistics "
             "(default: the history file)",
    )
    parser.add_argument(
        "--ledger",
        metavar="PATH",
        default=None,
        help="Test-run ledger (default: <repo>/script/tdd_log.ndjson)",
    )
    parser.add_argument(
        "--ref",
        metavar="REF",
        default="HEAD",
        help="Commit, tag or branch to record (default: HEAD)",
    )
    parser.add_argument(
        "--tdd-log",
        dest="tdd_log",
        action="store_true",
        help="Run the test suite once and append the result to the ledger",
    )
    parser.add_argument(
        "--list",
        dest="list_history",
        action="store_true",
        help="Show the recorded history, then exit",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Launch web dashboard (requires pip install commit-tracker[web])",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        metavar="PORT",
        help="API port for --serve (Streamlit uses PORT+1, default: 8000)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )
    args = parser.parse_args()
    _configure_logging(args.verbose)

    config = TrackerConfig.for_repo(
        args.repo_path,
        store_path=args.store,
        exclude_path=args.exclude,
        ledger_path=args.ledger,
    )
    store = JsonHistoryStore(config.store_path)

    # Handle --list early (no git repository required)
    if args.list_history:
        _print_history(store.load())
        return

    # Handle --serve early (no git repository required)
    if args.serve:
        try:
            from commit_tracker.web.server import launch
        except ImportError:
            _error_exit(
                "web dependencies not installed. "
                "Run: pip install commit-tracker[web]"
            )
        launch(
            store_path=str(config.store_path),
            ledger_path=str(config.ledger_path),
            api_port=args.port,
        )
        return

    if args.tdd_log:
        _record_test_run(config)
        return

    try:
        git_reader = GitCliReader(str(config.repo_path))
    except ValueError as e:
        _error_exit(str(e))

    # Defaults are relative to the worktree root, wherever inside it we ran
    config = TrackerConfig.for_repo(
        git_reader.root,
        store_path=args.store,
        exclude_path=args.exclude,
        ledger_path=args.ledger,
    )
    store = JsonHistoryStore(config.store_path)
    runner = JestCliRunner(config.repo_path, command=config.test_command)

    try:
        outcome = track_commit(git_reader, runner, store, config, ref=args.ref)
    except OSError as e:
        _error_exit(f"writing commit history: {e}")
    except Exception as e:
        _error_exit(f"tracking {args.ref}: {e}")

    if isinstance(outcome, Failed):
        _error_exit(outcome.reason)

    _print_record(outcome.value)
    print(f"History:    {config.store_path} ({len(store.load())} commits)")


def _record_test_run(config: TrackerConfig) -> None:
    runner = JestCliRunner(config.repo_path, command=config.test_command)
    ledger = NdjsonTestRunLedger(config.ledger_path)
    report_path = config.ledger_path.parent / "report.json"
    try:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        outcome = record_test_run(runner, ledger, report_path)
    except Exception as e:
        _error_exit(f"recording test run: {e}")
    if isinstance(outcome, Failed):
        _error_exit(outcome.reason)
    entry = outcome.value
    print(
        f"Test run {entry.test_id}: {entry.num_passed_tests}/{entry.num_total_tests} "
        f"passed ({'success' if entry.success else 'failure'})"
    )
