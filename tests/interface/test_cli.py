import json
import sys
from pathlib import Path

import pytest

from commit_tracker.interface import cli
from commit_tracker.interface.cli import _short_message, main
from tests.conftest import commit_file, head_sha, set_remote


class _ReportingRunner:
    """Stands in for JestCliRunner: writes a canned report wherever asked."""

    report: dict = {}

    def __init__(self, project_root, command=("npx", "jest")) -> None:
        self.project_root = project_root

    def run(self, output_path: Path, coverage: bool = True) -> int:
        Path(output_path).write_text(json.dumps(self.report))
        return 0


class TestShortMessage:
    def test_first_line_only(self):
        assert _short_message("Subject\n\nBody") == "Subject"

    def test_truncates_long_subject(self):
        result = _short_message("x" * 60, width=20)
        assert len(result) == 20
        assert result.endswith("...")

    def test_empty(self):
        assert _short_message("") == ""


class TestTrackCommit:
    def test_records_head(self, git_repo_with_history, capsys, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["commit-tracker", str(git_repo_with_history)])
        main()
        out = capsys.readouterr().out
        sha = head_sha(git_repo_with_history)
        assert f"Commit:     {sha}" in out
        assert "+2 -1 (3 lines)" in out
        assert "Conclusion: neutral" in out

        store = git_repo_with_history / "script" / "commit-history.json"
        [entry] = json.loads(store.read_text())
        assert entry["sha"] == sha
        assert entry["stats"]["total"] == 3
        assert entry["conclusion"] == "neutral"

    def test_custom_store_and_ref(self, git_repo_with_history, tmp_path, capsys, monkeypatch):
        store = tmp_path / "out" / "history.json"
        monkeypatch.setattr(
            sys, "argv",
            ["commit-tracker", str(git_repo_with_history),
             "--store", str(store), "--ref", "HEAD~3"],
        )
        main()
        [entry] = json.loads(store.read_text())
        assert entry["commit"]["message"] == "Initial commit"
        assert "(1 commits)" in capsys.readouterr().out

    def test_history_file_changes_excluded(self, git_repo_with_history, monkeypatch):
        monkeypatch.setattr(
            sys, "argv", ["commit-tracker", str(git_repo_with_history), "--ref", "HEAD~1"],
        )
        main()
        store = git_repo_with_history / "script" / "commit-history.json"
        [entry] = json.loads(store.read_text())
        assert entry["stats"]["total"] == 0

    def test_remote_url_recorded(self, tmp_git_repo, monkeypatch):
        sha = commit_file(tmp_git_repo, "a.txt", "x\n", "init")
        set_remote(tmp_git_repo, "git@github.com:org/repo.git")
        monkeypatch.setattr(sys, "argv", ["commit-tracker", str(tmp_git_repo)])
        main()
        store = tmp_git_repo / "script" / "commit-history.json"
        [entry] = json.loads(store.read_text())
        assert entry["commit"]["url"] == f"https://github.com/org/repo/commit/{sha}"

    def test_running_twice_keeps_one_entry(self, git_repo_with_history, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["commit-tracker", str(git_repo_with_history)])
        main()
        main()
        store = git_repo_with_history / "script" / "commit-history.json"
        assert len(json.loads(store.read_text())) == 1

    def test_non_git_dir_exits_with_error(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["commit-tracker", str(tmp_path)])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "Error: Not a git repository" in capsys.readouterr().err

    def test_empty_repo_exits_with_error(self, tmp_git_repo, capsys, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["commit-tracker", str(tmp_git_repo)])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "cannot resolve HEAD" in capsys.readouterr().err

    def test_runs_from_subdirectory(self, git_repo_with_history, capsys, monkeypatch):
        monkeypatch.setattr(
            sys, "argv", ["commit-tracker", str(git_repo_with_history / "lib")],
        )
        main()
        store = git_repo_with_history / "script" / "commit-history.json"
        [entry] = json.loads(store.read_text())
        assert entry["sha"] == head_sha(git_repo_with_history)
        assert entry["stats"]["total"] == 3
        assert not (git_repo_with_history / "lib" / "script").exists()

    def test_unexpected_error_exits_with_message(self, git_repo_with_history, capsys, monkeypatch):
        def broken(*args, **kwargs):
            raise KeyError("conclusion")

        monkeypatch.setattr(cli, "track_commit", broken)
        monkeypatch.setattr(sys, "argv", ["commit-tracker", str(git_repo_with_history)])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "Error: tracking HEAD: 'conclusion'" in capsys.readouterr().err

    def test_with_test_sources_uses_runner(self, tmp_git_repo, capsys, monkeypatch):
        (tmp_git_repo / "package.json").write_text("{}")
        commit_file(tmp_git_repo, "src/index.js", "module.exports = 1;\n", "init")
        monkeypatch.setattr(_ReportingRunner, "report", {
            "numTotalTests": 4,
            "numFailedTests": 1,
            "coverageMap": {
                "src/index.js": {"s": {"0": 1, "1": 0}},
            },
        })
        monkeypatch.setattr(cli, "JestCliRunner", _ReportingRunner)
        monkeypatch.setattr(sys, "argv", ["commit-tracker", str(tmp_git_repo)])
        main()
        out = capsys.readouterr().out
        assert "Tests:      4 run, 1 failed" in out
        assert "Coverage:   50.00%" in out
        assert "Conclusion: failure" in out


class TestListHistory:
    def test_empty(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setattr(
            sys, "argv",
            ["commit-tracker", str(tmp_path), "--list", "--store", str(tmp_path / "h.json")],
        )
        main()
        assert "No commits tracked." in capsys.readouterr().out

    def test_lists_tracked_commits(self, git_repo_with_history, capsys, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["commit-tracker", str(git_repo_with_history)])
        main()
        capsys.readouterr()
        monkeypatch.setattr(
            sys, "argv", ["commit-tracker", str(git_repo_with_history), "--list"],
        )
        main()
        out = capsys.readouterr().out
        assert "SHA" in out
        assert head_sha(git_repo_with_history)[:10] in out
        assert "neutral" in out


class TestTddLog:
    def test_appends_ledger_entry(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setattr(_ReportingRunner, "report", {
            "numPassedTests": 3,
            "numFailedTests": 0,
            "numTotalTests": 3,
            "startTime": 1700000000000,
            "success": True,
        })
        monkeypatch.setattr(cli, "JestCliRunner", _ReportingRunner)
        ledger = tmp_path / "logs" / "tdd_log.ndjson"
        monkeypatch.setattr(
            sys, "argv",
            ["commit-tracker", str(tmp_path), "--tdd-log", "--ledger", str(ledger)],
        )
        main()
        assert "3/3 passed (success)" in capsys.readouterr().out
        [line] = ledger.read_text().splitlines()
        data = json.loads(line)
        assert data["numTotalTests"] == 3
        assert data["timestamp"] == 1700000000000
        assert data["success"] is True
        assert data["testId"]

    def test_missing_report_exits_with_error(self, tmp_path, capsys, monkeypatch):
        class SilentRunner(_ReportingRunner):
            def run(self, output_path, coverage=True):
                return 1

        monkeypatch.setattr(cli, "JestCliRunner", SilentRunner)
        monkeypatch.setattr(
            sys, "argv",
            ["commit-tracker", str(tmp_path), "--tdd-log",
             "--ledger", str(tmp_path / "tdd_log.ndjson")],
        )
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1
        assert "cannot read test report" in capsys.readouterr().err
