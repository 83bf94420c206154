import os
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

TEST_AUTHOR = ("Test User", "test@example.com")


def _git(repo: Path, *args: str, env: dict | None = None) -> str:
    result = subprocess.run(
        ["git", "-C", str(repo), *args],
        capture_output=True, check=True, text=True, env=env,
    )
    return result.stdout.strip()


@pytest.fixture
def tmp_git_repo(tmp_path: Path) -> Path:
    """An empty repository under tmp_path/repo, so tmp_path stays free for stores."""
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init")
    _git(repo, "config", "user.name", TEST_AUTHOR[0])
    _git(repo, "config", "user.email", TEST_AUTHOR[1])
    _git(repo, "config", "commit.gpgsign", "false")
    return repo


def commit_file(
    repo: Path,
    file_path: str,
    content: str | bytes,
    message: str,
    days_ago: int = 0,
    author_name: str = TEST_AUTHOR[0],
    author_email: str = TEST_AUTHOR[1],
) -> str:
    """Write one file, commit it *days_ago* days back and return the new sha."""
    target = repo / file_path
    target.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        target.write_bytes(content)
    else:
        target.write_text(content)

    stamp = (datetime.now(timezone.utc) - timedelta(days=days_ago)).strftime(
        "%Y-%m-%dT%H:%M:%S %z"
    )
    env = dict(os.environ)
    for role in ("AUTHOR", "COMMITTER"):
        env[f"GIT_{role}_DATE"] = stamp
        env[f"GIT_{role}_NAME"] = author_name
        env[f"GIT_{role}_EMAIL"] = author_email

    _git(repo, "add", file_path)
    _git(repo, "commit", "-m", message, env=env)
    return head_sha(repo)


def head_sha(repo: Path) -> str:
    return _git(repo, "rev-parse", "HEAD")


def set_remote(repo: Path, url: str) -> None:
    _git(repo, "remote", "add", "origin", url)


@pytest.fixture
def git_repo_with_history(tmp_git_repo: Path) -> Path:
    """Four commits; the third only touches script/commit-history.json (51 lines).

    HEAD rewrites lib/main.js from a,b,c to a,B,c,d: +2 -1.
    """
    commit_file(tmp_git_repo, "README.md", "# Project\n", "Initial commit", days_ago=30)
    commit_file(tmp_git_repo, "lib/main.js", "a\nb\nc\n", "Add main", days_ago=20)
    commit_file(
        tmp_git_repo, "script/commit-history.json", "[]\n" + "\n" * 50,
        "Track history", days_ago=10,
    )
    commit_file(tmp_git_repo, "lib/main.js", "a\nB\nc\nd\n", "Update main", days_ago=5)
    return tmp_git_repo
