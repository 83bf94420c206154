import logging
import subprocess
from datetime import datetime
from pathlib import Path

from commit_tracker.domain.models import DiffStats

logger = logging.getLogger(__name__)

# Object id of the empty tree; diffing against it lists a root commit's changes.
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


class GitCliReader:
    def __init__(self, repo_path: str) -> None:
        """Open the worktree containing *repo_path*, which may be a subdirectory."""
        path = Path(repo_path).resolve()
        if not path.is_dir():
            raise ValueError(f"Not a git repository: {path}")
        result = subprocess.run(
            ["git", "-C", str(path), "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
        )
        toplevel = result.stdout.strip()
        if result.returncode != 0 or not toplevel:
            raise ValueError(f"Not a git repository: {path}")
        self._path = str(Path(toplevel).resolve())

    @property
    def root(self) -> Path:
        return Path(self._path)

    def _run(self, *args: str) -> str:
        logger.debug("git %s", " ".join(args))
        result = subprocess.run(
            ["git", "-C", self._path, *args],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise RuntimeError(result.stderr.strip())
        return result.stdout.strip()

    def resolve_sha(self, ref: str = "HEAD") -> str:
        output = self._run("rev-parse", "--verify", f"{ref}^{{commit}}")
        if not output:
            raise RuntimeError(f"Cannot resolve ref: {ref}")
        return output

    def commit_message(self, sha: str) -> str:
        return self._run("log", "-1", "--pretty=%B", sha)

    def commit_date(self, sha: str) -> datetime:
        """Committer date of *sha*."""
        output = self._run("log", "-1", "--format=%cI", sha)
        if not output:
            raise ValueError(f"Cannot resolve commit date: {sha}")
        return datetime.fromisoformat(output)

    def commit_author(self, sha: str) -> str:
        return self._run("log", "-1", "--pretty=format:%an", sha)

    def commit_parents(self, sha: str) -> list[str]:
        output = self._run("log", "-1", "--pretty=%P", sha)
        return output.split()

    def remote_url(self) -> str | None:
        try:
            output = self._run("config", "--get", "remote.origin.url")
        except RuntimeError:
            # git config exits 1 when the key is unset
            return None
        return output or None

    def diff_numstat(
        self, base: str | None, sha: str, exclude_path: str | None = None
    ) -> str:
        args = ["diff", "--numstat", base or EMPTY_TREE, sha]
        if exclude_path:
            args += ["--", ".", f":(exclude){exclude_path}"]
        return self._run(*args)

    def diff_stats(
        self, base: str | None, sha: str, exclude_path: str | None = None
    ) -> DiffStats:
        return _parse_numstat(self.diff_numstat(base, sha, exclude_path))


def _parse_count(value: str) -> int:
    # Binary files show "-" for added/deleted
    if value == "-":
        return 0
    try:
        return max(int(value), 0)
    except ValueError:
        return 0


def _parse_numstat(output: str) -> DiffStats:
    additions = 0
    deletions = 0
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        # numstat line: <added>\t<deleted>\t<file>
        parts = line.split("\t", 2)
        if len(parts) < 2:
            continue
        additions += _parse_count(parts[0])
        deletions += _parse_count(parts[1])
    return DiffStats(additions=additions, deletions=deletions)
