from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

DEFAULT_STORE_PATH = Path("script") / "commit-history.json"
DEFAULT_LEDGER_PATH = Path("script") / "tdd_log.ndjson"
DEFAULT_TEST_COMMAND = ("npx", "jest")
DEFAULT_SOURCE_MARKERS = ("package.json", "src")


@dataclass(frozen=True)
class TrackerConfig:
    repo_path: Path
    store_path: Path
    ledger_path: Path
    exclude_path: str | None  # repo-relative, POSIX separators
    test_command: tuple[str, ...] = DEFAULT_TEST_COMMAND
    source_markers: tuple[str, ...] = DEFAULT_SOURCE_MARKERS

    @classmethod
    def for_repo(
        cls,
        repo_path: str | Path,
        store_path: str | Path | None = None,
        exclude_path: str | None = None,
        ledger_path: str | Path | None = None,
        test_command: tuple[str, ...] = DEFAULT_TEST_COMMAND,
    ) -> TrackerConfig:
        """Resolve default locations relative to *repo_path*.

        Unless given explicitly, the excluded diff path is the history file
        itself, so the tracker's own writes never count as churn.
        """
        root = Path(repo_path).resolve()
        store = Path(store_path).resolve() if store_path else root / DEFAULT_STORE_PATH
        ledger = Path(ledger_path).resolve() if ledger_path else root / DEFAULT_LEDGER_PATH
        if exclude_path is None:
            exclude_path = _relative_to(store, root)
        return cls(
            repo_path=root,
            store_path=store,
            ledger_path=ledger,
            exclude_path=exclude_path,
            test_command=tuple(test_command),
        )


def _relative_to(path: Path, root: Path) -> str | None:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return None
