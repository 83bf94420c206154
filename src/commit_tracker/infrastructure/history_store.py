from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from commit_tracker.domain.models import CommitHistory, CommitRecord

logger = logging.getLogger(__name__)


class JsonHistoryStore:
    """Commit history persisted as a pretty-printed JSON array.

    Assumes a single writer: there is no locking, the last persist wins.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def ensure_exists(self) -> None:
        """Create an empty store on first run."""
        if self._path.exists():
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._write("[]\n")

    def load(self) -> CommitHistory:
        """Read the history; a missing or unreadable store loads as empty.

        Entries that do not parse as records are kept verbatim in
        ``CommitHistory.unparsed`` so the next persist writes them back.
        """
        if not self._path.exists():
            return CommitHistory()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Cannot read commit history %s: %s", self._path, e)
            return CommitHistory()
        if not isinstance(data, list):
            logger.warning(
                "Commit history %s is not a JSON array; starting empty", self._path
            )
            return CommitHistory()

        records: list[CommitRecord] = []
        unparsed: list[Any] = []
        for index, entry in enumerate(data):
            try:
                if not isinstance(entry, dict):
                    raise ValueError("not an object")
                records.append(CommitRecord.from_dict(entry))
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("Keeping unreadable history entry %d as-is: %s", index, e)
                unparsed.append(entry)
        return CommitHistory(tuple(records), tuple(unparsed))

    def persist(self, history: CommitHistory) -> None:
        """Overwrite the store with *history* in a single atomic replace."""
        payload = json.dumps(history.to_list(), indent=2, ensure_ascii=False)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._write(payload + "\n")

    def _write(self, text: str) -> None:
        # Temp file in the same directory so os.replace stays on one filesystem
        fd, tmp_path = tempfile.mkstemp(
            prefix=self._path.stem + "_", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_path, self._path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
