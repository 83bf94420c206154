"""Jest-backed TestRunner: runs the suite and writes its JSON report to a file."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class JestCliRunner:
    def __init__(
        self, project_root: str | Path, command: tuple[str, ...] = ("npx", "jest")
    ) -> None:
        self._root = str(Path(project_root).resolve())
        self._command = tuple(command)

    def build_args(self, output_path: Path, coverage: bool = True) -> list[str]:
        args = [*self._command, "--json", f"--outputFile={output_path}"]
        if coverage:
            args += ["--coverage", "--passWithNoTests"]
        return args

    def run(self, output_path: Path, coverage: bool = True) -> int:
        """Run Jest and return its exit status.

        A failing suite exits non-zero but still writes the report, so the
        status is returned rather than raised. OSError propagates when the
        command cannot be launched at all.
        """
        args = self.build_args(output_path, coverage=coverage)
        logger.debug("running %s in %s", " ".join(args), self._root)
        result = subprocess.run(
            args,
            cwd=self._root,
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            logger.debug("test runner exited with status %d", result.returncode)
        return result.returncode
