"""Launch orchestration: uvicorn thread + streamlit subprocess."""
from __future__ import annotations

import subprocess
import sys
import threading
import time
from pathlib import Path
from urllib.error import URLError
from urllib.request import urlopen

API_HOST = "127.0.0.1"


def _wait_for_api(api_url: str, timeout_seconds: float = 10.0) -> bool:
    """Poll the summary endpoint until it answers 200 or the timeout expires."""
    deadline = time.time() + timeout_seconds
    probe = f"{api_url}/api/summary"
    while time.time() < deadline:
        try:
            with urlopen(probe, timeout=1) as response:
                if response.status == 200:
                    return True
        except (URLError, OSError):
            pass
        time.sleep(0.2)
    return False


def _dashboard_command(api_url: str, port: int) -> list[str]:
    dashboard = Path(__file__).parent / "dashboard.py"
    return [
        sys.executable, "-m", "streamlit", "run", str(dashboard),
        "--server.port", str(port),
        "--server.headless", "true",
        "--browser.gatherUsageStats", "false",
        "--", f"--api-url={api_url}",
    ]


def launch(
    store_path: str | None = None,
    ledger_path: str | None = None,
    api_port: int = 8000,
) -> None:
    """Serve the history over HTTP and block on the Streamlit dashboard.

    The API listens on *api_port*, the dashboard on the next port up.
    """
    import uvicorn

    from commit_tracker.web.api import app

    app.state.store_path = store_path
    app.state.ledger_path = ledger_path
    api_url = f"http://{API_HOST}:{api_port}"

    api_thread = threading.Thread(
        target=uvicorn.run,
        args=(app,),
        kwargs={"host": API_HOST, "port": api_port, "log_level": "warning"},
        daemon=True,
    )
    api_thread.start()

    if not _wait_for_api(api_url):
        print(f"Failed to start API server on {api_url}", file=sys.stderr)
        sys.exit(1)

    print(f"History:     {store_path}")
    print(f"API server:  {api_url}")
    print(f"Dashboard:   http://localhost:{api_port + 1}")
    print()

    try:
        proc = subprocess.run(_dashboard_command(api_url, api_port + 1), check=False)
    except KeyboardInterrupt:
        print("\nShutting down.")
        sys.exit(0)
    sys.exit(proc.returncode)
