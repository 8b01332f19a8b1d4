"""
Best-effort file logging for process bootstrap.

Used before (and alongside) structured logging so that startup problems on
hosts without console access still leave a trace on disk. None of the
methods here raise: a failure to write diagnostics must never be the reason
the process dies.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from hatim_api.core.environment import EnvironmentSnapshot

LOG_FILENAME = "startup.log"
SNAPSHOT_FILENAME = "env.json"


def iso_timestamp(moment: Optional[datetime] = None) -> str:
    """Format a UTC instant as ISO-8601 with millisecond precision and a Z suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


class BootstrapLogger:
    """
    Append-only diagnostic log under a working-directory-relative folder.

    Writes `startup.log` (one `[timestamp] message` line per call) and
    `env.json` (the startup environment snapshot).
    """

    def __init__(self, log_dir: Optional[Union[str, Path]] = None):
        if log_dir is None:
            log_dir = Path(os.getcwd()) / "tmp"
        self.log_dir = Path(log_dir)
        self.log_file = self.log_dir / LOG_FILENAME
        self.snapshot_file = self.log_dir / SNAPSHOT_FILENAME

    def log(self, message: str) -> None:
        """Append a timestamped line. Never raises."""
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with self.log_file.open("a", encoding="utf-8") as fh:
                fh.write(f"[{iso_timestamp()}] {message}\n")
        except Exception:
            pass

    def write_snapshot(self, snapshot: EnvironmentSnapshot) -> None:
        """Write the environment snapshot as indented JSON. Never raises."""
        try:
            document = json.dumps(snapshot.as_dict(), indent=2, ensure_ascii=False)
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.snapshot_file.write_text(document + "\n", encoding="utf-8")
        except Exception:
            pass

    def __call__(self, message: str) -> None:
        self.log(message)
