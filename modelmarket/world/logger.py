"""JSONL event log of committed ledger activity.

One JSON object per line, each stamped with a UTC timestamp and a
monotonic sequence number in commit order. Given a logs_dir and a run_id
the log lives at {logs_dir}/{run_id}/events.jsonl and {logs_dir}/latest
points at the newest run; otherwise it is a single file truncated on start.
"""

from __future__ import annotations

import json
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class EventLogger:
    """Append-only writer and tail reader for ledger events."""

    output_path: Path
    default_recent: int
    sequence: int

    def __init__(
        self,
        output_file: str | None = None,
        logs_dir: str | None = None,
        run_id: str | None = None,
        default_recent: int = 50,
    ) -> None:
        self.sequence = 0
        self.default_recent = default_recent

        if logs_dir and run_id:
            base = Path(logs_dir)
            self.output_path = base / run_id / "events.jsonl"
            self._point_latest(base, run_id)
        else:
            self.output_path = Path(output_file or "run.jsonl")

        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.output_path.write_text("")

    @staticmethod
    def _point_latest(base: Path, run_id: str) -> None:
        (base / run_id).mkdir(parents=True, exist_ok=True)
        latest = base / "latest"
        if latest.is_symlink() or latest.is_file():
            latest.unlink()
        # Relative target so the logs directory can be moved
        latest.symlink_to(run_id)

    def log(self, event_type: str, data: dict[str, Any]) -> int:
        """Append one event; returns its sequence number."""
        self.sequence += 1
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sequence": self.sequence,
            "event_type": event_type,
            **data,
        }
        with self.output_path.open("a") as f:
            f.write(json.dumps(record, default=str) + "\n")
        return self.sequence

    def read_recent(self, n: int | None = None) -> list[dict[str, Any]]:
        """The last n events (default_recent when n is None), oldest first."""
        if not self.output_path.exists():
            return []
        with self.output_path.open() as f:
            tail = deque((line for line in f if line.strip()), maxlen=n or self.default_recent)
        return [json.loads(line) for line in tail]
