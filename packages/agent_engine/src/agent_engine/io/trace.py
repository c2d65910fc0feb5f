"""JSON Lines trace sink."""

from __future__ import annotations

import json
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any


class JsonlTraceWriter:
    """Append one JSON object per line to a trace file.

    Parent directories are created on demand. ``append=False`` truncates the
    file before writing, which roots use to start a fresh trace per run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    def write(self, path: str | Path, record: Mapping[str, Any], append: bool = True) -> None:
        target = Path(path)
        line = json.dumps(record, default=str, ensure_ascii=False)
        with self._lock:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("a" if append else "w", encoding="utf-8") as handle:
                handle.write(line + "\n")


def read_trace(path: str | Path) -> list[dict[str, Any]]:
    """Load every record from a JSONL trace file, skipping blank lines."""
    records: list[dict[str, Any]] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        if line.strip():
            records.append(json.loads(line))
    return records
