"""
journal.py - Append-only JSON-lines record of every swap attempt

Layout:
    {"event": "session_start", ...}
    {"event": "swap", "timestamp": ..., "type": "BUY", ..., "txid": ...}
    ...
    {"event": "session_end", "stats": {...}}

Each line is written with a single write() then flushed and fsync'd, so a
concurrent reader never observes half a record.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Dict, Optional, Union

from loguru import logger

from volbot.domain.models import SwapAttemptRecord


class TradeJournal:
    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._file: Optional[IO[str]] = None

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self, **context: Any) -> None:
        if self._file is not None:
            return
        if self.path.parent and not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("a", encoding="utf-8")
        self._write({"event": "session_start", "timestamp": _now(), **context})
        logger.info(f"JOURNAL | opened | {self.path}")

    def append(self, record: SwapAttemptRecord) -> None:
        if self._file is None:
            raise RuntimeError("journal is not open")
        self._write({"event": "swap", **record.to_dict()})

    def close(self, stats: Optional[Dict[str, Any]] = None) -> None:
        if self._file is None:
            return
        try:
            self._write({"event": "session_end", "timestamp": _now(), "stats": stats or {}})
        finally:
            self._file.close()
            self._file = None
        logger.info(f"JOURNAL | closed | {self.path}")

    def _write(self, entry: Dict[str, Any]) -> None:
        assert self._file is not None
        self._file.write(json.dumps(entry, default=str) + "\n")
        self._file.flush()
        os.fsync(self._file.fileno())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
