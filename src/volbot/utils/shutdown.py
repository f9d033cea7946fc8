"""
Process-wide stop flag.

Signals only set the flag. The engine loop checks stopping() between cycles
and while a cycle is in flight, so the journal and clients are always closed
from the loop itself.
"""

from __future__ import annotations

import signal
import threading
from typing import Optional

from loguru import logger

_STOP_EVENT = threading.Event()
_STOP_REASON: Optional[str] = None


def request_stop(reason: str = "requested") -> None:
    global _STOP_REASON
    if not _STOP_EVENT.is_set():
        _STOP_REASON = reason
        logger.warning(f"STOP | {reason} | finishing current cycle")
    _STOP_EVENT.set()


def stopping() -> bool:
    return _STOP_EVENT.is_set()


def stop_reason() -> Optional[str]:
    return _STOP_REASON


def reset() -> None:
    global _STOP_REASON
    _STOP_REASON = None
    _STOP_EVENT.clear()


def install_signal_handlers() -> None:
    def _handler(signum, frame):  # pragma: no cover
        request_stop(signal.Signals(signum).name)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _handler)
        except (ValueError, OSError):
            # not on the main thread
            pass
