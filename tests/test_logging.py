from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger


def test_file_sink_receives_tagged_lines(tmp_path: Path) -> None:
    from volbot.utils.logging import setup_logging

    log_file = tmp_path / "trading.log"
    try:
        setup_logging("INFO", str(log_file))
        logger.debug("NOISE | hidden")
        logger.info("PRICE | SOL=$150")
    finally:
        logger.remove()
        logger.add(sys.stderr)

    text = log_file.read_text()
    assert "PRICE | SOL=$150" in text
    assert "NOISE" not in text


def test_no_file_sink_when_disabled(tmp_path: Path, monkeypatch) -> None:
    from volbot.utils.logging import setup_logging

    monkeypatch.chdir(tmp_path)
    try:
        setup_logging("INFO", None)
        logger.info("ENGINE_START")
    finally:
        logger.remove()
        logger.add(sys.stderr)

    assert list(tmp_path.iterdir()) == []
