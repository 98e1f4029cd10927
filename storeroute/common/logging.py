"""JSON logging with stable schema."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from storeroute.common.constants import JSON_LOG_FIELDS
from storeroute.common.fs import ensure_dir
from storeroute.common.time_utils import utc_timestamp_iso


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {"timestamp": utc_timestamp_iso(), "level": record.levelname}
        for field in JSON_LOG_FIELDS:
            if field in ("timestamp", "message"):
                continue
            payload[field] = getattr(record, field, None)
        payload["message"] = record.getMessage()
        return json.dumps(payload, ensure_ascii=False)


def build_logger(run_id: str, data_dir: Path, level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(f"storeroute.{run_id}")
    logger.setLevel(level.upper())
    logger.handlers.clear()
    logger.propagate = False

    stream = logging.StreamHandler()
    stream.setFormatter(JsonLineFormatter())
    logger.addHandler(stream)

    log_path = data_dir / "run_meta" / f"{run_id}.log.jsonl"
    ensure_dir(log_path.parent)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(JsonLineFormatter())
    logger.addHandler(file_handler)

    return logger


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def log_event(logger: logging.Logger, message: str, **event_fields: Any) -> None:
    logger.info(message, extra=event_fields)


def log_warning(logger: logging.Logger, message: str, **event_fields: Any) -> None:
    logger.warning(message, extra=event_fields)
