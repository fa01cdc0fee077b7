import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

AUDIT_LOGGER_NAME = "energy.audit"


class WindowsSafeRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that tolerates a locked file during rollover on Windows."""

    def doRollover(self):
        if self.stream:
            self.stream.close()
            self.stream = None
        try:
            super().doRollover()
        except PermissionError:
            # File still locked by another process; keep appending to it.
            pass
        finally:
            if not self.stream:
                self.stream = self._open()


class AuditLogger:
    """
    Append-only JSON audit log for schedule configuration changes.

    One line per event::

        2026-01-05T14:00:00Z | INFO | {"actor": "u1", "action": "schedule_created", ...}
    """

    def __init__(self, log_path: str, level: str = "INFO", max_bytes: int = 10 * 1024 * 1024, backup_count: int = 30) -> None:
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self.logger.propagate = False

        # A second AuditLogger in the same process reuses the existing handler
        if not any(isinstance(h, RotatingFileHandler) for h in self.logger.handlers):
            handler_cls = WindowsSafeRotatingFileHandler if sys.platform == "win32" else RotatingFileHandler
            handler = handler_cls(
                filename=str(self.log_path),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
                delay=True,
            )
            handler.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)sZ | %(levelname)s | %(message)s",
                    datefmt="%Y-%m-%dT%H:%M:%S",
                )
            )
            self.logger.addHandler(handler)

    def log_event(self, actor: str, action: str, resource: str, outcome: str, **metadata: Any) -> None:
        payload: Dict[str, Any] = {
            "actor": actor,
            "action": action,
            "resource": resource,
            "outcome": outcome,
        }
        if metadata:
            payload["meta"] = metadata

        self.logger.info(json.dumps(payload, default=str, sort_keys=True))
