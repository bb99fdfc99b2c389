from __future__ import annotations
import json
import sys
import threading
import time
import traceback
from typing import Any, Dict, Optional

_LEVEL_ORDER = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}

# Applies to every logger that was not given an explicit level
_global_level = {"v": "INFO"}


class StructuredLogger:
    """JSON-lines logger shared by the worker, the adapters and the notifier."""

    def __init__(self, name: str = "thumbnailer", level: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        self.name = name
        self._level = level.upper() if level else None
        self.context: Dict[str, Any] = dict(context or {})

    @property
    def level(self) -> str:
        return self._level or _global_level["v"]

    # ----------------------------------------------------------------------
    # Core logging method
    # ----------------------------------------------------------------------
    def _log(self, level: str, msg: str, extra: Optional[Dict[str, Any]] = None):
        if _LEVEL_ORDER.get(level, 100) < _LEVEL_ORDER.get(self.level, 20):
            return

        try:
            record = {
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                "level": level,
                "logger": self.name,
                "thread": threading.current_thread().name,
                "msg": str(msg),
            }

            fields = dict(self.context)
            if extra and isinstance(extra, dict):
                fields.update(extra)
            for k, v in fields.items():
                # core keys win
                if k not in record:
                    record[k] = v

            line = json.dumps(record, ensure_ascii=False, default=str)
            print(line, file=sys.stdout, flush=True)

        except Exception as e:
            # Never crash the worker due to logging errors
            print(f"[logger-error] failed to log: {e}", file=sys.stderr, flush=True)

    # ----------------------------------------------------------------------
    # Public convenience methods
    # ----------------------------------------------------------------------
    def debug(self, msg: str, extra: Optional[Dict[str, Any]] = None):
        self._log("DEBUG", msg, extra)

    def info(self, msg: str, extra: Optional[Dict[str, Any]] = None):
        self._log("INFO", msg, extra)

    def warning(self, msg: str, extra: Optional[Dict[str, Any]] = None):
        self._log("WARNING", msg, extra)

    def error(self, msg: Any, extra: Optional[Dict[str, Any]] = None):
        if isinstance(msg, BaseException):
            err_str = f"{type(msg).__name__}: {msg}"
            tb = "".join(traceback.format_exception(type(msg), msg, msg.__traceback__))
            self._log("ERROR", err_str, dict(extra or {}, traceback=tb))
        else:
            self._log("ERROR", msg, extra)

    # ----------------------------------------------------------------------
    # Context binding
    # ----------------------------------------------------------------------
    def bind(self, **context: Any) -> "StructuredLogger":
        """
        Return a child logger with context attached to every line.
        Example:
            log = get_logger("runner").bind(worker_id=3)
        """
        merged = dict(self.context)
        merged.update(context)
        return StructuredLogger(name=self.name, level=self._level, context=merged)


# ----------------------------------------------------------------------
# Module-level logger registry (one logger per name)
# ----------------------------------------------------------------------

_loggers: Dict[str, StructuredLogger] = {}
_lock = threading.Lock()


def get_logger(name: str = "thumbnailer", level: Optional[str] = None) -> StructuredLogger:
    """Get or create a logger for the given name."""
    with _lock:
        if name not in _loggers:
            _loggers[name] = StructuredLogger(name=name, level=level)
        return _loggers[name]


def set_level(level: str) -> None:
    """Set the level used by every logger without an explicit one."""
    level = (level or "INFO").upper()
    if level not in _LEVEL_ORDER:
        raise ValueError(f"Invalid log level: {level}")
    _global_level["v"] = level


__all__ = ["StructuredLogger", "get_logger", "set_level"]
