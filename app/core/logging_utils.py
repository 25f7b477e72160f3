# app/core/logging_utils.py
import logging
import json
import datetime as dt
from typing import Dict, Any, Optional, Set

# Attributes every LogRecord carries; anything else arrived through `extra=`
LOG_RECORD_BUILTIN_ATTRS: Set[str] = {
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module", "msecs",
    "message", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "taskName", "thread", "threadName",
}

class MyJSONFormatter(logging.Formatter):
    """
    One JSON object per line. `fmt_keys` maps output keys to LogRecord attributes;
    message and timestamp are always present, as are `extra=` fields such as game_id.
    """

    def __init__(self, *, fmt_keys: Optional[Dict[str, str]] = None, datefmt: Optional[str] = None):
        super().__init__(datefmt=datefmt)
        self.fmt_keys = fmt_keys if fmt_keys is not None else {}

    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(self._prepare_log_dict(record), default=str)

    def _timestamp(self, record: logging.LogRecord) -> str:
        if self.datefmt:
            return self.formatTime(record, self.datefmt)
        return dt.datetime.fromtimestamp(record.created, tz=dt.timezone.utc).isoformat()

    def _prepare_log_dict(self, record: logging.LogRecord) -> Dict[str, Any]:
        computed = {"message": record.getMessage(), "timestamp": self._timestamp(record)}
        if record.exc_info:
            computed["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            computed["stack_info"] = self.formatStack(record.stack_info)

        log_dict: Dict[str, Any] = {}
        for out_key, attr in self.fmt_keys.items():
            if attr in computed:
                log_dict[out_key] = computed[attr]
            else:
                val = getattr(record, attr, None)
                if val is not None:
                    log_dict[out_key] = val

        mapped_attrs = set(self.fmt_keys.values())
        for key, value in computed.items():
            if key not in mapped_attrs and key not in log_dict:
                log_dict[key] = value

        for key, val in record.__dict__.items():
            if key not in LOG_RECORD_BUILTIN_ATTRS and key not in log_dict and key not in mapped_attrs:
                log_dict[key] = val
        return log_dict
