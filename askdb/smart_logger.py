import json
import os
import threading
import time
from datetime import datetime
from typing import Any, Optional

from askdb.utils.log_sanitize import sanitize_for_log


class SmartLogger:
    """
    Structured logger writing one JSON object per line.

    Small params are inlined into the main log entry; params larger than
    ``max_inline_chars`` are written to a separate detail file and only their
    shape is kept inline. Secrets are masked before anything is written.

    Configured through ``SMART_LOGGER_*`` environment variables:
    MAIN_LOG_PATH, DETAIL_LOG_DIR, MIN_LEVEL, INCLUDE_ALL_MIN_LEVEL,
    CONSOLE_OUTPUT, FILE_OUTPUT, BLACKLIST_MESSAGES (JSON array or comma list).
    """

    LEVEL_PRIORITY = {
        "DEBUG": 0,
        "INFO": 1,
        "WARNING": 2,
        "ERROR": 3,
        "CRITICAL": 4,
    }
    _instance = None

    @classmethod
    def instance(cls) -> "SmartLogger":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def log(cls, level, message, category=None, params=None, max_inline_chars=100):
        cls.instance()._log(level, message, category, params, max_inline_chars)

    def __init__(
        self,
        main_log_path: Optional[str] = None,
        detail_log_dir: Optional[str] = None,
        min_level: Optional[str] = None,
        include_all_min_level: Optional[str] = None,
        console_output: Optional[bool] = None,
        file_output: Optional[bool] = None,
        blacklist_messages: Optional[Any] = None,
    ):
        self.main_log_path = self._env(main_log_path, "MAIN_LOG_PATH", "logs/askdb_flow.jsonl")
        self.detail_log_dir = self._env(detail_log_dir, "DETAIL_LOG_DIR", "logs/details")
        self.min_level = self._env(min_level, "MIN_LEVEL", "INFO").upper()
        self.include_all_min_level = self._env(
            include_all_min_level, "INCLUDE_ALL_MIN_LEVEL", "ERROR"
        ).upper()
        self.console_output = self._env_flag(console_output, "CONSOLE_OUTPUT", True)
        self.file_output = self._env_flag(file_output, "FILE_OUTPUT", False)
        self.blacklist_messages = self._parse_blacklist(
            blacklist_messages
            if blacklist_messages is not None
            else os.environ.get("SMART_LOGGER_BLACKLIST_MESSAGES")
        )

        self._lock = threading.Lock()
        self._last_second: Optional[int] = None
        self._counter = 0

        if self.file_output:
            for dir_path in (os.path.dirname(self.main_log_path), self.detail_log_dir):
                if dir_path:
                    os.makedirs(dir_path, exist_ok=True)

    @staticmethod
    def _env(direct_value: Optional[str], key: str, default: str) -> str:
        if direct_value is not None:
            return direct_value
        return os.environ.get(f"SMART_LOGGER_{key}", default)

    @staticmethod
    def _env_flag(direct_value: Optional[bool], key: str, default: bool) -> bool:
        if direct_value is not None:
            return bool(direct_value)
        raw = os.environ.get(f"SMART_LOGGER_{key}")
        if raw is None:
            return default
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    @staticmethod
    def _parse_blacklist(raw: Any) -> list[str]:
        if raw is None:
            return []
        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                return []
            try:
                parsed = json.loads(text)
                items = parsed if isinstance(parsed, list) else []
            except json.JSONDecodeError:
                items = text.split(",")
        else:
            items = list(raw)
        return [str(item).strip() for item in items if item is not None and str(item).strip()]

    def _is_blacklisted(self, text: str) -> bool:
        return any(needle in text for needle in self.blacklist_messages)

    def _priority(self, level: str) -> int:
        return self.LEVEL_PRIORITY.get((level or "").upper(), 1)

    def _should_log(self, level: str) -> bool:
        return self._priority(level) >= self.LEVEL_PRIORITY.get(self.min_level, 1)

    def _should_include_all(self, level: str) -> bool:
        return self._priority(level) >= self.LEVEL_PRIORITY.get(self.include_all_min_level, 3)

    def _next_trace_id(self) -> str:
        # Same-second entries get _1, _2, ... suffixes.
        now = int(time.time())
        if self._last_second == now:
            self._counter += 1
        else:
            self._last_second = now
            self._counter = 1
        return f"{now}_{self._counter}"

    def _write_detail(self, trace_id: str, payload: Any) -> Optional[str]:
        if not self.file_output:
            return None
        filename = f"{trace_id}.json"
        with open(os.path.join(self.detail_log_dir, filename), "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2, default=str)
        return filename

    def _log(self, level, message, category=None, params=None, max_inline_chars=100):
        message_text = "" if message is None else str(message)
        if self._is_blacklisted(message_text + (category or "")):
            return
        if not self._should_log(level):
            return

        entry: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "message": message_text,
        }
        if category:
            entry["category"] = category

        if params:
            params = sanitize_for_log(params)
            if len(str(params)) <= max_inline_chars or self._should_include_all(level):
                entry["params_summary"] = params
            else:
                with self._lock:
                    trace_id = self._next_trace_id()
                try:
                    detail_ref = self._write_detail(trace_id, params)
                except OSError as exc:
                    entry["detail_save_error"] = str(exc)
                else:
                    if detail_ref is None:
                        entry["detail_save_error"] = "file_output_disabled"
                    else:
                        entry["has_detail_file"] = True
                        entry["detail_ref"] = detail_ref
                if isinstance(params, dict):
                    entry["params_summary"] = {"keys": list(params.keys())}
                elif isinstance(params, (list, tuple)):
                    entry["params_summary"] = {"type": type(params).__name__, "length": len(params)}
                else:
                    entry["params_summary"] = {"type": type(params).__name__}

        if self.file_output:
            with self._lock:
                with open(self.main_log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")

        if self.console_output:
            category_str = f"[{category}]" if category else ""
            if "params_summary" in entry and self._should_include_all(level):
                print(f"[{level}]{category_str} {message_text} {entry['params_summary']}")
            else:
                print(f"[{level}]{category_str} {message_text}")
