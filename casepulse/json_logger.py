"""Newline-delimited JSON events for the vault tools and the Seller Central runner.

Every event carries ``run_id``, ``phase``, ``status``, ``message`` and ``ts``.
Nothing secret is written: fields named like secrets are replaced wholesale,
and values registered through :meth:`JsonLogger.mask` (decrypted passwords,
2FA keys, one-time codes) are scrubbed from every string that is emitted,
including exception messages.
"""
from __future__ import annotations

import json
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, Dict, Iterator, Optional

__all__ = ["JsonLogger", "get_logger", "log_event", "timed_event", "new_run_id"]

REDACTED = "***"
SENSITIVE_KEYS = frozenset(
    {"password", "two_fa_key", "twofakey", "otp", "otp_code", "secret_key", "encryption_key", "token"}
)


def new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S%f")


def _default_log_file_path() -> str | None:
    from casepulse.config import get_config

    raw = get_config().json_log_file.strip()
    return raw or None


class _Sink:
    """Output shared by a logger and every logger bound from it."""

    def __init__(self, stream: IO[str], log_file_path: str | None) -> None:
        self.stream = stream
        self.log_file_path = log_file_path
        self.file_handle = open(log_file_path, "a", encoding="utf-8") if log_file_path else None
        self.masked: set[str] = set()
        self.closed = False

    def scrub(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                key: REDACTED if str(key).lower() in SENSITIVE_KEYS else self.scrub(item)
                for key, item in value.items()
            }
        if isinstance(value, (list, tuple)):
            return [self.scrub(item) for item in value]
        if isinstance(value, str) and self.masked:
            for secret in self.masked:
                value = value.replace(secret, REDACTED)
        return value

    def write(self, line: str) -> None:
        self.stream.write(line + "\n")
        self.stream.flush()
        if self.file_handle:
            self.file_handle.write(line + "\n")
            self.file_handle.flush()

    def close(self) -> None:
        self.closed = True
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None


_AUTO = object()


class JsonLogger:
    def __init__(
        self,
        run_id: Optional[str] = None,
        stream: IO[str] | None = None,
        *,
        log_file_path: str | None | object = _AUTO,
        _sink: _Sink | None = None,
    ):
        self.run_id = run_id or new_run_id()
        self.default_context: Dict[str, Any] = {"run_id": self.run_id}
        if _sink is not None:
            self._sink = _sink
            self._owns_sink = False
            return
        file_path = _default_log_file_path() if log_file_path is _AUTO else log_file_path
        self._sink = _Sink(stream or sys.stdout, self._resolve_path(file_path))
        self._owns_sink = True

    @staticmethod
    def _resolve_path(raw_path: Any) -> str | None:
        if not raw_path:
            return None
        path = Path(str(raw_path)).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)

    @property
    def log_file_path(self) -> str | None:
        return self._sink.log_file_path

    @property
    def closed(self) -> bool:
        return self._sink.closed

    def bind(self, **context: Any) -> JsonLogger:
        """Child logger that adds ``context`` to every event and shares this logger's output."""

        child = JsonLogger(run_id=self.run_id, _sink=self._sink)
        child.default_context = {**self.default_context, **context}
        return child

    def mask(self, *values: str | None) -> None:
        """Never emit these literal values (short values are ignored)."""

        for value in values:
            if value and len(value) >= 4:
                self._sink.masked.add(value)

    def info(self, *, phase: str, status: str = "ok", message: str = "", **fields: Any) -> None:
        if self.closed:
            return
        event = self._sink.scrub({**self.default_context, "phase": phase, "status": status, "message": message, **fields})
        event.setdefault("ts", datetime.now(timezone.utc).isoformat())
        self._sink.write(json.dumps(event, default=str, ensure_ascii=False))

    def warn(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="warn", message=message, **fields)

    def error(self, *, phase: str, message: str, **fields: Any) -> None:
        self.info(phase=phase, status="error", message=message, **fields)

    def close(self) -> None:
        # Bound children never close the shared output.
        if self._owns_sink and not self.closed:
            self._sink.close()

    def __enter__(self) -> JsonLogger:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def get_logger(run_id: Optional[str] = None) -> JsonLogger:
    return JsonLogger(run_id=run_id)


def log_event(*, logger: JsonLogger, phase: str, status: str = "ok", message: str = "", **extras: Any) -> None:
    logger.info(phase=phase, status=status, message=message, **extras)


@contextmanager
def timed_event(*, logger: JsonLogger, phase: str, message: str = "", **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    except Exception as exc:
        logger.error(
            phase=phase,
            message=f"{message} failed: {exc}",
            duration_ms=int((time.perf_counter() - start) * 1000),
            exc_type=type(exc).__name__,
            **fields,
        )
        raise
    logger.info(
        phase=phase,
        message=message,
        duration_ms=int((time.perf_counter() - start) * 1000),
        **fields,
    )
