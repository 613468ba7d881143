from __future__ import annotations

import json
import traceback
import uuid
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, TextIO, Union


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _truncate(text: str, *, limit: int) -> str:
    s = str(text or "")
    if limit <= 0:
        return ""
    if len(s) <= limit:
        return s
    return s[: max(0, limit - 1)] + "…"


class RunLogger:
    """
    JSONL logger shared by the pipeline stages and their worker threads.

    Each log line is a single JSON object. bind() returns a logger that writes to
    the same file and stamps extra context (tag query, stage) on every record.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        overwrite: bool = True,
        session_id: str | None = None,
    ) -> None:
        self._path = Path(path)
        self._overwrite = bool(overwrite)
        self._session_id = (session_id or "").strip() or uuid.uuid4().hex
        self._fp: TextIO | None = None
        self._lock = Lock()

    @classmethod
    def open(
        cls,
        path: str | Path,
        *,
        overwrite: bool = True,
        session_id: str | None = None,
    ) -> "RunLogger":
        logger = cls(path, overwrite=overwrite, session_id=session_id)
        logger._ensure_open()
        return logger

    @property
    def path(self) -> Path:
        return self._path

    @property
    def session_id(self) -> str:
        return self._session_id

    def close(self) -> None:
        with self._lock:
            if self._fp is not None:
                try:
                    self._fp.flush()
                finally:
                    self._fp.close()
                self._fp = None

    def __enter__(self) -> "RunLogger":
        self._ensure_open()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def bind(self, **context: Any) -> "BoundRunLogger":
        return BoundRunLogger(self, context)

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("INFO", event, url=url, **data)

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("WARN", event, url=url, **data)

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self.log("ERROR", event, url=url, **data)

    def exception(
        self,
        event: str,
        *,
        exc: BaseException,
        url: str | None = None,
        **data: Any,
    ) -> None:
        self.log("ERROR", event, url=url, error=_describe_exception(exc), **data)

    def log(
        self,
        level: str,
        event: str,
        *,
        url: str | None = None,
        context: dict[str, Any] | None = None,
        **data: Any,
    ) -> None:
        lvl = (level or "").strip().upper() or "INFO"
        ev = (event or "").strip() or "event"

        record: dict[str, Any] = {
            "ts": _utc_now_iso(),
            "level": lvl,
            "event": ev,
            "session_id": self._session_id,
        }

        if context:
            record["context"] = dict(context)

        u = (url or "").strip()
        if u:
            record["url"] = u

        if data:
            record["data"] = data

        self._write(record)

    def _ensure_open(self) -> None:
        if self._fp is not None:
            return

        with self._lock:
            if self._fp is not None:
                return

            self._path.parent.mkdir(parents=True, exist_ok=True)
            mode = "w" if self._overwrite else "a"
            self._fp = self._path.open(mode, encoding="utf-8", newline="\n")
            # Later reopens (after close) must not truncate what was written.
            self._overwrite = False

    def _write(self, record: dict[str, Any]) -> None:
        self._ensure_open()

        payload = json.dumps(
            record,
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )

        with self._lock:
            if self._fp is None:
                return
            self._fp.write(payload + "\n")
            self._fp.flush()


class BoundRunLogger:
    """RunLogger view with fixed context merged into every record."""

    def __init__(self, parent: RunLogger, context: dict[str, Any]) -> None:
        self._parent = parent
        self._context = dict(context)

    def bind(self, **context: Any) -> "BoundRunLogger":
        return BoundRunLogger(self._parent, {**self._context, **context})

    def info(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self._parent.log("INFO", event, url=url, context=self._context, **data)

    def warning(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self._parent.log("WARN", event, url=url, context=self._context, **data)

    def error(self, event: str, *, url: str | None = None, **data: Any) -> None:
        self._parent.log("ERROR", event, url=url, context=self._context, **data)

    def exception(self, event: str, *, exc: BaseException, url: str | None = None, **data: Any) -> None:
        self._parent.log(
            "ERROR",
            event,
            url=url,
            context=self._context,
            error=_describe_exception(exc),
            **data,
        )


def _describe_exception(exc: BaseException) -> dict[str, str]:
    return {
        "type": type(exc).__name__,
        "message": _truncate(str(exc), limit=2000),
        "traceback": _truncate(
            "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            limit=12000,
        ),
    }


LogSink = Union[RunLogger, BoundRunLogger]
