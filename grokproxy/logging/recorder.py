"""Per-request log capture for the gateway.

A ``RequestLogRecorder`` buffers one request's lifecycle (client request,
upstream attempts, upstream stream chunks, errors, outcome) in memory and,
when disk logging is enabled, flushes it to ``logs/requests`` off the event
loop. Errors additionally get a short ``.err`` file in ``logs/errors``.
"""

import asyncio
import base64
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger("grokproxy")

LOG_ROOT = Path(__file__).resolve().parent.parent.parent.joinpath("logs")
_PENDING_LOG_TASKS: set[asyncio.Task] = set()

SENSITIVE_HEADERS = {"authorization", "cookie", "proxy-authorization"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp_name(model_name: str, suffix: str) -> str:
    timestamp = _utcnow().strftime("%Y%m%d_%H%M%S")
    short_id = uuid.uuid4().hex[:4]
    return f"{timestamp}-{short_id}_{safe_fragment(model_name)}{suffix}"


def _register_background_task(task: asyncio.Task) -> None:
    _PENDING_LOG_TASKS.add(task)
    task.add_done_callback(_PENDING_LOG_TASKS.discard)


async def drain_pending_log_tasks() -> int:
    """Wait for queued flushes; returns how many were pending."""
    pending = list(_PENDING_LOG_TASKS)
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
    return len(pending)


def safe_fragment(text: str) -> str:
    if not text:
        return "unknown"
    filtered = [ch if ch.isalnum() or ch in {"-", "_"} else "-" for ch in text.strip()]
    collapsed = "".join(filtered).strip("-") or "model"
    return collapsed[:48]


def mask_headers(data: Mapping[str, str]) -> dict[str, str]:
    """Copy headers with credentials reduced to a three character prefix."""
    masked: dict[str, str] = {}
    for key, value in data.items():
        key, value = str(key), str(value)
        key_lower = key.lower()
        if key_lower in SENSITIVE_HEADERS:
            if value.startswith("Bearer "):
                token = value[7:]
                masked[key] = f"Bearer {token[:3]}****" if token else value
            else:
                masked[key] = value[:3] + "****" if len(value) > 3 else "****"
        elif key_lower == "host":
            masked[key] = "proxy_host"
        else:
            masked[key] = value
    return masked


def _write_atomic(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("wb") as fh:
        fh.write(data)
    os.replace(tmp_path, path)


def _schedule_write(path: Path, data: bytes) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        _write_atomic(path, data)
        return
    task = loop.create_task(asyncio.to_thread(_write_atomic, path, data))
    _register_background_task(task)


def log_error_event(
    model_name: str,
    error_type: str,
    error_message: str,
    http_status: Optional[int] = None,
    request_path: Optional[str] = None,
    request_log_path: Optional[Path] = None,
    log_root: Optional[Path] = None,
) -> Path:
    """Write one small ``.err`` file describing a failed request."""
    error_path = (log_root or LOG_ROOT) / "errors" / _timestamp_name(model_name, ".err")
    lines = [
        f"timestamp={_utcnow().isoformat()}",
        f"model={model_name or 'unknown'}",
        f"error_type={error_type}",
        f"error_message={error_message}",
    ]
    if http_status is not None:
        lines.append(f"http_status={http_status}")
    if request_path:
        lines.append(f"request_path={request_path}")
    if request_log_path:
        lines.append(f"full_log={request_log_path.name}")
    _schedule_write(error_path, ("\n".join(lines) + "\n").encode("utf-8"))
    return error_path


class RequestLogRecorder:
    """Capture request/response lifecycle data and flush asynchronously."""

    def __init__(
        self,
        model_name: str,
        is_stream: bool,
        path: str,
        log_to_disk: bool = True,
        log_root: Optional[Path] = None,
    ) -> None:
        self.model_name = model_name or "unknown"
        self.is_stream = is_stream
        self.request_path = path
        self.log_to_disk = bool(log_to_disk)
        self.log_root = log_root or LOG_ROOT
        self.log_path = self.log_root / "requests" / _timestamp_name(self.model_name, ".log")
        self.outcome: Optional[str] = None
        self.error_message: Optional[str] = None
        self.usage: Optional[dict[str, Any]] = None
        self.conversation_id: Optional[str] = None

        self._buffer = bytearray()
        self._finalized = False
        self._stream_chunks = 0
        self._last_http_status: Optional[int] = None
        self._error_logged = False
        self._request_json: Optional[dict[str, Any]] = None
        self._started = _utcnow()
        self._append_text(f"log_start={self._started.isoformat()}\n")

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def stream_chunks(self) -> int:
        return self._stream_chunks

    def text(self) -> str:
        return self._buffer.decode("utf-8", errors="replace")

    def configure_disk_logging(self, log_to_disk: bool) -> None:
        if not self._finalized:
            self.log_to_disk = bool(log_to_disk)

    def record_request(
        self, method: str, query: str, headers: Mapping[str, str], body: bytes
    ) -> None:
        if self._finalized:
            return
        body_value: Any = None
        body_base64: Optional[str] = None
        if body:
            try:
                text = body.decode("utf-8")
            except UnicodeDecodeError:
                body_base64 = base64.b64encode(body).decode("ascii")
            else:
                try:
                    body_value = json.loads(text)
                except json.JSONDecodeError:
                    body_value = text
        self._request_json = {
            "request_time": self._started.isoformat(),
            "model": self.model_name,
            "is_stream": self.is_stream,
            "path": self.request_path,
            "method": method,
            "query": query or "",
            "headers": mask_headers(headers),
            "body_len": len(body),
            "body": body_value,
            "body_base64": body_base64,
        }

    def record_conversation(self, conversation_id: str, history_length: int) -> None:
        if self._finalized:
            return
        self.conversation_id = conversation_id
        self._append_text(
            f"conversation_id={conversation_id}\nhistory_length={history_length}\n"
        )

    def record_upstream_attempt(self, attempt: int, url: str) -> None:
        if self._finalized:
            return
        self._append_text(f"=== UPSTREAM ATTEMPT {attempt} ===\nurl={url}\n")

    def record_upstream_response(
        self, status: int, headers: Mapping[str, str], body: bytes = b""
    ) -> None:
        if self._finalized:
            return
        self._last_http_status = status
        self._append_text(
            f"status={status}\nresponse_headers={self._dump_headers(headers)}\n"
            f"body_len={len(body)}\n-- RESPONSE BODY START --\n"
        )
        if body:
            self._append_text(self._format_payload(body))
        self._append_text("-- RESPONSE BODY END --\n")

    def record_stream_headers(self, status: int, headers: Mapping[str, str]) -> None:
        if self._finalized:
            return
        self._last_http_status = status
        self._append_text(
            f"=== STREAM RESPONSE ===\nstatus={status}\n"
            f"response_headers={self._dump_headers(headers)}\n"
        )

    def record_stream_chunk(self, chunk: bytes) -> None:
        if self._finalized:
            return
        self._stream_chunks += 1
        self._append_text(f"-- STREAM CHUNK {self._stream_chunks} len={len(chunk)} --\n")
        self._append_text(self._format_payload(chunk))
        self._append_text("-- END STREAM CHUNK --\n")

    def record_usage_stats(self, usage: Mapping[str, Any]) -> None:
        if self._finalized or not usage:
            return
        self.usage = dict(usage)
        self._append_text(f"usage={json.dumps(self.usage, sort_keys=True)}\n")

    def record_error(self, message: str, error_type: Optional[str] = None) -> None:
        if self._finalized:
            return
        self.error_message = message
        self._append_text(f"ERROR: {message}\n")
        if self._error_logged or not self.log_to_disk:
            return
        self._error_logged = True
        log_error_event(
            model_name=self.model_name,
            error_type=error_type or self._infer_error_type(message),
            error_message=message,
            http_status=self._last_http_status,
            request_path=self.request_path,
            request_log_path=self.log_path,
            log_root=self.log_root,
        )

    def finalize(self, outcome: str) -> None:
        if self._finalized:
            return
        self._finalized = True
        self.outcome = outcome
        finished = _utcnow()
        duration_ms = int((finished - self._started).total_seconds() * 1000)
        self._append_text(
            f"=== FINAL STATUS: {outcome} at {finished.isoformat()} "
            f"duration_ms={duration_ms} ===\n"
        )
        logger.debug(
            f"Request log finalized: outcome={outcome}, chunks={self._stream_chunks}, "
            f"duration_ms={duration_ms}"
        )
        if not self.log_to_disk:
            return
        _schedule_write(self.log_path, bytes(self._buffer))
        if self._request_json:
            output = dict(self._request_json)
            output["outcome"] = outcome
            output["duration_ms"] = duration_ms
            if self.conversation_id:
                output["conversation_id"] = self.conversation_id
            if self.usage:
                output["usage"] = self.usage
            content = json.dumps(output, ensure_ascii=True, indent=2) + "\n"
            _schedule_write(self.log_path.with_suffix(".json"), content.encode("utf-8"))

    @staticmethod
    def _infer_error_type(message: str) -> str:
        lowered = message.lower()
        if "timed out" in lowered or "timeout" in lowered:
            return "timeout"
        if "status" in lowered:
            return "http_error"
        if "cancelled" in lowered or "disconnect" in lowered:
            return "client_disconnect"
        return "unknown"

    def _append_text(self, text: str) -> None:
        self._buffer.extend(text.encode("utf-8"))

    @staticmethod
    def _dump_headers(headers: Mapping[str, str]) -> str:
        return json.dumps(mask_headers(headers), sort_keys=True)

    @staticmethod
    def _format_payload(data: bytes) -> str:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return "<non-utf8 binary data omitted>\n"
        return text if text.endswith("\n") else text + "\n"
