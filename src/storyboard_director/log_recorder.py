"""Bounded in-memory log buffer for inspecting director runs."""

from __future__ import annotations

from collections import deque
import dataclasses
from datetime import UTC, datetime
import logging
from typing import Any

from storyboard_director.core.types import (
    BasicStoryboard,
    ExtractedDocument,
    ParseError,
)

log = logging.getLogger(__name__)

CONTENT_PREVIEW_CHARS = 500


@dataclasses.dataclass(frozen=True, slots=True)
class LogEntry:
    """One recorded log line with structured context."""

    timestamp: datetime
    level: str
    logger: str
    message: str
    context: dict[str, Any] = dataclasses.field(default_factory=dict)


class AgentLogRecorder(logging.Handler):
    """Logging handler that keeps the most recent entries in memory.

    Attach it to the ``storyboard_director`` logger to capture everything the
    package logs, or call the ``log_*`` helpers directly to record structured
    extraction events. Helper entries are also forwarded to this module's
    logger at the matching level.
    """

    def __init__(self, max_logs: int = 1000, level: int = logging.DEBUG):
        super().__init__(level)
        self._entries: deque[LogEntry] = deque(maxlen=max_logs)
        self._enabled = True

    def emit(self, record: logging.LogRecord) -> None:
        if not self._enabled or getattr(record, "recorder_id", None) == id(self):
            return
        try:
            message = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        self._append(
            record.levelname,
            record.name,
            message,
            dict(getattr(record, "context", None) or {}),
            datetime.fromtimestamp(record.created, UTC),
        )

    def attach(self, logger_name: str = "storyboard_director") -> None:
        logging.getLogger(logger_name).addHandler(self)

    def detach(self, logger_name: str = "storyboard_director") -> None:
        logging.getLogger(logger_name).removeHandler(self)

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled

    def get_logs(self) -> list[LogEntry]:
        return list(self._entries)

    def get_recent_logs(self, count: int = 50) -> list[LogEntry]:
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def clear_logs(self) -> None:
        self._entries.clear()

    # --- structured events ---

    def log_extraction_error(self, raw_text: str, error: ParseError) -> None:
        self._record(
            logging.WARNING,
            f"JSON extraction failed: {error.message}",
            {
                "error_type": error.type,
                "content_length": error.content_length,
                "content_preview": raw_text[:CONTENT_PREVIEW_CHARS],
                "attempted_methods": [m.value for m in error.attempted_methods],
                "failure_reasons": list(error.failure_reasons),
                "suggestions": list(error.suggestions),
            },
        )

    def log_extraction_success(self, document: ExtractedDocument) -> None:
        self._record(
            logging.INFO,
            f"JSON extracted via {document.method.value}",
            {
                "method": document.method.value,
                "confidence": document.confidence,
                "retry_count": document.retry_count,
                "processing_time_ms": round(document.processing_time_ms, 3),
            },
        )

    def log_fallback_usage(self, reason: str, storyboard: BasicStoryboard | None) -> None:
        context: dict[str, Any] = {"reason": reason, "succeeded": storyboard is not None}
        if storyboard is not None:
            context["prompt_count"] = len(storyboard.prompts)
            context["confidence"] = storyboard.metadata.confidence
            context["low_confidence"] = storyboard.metadata.low_confidence
        self._record(logging.WARNING, f"Fallback processing used: {reason}", context)

    def _record(self, level: int, message: str, context: dict[str, Any]) -> None:
        if self._enabled:
            self._append(logging.getLevelName(level), log.name, message, context)
        log.log(level, message, extra={"context": context, "recorder_id": id(self)})

    def _append(
        self,
        level: str,
        logger_name: str,
        message: str,
        context: dict[str, Any],
        timestamp: datetime | None = None,
    ) -> None:
        self._entries.append(
            LogEntry(
                timestamp=timestamp or datetime.now(UTC),
                level=level,
                logger=logger_name,
                message=message,
                context=context,
            )
        )
