"""Multi-strategy JSON extraction from untrusted model output."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Any

from storyboard_director.core.types import (
    ExtractedDocument,
    ExtractionMethod,
    ExtractionSuccess,
    Failure,
    MethodFailure,
    ParseError,
    Result,
    Success,
)
from storyboard_director.extraction.corrections import FormatCorrector
from storyboard_director.extraction.scanner import first_opener, iter_balanced_spans
from storyboard_director.extraction.strategies import (
    DEFAULT_STRATEGIES,
    ExtractionStrategy,
)
from storyboard_director.telemetry import TelemetryContext, TelemetryContextProtocol

log = logging.getLogger(__name__)


@dataclasses.dataclass(slots=True)
class _Attempt:
    text: str
    methods: list[ExtractionMethod] = dataclasses.field(default_factory=list)
    failures: list[MethodFailure] = dataclasses.field(default_factory=list)


class JSONExtractor:
    """Try each strategy in order and return the first structural success.

    Every attempt is recorded, including failures that precede a success, so
    callers can explain how a document was (or was not) found. State reflects
    the most recent call only.

    Attributes:
        strategies: Ordered strategies; the order is fixed at construction.
        corrector: Format corrector handed to strategies for assisted parsing.
        max_text_size: Longer inputs are truncated before parsing (diagnostics
            still keep the full text).
    """

    def __init__(
        self,
        strategies: tuple[ExtractionStrategy, ...] | None = None,
        *,
        corrector: FormatCorrector | None = None,
        max_text_size: int = 1_000_000,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        self.strategies = DEFAULT_STRATEGIES if strategies is None else strategies
        if not self.strategies:
            raise ValueError("JSONExtractor needs at least one strategy")
        self.corrector = corrector or FormatCorrector()
        self.max_text_size = max_text_size
        self._telemetry = telemetry or TelemetryContext()
        self._attempt: _Attempt | None = None
        self._last_error: str | None = None
        self._last_success: ExtractionSuccess | None = None

    async def extract(self, raw_text: Any) -> Result[ExtractedDocument, ParseError]:
        """Extract a document, returning a tagged result instead of None."""
        text = _as_text(raw_text)
        start = time.perf_counter()
        self._last_error = None
        self._last_success = None
        attempt = _Attempt(text=text)
        self._attempt = attempt

        with self._telemetry("extraction", length=len(text)):
            document = self._run(attempt, start)

        if document is None:
            self._last_error = _summarize_failures(attempt.failures)
            log.info(
                "JSON extraction failed after %d strategies: %s",
                len(attempt.methods),
                self._last_error,
            )
            return Failure(self._build_parse_error(attempt))

        self._last_success = ExtractionSuccess(
            method=document.method,
            confidence=document.confidence,
            retry_count=document.retry_count,
            processing_time_ms=document.processing_time_ms,
        )
        log.debug(
            "Extracted JSON via %s (confidence %.2f, %d prior failures)",
            document.method.value,
            document.confidence,
            document.retry_count,
        )
        return Success(document)

    async def extract_json(self, raw_text: Any) -> ExtractedDocument | None:
        """Extract a document or return None; details via the getters."""
        result = await self.extract(raw_text)
        return result.value if isinstance(result, Success) else None

    def get_attempted_methods(self) -> list[ExtractionMethod]:
        return list(self._attempt.methods) if self._attempt else []

    def get_method_failures(self) -> list[MethodFailure]:
        return list(self._attempt.failures) if self._attempt else []

    def get_last_error(self) -> str | None:
        return self._last_error

    def get_last_success(self) -> ExtractionSuccess | None:
        return self._last_success

    def create_parse_error(self, raw_text: Any) -> ParseError:
        """Build a ParseError for ``raw_text``.

        Reuses the record of the last call when it was for the same text;
        otherwise runs the strategies again so the error is always complete.
        """
        text = _as_text(raw_text)
        attempt = self._attempt
        if attempt is None or attempt.text != text or not attempt.methods:
            attempt = _Attempt(text=text)
            self._run(attempt, time.perf_counter())
        return self._build_parse_error(attempt, original=raw_text)

    # --- internals ---

    def _run(self, attempt: _Attempt, start: float) -> ExtractedDocument | None:
        text = attempt.text
        if len(text) > self.max_text_size:
            log.warning(
                "Response of %d chars truncated to %d for extraction",
                len(text),
                self.max_text_size,
            )
            text = text[: self.max_text_size]

        for strategy in self.strategies:
            attempt.methods.append(strategy.method)
            with self._telemetry(strategy.method.value):
                outcome = strategy.run(text, self.corrector)
            if isinstance(outcome, Failure):
                attempt.failures.append(MethodFailure(strategy.method, outcome.error))
                log.debug("%s failed: %s", strategy.method.value, outcome.error)
                continue
            data, confidence = outcome.value
            return ExtractedDocument(
                data=data,
                method=strategy.method,
                confidence=confidence,
                processing_time_ms=(time.perf_counter() - start) * 1000,
                retry_count=len(attempt.failures),
            )
        return None

    def _build_parse_error(
        self, attempt: _Attempt, original: Any = None
    ) -> ParseError:
        text = attempt.text
        original_content = original if isinstance(original, str) else text
        error_type, suggestions = _classify(text)
        reasons = tuple(f"{f.method.value}: {f.error}" for f in attempt.failures)
        return ParseError(
            type=error_type,
            message=_summarize_failures(attempt.failures),
            original_content=original_content,
            content_length=len(original_content),
            attempted_methods=tuple(attempt.methods),
            failure_reasons=reasons or ("no strategy produced a document",),
            suggestions=suggestions,
        )


def _as_text(raw_text: Any) -> str:
    if raw_text is None:
        return ""
    return raw_text if isinstance(raw_text, str) else str(raw_text)


def _summarize_failures(failures: list[MethodFailure]) -> str:
    if not failures:
        return "No extraction strategy succeeded"
    return "; ".join(f"{f.method.value}: {f.error}" for f in failures)


def _classify(text: str) -> tuple[str, tuple[str, ...]]:
    if not text.strip():
        return "empty_response", (
            "The model returned no content; retry the request.",
        )
    start = first_opener(text)
    if start is None:
        return "no_json_structure", (
            "No JSON-like structure found; ask the model to reply with a JSON object.",
            'Expected shape: {"prompts": [{"text": ..., "mood": ..., "timestamp": "MM:SS"}]}',
        )
    if next(iter_balanced_spans(text, limit=1), None) is None:
        return "truncated_json", (
            "The response may be truncated; raise the output token limit or "
            "request fewer prompts.",
        )
    return "malformed_json", (
        "JSON is malformed; check for trailing commas, comments or unquoted keys.",
        "Ask the model to return only a single fenced ```json block.",
    )
