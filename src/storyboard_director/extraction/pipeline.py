"""Raw model text in, sanitized storyboard out.

Order: extract -> validate -> (reconstruct) -> sanitize, with the fallback
processor as the last resort when no structured document survives.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from storyboard_director.core.types import (
    ExtractionMethod,
    Failure,
    ParseError,
    Result,
    StoryboardDocument,
    Success,
)
from storyboard_director.exceptions import ExtractionError
from storyboard_director.extraction.extractor import JSONExtractor
from storyboard_director.extraction.fallback import FallbackProcessor
from storyboard_director.extraction.sanitizer import ContentSanitizer
from storyboard_director.extraction.validation import StoryboardValidator
from storyboard_director.log_recorder import AgentLogRecorder
from storyboard_director.metrics import DirectorMetrics

if TYPE_CHECKING:
    from storyboard_director.config.types import FrozenConfig

log = logging.getLogger(__name__)

DEFAULT_FALLBACK_REASON = "structured extraction failed"


class StoryboardPipeline:
    """Compose the extraction components around shared metrics.

    Components not passed in are built with defaults; the fallback processor
    is given the pipeline's metrics so request and fallback counters live in
    one place.
    """

    def __init__(
        self,
        extractor: JSONExtractor | None = None,
        validator: StoryboardValidator | None = None,
        sanitizer: ContentSanitizer | None = None,
        fallback: FallbackProcessor | None = None,
        *,
        metrics: DirectorMetrics | None = None,
        recorder: AgentLogRecorder | None = None,
    ) -> None:
        self.metrics = metrics if metrics is not None else DirectorMetrics()
        self.extractor = extractor or JSONExtractor()
        self.validator = validator or StoryboardValidator()
        self.sanitizer = sanitizer or ContentSanitizer()
        self.fallback = fallback or FallbackProcessor(self.metrics)
        self.recorder = recorder

    @classmethod
    def from_config(
        cls,
        config: FrozenConfig,
        *,
        metrics: DirectorMetrics | None = None,
        recorder: AgentLogRecorder | None = None,
    ) -> StoryboardPipeline:
        """Build a pipeline whose extractor, validator and fallback follow ``config``."""
        metrics = metrics if metrics is not None else DirectorMetrics()
        return cls(
            extractor=JSONExtractor(max_text_size=config.max_text_size),
            validator=StoryboardValidator(
                scene_interval_seconds=config.scene_interval_seconds
            ),
            fallback=FallbackProcessor(
                metrics,
                min_overlap=config.fallback_min_overlap,
                max_prompts=config.fallback_max_prompts,
                scene_interval_seconds=config.scene_interval_seconds,
            ),
            metrics=metrics,
            recorder=recorder,
        )

    async def process(
        self,
        raw_text: Any,
        *,
        fallback_reason: str = DEFAULT_FALLBACK_REASON,
        allow_fallback: bool = True,
    ) -> Result[StoryboardDocument, ExtractionError]:
        """Turn raw text into a sanitized storyboard.

        Never raises for malformed input; all failure comes back as
        ``Failure(ExtractionError)`` carrying the ParseError when extraction
        itself failed.
        """
        start = time.perf_counter()
        if raw_text is None:
            raw_text = ""
        text = raw_text if isinstance(raw_text, str) else str(raw_text)
        parse_error: ParseError | None = None
        problem: str

        extracted = await self.extractor.extract(text)
        if isinstance(extracted, Success):
            document = extracted.value
            if self.recorder:
                self.recorder.log_extraction_success(document)
            storyboard, problem = self._validate(document.data)
            if storyboard is not None:
                self._record(start, success=True, method=document.method)
                return Success(storyboard)
        else:
            parse_error = extracted.error
            problem = parse_error.message
            if self.recorder:
                self.recorder.log_extraction_error(text, parse_error)

        if allow_fallback:
            basic = self.fallback.process_with_fallback(text, fallback_reason)
            if self.recorder:
                self.recorder.log_fallback_usage(fallback_reason, basic)
            if basic is not None:
                sanitized = self.sanitizer.sanitize_storyboard(basic)
                if sanitized is not None:
                    self._record(start, success=True, method=ExtractionMethod.FALLBACK_TEXT)
                    return Success(sanitized)
                problem = f"{problem}; fallback output was empty after sanitization"
            else:
                problem = f"{problem}; fallback found no visual description"

        self._record(start, success=False)
        log.info("No storyboard produced: %s", problem)
        return Failure(ExtractionError(problem, parse_error))

    async def extract_storyboard(self, raw_text: Any, **kwargs: Any) -> StoryboardDocument | None:
        """``process`` without the Result wrapper."""
        result = await self.process(raw_text, **kwargs)
        return result.value if isinstance(result, Success) else None

    def _validate(self, data: Any) -> tuple[StoryboardDocument | None, str]:
        validation = self.validator.validate_storyboard(data)
        if validation.is_valid:
            storyboard = self.validator.to_document(data)
        else:
            log.debug("Validation failed: %s", "; ".join(validation.errors))
            repaired = self.validator.attempt_reconstruction(data, validation)
            storyboard = repaired.fixed_data
            if storyboard is None:
                return None, "validation failed: " + "; ".join(validation.errors)

        sanitized = self.sanitizer.sanitize_storyboard(storyboard)
        if sanitized is None:
            return None, "every prompt was removed by sanitization"
        return sanitized, ""

    def _record(
        self, start: float, *, success: bool, method: ExtractionMethod | None = None
    ) -> None:
        self.metrics.record_request(
            success=success,
            processing_time_ms=(time.perf_counter() - start) * 1000,
            method=method,
        )
