"""Parsing strategies tried, in order, by the JSON extractor.

A strategy takes raw text and returns ``Success((data, confidence))`` or
``Failure(reason)``. Strategies never raise for malformed input.
"""

from __future__ import annotations

from collections.abc import Callable
import dataclasses
import json
import re
from typing import Any

from storyboard_director.core.types import (
    ExtractionMethod,
    Failure,
    Result,
    Success,
)
from storyboard_director.extraction.corrections import FormatCorrector
from storyboard_director.extraction.scanner import (
    enclosing_spans,
    first_opener,
    iter_balanced_spans,
)

FENCE_CONFIDENCE = 0.95
REGEX_CONFIDENCE = 0.8
REGEX_CORRECTED_CONFIDENCE = 0.75
BRACKET_CONFIDENCE = 0.7
BRACKET_CORRECTED_CONFIDENCE = 0.65

MAX_FENCED_BLOCKS = 8
MAX_ANCHORS = 16
MAX_ENCLOSING_CANDIDATES = 64
MAX_BRACKET_SPANS = 64

STORYBOARD_KEYS = ("prompts", "sections")

_FENCE = re.compile(r"```([\s\S]*?)```")
_LANG_LINE = re.compile(r"^[ \t]*[A-Za-z][\w+.-]*[ \t]*\r?\n")
_LANG_PREFIX = re.compile(r"^\s*[A-Za-z][\w+.-]*\s+")
_ANCHOR = re.compile(r"[\"']?\b(prompts|sections)\b[\"']?\s*:\s*\[")

type StrategyOutcome = Result[tuple[Any, float], str]


@dataclasses.dataclass(frozen=True, slots=True)
class ExtractionStrategy:
    """A named parsing strategy."""

    method: ExtractionMethod
    run: Callable[[str, FormatCorrector], StrategyOutcome]


def is_storyboard_shaped(data: Any) -> bool:
    """True for objects carrying a non-empty prompts/sections list."""
    if not isinstance(data, dict):
        return False
    for key in STORYBOARD_KEYS:
        value = data.get(key)
        if isinstance(value, list) and value:
            return True
    nested = data.get("storyboard")
    return isinstance(nested, dict) and is_storyboard_shaped(nested)


def _describe(exc: json.JSONDecodeError) -> str:
    return f"{exc.msg} (line {exc.lineno}, column {exc.colno})"


def _parse_strict(text: str) -> Result[Any, str]:
    try:
        return Success(json.loads(text))
    except json.JSONDecodeError as e:
        return Failure(_describe(e))


def _parse_corrected(
    text: str, corrector: FormatCorrector
) -> Result[tuple[Any, float], str]:
    correction = corrector.correct(text)
    if not correction.was_modified:
        return Failure("no applicable format corrections")
    parsed = _parse_strict(correction.corrected)
    if isinstance(parsed, Failure):
        applied = ", ".join(correction.applied_corrections)
        return Failure(f"still invalid after corrections [{applied}]: {parsed.error}")
    return Success((parsed.value, correction.confidence))


# --- Fence block ---


def _fence_candidates(inner: str) -> list[str]:
    candidates = []
    if _LANG_LINE.match(inner):
        candidates.append(_LANG_LINE.sub("", inner, count=1))
    candidates.append(inner)
    stripped = _LANG_PREFIX.sub("", inner, count=1)
    if stripped != inner:
        candidates.append(stripped)
    return [c.strip() for c in candidates if c.strip()]


def extract_fence_block(text: str, corrector: FormatCorrector) -> StrategyOutcome:  # noqa: ARG001
    """Parse the interior of fenced code blocks strictly.

    When several blocks parse, a storyboard-shaped one wins over earlier
    unrelated blocks.
    """
    if not text.strip():
        return Failure("Response is empty")

    blocks = list(_FENCE.finditer(text))[:MAX_FENCED_BLOCKS]
    if not blocks:
        if "```" in text:
            return Failure("Unclosed code fence (response may be truncated)")
        return Failure("No fenced code block found")

    parsed_blocks: list[Any] = []
    first_error: str | None = None
    for block in blocks:
        for candidate in _fence_candidates(block.group(1)):
            parsed = _parse_strict(candidate)
            if isinstance(parsed, Success):
                parsed_blocks.append(parsed.value)
                break
            if first_error is None:
                first_error = parsed.error

    if not parsed_blocks:
        return Failure(f"Fenced block is not valid JSON: {first_error or 'empty'}")
    for data in parsed_blocks:
        if is_storyboard_shaped(data):
            return Success((data, FENCE_CONFIDENCE))
    return Success((parsed_blocks[0], FENCE_CONFIDENCE))


# --- Regex pattern ---


def extract_regex_pattern(text: str, corrector: FormatCorrector) -> StrategyOutcome:
    """Find the object enclosing a ``"prompts": [`` style anchor and parse it."""
    if not text.strip():
        return Failure("Response is empty")

    anchors = list(_ANCHOR.finditer(text))[:MAX_ANCHORS]
    if not anchors:
        return Failure("No 'prompts' or 'sections' array key found")
    # 'prompts' anchors first; an analysis may carry its own 'sections'.
    anchors.sort(key=lambda m: m.group(1) != "prompts")

    reasons: list[str] = []
    for anchor in anchors:
        spans = enclosing_spans(text, anchor.start(), limit=MAX_ENCLOSING_CANDIDATES)
        if not spans:
            reasons.append(
                f"'{anchor.group(1)}' array at position {anchor.start()} has no closed "
                "enclosing object (response may be truncated)"
            )
            continue
        start, end = spans[0]
        span = text[start:end]
        parsed = _parse_strict(span)
        if isinstance(parsed, Success):
            return Success((parsed.value, REGEX_CONFIDENCE))
        corrected = _parse_corrected(span, corrector)
        if isinstance(corrected, Success):
            data, confidence = corrected.value
            return Success((data, min(REGEX_CORRECTED_CONFIDENCE, confidence)))
        reasons.append(
            f"object around '{anchor.group(1)}' failed to parse: {parsed.error}; "
            f"{corrected.error}"
        )
    return Failure("; ".join(reasons))


# --- Bracket matching ---


def extract_bracket_match(text: str, corrector: FormatCorrector) -> StrategyOutcome:
    """Scan for the first balanced top-level object/array that parses."""
    if not text.strip():
        return Failure("Response is empty")

    spans = list(iter_balanced_spans(text, limit=MAX_BRACKET_SPANS))
    if not spans:
        start = first_opener(text)
        if start is None:
            return Failure("No JSON-like structure found (no '{' or '[')")
        return Failure(
            f"Unbalanced brackets: '{text[start]}' at position {start} is never "
            "closed (response may be truncated)"
        )

    first_error: str | None = None
    for start, end in spans:
        span = text[start:end]
        parsed = _parse_strict(span)
        if isinstance(parsed, Success):
            return Success((parsed.value, BRACKET_CONFIDENCE))
        corrected = _parse_corrected(span, corrector)
        if isinstance(corrected, Success):
            data, confidence = corrected.value
            return Success((data, min(BRACKET_CORRECTED_CONFIDENCE, confidence)))
        if first_error is None:
            first_error = f"{parsed.error}; {corrected.error}"

    return Failure(
        f"Found {len(spans)} balanced span(s) but none parsed as JSON: {first_error}"
    )


DEFAULT_STRATEGIES: tuple[ExtractionStrategy, ...] = (
    ExtractionStrategy(ExtractionMethod.FENCE_BLOCK, extract_fence_block),
    ExtractionStrategy(ExtractionMethod.REGEX_PATTERN, extract_regex_pattern),
    ExtractionStrategy(ExtractionMethod.BRACKET_MATCH, extract_bracket_match),
)
