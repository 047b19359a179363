"""Textual repairs applied to model output before JSON parsing.

Each correction is a named, pure ``str -> str`` function. The corrector runs
them in a fixed order: fence removal has to happen before surrounding text
is stripped, and comment removal before bare keys are quoted.
"""

from __future__ import annotations

from collections.abc import Callable
import dataclasses
import json
import logging
import re

from storyboard_director.core.types import CorrectionResult
from storyboard_director.extraction.scanner import (
    find_balanced_end,
    first_opener,
    iter_balanced_spans,
    map_inside_strings,
    map_outside_strings,
)

log = logging.getLogger(__name__)

CORRECTION_PENALTY = 0.1
CONFIDENCE_FLOOR = 0.5
NON_JSON_CONFIDENCE_CAP = 0.3

_LANGUAGE_FENCE = re.compile(r"```[ \t]*([A-Za-z][\w+.-]*)[ \t]*\r?\n([\s\S]*?)```")
_GENERIC_FENCE = re.compile(r"```[ \t]*\r?\n?([\s\S]*?)```")
_DANGLING_FENCE = re.compile(r"^[ \t]*```[\w+.-]*[ \t]*$", re.MULTILINE)
_TRAILING_COMMA = re.compile(r"(?:,\s*)+([\]}])")
_SINGLE_QUOTED_KEY = re.compile(r"'([^'\"\\\n]+)'(\s*:)")
_BARE_KEY = re.compile(r"([{,]\s*)([A-Za-z_$][\w$-]*)(\s*:)")
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


@dataclasses.dataclass(frozen=True, slots=True)
class CorrectionSpec:
    """A single named textual repair."""

    name: str
    apply: Callable[[str], str]
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name or not isinstance(self.name, str):
            raise ValueError("Correction name must be a non-empty string")
        if not callable(self.apply):
            raise TypeError("apply must be callable")


# --- Individual corrections ---


def strip_language_fences(text: str) -> str:
    """Replace ```json (or any tagged) fences with their inner content."""
    return _LANGUAGE_FENCE.sub(lambda m: m.group(2), text)


def strip_generic_fences(text: str) -> str:
    """Replace untagged fences with their content and drop dangling markers."""
    text = _GENERIC_FENCE.sub(lambda m: m.group(1), text)
    return _DANGLING_FENCE.sub("", text)


def remove_trailing_commas(text: str) -> str:
    """Drop commas that directly precede ``]`` or ``}``."""
    return map_outside_strings(text, lambda chunk: _TRAILING_COMMA.sub(r"\1", chunk))


def quote_single_quoted_keys(text: str) -> str:
    """``{'key': 1}`` -> ``{"key": 1}``."""
    return map_outside_strings(
        text, lambda chunk: _SINGLE_QUOTED_KEY.sub(r'"\1"\2', chunk)
    )


def strip_comments(text: str) -> str:
    """Remove ``//`` line comments and ``/* */`` blocks outside string literals."""
    out: list[str] = []
    i = 0
    n = len(text)
    in_string = False
    while i < n:
        ch = text[i]
        if in_string:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                in_string = False
            i += 1
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
            i += 1
        elif text.startswith("//", i):
            newline = text.find("\n", i)
            i = n if newline == -1 else newline
        elif text.startswith("/*", i):
            close = text.find("*/", i + 2)
            i = n if close == -1 else close + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def quote_bare_keys(text: str) -> str:
    """``{key: 1}`` -> ``{"key": 1}``."""
    return map_outside_strings(text, lambda chunk: _BARE_KEY.sub(r'\1"\2"\3', chunk))


def escape_control_characters(text: str) -> str:
    """Escape raw newlines and tabs that appear inside string literals."""

    def _escape(literal: str) -> str:
        for raw, escaped in _CONTROL_ESCAPES.items():
            literal = literal.replace(raw, escaped)
        return literal

    return map_inside_strings(text, _escape)


def strip_surrounding_text(text: str) -> str:
    """Keep only the JSON structure, dropping commentary around it.

    Prefers the first balanced span that parses; otherwise the first balanced
    object; otherwise everything from the first opener up to the last closer.
    """
    start = first_opener(text)
    if start is None:
        return text

    spans = list(iter_balanced_spans(text))
    for span_start, span_end in spans:
        candidate = text[span_start:span_end]
        try:
            json.loads(candidate)
        except json.JSONDecodeError:
            continue
        return candidate
    for span_start, span_end in spans:
        if text[span_start] == "{":
            return text[span_start:span_end]
    if spans:
        return text[spans[0][0] : spans[0][1]]

    end = find_balanced_end(text, start)
    if end is None:
        last = max(text.rfind("}"), text.rfind("]"))
        end = last + 1 if last > start else len(text)
    return text[start:end].strip()


DEFAULT_CORRECTIONS: tuple[CorrectionSpec, ...] = (
    CorrectionSpec(
        "strip_language_fences", strip_language_fences, "Remove ```lang fences"
    ),
    CorrectionSpec("strip_generic_fences", strip_generic_fences, "Remove ``` fences"),
    CorrectionSpec(
        "remove_trailing_commas", remove_trailing_commas, "Delete trailing commas"
    ),
    CorrectionSpec(
        "quote_single_quoted_keys",
        quote_single_quoted_keys,
        "Convert single-quoted keys",
    ),
    CorrectionSpec("strip_comments", strip_comments, "Strip // and /* */ comments"),
    CorrectionSpec("quote_bare_keys", quote_bare_keys, "Quote bare object keys"),
    CorrectionSpec(
        "escape_control_characters",
        escape_control_characters,
        "Escape raw newlines/tabs in strings",
    ),
    CorrectionSpec(
        "strip_surrounding_text",
        strip_surrounding_text,
        "Drop text around the JSON structure",
    ),
)


class FormatCorrector:
    """Runs an ordered list of corrections and scores the outcome."""

    def __init__(self, corrections: tuple[CorrectionSpec, ...] | None = None):
        self.corrections = (
            DEFAULT_CORRECTIONS if corrections is None else tuple(corrections)
        )

    def correct(self, text: str) -> CorrectionResult:
        """Apply every correction in order, recording which ones changed the text.

        Confidence is ``1.0 - 0.1 * applied`` floored at 0.5, and capped at 0.3
        when the result still does not look like JSON.
        """
        if not isinstance(text, str) or not text.strip():
            return CorrectionResult(
                corrected="", was_modified=False, applied_corrections=(), confidence=0.0
            )

        current = text
        applied: list[str] = []
        for spec in self.corrections:
            updated = spec.apply(current)
            if updated != current:
                applied.append(spec.name)
                current = updated

        confidence = max(CONFIDENCE_FLOOR, 1.0 - CORRECTION_PENALTY * len(applied))
        if not current.lstrip().startswith(("{", "[")):
            confidence = min(confidence, NON_JSON_CONFIDENCE_CAP)

        if applied:
            log.debug("Applied format corrections: %s", ", ".join(applied))
        return CorrectionResult(
            corrected=current,
            was_modified=bool(applied),
            applied_corrections=tuple(applied),
            confidence=round(confidence, 4),
        )

    def needs_correction(self, text: str) -> bool:
        """Cheap check for the problems the corrector knows how to fix."""
        if not isinstance(text, str) or not text.strip():
            return False
        if "```" in text:
            return True
        if not text.lstrip().startswith(("{", "[")):
            return True
        if remove_trailing_commas(text) != text:
            return True
        if quote_single_quoted_keys(text) != text:
            return True
        if strip_comments(text) != text:
            return True
        return escape_control_characters(text) != text
