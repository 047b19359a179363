"""Storyboard shape validation and low-risk reconstruction."""

from __future__ import annotations

from collections.abc import Mapping
import copy
import logging
from typing import Any, get_args

from pydantic import ValidationError

from storyboard_director.core.timecodes import format_timestamp, parse_timestamp
from storyboard_director.core.types import (
    FieldError,
    ReconstructionResult,
    StoryboardDocument,
    StoryboardPrompt,
    ValidationResult,
)
from storyboard_director.exceptions import InvariantViolationError
from storyboard_director.extraction.schemas import PromptSource, StoryboardModel

log = logging.getLogger(__name__)

PROMPT_SOURCES = frozenset(get_args(PromptSource))
DEFAULT_MOOD = "neutral"
TARGET_WORD_RANGE = (60, 120)

_WRAPPER_KEYS = ("storyboard", "result", "data", "output", "response")
_LIST_ALIASES = ("sections", "scenes", "shots", "frames", "images")
_TEXT_ALIASES = ("prompt", "description", "imagePrompt", "image_prompt", "visual")
_MAX_UNWRAP_DEPTH = 3


class StoryboardValidator:
    """Check extracted data against the storyboard shape.

    Attributes:
        min_text_length: Minimum characters for a prompt's text.
        min_text_words: Minimum words; rejects degenerate one-word entries.
        scene_interval_seconds: Spacing used when a prompt has no usable
            timestamp and one has to be sequenced.
    """

    def __init__(
        self,
        *,
        min_text_length: int = 10,
        min_text_words: int = 2,
        scene_interval_seconds: int = 15,
    ) -> None:
        self.min_text_length = min_text_length
        self.min_text_words = min_text_words
        self.scene_interval_seconds = scene_interval_seconds

    def validate_storyboard(self, doc: Any) -> ValidationResult:
        """Validate ``doc``; every violation names the offending field."""
        return self._parse(doc)[1]

    def _parse(self, doc: Any) -> tuple[StoryboardModel | None, ValidationResult]:
        try:
            model = StoryboardModel.model_validate(
                doc,
                context={
                    "min_text_length": self.min_text_length,
                    "min_text_words": self.min_text_words,
                },
            )
        except ValidationError as e:
            return None, _result(self._field_errors(e, doc), [])

        warnings: list[str] = []
        low, high = TARGET_WORD_RANGE
        for index, prompt in enumerate(model.prompts):
            path = f"prompts[{index}]"
            words = len(prompt.text.split())
            if not low <= words <= high:
                warnings.append(f"{path}.text has {words} words (target {low}-{high})")
            if prompt.mood is None:
                warnings.append(f"{path}.mood is missing; '{DEFAULT_MOOD}' will be used")
            if prompt.timestamp is None:
                warnings.append(f"{path}.timestamp is missing; it will be sequenced")
            elif parse_timestamp(prompt.timestamp) is None:
                warnings.append(
                    f"{path}.timestamp {prompt.timestamp!r} is unreadable; it will be sequenced"
                )
        return model, _result([], warnings)

    def attempt_reconstruction(
        self, doc: Any, validation: ValidationResult
    ) -> ReconstructionResult:
        """Try structural repairs that never invent prompt text.

        Repairs: unwrap a nested payload (``storyboard``, ``data`` ...), wrap a
        bare list, rename aliased list/text keys, coerce a single prompt object
        into a list, and drop entries or optional fields that cannot be kept.
        Returns ``fixed_data=None`` when the result is still invalid.
        """
        if validation.is_valid:
            return ReconstructionResult(self.to_document(doc))

        repairs: list[str] = []
        data = copy.deepcopy(doc)

        for _ in range(_MAX_UNWRAP_DEPTH):
            if isinstance(data, list):
                data = {"prompts": data}
                repairs.append("wrapped_prompt_list")
                break
            if not isinstance(data, dict) or "prompts" in data:
                break
            key = next(
                (k for k in _WRAPPER_KEYS if isinstance(data.get(k), dict | list)),
                None,
            )
            if key is None:
                break
            data = data[key]
            repairs.append(f"unwrapped_{key}")

        if not isinstance(data, dict):
            log.debug("Reconstruction gave up: payload is %s", _type_name(data))
            return ReconstructionResult(None, tuple(repairs))

        if "prompts" not in data:
            alias = next(
                (k for k in _LIST_ALIASES if isinstance(data.get(k), list | dict)), None
            )
            if alias is not None:
                data["prompts"] = data.pop(alias)
                repairs.append(f"renamed_{alias}")

        if isinstance(data.get("prompts"), dict):
            data["prompts"] = [data["prompts"]]
            repairs.append("coerced_single_prompt")

        prompts = data.get("prompts")
        if isinstance(prompts, list):
            repaired = [self._repair_prompt(p, repairs) for p in prompts]
            kept = [p for p in repaired if p is not None]
            if kept and len(kept) < len(repaired):
                repairs.append("dropped_invalid_prompts")
            data["prompts"] = kept or repaired

        self._drop_bad_optionals(data, repairs)

        result = self.validate_storyboard(data)
        if not result.is_valid:
            log.debug(
                "Reconstruction failed after %s: %s",
                repairs or "no repairs",
                "; ".join(result.errors),
            )
            return ReconstructionResult(None, tuple(repairs))

        log.info("Reconstructed storyboard with repairs: %s", ", ".join(repairs))
        return ReconstructionResult(self.to_document(data), tuple(repairs))

    def to_document(self, data: Any) -> StoryboardDocument:
        """Convert validated data into a StoryboardDocument.

        Missing moods default to ``neutral``; unreadable timestamps are
        sequenced from the previous prompt.
        """
        model, validation = self._parse(data)
        if model is None:
            raise InvariantViolationError(
                "; ".join(validation.errors), stage_name="validation"
            )

        prompts: list[StoryboardPrompt] = []
        previous: float | None = None
        for raw in model.prompts:
            seconds = parse_timestamp(raw.timestamp)
            if seconds is None:
                seconds = 0.0 if previous is None else previous + self.scene_interval_seconds
            previous = seconds
            mood = raw.mood.strip() if raw.mood else ""
            prompts.append(
                StoryboardPrompt(
                    text=" ".join(raw.text.split()),
                    mood=mood or DEFAULT_MOOD,
                    timestamp=format_timestamp(seconds),
                    source=raw.source,
                )
            )
        return StoryboardDocument(tuple(prompts))

    # --- errors ---

    def _field_errors(self, error: ValidationError, doc: Any) -> list[FieldError]:
        """One FieldError per offending field, in document order."""
        found: dict[str, FieldError] = {}
        for detail in error.errors(include_url=False):
            path, leaf = _field_path(detail["loc"])
            if path in found:
                continue
            kind = detail["type"]
            found[path] = FieldError(
                path,
                _message(leaf, kind, detail),
                self._suggestion(leaf, kind, doc),
            )
        return list(found.values())

    def _suggestion(self, leaf: str, kind: str, doc: Any) -> str:
        if leaf == "prompts" and kind == "missing" and isinstance(doc, dict):
            nested = [k for k in _WRAPPER_KEYS if isinstance(doc.get(k), dict | list)]
            if nested:
                return f"Found nested '{nested[0]}'; the prompts may live inside it"
        if leaf == "text" and kind == "value_error":
            return (
                f"Use at least {self.min_text_words} words and "
                f"{self.min_text_length} characters"
            )
        return _SUGGESTIONS.get((leaf, kind)) or _SUGGESTIONS.get(
            (leaf, None), "Check the field against the storyboard shape"
        )

    # --- repairs ---

    def _repair_prompt(self, prompt: Any, repairs: list[str]) -> dict[str, Any] | None:
        if isinstance(prompt, str):
            prompt = {"text": prompt}
            _note(repairs, "wrapped_string_prompts")
        if not isinstance(prompt, dict):
            return None
        if not isinstance(prompt.get("text"), str):
            alias = next(
                (k for k in _TEXT_ALIASES if isinstance(prompt.get(k), str)), None
            )
            if alias is not None:
                prompt = {**prompt, "text": prompt[alias]}
                _note(repairs, "renamed_prompt_text")
        text = prompt.get("text")
        if (
            not isinstance(text, str)
            or len(text.strip()) < self.min_text_length
            or len(text.split()) < self.min_text_words
        ):
            return None
        if "mood" in prompt and prompt["mood"] is not None and not isinstance(prompt["mood"], str):
            prompt = {k: v for k, v in prompt.items() if k != "mood"}
            _note(repairs, "dropped_invalid_optional_fields")
        stamp = prompt.get("timestamp")
        if stamp is not None and (
            isinstance(stamp, bool) or not isinstance(stamp, str | int | float)
        ):
            prompt = {k: v for k, v in prompt.items() if k != "timestamp"}
            _note(repairs, "dropped_invalid_optional_fields")
        return prompt

    def _drop_bad_optionals(self, data: dict[str, Any], repairs: list[str]) -> None:
        targets: list[dict[str, Any]] = [data]
        if isinstance(data.get("metadata"), dict):
            targets.append(data["metadata"])
        elif data.get("metadata") is not None:
            del data["metadata"]
            _note(repairs, "dropped_invalid_optional_fields")
        if isinstance(data.get("prompts"), list):
            targets.extend(p for p in data["prompts"] if isinstance(p, dict))
        for obj in targets:
            if "confidence" in obj and not _valid_confidence(obj["confidence"]):
                del obj["confidence"]
                _note(repairs, "dropped_invalid_optional_fields")
            if "source" in obj and obj["source"] not in PROMPT_SOURCES:
                del obj["source"]
                _note(repairs, "dropped_invalid_optional_fields")


def _valid_confidence(value: Any) -> bool:
    return (
        isinstance(value, int | float)
        and not isinstance(value, bool)
        and 0.0 <= value <= 1.0
    )


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    if isinstance(value, str):
        return "string"
    if isinstance(value, int | float):
        return "number"
    return type(value).__name__


def _note(repairs: list[str], name: str) -> None:
    if name not in repairs:
        repairs.append(name)


def _result(field_errors: list[FieldError], warnings: list[str]) -> ValidationResult:
    suggestions = list(dict.fromkeys(e.suggestion for e in field_errors if e.suggestion))
    return ValidationResult(
        is_valid=not field_errors,
        errors=tuple(f"{e.field}: {e.message}" for e in field_errors),
        field_errors=tuple(field_errors),
        warnings=tuple(warnings),
        suggestions=tuple(suggestions),
    )


_FIELD_NAMES = frozenset(
    {"prompts", "text", "mood", "timestamp", "confidence", "source", "metadata"}
)

_SUGGESTIONS: dict[tuple[str, str | None], str] = {
    ("root", None): 'Wrap the prompt list as {"prompts": [...]}',
    ("prompts", "missing"): 'Add a "prompts" array of {text, mood, timestamp} objects',
    ("prompts", "too_short"): "Generate at least one scene prompt",
    ("prompts", None): "Use a JSON array, even for a single prompt",
    ("prompt", None): 'Use {"text": ..., "mood": ..., "timestamp": "MM:SS"}',
    ("text", "missing"): "Describe the scene in a 'text' field",
    ("text", None): "Provide the scene description as a string",
    ("mood", None): "Use a short mood word such as 'melancholic'",
    ("timestamp", None): "Use zero-padded MM:SS",
    ("confidence", None): "Omit confidence or use a value between 0 and 1",
    ("source", None): "Omit source or use a known value",
    ("metadata", None): "Use an object for metadata or omit it",
}


def _field_path(loc: tuple[int | str, ...]) -> tuple[str, str]:
    """Map a pydantic error location to ``(path, leaf)``.

    ``("prompts", 0, "text")`` becomes ``("prompts[0].text", "text")``. Union
    member tags appended after the field name are dropped.
    """
    path = ""
    leaf = "root"
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
            leaf = "prompt"
        elif part in _FIELD_NAMES:
            path = f"{path}.{part}" if path else part
            leaf = part
        else:
            break
    return path or "root", leaf


def _message(leaf: str, kind: str, detail: Mapping[str, Any]) -> str:
    value = detail.get("input")
    if kind == "missing":
        return f"Missing required '{leaf}'" + (" array" if leaf == "prompts" else "")
    if kind == "model_type":
        noun = "Prompt" if leaf == "prompt" else leaf.capitalize()
        if leaf == "root":
            noun = "Storyboard"
        return f"{noun} must be a JSON object, got {_type_name(value)}"
    if kind == "list_type":
        return f"'{leaf}' must be an array, got {_type_name(value)}"
    if kind == "too_short" and leaf == "prompts":
        return "'prompts' array is empty"
    if kind == "value_error":
        return str(detail.get("ctx", {}).get("error", detail["msg"]))
    if kind == "literal_error":
        return f"'{leaf}' must be one of {sorted(PROMPT_SOURCES)}, got {value!r}"
    return f"'{leaf}': {detail['msg']} (got {value!r})"
