"""Core value types shared by extraction, fallback and the director loop.

Everything here is an immutable dataclass. Results that can fail are modeled
as ``Success | Failure`` so callers branch on type instead of probing dicts.
"""

from __future__ import annotations

from collections.abc import Mapping
import dataclasses
from datetime import UTC, datetime
import enum
import json
from types import MappingProxyType
import typing

from storyboard_director.core.timecodes import is_wire_timestamp, parse_timestamp

type JSONValue = (
    dict[str, JSONValue] | list[JSONValue] | str | int | float | bool | None
)


def _now() -> datetime:
    return datetime.now(UTC)


def _require(
    *,
    condition: bool,
    message: str,
    exc: type[Exception] = ValueError,
    field_name: str | None = None,
) -> None:
    """Centralized validation with optional field context for clearer errors."""
    if not condition:
        if field_name:
            raise exc(f"{field_name}: {message}")
        raise exc(message)


def _freeze_mapping(m: Mapping[str, typing.Any] | None) -> Mapping[str, typing.Any]:
    if isinstance(m, MappingProxyType):
        return m
    return MappingProxyType(dict(m or {}))


# --- Result Types ---


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful result."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failure, containing the error."""

    error: TFailure


type Result[TSuccess, TFailure] = Success[TSuccess] | Failure[TFailure]


# --- Extraction ---


class ExtractionMethod(enum.StrEnum):
    """How a document was obtained from raw model text.

    ``FALLBACK_TEXT`` is never produced by the extractor itself; it labels
    documents mined by the fallback processor in metrics.
    """

    FENCE_BLOCK = "fence_block"
    REGEX_PATTERN = "regex_pattern"
    BRACKET_MATCH = "bracket_match"
    FALLBACK_TEXT = "fallback_text"


STRUCTURED_METHODS: tuple[ExtractionMethod, ...] = (
    ExtractionMethod.FENCE_BLOCK,
    ExtractionMethod.REGEX_PATTERN,
    ExtractionMethod.BRACKET_MATCH,
)


@dataclasses.dataclass(frozen=True, slots=True)
class CorrectionResult:
    """Outcome of running the format corrector over a piece of text."""

    corrected: str
    was_modified: bool
    applied_corrections: tuple[str, ...]
    confidence: float

    def __post_init__(self) -> None:
        _require(
            condition=0.0 <= self.confidence <= 1.0,
            message="must be within [0, 1]",
            field_name="confidence",
        )


@dataclasses.dataclass(frozen=True, slots=True)
class ExtractedDocument:
    """A parsed document plus how (and how confidently) it was found."""

    data: typing.Any
    method: ExtractionMethod
    confidence: float
    processing_time_ms: float
    retry_count: int = 0

    def __post_init__(self) -> None:
        _require(
            condition=self.method in STRUCTURED_METHODS,
            message=f"must be one of {[m.value for m in STRUCTURED_METHODS]}",
            field_name="method",
        )
        _require(
            condition=0.0 <= self.confidence <= 1.0,
            message="must be within [0, 1]",
            field_name="confidence",
        )
        _require(
            condition=self.retry_count >= 0,
            message="must be non-negative",
            field_name="retry_count",
        )


@dataclasses.dataclass(frozen=True, slots=True)
class MethodFailure:
    """Why a single extraction strategy did not produce a document."""

    method: ExtractionMethod
    error: str


@dataclasses.dataclass(frozen=True, slots=True)
class ExtractionSuccess:
    """Details of the most recent successful extraction."""

    method: ExtractionMethod
    confidence: float
    retry_count: int
    processing_time_ms: float
    timestamp: datetime = dataclasses.field(default_factory=_now)


@dataclasses.dataclass(frozen=True, slots=True)
class ParseError:
    """Structured diagnosis of a total extraction failure.

    Always carries the complete original content; nothing is truncated here.
    """

    type: str
    message: str
    original_content: str
    content_length: int
    attempted_methods: tuple[ExtractionMethod, ...]
    failure_reasons: tuple[str, ...]
    suggestions: tuple[str, ...]
    timestamp: datetime = dataclasses.field(default_factory=_now)

    def __post_init__(self) -> None:
        _require(
            condition=len(self.attempted_methods) >= 1,
            message="at least one method must have been attempted",
            field_name="attempted_methods",
        )
        _require(
            condition=len(self.suggestions) >= 1,
            message="at least one suggestion is required",
            field_name="suggestions",
        )


# --- Validation ---


@dataclasses.dataclass(frozen=True, slots=True)
class FieldError:
    """A validation problem tied to a specific field path."""

    field: str
    message: str
    suggestion: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of validating an extracted document against the storyboard shape."""

    is_valid: bool
    errors: tuple[str, ...] = ()
    field_errors: tuple[FieldError, ...] = ()
    warnings: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _require(
            condition=self.is_valid or bool(self.errors or self.field_errors),
            message="an invalid result must explain itself",
            field_name="errors",
        )

    def errors_for(self, field: str) -> list[FieldError]:
        """Return field errors whose path equals or starts with ``field``."""
        return [
            e
            for e in self.field_errors
            if e.field == field or e.field.startswith((f"{field}.", f"{field}["))
        ]


# --- Storyboard ---


@dataclasses.dataclass(frozen=True, slots=True)
class StoryboardPrompt:
    """One visual scene in a storyboard."""

    text: str
    mood: str
    timestamp: str
    source: str | None = None

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.text, str) and bool(self.text.strip()),
            message="must be a non-empty string",
            field_name="text",
        )
        _require(
            condition=is_wire_timestamp(self.timestamp),
            message=f"must be zero-padded MM:SS, got {self.timestamp!r}",
            field_name="timestamp",
        )

    @property
    def timestamp_seconds(self) -> float:
        return parse_timestamp(self.timestamp) or 0.0

    def to_wire(self) -> dict[str, str]:
        wire = {"text": self.text, "mood": self.mood, "timestamp": self.timestamp}
        if self.source is not None:
            wire["source"] = self.source
        return wire


@dataclasses.dataclass(frozen=True, slots=True)
class StoryboardDocument:
    """An ordered, non-empty list of prompts; the system's output artifact."""

    prompts: tuple[StoryboardPrompt, ...]

    def __post_init__(self) -> None:
        _require(
            condition=len(self.prompts) > 0,
            message="must contain at least one prompt",
            field_name="prompts",
        )

    def to_wire(self) -> dict[str, typing.Any]:
        return {"prompts": [p.to_wire() for p in self.prompts]}

    def to_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.to_wire(), indent=indent, ensure_ascii=False)


@dataclasses.dataclass(frozen=True, slots=True)
class FallbackMetadata:
    """Provenance of a storyboard mined from plain text."""

    confidence: float
    preservation_ratio: float
    low_confidence: bool
    reason: str
    source: str = "fallback"
    extraction_method: str = "text_based"

    def to_wire(self) -> dict[str, typing.Any]:
        return {
            "source": self.source,
            "extractionMethod": self.extraction_method,
            "confidence": self.confidence,
            "preservationRatio": self.preservation_ratio,
            "lowConfidence": self.low_confidence,
            "reason": self.reason,
        }


@dataclasses.dataclass(frozen=True, slots=True)
class BasicStoryboard(StoryboardDocument):
    """Storyboard produced by the fallback processor."""

    metadata: FallbackMetadata

    def __post_init__(self) -> None:
        super(BasicStoryboard, self).__post_init__()
        _require(
            condition=all(p.source == "fallback" for p in self.prompts),
            message="every fallback prompt must carry source='fallback'",
            field_name="prompts",
        )

    def to_wire(self) -> dict[str, typing.Any]:
        wire = super(BasicStoryboard, self).to_wire()
        wire["metadata"] = self.metadata.to_wire()
        return wire


@dataclasses.dataclass(frozen=True, slots=True)
class FallbackNotification:
    """Emitted to observers each time the fallback produces a storyboard."""

    message: str
    extracted_prompt_count: int
    reduced_functionality: tuple[str, ...]
    timestamp: datetime = dataclasses.field(default_factory=_now)
    type: str = "fallback_used"


@dataclasses.dataclass(frozen=True, slots=True)
class ReconstructionResult:
    """Outcome of a best-effort repair of an almost-valid document."""

    fixed_data: StoryboardDocument | None
    applied_repairs: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True, slots=True)
class ImagePrompt:
    """External representation handed to image/video generation."""

    id: str
    text: str
    mood: str
    timestamp: str
    timestamp_seconds: float

    @classmethod
    def from_prompt(cls, prompt: StoryboardPrompt, index: int) -> ImagePrompt:
        return cls(
            id=f"prompt-{index + 1:03d}",
            text=prompt.text,
            mood=prompt.mood,
            timestamp=prompt.timestamp,
            timestamp_seconds=prompt.timestamp_seconds,
        )


# --- Conversation ---


@dataclasses.dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by the model."""

    name: str
    args: Mapping[str, typing.Any] = dataclasses.field(default_factory=dict)
    call_id: str | None = None

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.name, str) and bool(self.name),
            message="must be a non-empty string",
            field_name="name",
        )
        object.__setattr__(self, "args", _freeze_mapping(self.args))


@dataclasses.dataclass(frozen=True, slots=True)
class ModelResponse:
    """What a model adapter returns for one round."""

    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()


type Role = typing.Literal["system", "user", "assistant", "tool"]


@dataclasses.dataclass(frozen=True, slots=True)
class Message:
    """A single entry in the director conversation history."""

    role: Role
    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    tool_name: str | None = None

    def __post_init__(self) -> None:
        _require(
            condition=self.role in ("system", "user", "assistant", "tool"),
            message=f"unknown role {self.role!r}",
            field_name="role",
        )
        _require(
            condition=self.role != "tool" or bool(self.tool_name),
            message="tool messages must name the tool",
            field_name="tool_name",
        )
