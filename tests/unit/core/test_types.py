"""Invariants enforced by the core value types."""

import dataclasses

import pytest

from storyboard_director.core.types import (
    BasicStoryboard,
    ExtractedDocument,
    ExtractionMethod,
    FallbackMetadata,
    FieldError,
    ImagePrompt,
    Message,
    ParseError,
    StoryboardDocument,
    StoryboardPrompt,
    ToolCall,
    ValidationResult,
)

pytestmark = pytest.mark.unit


def _prompt(**overrides):
    values = {"text": "A quiet harbor at dawn", "mood": "serene", "timestamp": "00:15"}
    values.update(overrides)
    return StoryboardPrompt(**values)


class TestStoryboardTypes:
    def test_prompt_requires_text_and_wire_timestamp(self):
        with pytest.raises(ValueError, match="text"):
            _prompt(text="   ")
        with pytest.raises(ValueError, match="timestamp"):
            _prompt(timestamp="1:5")

    def test_prompt_wire_shape(self):
        prompt = _prompt()
        assert prompt.timestamp_seconds == 15.0
        assert prompt.to_wire() == {
            "text": "A quiet harbor at dawn",
            "mood": "serene",
            "timestamp": "00:15",
        }
        assert _prompt(source="model").to_wire()["source"] == "model"

    def test_document_must_not_be_empty(self):
        with pytest.raises(ValueError, match="prompts"):
            StoryboardDocument(())

    def test_document_is_immutable(self):
        doc = StoryboardDocument((_prompt(),))
        with pytest.raises(dataclasses.FrozenInstanceError):
            doc.prompts = ()  # type: ignore[misc]

    def test_document_to_json(self):
        doc = StoryboardDocument((_prompt(),))
        assert doc.to_json() == (
            '{"prompts": [{"text": "A quiet harbor at dawn", "mood": "serene", '
            '"timestamp": "00:15"}]}'
        )

    def test_basic_storyboard_requires_fallback_source(self):
        metadata = FallbackMetadata(
            confidence=0.5, preservation_ratio=0.8, low_confidence=False, reason="r"
        )
        with pytest.raises(ValueError, match="fallback"):
            BasicStoryboard((_prompt(source="model"),), metadata)

        basic = BasicStoryboard((_prompt(source="fallback"),), metadata)
        wire = basic.to_wire()
        assert wire["metadata"]["source"] == "fallback"
        assert wire["metadata"]["extractionMethod"] == "text_based"
        assert wire["metadata"]["lowConfidence"] is False
        assert isinstance(basic, StoryboardDocument)

    def test_image_prompt_from_prompt(self):
        image = ImagePrompt.from_prompt(_prompt(timestamp="01:05"), 0)
        assert image.id == "prompt-001"
        assert image.timestamp == "01:05"
        assert image.timestamp_seconds == 65.0


class TestExtractionTypes:
    def test_extracted_document_rejects_fallback_method(self):
        with pytest.raises(ValueError, match="method"):
            ExtractedDocument({}, ExtractionMethod.FALLBACK_TEXT, 0.5, 1.0)

    def test_extracted_document_bounds_confidence(self):
        with pytest.raises(ValueError, match="confidence"):
            ExtractedDocument({}, ExtractionMethod.FENCE_BLOCK, 1.5, 1.0)
        with pytest.raises(ValueError, match="retry_count"):
            ExtractedDocument({}, ExtractionMethod.FENCE_BLOCK, 0.9, 1.0, retry_count=-1)

    def test_parse_error_requires_methods_and_suggestions(self):
        common = {
            "type": "malformed_json",
            "message": "bad",
            "original_content": "{",
            "content_length": 1,
            "failure_reasons": ("x",),
        }
        with pytest.raises(ValueError, match="attempted_methods"):
            ParseError(attempted_methods=(), suggestions=("fix it",), **common)
        with pytest.raises(ValueError, match="suggestions"):
            ParseError(
                attempted_methods=(ExtractionMethod.FENCE_BLOCK,), suggestions=(), **common
            )


class TestValidationResult:
    def test_invalid_result_must_explain_itself(self):
        with pytest.raises(ValueError, match="explain"):
            ValidationResult(is_valid=False)

    def test_errors_for_matches_nested_paths(self):
        result = ValidationResult(
            is_valid=False,
            field_errors=(
                FieldError("prompts[0].text", "missing"),
                FieldError("prompts_extra", "unrelated"),
                FieldError("root", "bad"),
            ),
        )
        assert [e.field for e in result.errors_for("prompts")] == ["prompts[0].text"]
        assert [e.field for e in result.errors_for("root")] == ["root"]


class TestConversationTypes:
    def test_tool_call_args_are_read_only(self):
        call = ToolCall("critique_storyboard", {"storyboard_json": "{}"})
        with pytest.raises(TypeError):
            call.args["storyboard_json"] = "[]"  # type: ignore[index]

    def test_tool_call_requires_name(self):
        with pytest.raises(ValueError, match="name"):
            ToolCall("")

    def test_message_roles(self):
        with pytest.raises(ValueError, match="role"):
            Message(role="robot", content="hi")  # type: ignore[arg-type]
        with pytest.raises(ValueError, match="tool_name"):
            Message(role="tool", content="result")
        assert Message(role="tool", content="ok", tool_name="analyze_content").tool_name
