"""Pydantic models for storyboard and analysis payloads.

The same models validate parsed model output and, passed as
``response_schema``, constrain structured generation.
"""

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    Field,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationInfo,
    field_validator,
)

PromptSource = Literal["model", "agent", "fallback", "reconstructed"]
Confidence = Annotated[float, Field(ge=0.0, le=1.0, strict=True)]

MIN_TEXT_LENGTH = 10
MIN_TEXT_WORDS = 2


class StoryboardPromptModel(BaseModel):
    """One scene prompt as the model should emit it."""

    text: StrictStr = Field(description="Detailed visual prompt, 60-120 words")
    mood: StrictStr | None = Field(default=None, description="Emotional tone of the scene")
    timestamp: StrictStr | StrictInt | StrictFloat | None = Field(
        default=None, description="Timestamp in MM:SS format"
    )
    confidence: Confidence | None = None
    source: PromptSource | None = None

    @field_validator("text")
    @classmethod
    def text_has_substance(cls, v: str, info: ValidationInfo) -> str:
        """Reject blank or one-word descriptions.

        Limits come from the validation context so a validator instance can
        tighten or relax them.
        """
        context = info.context or {}
        min_length = context.get("min_text_length", MIN_TEXT_LENGTH)
        min_words = context.get("min_text_words", MIN_TEXT_WORDS)
        if len(v.strip()) < min_length or len(v.split()) < min_words:
            raise ValueError(f"'text' is too short ({len(v.strip())} chars)")
        return v


class StoryboardMetadataModel(BaseModel):
    confidence: Confidence | None = None
    source: PromptSource | None = None


class StoryboardModel(BaseModel):
    """A storyboard document: at least one prompt plus optional metadata."""

    prompts: list[StoryboardPromptModel] = Field(min_length=1)
    confidence: Confidence | None = None
    source: PromptSource | None = None
    metadata: StoryboardMetadataModel | None = None


SectionType = Literal[
    "intro",
    "verse",
    "chorus",
    "bridge",
    "outro",
    "transition",
    "key_point",
    "conclusion",
]


class SectionModel(BaseModel):
    name: str = Field(description="Section name, e.g. Intro, Verse 1, Chorus")
    start_timestamp: str = Field(alias="startTimestamp", description="MM:SS")
    end_timestamp: str = Field(alias="endTimestamp", description="MM:SS")
    type: SectionType
    emotional_intensity: float = Field(alias="emotionalIntensity", ge=1, le=10)


class EmotionalArcModel(BaseModel):
    opening: str
    peak: str
    resolution: str


class ConcreteMotifModel(BaseModel):
    object: str = Field(description="Physical object named in the content")
    timestamp: str = Field(description="First appearance, MM:SS")
    emotional_context: str = Field(alias="emotionalContext")


class ContentAnalysisModel(BaseModel):
    """Structure, emotional arc and visual anchors of the source content."""

    sections: list[SectionModel] = Field(default_factory=list)
    emotional_arc: EmotionalArcModel = Field(alias="emotionalArc")
    themes: list[str] = Field(default_factory=list)
    motifs: list[str] = Field(default_factory=list)
    concrete_motifs: list[ConcreteMotifModel] = Field(
        default_factory=list, alias="concreteMotifs"
    )
