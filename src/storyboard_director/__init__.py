"""Storyboard director: robust extraction of storyboards from model output."""

import importlib.metadata
import logging

from storyboard_director.agent import (
    AgentDirector,
    DirectorRun,
    DirectorState,
    DirectorToolbox,
    GoogleGenAIAdapter,
    GoogleGenAICollaborator,
    ModelAdapter,
    ScriptedModelAdapter,
    StoryboardCollaborator,
    ToolInvoker,
    build_director,
)
from storyboard_director.config import FrozenConfig, resolve_config
from storyboard_director.core.types import (
    BasicStoryboard,
    ExtractedDocument,
    ExtractionMethod,
    Failure,
    FallbackNotification,
    ImagePrompt,
    Message,
    ModelResponse,
    ParseError,
    Result,
    StoryboardDocument,
    StoryboardPrompt,
    Success,
    ToolCall,
    ValidationResult,
)
from storyboard_director.exceptions import (
    CollaboratorError,
    ConfigurationError,
    DirectorError,
    ExtractionError,
    FallbackError,
    InvariantViolationError,
    ModelInvocationError,
    ToolInvocationError,
)
from storyboard_director.extraction import (
    ContentSanitizer,
    FallbackProcessor,
    FormatCorrector,
    JSONExtractor,
    StoryboardPipeline,
    StoryboardValidator,
)
from storyboard_director.log_recorder import AgentLogRecorder
from storyboard_director.metrics import DirectorMetrics
from storyboard_director.telemetry import TelemetryContext, TelemetryReporter

try:
    __version__ = importlib.metadata.version("storyboard-director")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Library logging stays silent unless the host application configures it.
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [  # noqa: RUF022
    # Director
    "AgentDirector",
    "DirectorRun",
    "DirectorState",
    "DirectorToolbox",
    "StoryboardCollaborator",
    "ModelAdapter",
    "ToolInvoker",
    "ScriptedModelAdapter",
    "GoogleGenAIAdapter",
    "GoogleGenAICollaborator",
    "build_director",
    # Extraction
    "FormatCorrector",
    "JSONExtractor",
    "StoryboardValidator",
    "ContentSanitizer",
    "FallbackProcessor",
    "StoryboardPipeline",
    # Shared services
    "DirectorMetrics",
    "AgentLogRecorder",
    "TelemetryContext",
    "TelemetryReporter",
    # Configuration
    "FrozenConfig",
    "resolve_config",
    # Core types
    "Result",
    "Success",
    "Failure",
    "ExtractionMethod",
    "ExtractedDocument",
    "ParseError",
    "ValidationResult",
    "StoryboardPrompt",
    "StoryboardDocument",
    "BasicStoryboard",
    "FallbackNotification",
    "ImagePrompt",
    "Message",
    "ModelResponse",
    "ToolCall",
    # Exceptions
    "DirectorError",
    "ConfigurationError",
    "ExtractionError",
    "FallbackError",
    "ToolInvocationError",
    "ModelInvocationError",
    "CollaboratorError",
    "InvariantViolationError",
]
