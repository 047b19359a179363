"""Extraction, validation, sanitization and fallback for model output."""

from storyboard_director.extraction.corrections import (
    CorrectionSpec,
    FormatCorrector,
)
from storyboard_director.extraction.extractor import JSONExtractor
from storyboard_director.extraction.fallback import FallbackProcessor
from storyboard_director.extraction.pipeline import StoryboardPipeline
from storyboard_director.extraction.sanitizer import ContentSanitizer, SanitizeRule
from storyboard_director.extraction.strategies import ExtractionStrategy
from storyboard_director.extraction.validation import StoryboardValidator

__all__ = [
    "ContentSanitizer",
    "CorrectionSpec",
    "ExtractionStrategy",
    "FallbackProcessor",
    "FormatCorrector",
    "JSONExtractor",
    "SanitizeRule",
    "StoryboardPipeline",
    "StoryboardValidator",
]
