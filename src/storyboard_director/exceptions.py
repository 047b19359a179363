"""Exceptions raised by the storyboard director."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from storyboard_director.core.types import ParseError


class DirectorError(Exception):
    """Base exception for storyboard director errors"""  # noqa: D415


class ConfigurationError(DirectorError):
    """Raised when configuration cannot be resolved or is invalid"""  # noqa: D415


class ExtractionError(DirectorError):
    """Raised (or returned inside a Failure) when no structure can be extracted."""

    def __init__(self, message: str, parse_error: ParseError | None = None):
        self.parse_error = parse_error
        super().__init__(message)


class FallbackError(DirectorError):
    """Raised when heuristic text mining finds no visual description"""  # noqa: D415


class ToolInvocationError(DirectorError):
    """Raised when a tool handler cannot run."""

    def __init__(self, message: str, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}")


class ModelInvocationError(DirectorError):
    """Raised when the model adapter rejects a request."""

    def __init__(self, message: str, iteration: int):
        self.iteration = iteration
        super().__init__(f"Model invocation failed on round {iteration}: {message}")


class InvariantViolationError(DirectorError):
    """Raised when a component produces output that breaks a documented invariant."""

    def __init__(self, message: str, stage_name: str | None = None):
        self.stage_name = stage_name
        prefix = f"[{stage_name}] " if stage_name else ""
        super().__init__(f"{prefix}{message}")


class CollaboratorError(DirectorError):
    """Raised when a model-backed analysis, draft or refinement keeps failing."""

    def __init__(self, message: str, stage: str, attempts: int):
        self.stage = stage
        self.attempts = attempts
        super().__init__(f"{stage} failed after {attempts} attempt(s): {message}")
