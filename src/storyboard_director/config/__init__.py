"""Configuration for the storyboard director."""

from storyboard_director.config.api import resolve_config
from storyboard_director.config.schema import DirectorSettings
from storyboard_director.config.types import FrozenConfig

__all__ = ["DirectorSettings", "FrozenConfig", "resolve_config"]
