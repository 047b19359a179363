"""Configuration resolution entry point."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from storyboard_director.config.schema import DirectorSettings
from storyboard_director.config.types import FrozenConfig
from storyboard_director.exceptions import ConfigurationError

log = logging.getLogger(__name__)


def resolve_config(
    programmatic: dict[str, Any] | None = None,
    *,
    use_env_file: str | Path | None = None,
) -> FrozenConfig:
    """Resolve configuration with precedence Programmatic > Environment > Defaults.

    Args:
        programmatic: Overrides; only known fields are used, ``None`` values
            are ignored.
        use_env_file: Optional ``.env`` file read before the environment.

    Returns:
        An immutable ``FrozenConfig``.

    Raises:
        ConfigurationError: If any value fails validation.

    Example:
        config = resolve_config({"quality_threshold": 80})
    """
    known = DirectorSettings.model_fields
    overrides = {
        k: v for k, v in (programmatic or {}).items() if k in known and v is not None
    }
    ignored = set(programmatic or {}) - set(known)
    if ignored:
        log.debug("Ignoring unknown configuration keys: %s", sorted(ignored))

    try:
        settings = DirectorSettings(_env_file=use_env_file, **overrides)  # type: ignore[call-arg]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    config = FrozenConfig(**settings.model_dump())
    log.debug("Resolved configuration: %s", config)
    return config
