"""Immutable configuration handed to the director and pipeline."""

from __future__ import annotations

import dataclasses
from typing import Any


@dataclasses.dataclass(frozen=True, slots=True)
class FrozenConfig:
    """Resolved configuration; any attempt to modify it raises.

    ``str``/``repr`` redact the API key for safe logging.
    """

    api_key: str | None
    model: str
    temperature: float
    use_real_api: bool
    max_retries: int
    iteration_budget: int
    quality_threshold: float
    target_prompt_count: int
    max_text_size: int
    fallback_min_overlap: float
    fallback_max_prompts: int
    scene_interval_seconds: int

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        if redact and data["api_key"]:
            data["api_key"] = "[REDACTED]"
        return data

    def with_overrides(self, **overrides: Any) -> FrozenConfig:
        unknown = set(overrides) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ValueError(f"Unknown configuration fields: {sorted(unknown)}")
        return dataclasses.replace(self, **overrides)

    def __str__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.to_dict().items())
        return f"FrozenConfig({fields})"

    def __repr__(self) -> str:
        return self.__str__()
