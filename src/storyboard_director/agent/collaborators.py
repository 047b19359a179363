"""Gemini-backed collaborator for the director's model tools.

Analysis and drafting ask for structured JSON via ``response_schema``; the
analysis is validated here, drafts are returned as text so the extraction
pipeline stays the single judge of storyboard shape.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from storyboard_director.agent.adapters import create_client
from storyboard_director.exceptions import CollaboratorError, ConfigurationError
from storyboard_director.extraction.schemas import ContentAnalysisModel, StoryboardModel

if TYPE_CHECKING:
    from storyboard_director.config.types import FrozenConfig

log = logging.getLogger(__name__)

ANALYZER = "analyzer"
STORYBOARDER = "storyboarder"
REFINER = "refiner"

SECTION_TYPES = "intro, verse, chorus, bridge, outro, transition, key_point, conclusion"


def analyzer_instructions(content_type: str) -> str:
    subject = "song lyrics" if content_type == "lyrics" else "story"
    return f"""You are a content analyst preparing {subject} for a visual storyboard.

Identify the structure (sections with MM:SS start and end timestamps), the
emotional arc (opening, peak, resolution), 3-6 visual themes and 2-4 motifs.

List every concrete physical object the text mentions (a candle, a door, rain)
with the timestamp where it first appears and what it stands for. These
objects must later be shown literally, never replaced by an abstraction.

Section "type" must be one of these lowercase values: {SECTION_TYPES}."""


def storyboarder_instructions(
    analysis: Mapping[str, Any],
    *,
    style: str,
    video_purpose: str,
    global_subject: str,
    prompt_count: int,
) -> str:
    motifs = [
        f'- "{m.get("object")}" (at {m.get("timestamp")}): {m.get("emotionalContext")}'
        for m in analysis.get("concreteMotifs") or []
        if isinstance(m, Mapping)
    ]
    subject = (
        f"GLOBAL SUBJECT: {global_subject}. Keep its appearance consistent across scenes."
        if global_subject.strip()
        else "Create cohesive scenes with consistent environmental elements."
    )
    return f"""You are a visionary director planning a {video_purpose or "music video"}.

ART STYLE: {style or "cinematic"}
{subject}

CONCRETE MOTIFS (show each as the physical object):
{chr(10).join(motifs) or "None named; derive visual elements from the themes."}

CONTENT ANALYSIS:
{json.dumps(analysis, indent=2, ensure_ascii=False)}

Write exactly {prompt_count} prompts that follow the emotional arc. Each prompt is
60-120 words: subject, action, environment, lighting, camera angle and
atmosphere. No text, logos or watermarks. Never repeat a camera angle in
consecutive scenes. Timestamps are zero-padded MM:SS matching the sections."""


def refiner_instructions(style: str, global_subject: str, previous: list[str]) -> str:
    earlier = "\n".join(f"- {p}" for p in previous[-3:])
    subject = f"Keep the main subject ({global_subject}) recognisable.\n" if global_subject else ""
    return f"""Rewrite the image prompt you are given so it is 60-120 words of concrete
visual description in the {style or "cinematic"} style: subject, action,
environment, lighting and camera angle.
{subject}Avoid repeating the composition of these earlier prompts:
{earlier or "- (none)"}

Reply with the rewritten prompt only."""


class GoogleGenAICollaborator:
    """Runs analysis, drafting and refinement against Gemini.

    Each request is retried up to ``config.max_retries`` extra times with
    exponential backoff; configuration errors are never retried.

    Args:
        config: Resolved configuration (model, temperature, retries).
        client: A ``google.genai.Client``; built from the API key if omitted.
        retry_delay: Seconds before the first retry.
        backoff_factor: Multiplier applied to the delay after each retry.
    """

    def __init__(
        self,
        config: FrozenConfig,
        *,
        client: Any = None,
        retry_delay: float = 1.0,
        backoff_factor: float = 1.5,
    ) -> None:
        self._client = client if client is not None else create_client(config)
        self._config = config
        self.retry_delay = retry_delay
        self.backoff_factor = backoff_factor

    async def analyze(self, content: str, content_type: str) -> dict[str, Any]:
        async def attempt() -> dict[str, Any]:
            response = await self._generate(
                analyzer_instructions(content_type),
                f"Analyze this content:\n\n{content}",
                schema=ContentAnalysisModel,
            )
            parsed = getattr(response, "parsed", None)
            if not isinstance(parsed, ContentAnalysisModel):
                parsed = ContentAnalysisModel.model_validate_json(_text(response))
            return parsed.model_dump(by_alias=True)

        return await self._with_retries(ANALYZER, attempt)

    async def draft_storyboard(
        self,
        analysis: Mapping[str, Any],
        style: str,
        video_purpose: str,
        global_subject: str,
    ) -> str:
        system = storyboarder_instructions(
            analysis,
            style=style,
            video_purpose=video_purpose,
            global_subject=global_subject,
            prompt_count=self._config.target_prompt_count,
        )

        async def attempt() -> str:
            response = await self._generate(
                system,
                "Create the visual storyboard from the analysis above.",
                schema=StoryboardModel,
            )
            text = _text(response)
            if not text.strip():
                raise ValueError("model returned an empty storyboard")
            return text

        return await self._with_retries(STORYBOARDER, attempt)

    async def refine(
        self,
        prompt_text: str,
        style: str,
        global_subject: str,
        previous_prompts: list[str],
    ) -> str:
        async def attempt() -> str:
            response = await self._generate(
                refiner_instructions(style, global_subject, previous_prompts),
                prompt_text,
            )
            return _text(response).strip()

        refined = await self._with_retries(REFINER, attempt)
        return refined or prompt_text

    async def _generate(
        self, system: str, user: str, *, schema: type[BaseModel] | None = None
    ) -> Any:
        from google.genai import types

        gen_config = types.GenerateContentConfig(
            system_instruction=system,
            temperature=self._config.temperature,
            response_mime_type="application/json" if schema else None,
            response_schema=schema,
        )
        return await self._client.aio.models.generate_content(
            model=self._config.model,
            contents=user,
            config=gen_config,
        )

    async def _with_retries[T](self, stage: str, call: Callable[[], Awaitable[T]]) -> T:
        delay = self.retry_delay
        attempts = self._config.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await call()
            except ConfigurationError:
                raise
            except Exception as e:
                if attempt == attempts:
                    raise CollaboratorError(str(e), stage, attempts) from e
                log.warning(
                    "%s attempt %d/%d failed: %s; retrying in %.1fs",
                    stage,
                    attempt,
                    attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= self.backoff_factor
        raise AssertionError("unreachable")


def _text(response: Any) -> str:
    text = getattr(response, "text", None)
    return text if isinstance(text, str) else ""
