"""Tools the director model can call.

Content analysis, storyboard drafting and prompt refinement need a language
model and are delegated to an injected ``StoryboardCollaborator``. Visual
references and critique are computed locally.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
import dataclasses
import json
import logging
from typing import Any, Protocol, runtime_checkable

from storyboard_director.exceptions import ToolInvocationError
from storyboard_director.extraction.corrections import FormatCorrector
from storyboard_director.extraction.quality import word_overlap

log = logging.getLogger(__name__)

type ToolHandler = Callable[[dict[str, Any]], Awaitable[str]]

ANALYZE_CONTENT = "analyze_content"
SEARCH_VISUAL_REFERENCES = "search_visual_references"
GENERATE_STORYBOARD = "generate_storyboard"
ANALYZE_AND_GENERATE_STORYBOARD = "analyze_and_generate_storyboard"
REFINE_PROMPT = "refine_prompt"
CRITIQUE_STORYBOARD = "critique_storyboard"

STORYBOARD_TOOLS = frozenset({GENERATE_STORYBOARD, ANALYZE_AND_GENERATE_STORYBOARD})
CRITIQUE_TOOLS = frozenset({CRITIQUE_STORYBOARD})

MIN_PROMPTS = 8
TARGET_WORD_RANGE = (60, 120)
NEAR_DUPLICATE_OVERLAP = 0.8

_GEMINI_TYPES = {
    "string": "STRING",
    "number": "NUMBER",
    "integer": "INTEGER",
    "boolean": "BOOLEAN",
    "array": "ARRAY",
    "object": "OBJECT",
}


@runtime_checkable
class StoryboardCollaborator(Protocol):
    """Model-backed operations the tools delegate to."""

    async def analyze(self, content: str, content_type: str) -> Mapping[str, Any]: ...  # noqa: D102

    async def draft_storyboard(  # noqa: D102
        self,
        analysis: Mapping[str, Any],
        style: str,
        video_purpose: str,
        global_subject: str,
    ) -> str | Mapping[str, Any]: ...

    async def refine(  # noqa: D102
        self,
        prompt_text: str,
        style: str,
        global_subject: str,
        previous_prompts: list[str],
    ) -> str: ...


@dataclasses.dataclass(frozen=True, slots=True)
class ToolSpec:
    """A tool declaration plus its handler.

    ``parameters`` is a JSON-schema object with lower-case type names.
    """

    name: str
    description: str
    parameters: Mapping[str, Any]
    handler: ToolHandler

    @property
    def list_params(self) -> frozenset[str]:
        props = self.parameters.get("properties", {})
        return frozenset(k for k, v in props.items() if v.get("type") == "array")

    def sanitize_args(self, args: Mapping[str, Any] | None) -> dict[str, Any]:
        """Replace null or missing declared arguments with ``""`` or ``[]``."""
        clean = dict(args or {})
        for key in self.parameters.get("properties", {}):
            if clean.get(key) is None:
                clean[key] = [] if key in self.list_params else ""
        return clean

    def gemini_schema(self) -> dict[str, Any]:
        """The parameter schema with Gemini's upper-case type names."""
        return _to_gemini(self.parameters)


def _to_gemini(schema: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in schema.items():
        if key == "type":
            out[key] = _GEMINI_TYPES.get(value, value)
        elif key == "properties":
            out[key] = {k: _to_gemini(v) for k, v in value.items()}
        elif key == "items":
            out[key] = _to_gemini(value)
        else:
            out[key] = value
    return out


def _string(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def _object(required: list[str], **properties: dict[str, Any]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


# --- Visual references ---

MOOD_REFERENCES: dict[str, dict[str, list[str]]] = {
    "melancholic": {
        "camera": ["slow dolly out", "static wide shot", "low angle looking up"],
        "lighting": ["blue hour", "overcast diffused", "single source dramatic"],
        "colors": ["desaturated blues", "muted grays", "cold tones"],
    },
    "energetic": {
        "camera": ["dynamic tracking", "quick cuts", "dutch angle", "crane shot"],
        "lighting": ["high contrast", "strobe effects", "rim lighting"],
        "colors": ["vibrant saturated", "warm oranges", "electric blues"],
    },
    "romantic": {
        "camera": ["soft focus close-up", "two-shot", "slow pan"],
        "lighting": ["golden hour", "candlelight", "soft diffused"],
        "colors": ["warm pastels", "rose gold", "soft pinks"],
    },
    "mysterious": {
        "camera": ["obscured framing", "silhouette shot", "slow reveal"],
        "lighting": ["chiaroscuro", "backlit", "fog/haze"],
        "colors": ["deep shadows", "teal and orange", "noir palette"],
    },
    "triumphant": {
        "camera": ["hero shot low angle", "crane up", "epic wide"],
        "lighting": ["dramatic rim light", "god rays", "golden backlight"],
        "colors": ["rich golds", "deep reds", "royal blues"],
    },
}

STYLE_COMPOSITION: dict[str, list[str]] = {
    "cinematic": ["rule of thirds", "leading lines", "depth layers", "negative space"],
    "anime": ["dynamic poses", "speed lines", "dramatic angles", "expressive lighting"],
    "film noir": ["high contrast shadows", "venetian blind lighting", "dutch angles"],
    "watercolor": ["soft edges", "color bleeding", "organic shapes"],
    "documentary": ["natural framing", "candid composition", "environmental context"],
}

DEFAULT_REFERENCE_MOOD = "energetic"


def get_visual_references(query: str, style: str) -> dict[str, Any]:
    """Camera, lighting, composition and palette suggestions for a mood query.

    The first mood whose name (or its first five letters) appears in the
    query wins; unknown moods use ``energetic`` and unknown styles use the
    cinematic composition set.
    """
    query_lower = (query or "").lower()
    selected = next(
        (m for m in MOOD_REFERENCES if m in query_lower or m[:5] in query_lower),
        DEFAULT_REFERENCE_MOOD,
    )
    mood = MOOD_REFERENCES[selected]
    composition = STYLE_COMPOSITION.get(
        (style or "").strip().lower(), STYLE_COMPOSITION["cinematic"]
    )
    return {
        "mood": selected,
        "cameraAngles": list(mood["camera"]),
        "lighting": list(mood["lighting"]),
        "composition": list(composition),
        "colorPalette": list(mood["colors"]),
    }


# --- Critique ---


def critique_storyboard(
    storyboard: Mapping[str, Any],
    *,
    global_subject: str = "",
    target_prompt_count: int = 10,
) -> dict[str, Any]:
    """Score a storyboard from 0 to 100.

    Penalties: fewer than 8 prompts -15; a prompt outside 60-120 words -2;
    a missing global subject -2; a near-duplicate prompt -5; fewer than
    three distinct moods -10.
    """
    prompts = storyboard.get("prompts") if isinstance(storyboard, Mapping) else None
    if not isinstance(prompts, list):
        prompts = []
    prompts = [p for p in prompts if isinstance(p, Mapping)]

    issues: list[dict[str, Any]] = []
    strengths: list[str] = []
    score = 100

    if len(prompts) < MIN_PROMPTS:
        issues.append(
            {
                "promptIndex": -1,
                "code": "too_few_prompts",
                "message": f"Only {len(prompts)} prompts",
            }
        )
        score -= 15
    elif len(prompts) >= target_prompt_count:
        strengths.append(f"Complete set of {len(prompts)} prompts")

    low, high = TARGET_WORD_RANGE
    subject = global_subject.strip().lower()
    seen: list[str] = []
    moods: set[str] = set()
    for index, prompt in enumerate(prompts):
        text = prompt.get("text") if isinstance(prompt.get("text"), str) else ""
        words = len(text.split())
        if not low <= words <= high:
            issues.append(
                {
                    "promptIndex": index,
                    "code": "word_count",
                    "message": f"{words} words (target {low}-{high})",
                }
            )
            score -= 2
        if subject and subject not in text.lower():
            issues.append(
                {
                    "promptIndex": index,
                    "code": "subject_missing",
                    "message": f"Does not mention '{global_subject}'",
                }
            )
            score -= 2
        if any(word_overlap(text, previous) >= NEAR_DUPLICATE_OVERLAP for previous in seen):
            issues.append(
                {
                    "promptIndex": index,
                    "code": "repetitive_prompt",
                    "message": "Nearly identical to an earlier prompt",
                }
            )
            score -= 5
        seen.append(text)
        mood = prompt.get("mood")
        moods.add(mood.lower() if isinstance(mood, str) and mood else "unknown")

    if len(moods) >= 4:
        strengths.append(f"Good emotional variety with {len(moods)} moods")
    elif len(moods) < 3:
        issues.append(
            {"promptIndex": -1, "code": "low_variety", "message": "Limited mood variety"}
        )
        score -= 10

    recommendations = []
    indices = sorted({i["promptIndex"] for i in issues if i["promptIndex"] >= 0})
    if indices:
        recommendations.append(f"Refine prompts at indices: {', '.join(map(str, indices))}")

    return {
        "overallScore": max(0, min(100, score)),
        "promptCount": len(prompts),
        "issues": issues,
        "strengths": strengths,
        "recommendations": recommendations,
    }


# --- Toolbox ---


class DirectorToolbox:
    """Implements the tool-invocation interface for the director loop."""

    def __init__(
        self,
        collaborator: StoryboardCollaborator | None = None,
        *,
        corrector: FormatCorrector | None = None,
        target_prompt_count: int = 10,
    ) -> None:
        self.collaborator = collaborator
        self.corrector = corrector or FormatCorrector()
        self.target_prompt_count = target_prompt_count
        self._specs = {spec.name: spec for spec in self._build_specs()}

    @property
    def specs(self) -> tuple[ToolSpec, ...]:
        return tuple(self._specs.values())

    def list_params(self, name: str) -> frozenset[str]:
        """Array-typed parameters of ``name``; empty for unknown tools."""
        spec = self._specs.get(name)
        return spec.list_params if spec else frozenset()

    async def invoke(self, name: str, args: Mapping[str, Any]) -> str:
        spec = self._specs.get(name)
        if spec is None:
            log.warning("Model requested unknown tool %r", name)
            return f"Unknown tool: {name}"
        log.debug("Running tool %s", name)
        return await spec.handler(spec.sanitize_args(args))

    # --- handlers ---

    async def _analyze_content(self, args: dict[str, Any]) -> str:
        collaborator = self._require_collaborator(ANALYZE_CONTENT)
        analysis = await collaborator.analyze(
            str(args["content"]), str(args["content_type"] or "lyrics")
        )
        return json.dumps(analysis, indent=2, ensure_ascii=False)

    async def _search_visual_references(self, args: dict[str, Any]) -> str:
        references = get_visual_references(str(args["query"]), str(args["style"]))
        return json.dumps(references, indent=2)

    async def _generate_storyboard(self, args: dict[str, Any]) -> str:
        collaborator = self._require_collaborator(GENERATE_STORYBOARD)
        analysis = self._loads(args["analysis_json"], GENERATE_STORYBOARD)
        if not isinstance(analysis, Mapping):
            raise ToolInvocationError(
                "analysis_json must be a JSON object", GENERATE_STORYBOARD
            )
        draft = await collaborator.draft_storyboard(
            analysis,
            str(args["style"]),
            str(args["video_purpose"]),
            str(args["global_subject"]),
        )
        if isinstance(draft, str):
            return draft
        return json.dumps(draft, indent=2, ensure_ascii=False)

    async def _analyze_and_generate(self, args: dict[str, Any]) -> str:
        collaborator = self._require_collaborator(ANALYZE_AND_GENERATE_STORYBOARD)
        analysis = await collaborator.analyze(
            str(args["content"]), str(args["content_type"] or "lyrics")
        )
        draft = await collaborator.draft_storyboard(
            analysis,
            str(args["style"]),
            str(args["video_purpose"]),
            str(args["global_subject"]),
        )
        if isinstance(draft, str):
            try:
                draft = self._loads(draft, ANALYZE_AND_GENERATE_STORYBOARD)
            except ToolInvocationError:
                # Leave unparseable drafts to the extraction pipeline.
                return draft
        return json.dumps(
            {"analysis": analysis, "storyboard": draft}, indent=2, ensure_ascii=False
        )

    async def _refine_prompt(self, args: dict[str, Any]) -> str:
        collaborator = self._require_collaborator(REFINE_PROMPT)
        original = str(args["prompt_text"])
        previous = [str(p) for p in args["previous_prompts"] if p]
        refined = await collaborator.refine(
            original, str(args["style"]), str(args["global_subject"]), previous
        )
        return json.dumps(
            {"refinedPrompt": refined, "wasRefined": refined.strip() != original.strip()},
            indent=2,
            ensure_ascii=False,
        )

    async def _critique_storyboard(self, args: dict[str, Any]) -> str:
        storyboard = self._loads(args["storyboard_json"], CRITIQUE_STORYBOARD)
        if isinstance(storyboard, Mapping) and "prompts" not in storyboard:
            nested = storyboard.get("storyboard")
            if isinstance(nested, Mapping):
                storyboard = nested
        if not isinstance(storyboard, Mapping):
            raise ToolInvocationError(
                "storyboard_json must be a JSON object", CRITIQUE_STORYBOARD
            )
        critique = critique_storyboard(
            storyboard,
            global_subject=str(args["global_subject"]),
            target_prompt_count=self.target_prompt_count,
        )
        return json.dumps(critique, indent=2)

    # --- helpers ---

    def _require_collaborator(self, tool: str) -> StoryboardCollaborator:
        if self.collaborator is None:
            raise ToolInvocationError("no storyboard collaborator is configured", tool)
        return self.collaborator

    def _loads(self, text: Any, tool: str) -> Any:
        if not isinstance(text, str) or not text.strip():
            raise ToolInvocationError("expected a JSON string argument", tool)
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            corrected = self.corrector.correct(text).corrected
        try:
            return json.loads(corrected)
        except json.JSONDecodeError as e:
            raise ToolInvocationError(f"argument is not valid JSON: {e.msg}", tool) from e

    def _build_specs(self) -> list[ToolSpec]:
        style = _string("Art style, e.g. 'cinematic' or 'watercolor'")
        subject = _string("Main subject kept consistent across prompts (may be empty)")
        content = _string("The SRT, lyrics or story text")
        content_type = {
            "type": "string",
            "enum": ["lyrics", "story"],
            "description": "Type of content",
        }
        purpose = _string("Video purpose, e.g. 'music_video' or 'documentary'")
        return [
            ToolSpec(
                ANALYZE_CONTENT,
                "Analyze lyrics or story content for structure, emotional arc, themes "
                "and motifs. Use this first.",
                _object(
                    ["content", "content_type"], content=content, content_type=content_type
                ),
                self._analyze_content,
            ),
            ToolSpec(
                SEARCH_VISUAL_REFERENCES,
                "Look up camera, lighting, composition and colour references for a mood.",
                _object(
                    ["query", "style"],
                    query=_string("What to search for, e.g. 'melancholic night scene'"),
                    style=style,
                ),
                self._search_visual_references,
            ),
            ToolSpec(
                GENERATE_STORYBOARD,
                f"Generate a storyboard of {self.target_prompt_count} image prompts from "
                "an analysis. All prompts share one visual universe.",
                _object(
                    ["analysis_json", "style", "video_purpose"],
                    analysis_json=_string("JSON output of analyze_content"),
                    style=style,
                    video_purpose=purpose,
                    global_subject=subject,
                ),
                self._generate_storyboard,
            ),
            ToolSpec(
                ANALYZE_AND_GENERATE_STORYBOARD,
                "Analyze content and generate its storyboard in one step.",
                _object(
                    ["content", "content_type", "style", "video_purpose"],
                    content=content,
                    content_type=content_type,
                    style=style,
                    video_purpose=purpose,
                    global_subject=subject,
                ),
                self._analyze_and_generate,
            ),
            ToolSpec(
                REFINE_PROMPT,
                "Refine a single image prompt.",
                _object(
                    ["prompt_text", "style"],
                    prompt_text=_string("The prompt text to refine"),
                    style=style,
                    global_subject=subject,
                    previous_prompts={
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Earlier prompts, to avoid repetition",
                    },
                ),
                self._refine_prompt,
            ),
            ToolSpec(
                CRITIQUE_STORYBOARD,
                "Score a storyboard (0-100) and list issues to fix.",
                _object(
                    ["storyboard_json"],
                    storyboard_json=_string("JSON output of generate_storyboard"),
                    global_subject=subject,
                ),
                self._critique_storyboard,
            ),
        ]
