"""Last-resort storyboard mining from plain text.

Used only after structured extraction has failed. The processor splits text
on layout cues, keeps fragments with visual-description signal and turns
each into a prompt tagged ``source="fallback"``.
"""

from __future__ import annotations

from collections.abc import Callable
import logging
import re

from storyboard_director.core.timecodes import (
    find_inline_timestamp,
    format_timestamp,
    parse_timestamp,
)
from storyboard_director.core.types import (
    BasicStoryboard,
    FallbackMetadata,
    FallbackNotification,
    StoryboardPrompt,
)
from storyboard_director.exceptions import FallbackError
from storyboard_director.extraction.quality import preservation_ratio
from storyboard_director.metrics import DirectorMetrics, MetricsSnapshot

log = logging.getLogger(__name__)

type NotificationCallback = Callable[[FallbackNotification], object]

FALLBACK_MAX_CONFIDENCE = 0.6
FALLBACK_MIN_CONFIDENCE = 0.1
DEFAULT_MIN_OVERLAP = 0.3
MAX_INPUT_CHARS = 200_000

REDUCED_FUNCTIONALITY = (
    "Prompts were mined from unstructured text instead of structured JSON",
    "Moods are inferred from keywords",
    "Timestamps are synthesized at fixed intervals",
    "Prompt text may be shorter than the 60-120 word target",
)

VISUAL_KEYWORDS = frozenset(
    """
    light lights lit glow glowing shadow shadows silhouette silhouetted sunlight
    moonlight neon lamp lamps candle candles fire flame flames sparkle shimmer
    shimmering haze hazy fog foggy mist misty smoke glitter reflection reflections
    reflecting sunset sunrise dawn dusk night midnight twilight rain rainy storm
    stormy snow snowy cloud clouds cloudy sky skies sun moon stars starry wind
    thunder lightning ocean sea beach waves wave shore river lake mountain
    mountains forest woods trees tree desert city street streets skyline field
    fields meadow garden room window road bridge rooftop valley landscape horizon
    water waterfall cliff canyon alley harbor close-up closeup wide aerial panning
    pan angle overhead foreground background camera lens slow-motion red orange
    yellow green blue purple violet pink gold golden silver crimson amber teal
    black white grey gray dark bright vivid pastel colorful sepia monochrome
    walking running standing dancing flying falling floating drifting figure
    woman man girl boy child crowd face eyes hands dramatic cinematic
    """.split()
)

MOOD_KEYWORDS: dict[str, frozenset[str]] = {
    "melancholic": frozenset(
        "sad melancholy melancholic lonely alone rain rainy grey gray tears somber empty".split()
    ),
    "energetic": frozenset(
        "energetic fast dancing running vibrant explosive neon bright racing".split()
    ),
    "romantic": frozenset("love romantic tender kiss warm embrace candle candles".split()),
    "mysterious": frozenset(
        "mysterious mystery fog foggy mist misty shadow shadows dark secret".split()
    ),
    "triumphant": frozenset(
        "triumphant victory glory soaring summit golden cheering".split()
    ),
    "dramatic": frozenset("dramatic storm stormy thunder lightning epic".split()),
    "serene": frozenset("calm serene peaceful gentle quiet still sunset dawn".split()),
}
DEFAULT_MOOD = "neutral"

_FENCE_MARKER = re.compile(r"```[\w+.-]*")
_SCENE_MARKER = re.compile(
    r"\**\b(?:scene|shot|frame|panel)\s*#?\s*\d+\**\s*[:.)\-]\**", re.IGNORECASE
)
_LIST_MARKER = re.compile(r"(?m)^\s*(?:\d+[.)]|[-*•])\s+")
_PARAGRAPH = re.compile(r"\n\s*\n")
_SENTENCE = re.compile(r"(?<=[.!?])\s+(?=[A-Z\"'(])")
_QUOTED_STRING = re.compile(r'"((?:[^"\\]|\\.){12,})"')
_INLINE_STAMP = re.compile(r"\[?\b\d{1,2}:\d{2}(?::\d{2})?\b\]?\s*[-:]?\s*")
_WORD = re.compile(r"[a-z][a-z'-]*")


class FallbackProcessor:
    """Mine plain text for scene descriptions and notify observers.

    Attributes:
        metrics: Shared counters; a private instance is created when omitted.
        min_overlap: Key-term preservation below this flags low confidence.
        max_prompts: Upper bound on prompts produced.
        scene_interval_seconds: Spacing of synthesized timestamps.
    """

    def __init__(
        self,
        metrics: DirectorMetrics | None = None,
        *,
        min_overlap: float = DEFAULT_MIN_OVERLAP,
        max_prompts: int = 10,
        scene_interval_seconds: int = 15,
        min_fragment_words: int = 4,
    ) -> None:
        self.metrics = metrics if metrics is not None else DirectorMetrics()
        self.min_overlap = min_overlap
        self.max_prompts = max_prompts
        self.scene_interval_seconds = scene_interval_seconds
        self.min_fragment_words = min_fragment_words
        self._callbacks: list[NotificationCallback] = []

    # --- observers ---

    def register_notification_callback(self, callback: NotificationCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_notification_callback(self, callback: NotificationCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    # --- processing ---

    def process_with_fallback(self, raw_text: object, reason: str) -> BasicStoryboard | None:
        """Never raises; returns None when the text has no visual signal.

        Every invocation counts as a fallback usage for ``reason``; the
        notification is sent only when a storyboard is produced.
        """
        self.metrics.record_fallback_usage(reason)
        try:
            storyboard = self._build(raw_text, reason)
        except FallbackError as e:
            log.info("Fallback produced nothing (%s): %s", reason, e)
            return None
        except Exception:
            log.exception("Unexpected error during fallback extraction (%s)", reason)
            return None
        self._notify(storyboard, reason)
        return storyboard

    def generate_basic_storyboard(self, raw_text: object, reason: str) -> BasicStoryboard:
        """Build a storyboard or raise ``FallbackError`` when nothing is usable."""
        self.metrics.record_fallback_usage(reason)
        storyboard = self._build(raw_text, reason)
        self._notify(storyboard, reason)
        return storyboard

    # --- metrics façade ---

    def get_metrics(self) -> MetricsSnapshot:
        return self.metrics.get_metrics()

    def get_metrics_summary(self) -> dict[str, object]:
        return self.metrics.get_metrics_summary()

    def reset_metrics(self) -> None:
        self.metrics.reset()

    # --- internals ---

    def _build(self, raw_text: object, reason: str) -> BasicStoryboard:
        text = raw_text if isinstance(raw_text, str) else ""
        text = text[:MAX_INPUT_CHARS]
        if not text.strip():
            raise FallbackError("No text to mine")

        fragments = [f for f in self._split(text) if self._has_signal(f)]
        if not fragments:
            raise FallbackError("No visual-description signal found")
        fragments = fragments[: self.max_prompts]

        prompts = []
        previous: float | None = None
        for index, fragment in enumerate(fragments):
            stamp = find_inline_timestamp(fragment)
            body = _INLINE_STAMP.sub("", fragment, count=1) if stamp else fragment
            if stamp is None:
                seconds = float(index * self.scene_interval_seconds)
                if previous is not None:
                    # synthesized stamps never go back before an inline one
                    seconds = max(previous + self.scene_interval_seconds, seconds)
                stamp = format_timestamp(seconds)
            previous = parse_timestamp(stamp)
            prompts.append(
                StoryboardPrompt(
                    text=body.strip(),
                    mood=self._infer_mood(body),
                    timestamp=stamp,
                    source="fallback",
                )
            )

        ratio = preservation_ratio(text, " ".join(p.text for p in prompts))
        low_confidence = ratio < self.min_overlap
        if low_confidence:
            log.warning(
                "Fallback kept only %.0f%% of key terms (minimum %.0f%%)",
                ratio * 100,
                self.min_overlap * 100,
            )
        metadata = FallbackMetadata(
            confidence=round(max(FALLBACK_MIN_CONFIDENCE, FALLBACK_MAX_CONFIDENCE * ratio), 3),
            preservation_ratio=round(ratio, 3),
            low_confidence=low_confidence,
            reason=reason,
        )
        log.info("Fallback extracted %d prompt(s) (%s)", len(prompts), reason)
        return BasicStoryboard(tuple(prompts), metadata)

    def _split(self, text: str) -> list[str]:
        text = _FENCE_MARKER.sub(" ", text)
        mined = [m.group(1) for m in _QUOTED_STRING.finditer(text)]
        if mined and text.lstrip().startswith(("{", "[")):
            text = "\n\n".join(s.replace('\\"', '"').replace("\\n", " ") for s in mined)

        if len(_SCENE_MARKER.findall(text)) >= 1:
            parts = _SCENE_MARKER.split(text)
        elif len(_LIST_MARKER.findall(text)) >= 2:
            parts = _LIST_MARKER.split(text)
        else:
            parts = [
                sentence
                for paragraph in _PARAGRAPH.split(text)
                for sentence in _SENTENCE.split(paragraph)
            ]
        return [_clean(p) for p in parts if _clean(p)]

    def _has_signal(self, fragment: str) -> bool:
        words = _WORD.findall(fragment.lower())
        if len(words) < self.min_fragment_words:
            return False
        return any(w in VISUAL_KEYWORDS for w in words)

    def _infer_mood(self, fragment: str) -> str:
        words = set(_WORD.findall(fragment.lower()))
        best, best_hits = DEFAULT_MOOD, 0
        for mood, keywords in MOOD_KEYWORDS.items():
            hits = len(words & keywords)
            if hits > best_hits:
                best, best_hits = mood, hits
        return best

    def _notify(self, storyboard: BasicStoryboard, reason: str) -> None:
        notification = FallbackNotification(
            message=f"Fallback text extraction used: {reason}",
            extracted_prompt_count=len(storyboard.prompts),
            reduced_functionality=REDUCED_FUNCTIONALITY,
        )
        for callback in tuple(self._callbacks):
            try:
                callback(notification)
            except Exception as e:
                log.error(
                    "Fallback notification callback '%s' failed: %s",
                    getattr(callback, "__name__", type(callback).__name__),
                    e,
                    exc_info=True,
                )


def _clean(fragment: str) -> str:
    fragment = fragment.replace("**", "").replace("__", "")
    return " ".join(fragment.split()).strip(" -:;,\"'")
