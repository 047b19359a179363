"""
Global test configuration with support for different test types.
"""

from collections.abc import Mapping
from contextlib import suppress
import json
import logging
import os
from typing import Any

import pytest

from storyboard_director.config import resolve_config
from storyboard_director.extraction import StoryboardPipeline
from storyboard_director.metrics import DirectorMetrics


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-in escape hatch: mark a test with @pytest.mark.allow_dotenv
    to permit .env loading for that specific test.
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_director_env(request, monkeypatch):
    """Ensure a clean DIRECTOR_*/GEMINI_*/STORYBOARD_* environment for each test.

    Escape hatch: @pytest.mark.allow_env_pollution keeps the current env.
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return

    for key in list(os.environ.keys()):
        if key.startswith(("DIRECTOR_", "GEMINI_", "STORYBOARD_")):
            monkeypatch.delenv(key, raising=False)


# --- Logging Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Sets the log level for noisy external libraries to WARNING."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("google_genai").setLevel(logging.WARNING)


# --- Test Environment Markers ---
def pytest_configure(config):
    """Configure custom markers for test organization."""
    markers = [
        "unit: Fast, isolated unit tests",
        "contract: Behavioral guarantees of the extraction components",
        "integration: Component integration tests with scripted models",
        "allow_dotenv: Permit .env loading for this test",
        "allow_env_pollution: Keep the ambient environment for this test",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


# --- Core Fixtures ---

SCENES = (
    "A lone figure in a long grey coat walks down a rain-soaked city street at "
    "night, neon signs in crimson and teal reflecting off the wet asphalt while "
    "steam rises from a manhole",
    "An old fisherman mends torn nets on a wooden pier at dawn, gulls circling "
    "overhead, pale pink sky melting into a calm silver sea, his weathered hands "
    "moving slowly over knotted rope",
    "A young dancer spins alone across an abandoned ballroom floor, dust motes "
    "hanging in shafts of afternoon sun, cracked chandeliers above her, torn "
    "velvet curtains swaying beside tall arched windows",
    "Two cyclists race downhill through a pine forest road, autumn leaves "
    "exploding behind their wheels, low sun flickering between trunks, mud "
    "spraying from tires as they lean hard into the curve",
    "A child releases paper lanterns from a rooftop garden above the sprawling "
    "skyline, hundreds of tiny flames drifting upward into a violet dusk, laundry "
    "lines and potted tomatoes crowding the frame",
    "A crowded night market glows under strings of bare bulbs, vendors flipping "
    "skewers over charcoal grills, smoke curling through hanging red banners, "
    "shoppers jostling shoulder to shoulder between steaming stalls",
    "A pianist plays in an empty concert hall, rows of velvet seats fading into "
    "darkness, one spotlight catching the polished black lid, sheet music "
    "scattered across the stage floor beneath trembling fingers",
    "Wild horses gallop across a frozen plain under a blizzard, manes whipping "
    "in the wind, breath steaming, snow spraying from hooves as jagged mountains "
    "loom faintly through the white haze",
    "A lighthouse keeper climbs a spiral iron staircase carrying an oil lamp, "
    "storm waves crashing against the rocks below, rain lashing the narrow "
    "windows, the great lens rotating high above",
    "Teenagers sprawl on the hood of a vintage convertible parked at a desert "
    "overlook, radio glowing, constellations wheeling overhead, the distant town "
    "a scatter of orange lights along the valley floor",
    "A botanist kneels inside a glass greenhouse wrapped in condensation, ferns "
    "and orchids crowding every shelf, a brass watering can in hand, pale green "
    "light filtering through fogged panes",
    "Commuters pour out of a subway car onto a tiled platform, a busker with a "
    "battered trumpet playing by the stairs, fluorescent tubes humming, posters "
    "peeling from curved walls",
)

CAMERA = (
    "shallow depth of field with distant lights blurred into soft bokeh, cold "
    "blue ambient light cut by warm window glow, cinematic anamorphic framing, "
    "slow tracking camera at shoulder height, quiet melancholic stillness"
)


def make_prompt(index: int, mood: str = "melancholic", subject: str = "") -> dict[str, Any]:
    """A valid wire prompt of 60-120 words; prompts with different indices differ."""
    scene = SCENES[index % len(SCENES)]
    text = f"{scene}, {CAMERA}"
    if subject:
        text = f"{subject} in view: {text}"
    seconds = index * 15
    return {
        "text": text,
        "mood": mood,
        "timestamp": f"{seconds // 60:02d}:{seconds % 60:02d}",
    }


def make_storyboard(
    count: int = 10,
    moods: tuple[str, ...] = ("melancholic", "energetic", "romantic", "mysterious"),
    subject: str = "",
) -> dict[str, Any]:
    return {
        "prompts": [
            make_prompt(i, moods[i % len(moods)], subject) for i in range(count)
        ]
    }


@pytest.fixture
def storyboard_factory():
    """Build wire-format storyboards: ``storyboard_factory(count, moods, subject)``."""
    return make_storyboard


@pytest.fixture
def rich_storyboard():
    """A storyboard that scores 100 in critique."""
    return make_storyboard()


@pytest.fixture
def metrics():
    return DirectorMetrics()


@pytest.fixture
def pipeline(metrics):
    """A fresh pipeline with its own metrics."""
    return StoryboardPipeline(metrics=metrics)


@pytest.fixture
def director_config():
    """Deterministic configuration; no API key, scripted models only."""
    return resolve_config({"iteration_budget": 4, "quality_threshold": 70})


class FakeCollaborator:
    """Deterministic stand-in for the model-backed tool operations."""

    def __init__(self, storyboard: Mapping[str, Any] | str | None = None):
        self.storyboard = storyboard if storyboard is not None else make_storyboard()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def analyze(self, content: str, content_type: str) -> Mapping[str, Any]:
        self.calls.append(("analyze", (content, content_type)))
        return {
            "sections": [{"type": "verse", "lines": content.splitlines()[:2]}],
            "emotionalArc": ["melancholic", "triumphant"],
            "themes": ["loss", "renewal"],
        }

    async def draft_storyboard(
        self,
        analysis: Mapping[str, Any],
        style: str,
        video_purpose: str,
        global_subject: str,
    ) -> str | Mapping[str, Any]:
        self.calls.append(("draft", (dict(analysis), style, video_purpose, global_subject)))
        return self.storyboard

    async def refine(
        self,
        prompt_text: str,
        style: str,
        global_subject: str,
        previous_prompts: list[str],
    ) -> str:
        self.calls.append(("refine", (prompt_text, style, global_subject, previous_prompts)))
        return f"{prompt_text}, rendered in {style} style"


@pytest.fixture
def collaborator():
    return FakeCollaborator()


@pytest.fixture
def collaborator_factory():
    """Build collaborators drafting a given storyboard: ``collaborator_factory(draft)``."""
    return FakeCollaborator


@pytest.fixture
def fenced():
    """Wrap a JSON value in a fenced block with surrounding chatter."""

    def _wrap(value: Any, tag: str = "json") -> str:
        return f"Here you go:\n\n```{tag}\n{json.dumps(value, indent=2)}\n```\n\nEnjoy!"

    return _wrap
