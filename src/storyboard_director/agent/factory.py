"""Assemble a director from configuration."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import TYPE_CHECKING, Any

from storyboard_director.agent.adapters import (
    GoogleGenAIAdapter,
    ScriptedModelAdapter,
    ScriptStep,
    create_client,
)
from storyboard_director.agent.collaborators import GoogleGenAICollaborator
from storyboard_director.agent.director import AgentDirector
from storyboard_director.agent.tools import DirectorToolbox, StoryboardCollaborator
from storyboard_director.config import resolve_config

if TYPE_CHECKING:
    from storyboard_director.config.types import FrozenConfig

log = logging.getLogger(__name__)


def build_director(
    config: FrozenConfig | None = None,
    *,
    client: Any = None,
    collaborator: StoryboardCollaborator | None = None,
    script: Iterable[ScriptStep] = (),
    **director_kwargs: Any,
) -> AgentDirector:
    """Build an ``AgentDirector`` wired for ``config``.

    With ``use_real_api`` the director model and the tool collaborator share
    one Gemini client. Otherwise the model replays ``script`` and the tools
    use ``collaborator`` (if any), so nothing touches the network.

    Extra keyword arguments (``pipeline``, ``telemetry`` ...) go to the
    director.
    """
    config = config or resolve_config()
    if config.use_real_api:
        client = client if client is not None else create_client(config)
        collaborator = collaborator or GoogleGenAICollaborator(config, client=client)
        toolbox = DirectorToolbox(
            collaborator, target_prompt_count=config.target_prompt_count
        )
        model: GoogleGenAIAdapter | ScriptedModelAdapter = GoogleGenAIAdapter(
            config, toolbox.specs, client=client
        )
        log.debug("Director uses Gemini model %s", config.model)
    else:
        toolbox = DirectorToolbox(
            collaborator, target_prompt_count=config.target_prompt_count
        )
        model = ScriptedModelAdapter(script)
        log.debug("Director uses the scripted model adapter")
    return AgentDirector(model, toolbox, config=config, **director_kwargs)
