"""The director loop, its tools and model adapters."""

from storyboard_director.agent.adapters import (
    GoogleGenAIAdapter,
    ModelAdapter,
    ScriptedModelAdapter,
    ToolInvoker,
    create_client,
)
from storyboard_director.agent.collaborators import GoogleGenAICollaborator
from storyboard_director.agent.director import AgentDirector, DirectorRun, DirectorState
from storyboard_director.agent.factory import build_director
from storyboard_director.agent.tools import (
    DirectorToolbox,
    StoryboardCollaborator,
    ToolSpec,
    critique_storyboard,
    get_visual_references,
)

__all__ = [
    "AgentDirector",
    "DirectorRun",
    "DirectorState",
    "DirectorToolbox",
    "GoogleGenAIAdapter",
    "GoogleGenAICollaborator",
    "ModelAdapter",
    "ScriptedModelAdapter",
    "StoryboardCollaborator",
    "ToolInvoker",
    "ToolSpec",
    "build_director",
    "create_client",
    "critique_storyboard",
    "get_visual_references",
]
