"""Model adapters for the director loop.

The loop only depends on the ``ModelAdapter`` protocol. ``ScriptedModelAdapter``
is the deterministic default for tests and examples (no network);
``GoogleGenAIAdapter`` talks to Gemini and is constructed explicitly.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from storyboard_director.core.types import Message, ModelResponse, ToolCall
from storyboard_director.exceptions import ConfigurationError

if TYPE_CHECKING:
    from storyboard_director.agent.tools import ToolSpec
    from storyboard_director.config.types import FrozenConfig

log = logging.getLogger(__name__)

type ScriptStep = (
    ModelResponse | str | BaseException | Callable[[Sequence[Message]], ModelResponse]
)


@runtime_checkable
class ModelAdapter(Protocol):
    """Sends the conversation to a model and returns its reply."""

    async def invoke(self, history: Sequence[Message]) -> ModelResponse: ...  # noqa: D102


@runtime_checkable
class ToolInvoker(Protocol):
    """Runs a named tool; unknown names yield ``"Unknown tool: <name>"``."""

    async def invoke(self, name: str, args: Mapping[str, Any]) -> str: ...  # noqa: D102

    def list_params(self, name: str) -> frozenset[str]: ...  # noqa: D102


class ScriptedModelAdapter:
    """Replays a fixed script of responses, one per round.

    Steps may be responses, plain strings (content without tool calls),
    exceptions to raise, or callables receiving the history. Once the script
    runs out every round returns an empty response.
    """

    def __init__(self, script: Iterable[ScriptStep] = ()):
        self._script = list(script)
        self.calls: list[tuple[Message, ...]] = []

    @property
    def remaining(self) -> int:
        return len(self._script)

    async def invoke(self, history: Sequence[Message]) -> ModelResponse:
        self.calls.append(tuple(history))
        if not self._script:
            return ModelResponse()
        step = self._script.pop(0)
        if isinstance(step, BaseException):
            raise step
        if isinstance(step, str):
            return ModelResponse(content=step)
        if callable(step):
            return step(history)
        return step


class GoogleGenAIAdapter:
    """Adapter for the ``google-genai`` SDK with manual function calling."""

    def __init__(
        self,
        config: FrozenConfig,
        tools: Sequence[ToolSpec] = (),
        *,
        client: Any = None,
    ) -> None:
        self._client = client if client is not None else create_client(config)
        self._config = config
        self._tools = tuple(tools)

    async def invoke(self, history: Sequence[Message]) -> ModelResponse:
        from google.genai import types

        system, contents = self._to_contents(history, types)
        gen_config = types.GenerateContentConfig(
            system_instruction=system or None,
            temperature=self._config.temperature,
            tools=[types.Tool(function_declarations=self._declarations(types))]
            if self._tools
            else None,
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )
        log.debug("Calling %s with %d content entries", self._config.model, len(contents))
        response = await self._client.aio.models.generate_content(
            model=self._config.model,
            contents=contents,
            config=gen_config,
        )
        return self._from_response(response)

    def _declarations(self, types: Any) -> list[Any]:
        return [
            types.FunctionDeclaration(
                name=spec.name,
                description=spec.description,
                parameters=spec.gemini_schema(),
            )
            for spec in self._tools
        ]

    @staticmethod
    def _to_contents(history: Sequence[Message], types: Any) -> tuple[str, list[Any]]:
        system_parts: list[str] = []
        contents: list[Any] = []
        tool_turn: Any = None
        for message in history:
            if message.role != "tool":
                tool_turn = None
            if message.role == "system":
                system_parts.append(message.content)
            elif message.role == "user":
                contents.append(
                    types.Content(role="user", parts=[types.Part(text=message.content)])
                )
            elif message.role == "assistant":
                parts = [types.Part(text=message.content)] if message.content else []
                parts.extend(
                    types.Part(
                        function_call=types.FunctionCall(
                            name=call.name, args=dict(call.args), id=call.call_id
                        )
                    )
                    for call in message.tool_calls
                )
                if parts:
                    contents.append(types.Content(role="model", parts=parts))
            else:
                part = types.Part.from_function_response(
                    name=message.tool_name, response={"result": message.content}
                )
                # Responses to one round's calls share a single user turn.
                if tool_turn is None:
                    tool_turn = types.Content(role="user", parts=[part])
                    contents.append(tool_turn)
                else:
                    tool_turn.parts.append(part)
        return "\n\n".join(system_parts), contents

    @staticmethod
    def _from_response(response: Any) -> ModelResponse:
        calls = tuple(
            ToolCall(name=fc.name, args=dict(fc.args or {}), call_id=getattr(fc, "id", None))
            for fc in (response.function_calls or [])
        )
        texts: list[str] = []
        for candidate in (response.candidates or [])[:1]:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                if getattr(part, "text", None):
                    texts.append(part.text)
        return ModelResponse(content="".join(texts), tool_calls=calls)


def create_client(config: FrozenConfig) -> Any:
    """Build a ``google.genai.Client`` from the configured API key."""
    if not config.api_key:
        raise ConfigurationError(
            "The Gemini client needs an API key (DIRECTOR_API_KEY or GEMINI_API_KEY)"
        )
    from google import genai

    return genai.Client(api_key=config.api_key)
