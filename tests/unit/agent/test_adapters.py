"""Model adapters: the scripted replay adapter and the google-genai mapping."""

from types import SimpleNamespace

from google.genai import types
import pytest

from storyboard_director.agent.adapters import (
    GoogleGenAIAdapter,
    ModelAdapter,
    ScriptedModelAdapter,
)
from storyboard_director.agent.tools import DirectorToolbox
from storyboard_director.core.types import Message, ModelResponse, ToolCall
from storyboard_director.exceptions import ConfigurationError

pytestmark = pytest.mark.unit

HISTORY = (Message(role="user", content="hi"),)


class TestScriptedModelAdapter:
    @pytest.mark.asyncio
    async def test_replays_steps_in_order(self):
        reply = ModelResponse(tool_calls=(ToolCall("critique_storyboard"),))
        adapter = ScriptedModelAdapter(
            [reply, "plain text", lambda history: ModelResponse(content=str(len(history)))]
        )

        assert await adapter.invoke(HISTORY) is reply
        assert await adapter.invoke(HISTORY) == ModelResponse(content="plain text")
        assert (await adapter.invoke(HISTORY)).content == "1"
        assert adapter.remaining == 0
        assert await adapter.invoke(HISTORY) == ModelResponse()
        assert len(adapter.calls) == 4

    @pytest.mark.asyncio
    async def test_raises_scripted_exceptions(self):
        adapter = ScriptedModelAdapter([TimeoutError("slow")])
        with pytest.raises(TimeoutError, match="slow"):
            await adapter.invoke(HISTORY)

    def test_satisfies_the_protocol(self):
        assert isinstance(ScriptedModelAdapter(), ModelAdapter)


class FakeModels:
    def __init__(self, response):
        self.response = response
        self.requests = []

    async def generate_content(self, **kwargs):
        self.requests.append(kwargs)
        return self.response


def fake_client(response):
    models = FakeModels(response)
    return SimpleNamespace(aio=SimpleNamespace(models=models)), models


def fake_response(*texts, calls=()):
    parts = [SimpleNamespace(text=t) for t in texts]
    return SimpleNamespace(
        function_calls=list(calls) or None,
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))],
    )


class TestGoogleGenAIAdapter:
    def test_requires_a_key_without_client(self, director_config):
        with pytest.raises(ConfigurationError, match="API key"):
            GoogleGenAIAdapter(director_config)

    def test_history_mapping(self):
        history = [
            Message(role="system", content="You are a director."),
            Message(role="user", content="Make a storyboard."),
            Message(
                role="assistant",
                content="",
                tool_calls=(
                    ToolCall("analyze_content", {"content": "la"}, call_id="a1"),
                    ToolCall("search_visual_references", {"query": "noir"}),
                ),
            ),
            Message(role="tool", content="{}", tool_name="analyze_content"),
            Message(role="tool", content="{}", tool_name="search_visual_references"),
            Message(role="assistant", content=""),
            Message(role="user", content="Continue."),
        ]

        system, contents = GoogleGenAIAdapter._to_contents(history, types)

        assert system == "You are a director."
        assert [c.role for c in contents] == ["user", "model", "user", "user"]
        calls = [p.function_call for p in contents[1].parts]
        assert [c.name for c in calls] == ["analyze_content", "search_visual_references"]
        assert calls[0].args == {"content": "la"}
        responses = [p.function_response for p in contents[2].parts]
        assert [r.name for r in responses] == ["analyze_content", "search_visual_references"]
        assert responses[0].response == {"result": "{}"}
        assert contents[3].parts[0].text == "Continue."

    def test_response_mapping(self):
        response = fake_response(
            "Hello ",
            None,
            "world",
            calls=[SimpleNamespace(name="critique_storyboard", args={"x": 1}, id="c1")],
        )

        mapped = GoogleGenAIAdapter._from_response(response)

        assert mapped.content == "Hello world"
        (tool_call,) = mapped.tool_calls
        assert tool_call.name == "critique_storyboard"
        assert dict(tool_call.args) == {"x": 1}
        assert tool_call.call_id == "c1"

    def test_empty_response(self):
        mapped = GoogleGenAIAdapter._from_response(
            SimpleNamespace(function_calls=None, candidates=None)
        )
        assert mapped == ModelResponse()

    @pytest.mark.asyncio
    async def test_invoke_sends_model_tools_and_system_prompt(self, director_config):
        client, models = fake_client(fake_response("done"))
        adapter = GoogleGenAIAdapter(
            director_config, DirectorToolbox().specs, client=client
        )

        reply = await adapter.invoke(
            [
                Message(role="system", content="Direct."),
                Message(role="user", content="Go."),
            ]
        )

        assert reply.content == "done"
        (request,) = models.requests
        assert request["model"] == director_config.model
        assert len(request["contents"]) == 1
        config = request["config"]
        assert config.system_instruction == "Direct."
        assert config.automatic_function_calling.disable is True
        declared = [d.name for d in config.tools[0].function_declarations]
        assert "critique_storyboard" in declared
