"""DirectorToolbox, critique scoring and visual references."""

import json

import pytest

from storyboard_director.agent.tools import (
    ANALYZE_AND_GENERATE_STORYBOARD,
    CRITIQUE_STORYBOARD,
    REFINE_PROMPT,
    DirectorToolbox,
    critique_storyboard,
    get_visual_references,
)
from storyboard_director.exceptions import ToolInvocationError

pytestmark = pytest.mark.unit

SHORT = "A short scene description"


class TestCritique:
    def test_complete_varied_storyboard_scores_full_marks(self, rich_storyboard):
        critique = critique_storyboard(rich_storyboard)

        assert critique["overallScore"] == 100
        assert critique["promptCount"] == 10
        assert critique["issues"] == []
        assert critique["recommendations"] == []
        assert len(critique["strengths"]) == 2

    def test_too_few_prompts(self, storyboard_factory):
        critique = critique_storyboard(storyboard_factory(count=5))

        assert critique["overallScore"] == 85
        assert critique["issues"][0]["code"] == "too_few_prompts"

    def test_word_count_out_of_range(self, rich_storyboard):
        rich_storyboard["prompts"][3]["text"] = SHORT

        critique = critique_storyboard(rich_storyboard)

        assert critique["overallScore"] == 98
        assert [i["code"] for i in critique["issues"]] == ["word_count"]
        assert critique["recommendations"] == ["Refine prompts at indices: 3"]

    def test_missing_subject(self, rich_storyboard, storyboard_factory):
        assert critique_storyboard(rich_storyboard, global_subject="The violinist")[
            "overallScore"
        ] == 80

        with_subject = storyboard_factory(subject="The violinist")
        assert critique_storyboard(with_subject, global_subject="the VIOLINIST")[
            "overallScore"
        ] == 100

    def test_near_duplicate(self, rich_storyboard):
        rich_storyboard["prompts"][1]["text"] = rich_storyboard["prompts"][0]["text"]

        critique = critique_storyboard(rich_storyboard)

        assert critique["overallScore"] == 95
        assert critique["issues"][0]["promptIndex"] == 1

    def test_mood_variety(self, storyboard_factory):
        assert critique_storyboard(storyboard_factory(moods=("calm",)))["overallScore"] == 90
        three = critique_storyboard(storyboard_factory(moods=("a", "b", "c")))
        assert three["overallScore"] == 100
        assert len(three["strengths"]) == 1

    def test_penalties_accumulate(self):
        prompts = [{"text": SHORT, "mood": "calm"} for _ in range(7)]
        critique = critique_storyboard({"prompts": prompts})
        # 100 - 15 - 7*2 - 6*5 - 10
        assert critique["overallScore"] == 31

        assert critique_storyboard({"prompts": "nope"})["overallScore"] == 75


class TestVisualReferences:
    def test_mood_and_style(self):
        refs = get_visual_references("melancholic rainy night", "Watercolor")

        assert refs["mood"] == "melancholic"
        assert refs["composition"] == ["soft edges", "color bleeding", "organic shapes"]
        assert refs["lighting"][0] == "blue hour"
        assert set(refs) == {"mood", "cameraAngles", "lighting", "composition", "colorPalette"}

    def test_mood_prefix_match(self):
        assert get_visual_references("a myste vibe", "anime")["mood"] == "mysterious"

    def test_defaults(self):
        refs = get_visual_references("", "")
        assert refs["mood"] == "energetic"
        assert refs["composition"][0] == "rule of thirds"


class TestToolSpecs:
    def test_declared_tools(self):
        names = {spec.name for spec in DirectorToolbox().specs}
        assert names == {
            "analyze_content",
            "search_visual_references",
            "generate_storyboard",
            "analyze_and_generate_storyboard",
            "refine_prompt",
            "critique_storyboard",
        }

    def test_list_params(self):
        toolbox = DirectorToolbox()
        assert toolbox.list_params(REFINE_PROMPT) == frozenset({"previous_prompts"})
        assert toolbox.list_params("nope") == frozenset()

    def test_sanitize_args_fills_declared_parameters(self):
        spec = next(s for s in DirectorToolbox().specs if s.name == REFINE_PROMPT)
        args = spec.sanitize_args({"prompt_text": "x", "style": None})
        assert args == {
            "prompt_text": "x",
            "style": "",
            "global_subject": "",
            "previous_prompts": [],
        }

    def test_gemini_schema_uses_upper_case_types(self):
        spec = next(s for s in DirectorToolbox().specs if s.name == REFINE_PROMPT)
        schema = spec.gemini_schema()

        assert schema["type"] == "OBJECT"
        assert schema["properties"]["previous_prompts"]["type"] == "ARRAY"
        assert schema["properties"]["previous_prompts"]["items"]["type"] == "STRING"
        assert schema["required"] == ["prompt_text", "style"]
        assert spec.parameters["type"] == "object"


class TestInvoke:
    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        assert await DirectorToolbox().invoke("teleport", {}) == "Unknown tool: teleport"

    @pytest.mark.asyncio
    async def test_model_backed_tools_need_a_collaborator(self):
        with pytest.raises(ToolInvocationError) as excinfo:
            await DirectorToolbox().invoke("analyze_content", {"content": "la la"})

        assert str(excinfo.value) == (
            "Tool 'analyze_content' failed: no storyboard collaborator is configured"
        )
        assert excinfo.value.tool_name == "analyze_content"

    @pytest.mark.asyncio
    async def test_local_tools_work_without_collaborator(self, rich_storyboard):
        toolbox = DirectorToolbox()

        refs = json.loads(
            await toolbox.invoke(
                "search_visual_references", {"query": "romantic", "style": "anime"}
            )
        )
        critique = json.loads(
            await toolbox.invoke(
                CRITIQUE_STORYBOARD, {"storyboard_json": json.dumps(rich_storyboard)}
            )
        )

        assert refs["mood"] == "romantic"
        assert critique["overallScore"] == 100

    @pytest.mark.asyncio
    async def test_critique_unwraps_combined_output(self, rich_storyboard):
        combined = json.dumps({"analysis": {}, "storyboard": rich_storyboard})
        result = await DirectorToolbox().invoke(CRITIQUE_STORYBOARD, {"storyboard_json": combined})
        assert json.loads(result)["promptCount"] == 10

    @pytest.mark.asyncio
    async def test_critique_rejects_missing_json(self):
        with pytest.raises(ToolInvocationError, match="expected a JSON string"):
            await DirectorToolbox().invoke(CRITIQUE_STORYBOARD, {"storyboard_json": None})

    @pytest.mark.asyncio
    async def test_analyze_and_generate(self, collaborator, rich_storyboard):
        toolbox = DirectorToolbox(collaborator)

        result = await toolbox.invoke(
            ANALYZE_AND_GENERATE_STORYBOARD,
            {"content": "line one\nline two", "content_type": None, "style": "noir"},
        )

        payload = json.loads(result)
        assert payload["storyboard"] == rich_storyboard
        assert payload["analysis"]["themes"] == ["loss", "renewal"]
        assert collaborator.calls[0] == ("analyze", ("line one\nline two", "lyrics"))
        assert collaborator.calls[1][1][1:] == ("noir", "", "")

    @pytest.mark.asyncio
    async def test_unparseable_draft_is_passed_through(self, collaborator_factory):
        prose = "Scene 1: a lonely lighthouse in the storm at night"
        toolbox = DirectorToolbox(collaborator_factory(prose))

        result = await toolbox.invoke(
            ANALYZE_AND_GENERATE_STORYBOARD, {"content": "words", "style": "noir"}
        )

        assert result == prose

    @pytest.mark.asyncio
    async def test_draft_string_is_corrected(self, collaborator_factory):
        draft = '{"prompts": [{"text": "A neon street at night", "mood": "noir",},]}'
        toolbox = DirectorToolbox(collaborator_factory(draft))

        result = await toolbox.invoke(
            ANALYZE_AND_GENERATE_STORYBOARD, {"content": "words", "style": "noir"}
        )

        assert json.loads(result)["storyboard"]["prompts"][0]["mood"] == "noir"

    @pytest.mark.asyncio
    async def test_generate_storyboard_requires_object_analysis(self, collaborator):
        toolbox = DirectorToolbox(collaborator)

        with pytest.raises(ToolInvocationError, match="must be a JSON object"):
            await toolbox.invoke(
                "generate_storyboard", {"analysis_json": "[1, 2]", "style": "noir"}
            )
        with pytest.raises(ToolInvocationError, match="not valid JSON"):
            await toolbox.invoke(
                "generate_storyboard", {"analysis_json": "no json here", "style": "noir"}
            )

    @pytest.mark.asyncio
    async def test_generate_storyboard(self, collaborator, rich_storyboard):
        toolbox = DirectorToolbox(collaborator)

        result = await toolbox.invoke(
            "generate_storyboard",
            {
                "analysis_json": '{"themes": ["loss"]}',
                "style": "noir",
                "video_purpose": "music_video",
                "global_subject": "a violinist",
            },
        )

        assert json.loads(result) == rich_storyboard
        assert collaborator.calls[0] == (
            "draft",
            ({"themes": ["loss"]}, "noir", "music_video", "a violinist"),
        )

    @pytest.mark.asyncio
    async def test_refine_prompt(self, collaborator):
        toolbox = DirectorToolbox(collaborator)

        result = json.loads(
            await toolbox.invoke(
                REFINE_PROMPT,
                {"prompt_text": "A quiet pier", "style": "noir", "previous_prompts": None},
            )
        )

        assert result == {
            "refinedPrompt": "A quiet pier, rendered in noir style",
            "wasRefined": True,
        }
        assert collaborator.calls[0] == ("refine", ("A quiet pier", "noir", "", []))
