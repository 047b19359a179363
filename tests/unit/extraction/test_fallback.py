"""FallbackProcessor: text mining, notifications and metrics."""

import logging

import pytest

from storyboard_director.core.types import BasicStoryboard, FallbackNotification
from storyboard_director.exceptions import FallbackError
from storyboard_director.extraction.fallback import FallbackProcessor
from storyboard_director.metrics import DirectorMetrics

pytestmark = pytest.mark.unit

SUNSET = "This just describes a sunset over the ocean with dramatic orange clouds."


@pytest.fixture
def processor():
    return FallbackProcessor(DirectorMetrics())


class TestMining:
    def test_single_sentence(self, processor):
        storyboard = processor.process_with_fallback(SUNSET, "no json")

        assert isinstance(storyboard, BasicStoryboard)
        assert len(storyboard.prompts) == 1
        prompt = storyboard.prompts[0]
        assert "sunset" in prompt.text and "ocean" in prompt.text
        assert prompt.source == "fallback"
        assert prompt.timestamp == "00:00"
        assert prompt.mood == "dramatic"
        assert storyboard.metadata.reason == "no json"
        assert storyboard.metadata.preservation_ratio == 1.0
        assert storyboard.metadata.confidence == pytest.approx(0.6)
        assert not storyboard.metadata.low_confidence

    def test_scene_markers_split_and_timestamps_are_sequenced(self, processor):
        text = (
            "Scene 1: A foggy harbor at dawn with boats drifting slowly.\n"
            "Scene 2: Neon city street at night, rain falling on the crowd.\n"
            "Scene 3: ok"
        )
        storyboard = processor.process_with_fallback(text, "r")
        assert [p.text for p in storyboard.prompts] == [
            "A foggy harbor at dawn with boats drifting slowly.",
            "Neon city street at night, rain falling on the crowd.",
        ]
        assert [p.timestamp for p in storyboard.prompts] == ["00:00", "00:15"]

    def test_list_markers(self, processor):
        text = (
            "Ideas:\n"
            "1. A red balloon floats over the city skyline\n"
            "2. A girl dancing in the rain at night\n"
        )
        storyboard = processor.process_with_fallback(text, "r")
        assert len(storyboard.prompts) == 2
        assert storyboard.prompts[0].text.startswith("A red balloon")

    def test_inline_timestamps_are_kept(self, processor):
        text = (
            "[00:30] A wide shot of the stormy ocean at dusk.\n\n"
            "[01:00] Close-up of a candle flame flickering in the dark room."
        )
        storyboard = processor.process_with_fallback(text, "r")
        assert [p.timestamp for p in storyboard.prompts] == ["00:30", "01:00"]
        assert storyboard.prompts[0].text == "A wide shot of the stormy ocean at dusk."

    def test_synthesized_timestamps_follow_inline_ones(self, processor):
        text = (
            "[01:30] A wide shot of the stormy ocean at dusk.\n\n"
            "Close-up of a candle flame flickering in the dark room.\n\n"
            "A lone figure walking down a rainy street at night."
        )
        storyboard = processor.process_with_fallback(text, "r")
        assert [p.timestamp for p in storyboard.prompts] == ["01:30", "01:45", "02:00"]

    def test_mines_strings_from_broken_json(self, processor):
        text = (
            '{"prompts": [{"text": "A lonely lighthouse on a cliff during a violent '
            'storm at night", "mood": "dramatic"'
        )
        storyboard = processor.process_with_fallback(text, "truncated")
        assert storyboard.prompts[0].text == (
            "A lonely lighthouse on a cliff during a violent storm at night"
        )

    def test_max_prompts(self):
        text = "\n".join(f"{i}. A lantern glows on a dark street corner" for i in range(1, 16))
        assert len(FallbackProcessor().process_with_fallback(text, "r").prompts) == 10
        assert len(FallbackProcessor(max_prompts=3).process_with_fallback(text, "r").prompts) == 3

    def test_low_overlap_is_flagged_not_discarded(self, processor):
        text = (
            "The quarterly budget report summarizes revenue growth across departments. "
            "Management approved additional hiring plans. "
            "A red sunset glows over the quiet harbor."
        )
        storyboard = processor.process_with_fallback(text, "r")
        assert storyboard is not None
        assert storyboard.metadata.low_confidence
        assert 0.1 <= storyboard.metadata.confidence < 0.6

    @pytest.mark.parametrize("text", ["", "ok thanks bye", None, 42])
    def test_no_signal_returns_none(self, processor, text):
        assert processor.process_with_fallback(text, "r") is None

    def test_generate_basic_storyboard_raises_without_signal(self, processor):
        with pytest.raises(FallbackError):
            processor.generate_basic_storyboard("ok thanks bye", "r")
        assert processor.generate_basic_storyboard(SUNSET, "r").prompts


class TestNotifications:
    def test_one_notification_per_success(self, processor):
        received: list[FallbackNotification] = []
        processor.register_notification_callback(received.append)
        processor.register_notification_callback(received.append)

        processor.process_with_fallback(SUNSET, "no json")
        processor.process_with_fallback("ok thanks bye", "no json")

        assert len(received) == 1
        notification = received[0]
        assert notification.type == "fallback_used"
        assert notification.reduced_functionality
        assert notification.extracted_prompt_count == 1
        assert "no json" in notification.message

    def test_unregister(self, processor):
        received = []
        processor.register_notification_callback(received.append)
        processor.unregister_notification_callback(received.append)
        processor.unregister_notification_callback(received.append)
        processor.process_with_fallback(SUNSET, "r")
        assert received == []

    def test_throwing_callback_is_isolated(self, processor, caplog):
        received = []

        def explode(_notification):
            raise RuntimeError("observer broke")

        processor.register_notification_callback(explode)
        processor.register_notification_callback(received.append)

        with caplog.at_level(logging.ERROR, logger="storyboard_director"):
            storyboard = processor.process_with_fallback(SUNSET, "r")

        assert storyboard is not None
        assert len(received) == 1
        assert "observer broke" in caplog.text


class TestMetrics:
    def test_every_invocation_counts(self, processor):
        for _ in range(3):
            processor.process_with_fallback(SUNSET, "no json")
        processor.process_with_fallback("nothing", "other")

        metrics = processor.get_metrics()
        assert metrics.total_fallback_usages == 4
        assert metrics.fallback_reasons == {"no json": 3, "other": 1}
        assert metrics.last_fallback_timestamp is not None

        summary = processor.get_metrics_summary()
        assert summary["top_reasons"][0] == {"reason": "no json", "count": 3}

    def test_reset(self, processor):
        processor.process_with_fallback(SUNSET, "r")
        processor.reset_metrics()
        metrics = processor.get_metrics()
        assert metrics.total_fallback_usages == 0
        assert metrics.fallback_reasons == {}
        assert metrics.last_fallback_timestamp is None

    def test_shared_metrics_instance(self):
        shared = DirectorMetrics()
        FallbackProcessor(shared).process_with_fallback(SUNSET, "a")
        FallbackProcessor(shared).process_with_fallback(SUNSET, "a")
        assert shared.get_metrics().fallback_reasons["a"] == 2
