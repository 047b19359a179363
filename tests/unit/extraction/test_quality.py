"""Key-term overlap heuristics."""

import pytest

from storyboard_director.extraction.quality import (
    extract_key_terms,
    preservation_ratio,
    word_overlap,
)

pytestmark = pytest.mark.unit


def test_extract_key_terms_drops_stopwords_and_short_words():
    assert extract_key_terms("The sunset over the ocean is red") == {
        "sunset",
        "ocean",
        "red",
    }


def test_preservation_ratio():
    original = "sunset ocean clouds"
    assert preservation_ratio(original, "a sunset over the ocean") == pytest.approx(2 / 3)
    assert preservation_ratio(original, "") == 0.0
    assert preservation_ratio("the and of", "anything") == 0.0


def test_word_overlap_is_jaccard():
    assert word_overlap("a b c", "a b d") == pytest.approx(2 / 4)
    assert word_overlap("", "") == 0.0
