"""Tests for orchestration.hallucination."""
import pytest

from voiceturn.orchestration.hallucination import DEFAULT_HALLUCINATIONS, HallucinationFilter


class TestHallucinationFilter:
    """Test HallucinationFilter."""

    @pytest.fixture
    def hallucinations(self):
        return HallucinationFilter()

    @pytest.mark.parametrize("text", ["thank you", "Thank You", "  bye  ", "UM", "mm-hmm"])
    def test_denylist_match(self, hallucinations, text):
        assert hallucinations.is_hallucination(text) is True

    @pytest.mark.parametrize("text", ["Thank you.", "Bye!", "okay?", "um,", "hmm..."])
    def test_trailing_punctuation_ignored(self, hallucinations, text):
        assert hallucinations.is_hallucination(text) is True

    def test_ellipsis_matches_as_written(self, hallucinations):
        assert hallucinations.is_hallucination("...") is True
        assert hallucinations.is_hallucination(" ... ") is True

    @pytest.mark.parametrize("text", [
        "thank you for listening to my story",
        "I want to save a memory",
        "you know what I mean",
        "",
    ])
    def test_real_speech_passes(self, hallucinations, text):
        assert hallucinations.is_hallucination(text) is False

    def test_accept_returns_trimmed_text(self, hallucinations):
        assert hallucinations.accept("  Hello there  ") == "Hello there"
        assert hallucinations.accept("Thanks!") is None

    def test_custom_phrases(self):
        custom = HallucinationFilter(["subtitles by the community"])

        assert custom.is_hallucination("Subtitles by the community.") is True
        assert custom.is_hallucination("thank you") is False

    def test_default_list(self):
        assert len(DEFAULT_HALLUCINATIONS) == 14
        assert HallucinationFilter().phrases == frozenset(DEFAULT_HALLUCINATIONS)
