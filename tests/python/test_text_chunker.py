"""Tests for sentence splitting and token-budgeted chunk planning."""

from __future__ import annotations

import logging
import re

import pytest

from koko_core.errors import PhonemizeFailedError
from koko_data.text_chunker import ChunkPlanner, split_sentences
from conftest import echo_phonemize

LONG_TEXT = (
    "The quick brown fox jumps over the lazy dog. Pack my box with five dozen liquor jugs! "
    "How vexingly quick daft zebras jump? Sphinx of black quartz judge my vow; "
    "a very long sentence follows that keeps going with many words so that it cannot "
    "possibly fit inside a small budget and has to be broken apart word by word. End."
)


def _words(text: str) -> list[str]:
    return re.findall(r"[A-Za-z]+", text)


class TestSplitSentences:
    def test_two_sentences(self):
        assert split_sentences("Hello world. This is a test.") == ["Hello world.", "This is a test."]

    def test_terminators_become_periods(self):
        assert split_sentences("What? Yes! fine; ok") == ["What.", "Yes.", "fine.", "ok."]

    def test_empty_pieces_dropped(self):
        assert split_sentences("...  ?! ") == []
        assert split_sentences("") == []


class TestChunkPlanner:
    def test_small_budget_two_chunks(self):
        planner = ChunkPlanner(echo_phonemize, max_tokens=20)
        assert planner.plan("Hello world. This is a test.") == ["Hello world.", "This is a test."]

    def test_large_budget_one_chunk(self):
        planner = ChunkPlanner(echo_phonemize, max_tokens=500)
        assert planner.plan("Hello world. This is a test.") == ["Hello world. This is a test."]

    def test_empty_input(self):
        planner = ChunkPlanner(echo_phonemize)
        assert planner.plan("") == []
        assert planner.plan("   ") == []

    @pytest.mark.parametrize("budget", [8, 16, 30, 64, 500])
    def test_words_preserved_in_order(self, budget):
        planner = ChunkPlanner(echo_phonemize, max_tokens=budget)
        chunks = planner.plan(LONG_TEXT)
        assert _words(" ".join(chunks)) == _words(LONG_TEXT)

    @pytest.mark.parametrize("budget", [8, 16, 30, 64])
    def test_chunks_within_budget_unless_single_word(self, budget):
        planner = ChunkPlanner(echo_phonemize, max_tokens=budget)
        for chunk in planner.plan(LONG_TEXT):
            if len(chunk.split()) > 1:
                assert planner.token_count(chunk) <= budget

    def test_oversized_sentence_keeps_input_order(self):
        planner = ChunkPlanner(echo_phonemize, max_tokens=20)
        text = "Short one. aaaa bbbb cccc dddd eeee ffff gggg. Tail."
        assert planner.plan(text) == [
            "Short one.",
            "aaaa bbbb cccc dddd",
            "eeee ffff gggg.",
            "Tail.",
        ]

    def test_oversized_word_is_its_own_chunk(self, caplog):
        planner = ChunkPlanner(echo_phonemize, max_tokens=5)
        with caplog.at_level(logging.WARNING, logger="koko_data.text_chunker"):
            chunks = planner.plan("supercalifragilistic is long.")
        assert chunks == ["supercalifragilistic", "is", "long."]
        assert "supercalifragilistic" in caplog.text

    def test_phonemizer_failure_propagates(self):
        def failing(text: str, language: str) -> str:
            raise PhonemizeFailedError(text, language, RuntimeError("no voice"))

        planner = ChunkPlanner(failing)
        with pytest.raises(PhonemizeFailedError):
            planner.plan("Hello.", "xx")

    def test_language_is_forwarded(self):
        seen: list[str] = []

        def recording(text: str, language: str) -> str:
            seen.append(language)
            return text

        ChunkPlanner(recording).plan("Bonjour. Salut.", "fr-fr")
        assert seen and set(seen) == {"fr-fr"}

    def test_invalid_budget(self):
        with pytest.raises(ValueError):
            ChunkPlanner(echo_phonemize, max_tokens=0)
