"""Token-budgeted text chunking.

Long input is split into chunks whose phoneme token count fits the engine's
context. Sentences are packed greedily; a sentence that alone exceeds the
budget is packed word by word instead. Words are never split, so a single
word whose phonemes exceed the budget becomes its own oversized chunk.
"""

from __future__ import annotations

import logging
import re

from koko_core.constants import DEFAULT_LANGUAGE, MAX_CHUNK_TOKENS
from koko_data import g2p
from koko_data.g2p import PhonemizeFn
from koko_data.text_tokenizer import Tokenizer

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT = re.compile(r"[.?!;]")


def split_sentences(text: str) -> list[str]:
    """Split on ``. ? ! ;``, drop empty pieces and end each with a period."""
    return [f"{s.strip()}." for s in _SENTENCE_SPLIT.split(text) if s.strip()]


class ChunkPlanner:
    """Plans chunks for one language within a token budget.

    Args:
        phonemize: ``(text, language) -> phonemes`` collaborator.
        tokenizer: Tokenizer used to measure phoneme strings.
        max_tokens: Upper bound on tokens per chunk.
    """

    def __init__(
        self,
        phonemize: PhonemizeFn = g2p.phonemize,
        tokenizer: Tokenizer | None = None,
        max_tokens: int = MAX_CHUNK_TOKENS,
    ) -> None:
        if max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {max_tokens}")
        self._phonemize = phonemize
        self.tokenizer = tokenizer or Tokenizer()
        self.max_tokens = max_tokens

    def token_count(self, text: str, language: str = DEFAULT_LANGUAGE) -> int:
        return self.tokenizer.count(self._phonemize(text, language))

    def plan(self, text: str, language: str = DEFAULT_LANGUAGE) -> list[str]:
        """Return the ordered chunks for *text*. Empty input yields ``[]``."""
        chunks: list[str] = []
        current = ""

        for sentence in split_sentences(text):
            if self.token_count(sentence, language) > self.max_tokens:
                # Keep output in input order before emitting word-level pieces.
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(self._pack_words(sentence, language))
            elif current:
                candidate = f"{current} {sentence}"
                if self.token_count(candidate, language) > self.max_tokens:
                    chunks.append(current)
                    current = sentence
                else:
                    current = candidate
            else:
                current = sentence

        if current:
            chunks.append(current)

        logger.debug("Planned %d chunk(s) from %d characters", len(chunks), len(text))
        return chunks

    def _pack_words(self, sentence: str, language: str) -> list[str]:
        pieces: list[str] = []
        piece = ""
        piece_tokens = 0

        for word in sentence.split():
            candidate = f"{piece} {word}" if piece else word
            tokens = self.token_count(candidate, language)
            if tokens > self.max_tokens:
                if piece:
                    self._emit(pieces, piece, piece_tokens)
                piece = word
                piece_tokens = self.token_count(word, language)
            else:
                piece = candidate
                piece_tokens = tokens

        if piece:
            self._emit(pieces, piece, piece_tokens)
        return pieces

    def _emit(self, pieces: list[str], piece: str, tokens: int) -> None:
        if tokens > self.max_tokens:
            logger.warning(
                "Chunk %r has %d tokens (budget %d); words are not split further",
                piece[:40], tokens, self.max_tokens,
            )
        pieces.append(piece)
