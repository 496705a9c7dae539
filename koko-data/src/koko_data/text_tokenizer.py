"""Phoneme tokenizer for the Kokoro acoustic model.

The symbol table is the canonical concatenation

    pad + punctuation + Latin letters + IPA letters (incl. stress/length marks)

and each symbol's ID is its position in that string. The IPA block contains
the apostrophe twice; the later position wins, as in the reference vocabulary.

Characters outside the table are dropped, never mapped to a placeholder.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

_PAD = "$"
_PUNCTUATION = ';:,.!?¡¿—…"«»“” '
_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
_LETTERS_IPA = (
    "ɑɐɒæɓʙβɔɕçɗɖðʤəɘɚɛɜɝɞɟʄɡɠɢʛɦɧħɥʜɨɪʝɭɬɫɮʟɱɯɰŋɳɲɴøɵɸθœɶʘɹɺɾɻʀʁɽʂʃʈʧʉʊʋⱱʌɣɤʍχʎʏʑʐʒʔʡʕʢǀǁǂǃ"
    "ˈˌːˑʼʴʰʱʲʷˠˤ˞↓↑→↗↘'̩'ᵻ"
)

SYMBOLS = _PAD + _PUNCTUATION + _LETTERS + _LETTERS_IPA


class SymbolTable:
    """Immutable character → token ID mapping."""

    def __init__(self, symbols: Iterable[str] = SYMBOLS) -> None:
        ids: dict[str, int] = {}
        for idx, ch in enumerate(symbols):
            ids[ch] = idx
        self._ids: Mapping[str, int] = MappingProxyType(ids)

    def __contains__(self, ch: object) -> bool:
        return ch in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __getitem__(self, ch: str) -> int:
        return self._ids[ch]

    def get(self, ch: str) -> int | None:
        return self._ids.get(ch)

    @property
    def ids(self) -> Mapping[str, int]:
        return self._ids


DEFAULT_SYMBOL_TABLE = SymbolTable()


class Tokenizer:
    """Maps a phoneme string to token IDs.

    Pure and O(len(phonemes)); safe to share across threads.
    """

    def __init__(self, table: SymbolTable = DEFAULT_SYMBOL_TABLE) -> None:
        self.table = table

    def encode(self, phonemes: str) -> list[int]:
        ids = self.table.ids
        return [ids[ch] for ch in phonemes if ch in ids]

    def count(self, phonemes: str) -> int:
        ids = self.table.ids
        return sum(1 for ch in phonemes if ch in ids)

    def filter(self, phonemes: str) -> str:
        """Return *phonemes* with every unknown character removed."""
        ids = self.table.ids
        return "".join(ch for ch in phonemes if ch in ids)


def tokenize(phonemes: str) -> list[int]:
    """Encode *phonemes* with the default symbol table."""
    return Tokenizer().encode(phonemes)
