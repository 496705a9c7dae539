"""Grapheme-to-phoneme frontend backed by ``phonemizer`` (espeak-ng).

Returns an IPA string with stress marks and punctuation preserved, and
language-switch flags removed. The string is fed to
:class:`koko_data.text_tokenizer.Tokenizer`.

One espeak backend is created per language code and reused. espeak keeps
global state, so calls are serialized with a module lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from koko_core.constants import DEFAULT_LANGUAGE
from koko_core.errors import PhonemizeFailedError

logger = logging.getLogger(__name__)

PhonemizeFn = Callable[[str, str], str]

_lock = threading.Lock()
_backends: dict[str, object] = {}


def _get_backend(language: str) -> object:
    """Create (once) the espeak backend for *language*. Caller holds ``_lock``."""
    backend = _backends.get(language)
    if backend is not None:
        return backend

    try:
        from phonemizer.backend import EspeakBackend
    except ImportError:
        raise ImportError(
            "phonemizer is required for the G2P frontend. "
            "Install with: pip install phonemizer (and the espeak-ng system package)"
        )

    backend = EspeakBackend(
        language,
        preserve_punctuation=True,
        with_stress=True,
        language_switch="remove-flags",
        words_mismatch="ignore",
    )
    logger.debug("Created espeak backend for language=%s", language)
    _backends[language] = backend
    return backend


def phonemize(text: str, language: str = DEFAULT_LANGUAGE) -> str:
    """Convert *text* to an IPA phoneme string.

    Args:
        text: Raw input text.
        language: espeak-ng language code (``en-us``, ``fr-fr``, ``de`` ...).

    Raises:
        PhonemizeFailedError: unsupported language or backend failure.
    """
    if not text.strip():
        return ""

    try:
        with _lock:
            backend = _get_backend(language)
            result = backend.phonemize([text], strip=True)
    except ImportError:
        raise
    except Exception as e:  # backend-dependent
        logger.debug("phonemizer failed for language=%s: %s", language, e)
        raise PhonemizeFailedError(text, language, e) from e

    return result[0] if result else ""
