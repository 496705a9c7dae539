"""Tests for the espeak-backed phonemizer frontend."""

from __future__ import annotations

import pytest

from koko_core.errors import PhonemizeFailedError


class _FakeBackend:
    def __init__(self, result: list[str] | Exception) -> None:
        self.result = result
        self.calls: list[list[str]] = []

    def phonemize(self, texts, strip=False):
        self.calls.append(list(texts))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class TestPhonemize:
    def test_returns_backend_output(self, monkeypatch):
        import koko_data.g2p as g2p

        backend = _FakeBackend(["həlˈoʊ wˈɜːld"])
        monkeypatch.setattr(g2p, "_backends", {"en-us": backend})

        assert g2p.phonemize("Hello world", "en-us") == "həlˈoʊ wˈɜːld"
        assert backend.calls == [["Hello world"]]

    def test_empty_text_skips_backend(self, monkeypatch):
        import koko_data.g2p as g2p

        backend = _FakeBackend(["x"])
        monkeypatch.setattr(g2p, "_backends", {"en-us": backend})

        assert g2p.phonemize("   ", "en-us") == ""
        assert backend.calls == []

    def test_backend_error_is_wrapped(self, monkeypatch):
        import koko_data.g2p as g2p

        monkeypatch.setattr(g2p, "_backends", {"en-us": _FakeBackend(RuntimeError("espeak crashed"))})

        with pytest.raises(PhonemizeFailedError) as excinfo:
            g2p.phonemize("Hello", "en-us")
        assert excinfo.value.language == "en-us"
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_backend_created_once_per_language(self, monkeypatch):
        pytest.importorskip("phonemizer")
        import phonemizer.backend
        import koko_data.g2p as g2p

        created: list[tuple[str, dict]] = []

        class _RecordingBackend(_FakeBackend):
            def __init__(self, language, **kwargs):
                created.append((language, kwargs))
                super().__init__(["ok"])

        monkeypatch.setattr(phonemizer.backend, "EspeakBackend", _RecordingBackend)
        monkeypatch.setattr(g2p, "_backends", {})

        g2p.phonemize("one", "en-gb")
        g2p.phonemize("two", "en-gb")

        assert len(created) == 1
        language, kwargs = created[0]
        assert language == "en-gb"
        assert kwargs["preserve_punctuation"] is True
        assert kwargs["with_stress"] is True

    def test_unsupported_language(self, monkeypatch):
        pytest.importorskip("phonemizer")
        import phonemizer.backend
        import koko_data.g2p as g2p

        def _reject(language, **kwargs):
            raise RuntimeError(f"language \"{language}\" is not supported by the espeak backend")

        monkeypatch.setattr(phonemizer.backend, "EspeakBackend", _reject)
        monkeypatch.setattr(g2p, "_backends", {})

        with pytest.raises(PhonemizeFailedError, match="xx-yy"):
            g2p.phonemize("hello", "xx-yy")
