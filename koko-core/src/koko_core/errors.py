"""Error taxonomy shared by the synthesis pipeline, CLI and HTTP server.

Every error carries an HTTP ``status_code`` so the server can map it to a
response without a lookup table.
"""

from __future__ import annotations

from pathlib import Path


class KokoError(Exception):
    """Base class for all synthesis errors."""

    status_code: int = 500


class UnknownStyleError(KokoError):
    """A single style name is not present in the style table."""

    status_code = 400

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown style: {name!r}")
        self.name = name


class StyleDataMissingError(KokoError):
    """The style data file could not be read, so no style can be resolved."""

    status_code = 503

    def __init__(self, path: str | Path, reason: str = "") -> None:
        msg = f"Style data unavailable: {path}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.path = Path(path)
        self.reason = reason


class PhonemizeFailedError(KokoError):
    """The phonemizer rejected the text or the language code."""

    status_code = 400

    def __init__(self, text: str, language: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Phonemization failed for language={language!r}: {cause}")
        self.text = text
        self.language = language
        self.cause = cause


class ChunkInferenceFailedError(KokoError):
    """The inference engine failed on one chunk of a request."""

    status_code = 500

    def __init__(self, chunk_text: str, cause: BaseException) -> None:
        super().__init__(f"Inference failed for chunk {chunk_text!r}: {cause}")
        self.chunk_text = chunk_text
        self.cause = cause


class ModelLoadFailedError(KokoError):
    """An inference session could not be created or the model fetched."""

    status_code = 503

    def __init__(self, model_path: str | Path, cause: BaseException | str) -> None:
        super().__init__(f"Failed to load model {model_path}: {cause}")
        self.model_path = Path(model_path)
        self.cause = cause
