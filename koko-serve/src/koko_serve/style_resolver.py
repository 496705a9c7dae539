"""Style table loading and style specification resolution.

A style specification is either a bare style name (``af_sarah``) or a blend
``name1.w1+name2.w2+...`` where each weight is read in tenths (``4`` -> 0.4).
Blends are plain weighted sums; weights are not renormalized.

Unknown names behave differently in the two forms: a bare name raises
:class:`UnknownStyleError`, while an unknown name inside a blend contributes
nothing. Callers may rely on this, so it is kept as-is and logged.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterator, Mapping
from pathlib import Path

import numpy as np

from koko_core.constants import STYLE_DIM
from koko_core.errors import StyleDataMissingError, UnknownStyleError

logger = logging.getLogger(__name__)

_BLEND_SEPARATOR = "+"
_WEIGHT_SCALE = np.float32(0.1)
_WEIGHT_PATTERN = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def parse_style_spec(spec: str) -> list[tuple[str, float]]:
    """Split a blend spec into ``(name, weight)`` pairs.

    Segments without a ``.`` or with a non-numeric weight are skipped.
    """
    parts: list[tuple[str, float]] = []
    for segment in spec.split(_BLEND_SEPARATOR):
        name, sep, portion = segment.partition(".")
        if not sep or not _WEIGHT_PATTERN.fullmatch(portion):
            logger.debug("Skipping style segment without a numeric weight: %r", segment)
            continue
        parts.append((name, float(np.float32(portion) * _WEIGHT_SCALE)))
    return parts


class StyleTable:
    """Read-only mapping of style name -> ``[positions, 1, STYLE_DIM]`` float32.

    Only position 0 is used for conditioning. Build one at startup and share
    it between requests.

    Args:
        styles: Name -> nested array.
        source: File the table was read from (for messages).
        missing_reason: Set when the data file could not be read; every
            resolution then fails with :class:`StyleDataMissingError`.
    """

    def __init__(
        self,
        styles: Mapping[str, np.ndarray] | None = None,
        source: Path | None = None,
        missing_reason: str | None = None,
    ) -> None:
        table: dict[str, np.ndarray] = {}
        for name, value in (styles or {}).items():
            arr = _as_style_array(value)
            if arr is None:
                logger.warning("Style %r has an unexpected shape; skipped", name)
                continue
            table[name] = arr
        self._styles = table
        self.source = source
        self.missing_reason = missing_reason

    @classmethod
    def load(cls, path: str | Path) -> StyleTable:
        """Load styles from a JSON document or a NumPy archive (.npz / .bin).

        A missing or unreadable file gives an empty table instead of raising.
        """
        path = Path(path)
        if not path.exists():
            logger.warning("Style data file not found: %s", path)
            return cls(source=path, missing_reason="file not found")

        try:
            if path.suffix.lower() == ".json":
                with open(path, encoding="utf-8") as f:
                    raw = json.load(f)
                if not isinstance(raw, dict):
                    raise ValueError("expected a JSON object of style name -> array")
                styles = dict(raw)
            else:
                archive = np.load(path)
                if not isinstance(archive, np.lib.npyio.NpzFile):
                    raise ValueError("expected an .npz archive of style name -> array")
                with archive:
                    styles = {name: archive[name] for name in archive.files}
        except (OSError, ValueError, EOFError) as e:
            logger.warning("Could not read style data %s: %s", path, e)
            return cls(source=path, missing_reason=str(e))

        table = cls(styles, source=path)
        logger.info("voice styles loaded: %d", len(table))
        logger.debug("styles: %s", ", ".join(table.names()))
        return table

    def __contains__(self, name: object) -> bool:
        return name in self._styles

    def __len__(self) -> int:
        return len(self._styles)

    def __iter__(self) -> Iterator[str]:
        return iter(self._styles)

    def names(self) -> list[str]:
        return sorted(self._styles)

    @property
    def available(self) -> bool:
        return self.missing_reason is None

    def vector(self, name: str) -> np.ndarray:
        """The ``[STYLE_DIM]`` conditioning vector for *name*."""
        self._check_available()
        style = self._styles.get(name)
        if style is None:
            raise UnknownStyleError(name)
        return style[0, 0]

    def resolve(self, spec: str) -> np.ndarray:
        """Resolve *spec* to a ``[1, STYLE_DIM]`` float32 vector."""
        self._check_available()

        if _BLEND_SEPARATOR not in spec:
            return self.vector(spec).reshape(1, STYLE_DIM).copy()

        parts = parse_style_spec(spec)
        logger.debug("Style blend %r -> %s", spec, parts)
        blended = np.zeros((1, STYLE_DIM), dtype=np.float32)
        for name, weight in parts:
            style = self._styles.get(name)
            if style is None:
                logger.warning("Style %r in blend %r not found; it contributes nothing", name, spec)
                continue
            blended[0] += style[0, 0] * np.float32(weight)
        return blended

    def _check_available(self) -> None:
        if self.missing_reason is not None:
            raise StyleDataMissingError(self.source or "<unset>", self.missing_reason)


def _as_style_array(value: object) -> np.ndarray | None:
    try:
        arr = np.array(value, dtype=np.float32)
    except (TypeError, ValueError):
        return None
    if arr.size == 0 or arr.size % STYLE_DIM != 0:
        return None
    arr = arr.reshape(-1, 1, STYLE_DIM)
    arr.flags.writeable = False
    return arr
