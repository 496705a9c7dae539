"""Fetch the acoustic model on first use, with resume support."""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path

import requests

from koko_core.constants import MODEL_URL
from koko_core.errors import ModelLoadFailedError

logger = logging.getLogger(__name__)

_REPORT_INTERVAL_SEC = 5.0


def download_with_resume(
    url: str,
    output_path: str | Path,
    chunk_size: int = 1024 * 1024,
    timeout: float = 30.0,
) -> Path:
    """Download *url* to *output_path* through ``<name>.partial``.

    An existing partial file is resumed with an HTTP range request. The file
    only appears at *output_path* once the transfer completes.

    Raises:
        ModelLoadFailedError: network, HTTP or filesystem failure. The
            partial file is kept so a later call can resume.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.with_name(output_path.name + ".partial")

    resume_pos = temp_path.stat().st_size if temp_path.exists() else 0
    headers = {"Range": f"bytes={resume_pos}-"} if resume_pos > 0 else {}
    if resume_pos:
        logger.info("Resuming download from %.0f MB", resume_pos / (1024 * 1024))

    try:
        with requests.get(url, headers=headers, stream=True, timeout=timeout) as resp:
            if resp.status_code == 416:
                # Server has nothing past resume_pos: the partial file is complete.
                os.replace(temp_path, output_path)
                return output_path
            resp.raise_for_status()

            if resp.status_code == 206:
                total_size = resume_pos + int(resp.headers.get("Content-Length", 0))
                mode = "ab"
            else:
                total_size = int(resp.headers.get("Content-Length", 0))
                resume_pos = 0
                mode = "wb"

            downloaded = resume_pos
            last_report = time.monotonic()
            with open(temp_path, mode) as f:
                for chunk in resp.iter_content(chunk_size=chunk_size):
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded += len(chunk)
                    now = time.monotonic()
                    if now - last_report >= _REPORT_INTERVAL_SEC:
                        pct = downloaded / total_size * 100 if total_size > 0 else 0
                        logger.info("  %.1f MB (%.1f%%)", downloaded / (1024 * 1024), pct)
                        last_report = now
    except (requests.RequestException, OSError) as e:
        logger.error("Download of %s failed: %s", url, e)
        raise ModelLoadFailedError(output_path, e) from e

    if total_size and downloaded < total_size:
        raise ModelLoadFailedError(output_path, f"incomplete download: {downloaded} < {total_size} bytes")

    os.replace(temp_path, output_path)
    logger.info("Downloaded %s (%.1f MB)", output_path, downloaded / (1024 * 1024))
    return output_path


def ensure_model(model_path: str | Path, url: str = MODEL_URL) -> Path:
    """Return *model_path*, downloading it from *url* first if it is missing."""
    model_path = Path(model_path)
    if model_path.exists():
        return model_path
    logger.info("Model not found at %s, downloading from %s", model_path, url)
    return download_with_resume(url, model_path)
