from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path
from typing import Callable

import requests

from ayah_reels.core.config import settings
from ayah_reels.core.errors import FileOperationError, UpstreamError
from ayah_reels.core.retry import retry_http
from ayah_reels.core.storage import ensure_dir

logger = logging.getLogger(__name__)

DEFAULT_BACKGROUND = "default"


class AssetFetcher:
    def __init__(self, session: requests.Session | None = None, sleep: Callable[[float], None] = time.sleep) -> None:
        self.session = session or requests.Session()
        self._sleep = sleep

    def _download_once(self, url: str, destination: Path) -> None:
        try:
            with self.session.get(url, stream=True, timeout=settings.request_timeout) as response:
                response.raise_for_status()
                with destination.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=settings.download_chunk_size):
                        if chunk:
                            handle.write(chunk)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise

    def download(self, url: str, destination: Path) -> Path:
        ensure_dir(destination.parent)
        try:
            retry_http(lambda: self._download_once(url, destination), label=f"download {url}", sleep=self._sleep)
        except requests.RequestException as exc:
            raise UpstreamError(url, str(exc)) from exc
        except OSError as exc:
            raise FileOperationError("write", str(destination), str(exc)) from exc
        logger.info("Downloaded %s -> %s", url, destination.name)
        return destination

    def copy_fallback_background(self, destination: Path, reason: str) -> Path:
        fallback = settings.fallback_background
        if not fallback.is_file():
            raise FileOperationError("copy", str(fallback), reason)
        ensure_dir(destination.parent)
        try:
            shutil.copyfile(fallback, destination)
        except OSError as exc:
            raise FileOperationError("copy", str(fallback), str(exc)) from exc
        return destination

    def resolve_background(self, source: str | None, destination: Path) -> Path:
        if not source or source == DEFAULT_BACKGROUND:
            logger.info("Using bundled background clip")
            return self.copy_fallback_background(destination, "Fallback video not found")

        try:
            self.download(source, destination)
        except (UpstreamError, FileOperationError) as exc:
            logger.warning("Background download failed, using bundled clip: %s", exc)
            return self.copy_fallback_background(destination, "Background download failed and fallback video not found")
        if not destination.is_file():
            return self.copy_fallback_background(destination, "Background download failed and fallback video not found")
        return destination
