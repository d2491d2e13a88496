"""
Model file cache for the MediaPipe Tasks hand landmarker.

The Tasks API needs a ``.task`` model on disk; it is fetched once into the
user cache directory and reused afterwards.
"""

import os
import sys
import time
import urllib.request
from pathlib import Path
from typing import Optional

from .logger import get_logger

logger = get_logger("ModelManager")

HAND_LANDMARKER_URL = "https://storage.googleapis.com/mediapipe-models/hand_landmarker/hand_landmarker/float16/latest/hand_landmarker.task"
HAND_LANDMARKER_FILENAME = "hand_landmarker.task"

DOWNLOAD_TIMEOUT = 120  # seconds
DOWNLOAD_CHUNK_SIZE = 8192  # bytes
MAX_RETRIES = 3
RETRY_DELAY = 2  # seconds


class ModelDownloadError(RuntimeError):
    """Raised when the model cannot be fetched."""
    pass


def get_model_cache_dir() -> Path:
    """
    Get the model cache directory.

    Returns:
        Path to the cache directory, created if needed.
    """
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA", os.path.expanduser("~"))
    else:
        base = os.environ.get("XDG_CACHE_HOME", os.path.expanduser("~/.cache"))

    cache_dir = Path(base) / "ChefHelper" / "mediapipe_models"
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def ensure_hand_landmarker_model(
    cache_dir: Optional[Path] = None,
    url: str = HAND_LANDMARKER_URL,
    retries: int = MAX_RETRIES
) -> str:
    """
    Return the path of the hand landmarker model, downloading it if missing.

    Args:
        cache_dir: Directory holding the model (defaults to the user cache).
        url: Download location.
        retries: Download attempts before giving up.

    Returns:
        Path to the model file.

    Raises:
        ModelDownloadError: If every attempt fails.
    """
    model_path = (cache_dir or get_model_cache_dir()) / HAND_LANDMARKER_FILENAME

    if model_path.exists():
        logger.debug(f"Using cached model: {model_path}")
        return str(model_path)

    logger.info(f"Downloading hand landmarker model from {url}")

    for attempt in range(1, retries + 1):
        try:
            _download(url, model_path)
            logger.info(f"Model downloaded: {model_path}")
            return str(model_path)
        except OSError as e:
            logger.warning(f"Download attempt {attempt}/{retries} failed: {e}")
            if attempt < retries:
                time.sleep(RETRY_DELAY * attempt)

    raise ModelDownloadError(
        f"Failed to download MediaPipe model after {retries} attempts. "
        f"Check your internet connection and try again."
    )


def _download(url: str, dest_path: Path) -> None:
    """Download ``url`` to ``dest_path`` through a temporary file."""
    temp_path = dest_path.with_suffix(".tmp")
    request = urllib.request.Request(url, headers={"User-Agent": "ChefHelper/1.0"})

    try:
        with urllib.request.urlopen(request, timeout=DOWNLOAD_TIMEOUT) as response:
            with open(temp_path, "wb") as f:
                while True:
                    chunk = response.read(DOWNLOAD_CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
        temp_path.replace(dest_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
