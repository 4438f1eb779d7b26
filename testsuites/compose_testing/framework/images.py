"""
Image availability for the compose tests.

Pulls happen once per image per machine: pytest-xdist workers serialise on a
file lock, and whoever gets the lock second finds the image already present.
"""

from __future__ import annotations

import re
import subprocess
import tempfile
from pathlib import Path
from typing import Optional

from filelock import FileLock
from loguru import logger


LOCK_DIR = Path(tempfile.gettempdir()) / "neo4j_compose_locks"

# docker pull of an enterprise image on a cold runner
PULL_TIMEOUT = 900


class ImagePullError(Exception):
    """Raised when the image under test cannot be pulled."""
    pass


def docker_available() -> bool:
    """True when the docker CLI is installed and the daemon answers."""
    try:
        subprocess.run(
            ["docker", "info"],
            capture_output=True,
            check=True,
            timeout=30,
        )
        return True
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return False


def image_present(image: str) -> bool:
    result = subprocess.run(
        ["docker", "image", "inspect", image],
        capture_output=True,
        text=True,
    )
    return result.returncode == 0


def _lock_path(image: str, lock_dir: Path) -> Path:
    return lock_dir / (re.sub(r"[^A-Za-z0-9_.-]+", "_", image) + ".lock")


def ensure_image(image: str, always_pull: bool = False, lock_dir: Optional[Path] = None) -> None:
    """
    Make sure image is available locally.

    Args:
        image: Image reference
        always_pull: Pull even when a local copy exists
        lock_dir: Directory for the cross-process lock file

    Raises:
        ImagePullError: docker pull failed
    """
    lock_dir = lock_dir or LOCK_DIR
    lock_dir.mkdir(parents=True, exist_ok=True)

    with FileLock(str(_lock_path(image, lock_dir))):
        if not always_pull and image_present(image):
            logger.debug(f"Image already present: {image}")
            return

        logger.info(f"Pulling image {image}")
        try:
            result = subprocess.run(
                ["docker", "pull", image],
                capture_output=True,
                text=True,
                timeout=PULL_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise ImagePullError(f"Timed out pulling {image}") from e

        if result.returncode != 0:
            # A locally built image that exists only here is still usable
            if image_present(image):
                logger.warning(f"Pull of {image} failed, using local copy: {result.stderr.strip()}")
                return
            raise ImagePullError(f"docker pull {image} failed: {result.stderr.strip()}")


__all__ = [
    "ImagePullError",
    "docker_available",
    "ensure_image",
    "image_present",
]
