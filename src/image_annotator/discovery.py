"""Recursive discovery of JPEG files under a root directory."""

import os
from pathlib import Path

from loguru import logger


# .jpeg and .jfif are deliberately not listed; see DESIGN.md.
IMAGE_EXTENSIONS = frozenset({".jpg", ".jpe", ".jif", ".jfi"})


class DirectoryNotFoundError(FileNotFoundError):
    """The root directory of a run does not exist or is not a directory."""


def _log_unreadable(error: OSError) -> None:
    logger.warning("directory_unreadable", path=error.filename, error=error.strerror or str(error))


def is_image_file(path: Path) -> bool:
    """
    Return True when the file extension is on the allowlist (case insensitive).

    Examples:
        >>> is_image_file(Path("IMG_0001.JPG"))
        True
        >>> is_image_file(Path("scan.jpeg"))
        False

    """
    return path.suffix.lower() in IMAGE_EXTENSIONS


def discover(root: Path) -> list[Path]:
    """
    Collect every image file below root, at any depth.

    Subdirectories that cannot be listed are logged and skipped; the walk carries on
    with their siblings. Results keep the order in which the filesystem enumerates them.

    Raises:
        DirectoryNotFoundError: root is missing or not a directory.

    """
    if not root.is_dir():
        raise DirectoryNotFoundError(str(root))

    found: list[Path] = []
    for dirpath, _, filenames in os.walk(root, onerror=_log_unreadable):
        found.extend(
            Path(dirpath) / name for name in filenames if is_image_file(Path(name))
        )

    logger.info("image_files_discovered", root=str(root), count=len(found))
    return found
