"""Read and merge IPTC caption/keywords embedded in image files, using pyexiftool."""

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from exiftool import ExifToolHelper  # type: ignore[attr-defined]
from exiftool.exceptions import ExifToolExecuteError
from loguru import logger
from pydantic import BaseModel, ConfigDict


CAPTION_TAG = "IPTC:Caption-Abstract"
KEYWORDS_TAG = "IPTC:Keywords"
CHARSET_TAG = "IPTC:CodedCharacterSet"
WRITE_PARAMS = ["-overwrite_original"]


class MetadataError(RuntimeError):
    """Embedded metadata could not be read or written."""


class ImageRecord(BaseModel):
    """Embedded metadata of one image, as read from disk."""

    model_config = ConfigDict(frozen=True)

    path: Path
    size: int
    caption: str | None = None
    keywords: tuple[str, ...] = ()

    @property
    def has_caption(self) -> bool:
        return bool(self.caption)


def _as_values(raw_value: Any, *, keep_blank: bool = False) -> list[str]:  # noqa: ANN401
    """
    Coerce an ExifTool value (scalar or list, numbers included) into strings.

    Blank values are dropped unless `keep_blank` is set.

    Examples:
        >>> _as_values(["sky", "", 30])
        ['sky', '30']
        >>> _as_values(["sky", "", 30], keep_blank=True)
        ['sky', '', '30']
        >>> _as_values("beach")
        ['beach']

    """
    if raw_value is None:
        return []
    values = raw_value if isinstance(raw_value, (list, tuple)) else [raw_value]
    return [str(item) for item in values if keep_blank or str(item).strip()]


def read_metadata(image_path: Path) -> ImageRecord:
    """
    Read the caption and keywords of an image.

    A file without an IPTC block yields a record with no caption and no keywords. Keywords
    are kept exactly as stored, blank entries included, so a merge never drops any.

    Raises:
        MetadataError: ExifTool could not read the file.

    """
    try:
        size = image_path.stat().st_size
        with ExifToolHelper() as et:  # type: ignore[no-untyped-call]
            blocks = et.get_tags(files=[str(image_path)], tags=[CAPTION_TAG, KEYWORDS_TAG])
    except (OSError, ValueError, TypeError, ExifToolExecuteError) as e:
        logger.error("metadata_read_failed", file=str(image_path), error=str(e))
        raise MetadataError(str(e)) from e

    block: dict[str, Any] = blocks[0] if blocks else {}
    captions = _as_values(block.get(CAPTION_TAG))
    record = ImageRecord(
        path=image_path,
        size=size,
        caption=captions[0] if captions else None,
        keywords=tuple(_as_values(block.get(KEYWORDS_TAG), keep_blank=True)),
    )
    logger.debug(
        "metadata_read",
        has_caption=record.has_caption,
        keywords_count=len(record.keywords),
    )
    return record


def has_caption(image_path: Path) -> bool:
    """Return True when the image already carries a caption."""
    return read_metadata(image_path).has_caption


def plan_merge(
    record: ImageRecord,
    description: str,
    keywords: Iterable[str],
    *,
    force: bool = False,
) -> dict[str, str | list[str]] | None:
    """
    Work out which tags need writing to merge new metadata into `record`.

    The caption is replaced when `force` is set or the image has none, as long as the new
    description is not empty. Keywords are appended unless an existing keyword is exactly
    equal; existing keywords are always kept.

    Returns:
        Tags to pass to ExifTool, or None when the image already holds everything.

    Examples:
        >>> rec = ImageRecord(path=Path("a.jpg"), size=1, caption="A", keywords=("dog",))
        >>> plan_merge(rec, "B", ["dog", "grass"])
        {'IPTC:Keywords': ['dog', 'grass'], 'IPTC:CodedCharacterSet': 'UTF8'}
        >>> plan_merge(rec, "A", ["dog"], force=True) is None
        True

    """
    tags: dict[str, str | list[str]] = {}

    if description and (force or not record.has_caption) and description != record.caption:
        tags[CAPTION_TAG] = description

    merged = list(record.keywords)
    existing = set(record.keywords)
    for keyword in keywords:
        if keyword not in existing:
            merged.append(keyword)
            existing.add(keyword)
    if len(merged) > len(record.keywords):
        tags[KEYWORDS_TAG] = merged

    if not tags:
        return None
    tags[CHARSET_TAG] = "UTF8"
    return tags


def merge_metadata(
    image_path: Path,
    description: str,
    keywords: Iterable[str],
    *,
    force: bool = False,
) -> bool:
    """
    Merge a generated caption and keywords into the image's embedded IPTC metadata.

    The file is rewritten in place only when something actually changed.

    Args:
        image_path: Image file to update
        description: Generated caption (empty to leave the caption alone)
        keywords: Generated keywords, in the order they should be appended
        force: Replace an existing caption

    Returns:
        True if the file was written, False if it already held everything.

    Raises:
        MetadataError: reading or writing through ExifTool failed.

    """
    record = read_metadata(image_path)
    tags = plan_merge(record, description, keywords, force=force)
    if tags is None:
        logger.info("metadata_unchanged", file=image_path.name)
        return False

    try:
        with ExifToolHelper() as et:  # type: ignore[no-untyped-call]
            et.set_tags(files=[str(image_path)], tags=tags, params=WRITE_PARAMS)
    except (ValueError, TypeError, ExifToolExecuteError) as e:
        logger.exception("metadata_write_failed", error=str(e), target=str(image_path))
        raise MetadataError(str(e)) from e

    added = len(tags.get(KEYWORDS_TAG, [])) - len(record.keywords) if KEYWORDS_TAG in tags else 0
    logger.info(
        "metadata_written_successfully",
        target=str(image_path),
        caption_written=CAPTION_TAG in tags,
        keywords_added=added,
    )
    return True
