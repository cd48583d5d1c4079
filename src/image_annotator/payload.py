"""Shrink oversized images so they fit the analysis service's upload limit."""

from io import BytesIO

from loguru import logger
from PIL import Image, UnidentifiedImageError


class DecodeError(ValueError):
    """Raised when image bytes cannot be decoded for resizing."""


def needs_downscale(size: int, size_ceiling: int) -> bool:
    """Return True when a payload of `size` bytes is over the ceiling."""
    return size > size_ceiling


def scaled_dimensions(width: int, height: int, target_long_edge: int) -> tuple[int, int]:
    """
    Compute the resized dimensions for a uniform downscale to `target_long_edge`.

    Never upscales: images whose long edge is already within target keep their size.

    Examples:
        >>> scaled_dimensions(4000, 3000, 1200)
        (1200, 900)
        >>> scaled_dimensions(800, 600, 1200)
        (800, 600)

    """
    factor = min(1.0, target_long_edge / max(width, height))
    return max(1, round(width * factor)), max(1, round(height * factor))


def _to_rgb(img: Image.Image) -> Image.Image:
    # Composite alpha onto white background if present
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        alpha = img.convert("RGBA")
        bg = Image.new("RGBA", alpha.size, (255, 255, 255, 255))
        return Image.alpha_composite(bg, alpha).convert("RGB")
    return img.convert("RGB")


def adapt(
    data: bytes,
    size_ceiling: int,
    target_long_edge: int,
    quality: int,
) -> bytes:
    """
    Return image bytes that are safe to submit, downscaling when over the ceiling.

    Payloads at or below `size_ceiling` are returned unchanged. Larger ones are decoded,
    resized so that their long edge equals `target_long_edge` (aspect ratio preserved),
    and re-encoded as JPEG at `quality`. Encoding happens in memory.

    Args:
        data: Original image bytes
        size_ceiling: Largest payload, in bytes, sent without resizing
        target_long_edge: Long edge in pixels of the resized image
        quality: JPEG quality (1-100) used for re-encoding

    Returns:
        Image bytes to submit

    Raises:
        DecodeError: data could not be decoded as an image

    """
    if not needs_downscale(len(data), size_ceiling):
        return data

    try:
        with Image.open(BytesIO(data)) as opened:
            opened.load()
            original_size = opened.size
            img = _to_rgb(opened)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.error("image_decode_failed", error=str(e), size_kb=len(data) // 1024)
        raise DecodeError(str(e)) from e

    new_size = scaled_dimensions(*original_size, target_long_edge)
    if new_size != img.size:
        img = img.resize(new_size, Image.Resampling.LANCZOS)

    buf = BytesIO()
    img.save(buf, format="JPEG", quality=quality)
    resized = buf.getvalue()

    logger.info(
        "image_downscaled",
        original=f"{original_size[0]}x{original_size[1]}",
        resized=f"{new_size[0]}x{new_size[1]}",
        original_kb=len(data) // 1024,
        resized_kb=len(resized) // 1024,
        quality=quality,
    )
    return resized
