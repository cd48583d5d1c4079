"""Tests for downscaling oversized payloads."""

from io import BytesIO

import pytest
from PIL import Image

import image_annotator.payload as p


def _jpeg_bytes(width: int, height: int, mode: str = "RGB", fmt: str = "JPEG") -> bytes:
    buf = BytesIO()
    color = (255, 0, 0, 128) if mode == "RGBA" else (255, 0, 0)
    Image.new(mode, (width, height), color=color).save(buf, format=fmt)
    return buf.getvalue()


def test_adapt_downscales_long_edge_to_target() -> None:
    """A 4000x3000 image over the ceiling comes back as 1200x900 JPEG."""
    original = _jpeg_bytes(4000, 3000)

    resized = p.adapt(original, size_ceiling=1, target_long_edge=1200, quality=60)

    with Image.open(BytesIO(resized)) as img:
        assert img.format == "JPEG"
        assert img.size == (1200, 900)


def test_adapt_preserves_portrait_aspect_ratio() -> None:
    """The long edge is the height for portrait images."""
    original = _jpeg_bytes(1000, 4000)

    resized = p.adapt(original, size_ceiling=1, target_long_edge=1200, quality=60)

    with Image.open(BytesIO(resized)) as img:
        assert img.size == (300, 1200)


def test_adapt_returns_small_payload_untouched() -> None:
    """Payloads at or below the ceiling are passed through as-is."""
    original = _jpeg_bytes(4000, 3000)

    result = p.adapt(original, size_ceiling=len(original), target_long_edge=1200, quality=60)

    assert result is original


def test_adapt_flattens_transparency_to_rgb() -> None:
    """PNG with alpha is re-encoded as an RGB JPEG."""
    original = _jpeg_bytes(2400, 1200, mode="RGBA", fmt="PNG")

    resized = p.adapt(original, size_ceiling=1, target_long_edge=1200, quality=60)

    with Image.open(BytesIO(resized)) as img:
        assert img.mode == "RGB"
        assert img.size == (1200, 600)


def test_adapt_raises_decode_error_for_garbage() -> None:
    """Bytes that are not an image raise DecodeError."""
    with pytest.raises(p.DecodeError):
        p.adapt(b"not an image at all" * 100, size_ceiling=10, target_long_edge=1200, quality=60)


def test_adapt_raises_decode_error_for_decompression_bomb(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Images over Pillow's pixel limit are rejected as undecodable."""
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

    with pytest.raises(p.DecodeError):
        p.adapt(_jpeg_bytes(200, 200), size_ceiling=1, target_long_edge=100, quality=60)


def test_scaled_dimensions_never_upscale() -> None:
    """Images already within the target keep their size."""
    assert p.scaled_dimensions(800, 600, 1200) == (800, 600)
    assert p.scaled_dimensions(4000, 3000, 1200) == (1200, 900)
    assert p.scaled_dimensions(3000, 3000, 1200) == (1200, 1200)


def test_needs_downscale_is_strictly_greater() -> None:
    """The ceiling itself is still acceptable."""
    assert not p.needs_downscale(2_000_000, 2_000_000)
    assert p.needs_downscale(2_000_001, 2_000_000)
