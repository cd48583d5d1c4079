"""Shared fixtures."""

from collections.abc import Iterator

import pytest
from fakes import FakeExifTool

from image_annotator import metadata


@pytest.fixture
def fake_exiftool(monkeypatch: pytest.MonkeyPatch) -> Iterator[FakeExifTool]:
    fake = FakeExifTool()
    monkeypatch.setattr(metadata, "ExifToolHelper", lambda: fake)
    yield fake
