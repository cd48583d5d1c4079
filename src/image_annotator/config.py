"""Run configuration: environment defaults and the immutable RunConfig."""

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


# Configuration defaults (command-line values take precedence)
DEFAULT_ENDPOINT = os.getenv("ANNOTATOR_ENDPOINT")
DEFAULT_API_KEY = os.getenv("ANNOTATOR_KEY")
DEFAULT_PARAMETERS = os.getenv(
    "ANNOTATOR_PARAMETERS",
    "?visualFeatures=Categories,Tags,Description,Faces,ImageType,Color,Objects,Brands"
    "&details=Landmarks&language=en",
)
DEFAULT_DELAY_MS = int(os.getenv("ANNOTATOR_TIMEOUT", "18000"))
DEFAULT_SIZE_CEILING = int(os.getenv("ANNOTATOR_SIZE_CEILING", "2000000"))
DEFAULT_LONG_EDGE = int(os.getenv("ANNOTATOR_LONG_EDGE", "1200"))
DEFAULT_JPEG_QUALITY = int(os.getenv("ANNOTATOR_JPEG_QUALITY", "60"))
DEFAULT_REQUEST_TIMEOUT = float(os.getenv("ANNOTATOR_REQUEST_TIMEOUT", "30"))


class RunConfig(BaseModel):
    """Settings resolved once at startup and passed to every stage of a run."""

    model_config = ConfigDict(frozen=True)

    root: Path
    endpoint: str = Field(min_length=1)
    api_key: str = Field(min_length=1)
    parameters: str = DEFAULT_PARAMETERS
    delay_ms: int = Field(default=DEFAULT_DELAY_MS, ge=0)
    force: bool = False
    skip: bool = False
    size_ceiling: int = Field(default=DEFAULT_SIZE_CEILING, gt=0)
    target_long_edge: int = Field(default=DEFAULT_LONG_EDGE, gt=0)
    quality: int = Field(default=DEFAULT_JPEG_QUALITY, ge=1, le=100)
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000
