#!/usr/bin/env python3
"""
Image Annotator: CLI app to caption and keyword JPEG files with a remote vision service.

Walks a directory tree, sends every JPEG to the image analysis endpoint (one call at a
time, with a fixed pause between calls), and merges the returned caption and keywords
into the file's embedded IPTC metadata. Existing keywords are never removed and files
are only rewritten when something changed.

Requirements:
 - Exiftool installed and available in PATH.
 - An image analysis endpoint and subscription key.

"""
# ruff: noqa: PLR0913

import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any, Literal

from cyclopts import App, Parameter
from loguru import logger
from pydantic import ValidationError

from image_annotator.config import (
    DEFAULT_API_KEY,
    DEFAULT_DELAY_MS,
    DEFAULT_ENDPOINT,
    DEFAULT_JPEG_QUALITY,
    DEFAULT_LONG_EDGE,
    DEFAULT_PARAMETERS,
    DEFAULT_SIZE_CEILING,
    RunConfig,
)
from image_annotator.discovery import DirectoryNotFoundError
from image_annotator.orchestrator import run


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "OFF"]


# Cyclopts app
__version__ = "0.1.0"
app = App(
    name="image-annotator",
    version=__version__,
)


def setup_logging(
    file_log_level: LogLevel = "DEBUG",
    console_log_level: LogLevel = "INFO",
    log_folder: Path = Path("logs"),
) -> None:
    """
    Configure Loguru for both console and file logging.

    Args:
        file_log_level: Log level for file (use 'OFF' to disable)
        console_log_level: Log level for console (use 'OFF' to disable)
        log_folder: Directory where log files are stored

    """
    # Remove default handler
    logger.remove()

    if file_log_level != "OFF":
        log_folder.mkdir(parents=True, exist_ok=True)
        log_file = log_folder / Path(
            datetime.now(tz=UTC).strftime("%Y%m%d%H%M%S-image_annotator.log"),
        )
        logger.add(
            log_file,
            level=file_log_level,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name:<8}:{function:<25}:{line:>4} | "
                "{message:<40} | "
                "{extra}"
            ),
            rotation="500 MB",
            retention="10 days",
            compression="zip",
        )

    if console_log_level != "OFF":
        logger.add(
            sys.stderr,
            level=console_log_level,
            colorize=True,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <7}</level> | "
                "<level>{message:<40.50}</level> | "
                "<yellow>{extra}</yellow>"
            ),
        )


def build_config(
    path: Path,
    *,
    endpoint: str | None,
    api_key: str | None,
    **options: Any,
) -> RunConfig:
    """
    Resolve command-line values and environment fallbacks into a RunConfig.

    Exits with status 1 when the endpoint or key is missing or an option is invalid.
    """
    resolved_endpoint = endpoint or DEFAULT_ENDPOINT
    resolved_key = api_key or DEFAULT_API_KEY
    if not resolved_endpoint:
        logger.error("endpoint_not_configured", hint="Pass --endpoint or set ANNOTATOR_ENDPOINT")
        raise SystemExit(1)
    if not resolved_key:
        logger.error("api_key_not_configured", hint="Pass --key or set ANNOTATOR_KEY")
        raise SystemExit(1)

    try:
        return RunConfig(root=path, endpoint=resolved_endpoint, api_key=resolved_key, **options)
    except ValidationError as exc:
        logger.error("invalid_configuration", errors=exc.errors(include_url=False))
        raise SystemExit(1) from exc


@app.default
def annotate(
    path: Annotated[
        Path,
        Parameter(
            name=("--path", "-p"),
            help=(
                "Directory to traverse. All JPGs in it (and its child directories) are analyzed"
            ),
        ),
    ],
    *,
    timeout: Annotated[
        int,
        Parameter(
            name=("--timeout", "-t"),
            help="Milliseconds to wait before each call to the analysis service",
        ),
    ] = DEFAULT_DELAY_MS,
    endpoint: Annotated[
        str | None,
        Parameter(
            name=("--endpoint", "-e"),
            help="Analysis endpoint URL. Falls back to ANNOTATOR_ENDPOINT",
        ),
    ] = None,
    key: Annotated[
        str | None,
        Parameter(name=("--key", "-k"), help="Subscription key. Falls back to ANNOTATOR_KEY"),
    ] = None,
    force: Annotated[
        bool,
        Parameter(
            name=("--force", "-f"),
            negative="",
            help="Always overwrite an existing caption with the generated one",
        ),
    ] = False,
    skip: Annotated[
        bool,
        Parameter(
            name=("--skip", "-s"),
            negative="",
            help="Skip images that already have a caption",
        ),
    ] = False,
    parameters: Annotated[
        str,
        Parameter(
            name=("--parameters",),
            help="Query string appended to the endpoint (features to request)",
        ),
    ] = DEFAULT_PARAMETERS,
    size_ceiling: Annotated[
        int,
        Parameter(
            name=("--size-ceiling",),
            help="Images larger than this many bytes are downscaled before upload",
        ),
    ] = DEFAULT_SIZE_CEILING,
    long_edge: Annotated[
        int,
        Parameter(
            name=("--long-edge",),
            help="Long edge in pixels of downscaled images",
        ),
    ] = DEFAULT_LONG_EDGE,
    jpeg_quality: Annotated[
        int,
        Parameter(
            name=("--jpeg-quality",),
            help="JPEG quality (1-100) of downscaled images",
        ),
    ] = DEFAULT_JPEG_QUALITY,
    file_log_level: Annotated[
        LogLevel,
        Parameter(
            name="--file-log-level",
            help="Log level for file (use 'OFF' to disable)",
        ),
    ] = "DEBUG",
    log_folder: Annotated[
        Path,
        Parameter(
            name=("--log-folder",),
            help="Folder where log files are stored",
        ),
    ] = Path("logs"),
    console_log_level: Annotated[
        LogLevel,
        Parameter(
            name="--console-log-level",
            help="Log level for console (use 'OFF' to disable)",
        ),
    ] = "INFO",
) -> None:
    """
    Caption and keyword every JPEG under a directory using a remote vision service.

    Behavior:
    - Collects *.jpg, *.jpe, *.jif and *.jfi files recursively (case insensitive).
    - Waits --timeout milliseconds before every call; calls are never concurrent.
    - Images over --size-ceiling bytes are downscaled in memory before upload.
    - The caption is written only if the image has none, unless --force is given.
    - Keywords are added, never removed; unchanged files are not rewritten.
    - Stops cleanly when the service reports that the quota is exceeded.

    Exit status: 1 if the directory does not exist or the configuration is incomplete.

    Examples:
        image-annotator -p ./photos -e https://host/vision/v3.2/analyze -k KEY
        image-annotator -p ./photos --skip --timeout 3000

    """
    setup_logging(
        file_log_level=file_log_level,
        console_log_level=console_log_level,
        log_folder=log_folder,
    )

    if not path.is_dir():
        logger.error("directory_not_found", path=str(path))
        raise SystemExit(1)

    config = build_config(
        path,
        endpoint=endpoint,
        api_key=key,
        parameters=parameters,
        delay_ms=timeout,
        force=force,
        skip=skip,
        size_ceiling=size_ceiling,
        target_long_edge=long_edge,
        quality=jpeg_quality,
    )
    logger.info(
        "starting_image_annotator",
        root=str(config.root),
        endpoint=config.endpoint,
        api_key_present=bool(config.api_key),
        delay_ms=config.delay_ms,
        force=config.force,
        skip=config.skip,
        size_ceiling=config.size_ceiling,
        long_edge=config.target_long_edge,
        quality=config.quality,
    )

    try:
        stats = run(config)
    except DirectoryNotFoundError as exc:
        logger.error("directory_not_found", path=str(exc))
        raise SystemExit(1) from exc

    logger.info("finished", evaluated=stats.examined, halted=stats.halted)


if __name__ == "__main__":
    app()
