"""Single sequential annotation pass over a directory tree."""

import time
from enum import StrEnum
from pathlib import Path

from loguru import logger
from pydantic import BaseModel

from image_annotator.client import AnalysisSuccess, QuotaExceeded, analyze_image
from image_annotator.config import RunConfig
from image_annotator.discovery import discover
from image_annotator.metadata import MetadataError, has_caption, merge_metadata
from image_annotator.normalizer import normalize
from image_annotator.payload import DecodeError, adapt, needs_downscale


class FileOutcome(StrEnum):
    SKIPPED = "skipped"
    STORED = "stored"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    QUOTA_EXCEEDED = "quota_exceeded"


class RunStats(BaseModel):
    """Counters for one pass. `examined` counts every file visited, skipped or not."""

    examined: int = 0
    skipped: int = 0
    resized: int = 0
    stored: int = 0
    unchanged: int = 0
    failed: int = 0
    halted: bool = False

    def record(self, outcome: FileOutcome) -> None:
        match outcome:
            case FileOutcome.SKIPPED:
                self.skipped += 1
            case FileOutcome.STORED:
                self.stored += 1
            case FileOutcome.UNCHANGED:
                self.unchanged += 1
            case FileOutcome.FAILED:
                self.failed += 1
            case FileOutcome.QUOTA_EXCEEDED:
                self.halted = True


def process_file(
    image_path: Path,
    config: RunConfig,
    stats: RunStats | None = None,
) -> FileOutcome:
    """
    Annotate one image: skip check, pacing delay, downscale, analysis, metadata merge.

    Unsuccessful service replies are reported as FAILED, quota exhaustion as QUOTA_EXCEEDED.
    Decode, read and metadata errors propagate to the caller.
    """
    if config.skip and has_caption(image_path):
        logger.info("skipping_captioned_image")
        return FileOutcome.SKIPPED

    logger.info("waiting_before_api_call", seconds=config.delay_seconds)
    time.sleep(config.delay_seconds)

    data = image_path.read_bytes()
    if needs_downscale(len(data), config.size_ceiling):
        data = adapt(data, config.size_ceiling, config.target_long_edge, config.quality)
        if stats is not None:
            stats.resized += 1

    outcome = analyze_image(
        data,
        endpoint=config.endpoint,
        api_key=config.api_key,
        parameters=config.parameters,
        timeout=config.request_timeout,
    )
    if isinstance(outcome, QuotaExceeded):
        return FileOutcome.QUOTA_EXCEEDED
    if not isinstance(outcome, AnalysisSuccess):
        return FileOutcome.FAILED

    result = normalize(outcome.payload)
    logger.info("description_generated", description=result.description)
    logger.info("keywords_generated", keywords=", ".join(result.keywords))

    changed = merge_metadata(
        image_path,
        result.description,
        result.keywords,
        force=config.force,
    )
    return FileOutcome.STORED if changed else FileOutcome.UNCHANGED


def _process_isolated(
    image_path: Path,
    config: RunConfig,
    stats: RunStats,
    index: str,
) -> FileOutcome:
    """Run process_file, turning per-file errors into FAILED."""
    with logger.contextualize(file=image_path.name):
        logger.info("processing_image", index=index, path=str(image_path))
        try:
            return process_file(image_path, config, stats)
        except DecodeError as exc:
            logger.error("image_decode_skipped", error=str(exc))
        except MetadataError as exc:
            logger.error("metadata_update_skipped", error=str(exc))
        except OSError as exc:
            logger.error("image_read_failed", error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("processing_exception", error=str(exc))
        return FileOutcome.FAILED


def run(config: RunConfig) -> RunStats:
    """
    Annotate every image under `config.root`, one at a time.

    Stops early, without error, when the service reports that the quota is exhausted.

    Raises:
        DirectoryNotFoundError: the root directory does not exist.

    """
    logger.info("collecting_images", root=str(config.root))
    image_files = discover(config.root)
    file_count = len(image_files)

    stats = RunStats()
    for idx, image_file in enumerate(image_files, start=1):
        stats.examined += 1
        outcome = _process_isolated(image_file, config, stats, f"{idx}/{file_count}")
        stats.record(outcome)
        if outcome is FileOutcome.QUOTA_EXCEEDED:
            logger.warning(
                "quota_exceeded_stopping",
                remaining=file_count - idx,
                evaluated=stats.examined,
            )
            break

    logger.info(
        "processing_summary",
        evaluated=stats.examined,
        stored=stats.stored,
        unchanged=stats.unchanged,
        skipped=stats.skipped,
        resized=stats.resized,
        failed=stats.failed,
        halted=stats.halted,
    )
    return stats
