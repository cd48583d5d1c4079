"""Tests for CLI configuration resolution and fatal startup paths."""

from pathlib import Path

import pytest

import image_annotator.main as m
from image_annotator.orchestrator import RunStats


def test_build_config_prefers_command_line_values(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Explicit options win over the environment fallback."""
    monkeypatch.setattr(m, "DEFAULT_ENDPOINT", "https://env.example/analyze")
    monkeypatch.setattr(m, "DEFAULT_API_KEY", "env-key")

    config = m.build_config(tmp_path, endpoint="https://cli.example/analyze", api_key=None)

    assert config.endpoint == "https://cli.example/analyze"
    assert config.api_key == "env-key"
    assert config.root == tmp_path


def test_build_config_exits_without_endpoint(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A missing endpoint is fatal."""
    monkeypatch.setattr(m, "DEFAULT_ENDPOINT", None)

    with pytest.raises(SystemExit):
        m.build_config(tmp_path, endpoint=None, api_key="key")


def test_build_config_exits_on_invalid_quality(tmp_path: Path) -> None:
    """Out-of-range values are rejected by RunConfig validation."""
    with pytest.raises(SystemExit):
        m.build_config(tmp_path, endpoint="https://x/analyze", api_key="key", quality=0)


def test_annotate_exits_when_directory_missing(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """No processing happens when the root directory does not exist."""
    started: list[object] = []
    monkeypatch.setattr(m, "run", started.append)

    with pytest.raises(SystemExit) as excinfo:
        m.annotate(
            tmp_path / "missing",
            endpoint="https://x/analyze",
            key="key",
            file_log_level="OFF",
            console_log_level="OFF",
        )

    assert excinfo.value.code == 1
    assert started == []


def test_annotate_runs_pass_with_resolved_config(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """CLI options are carried into the RunConfig handed to the pass."""
    seen: list[m.RunConfig] = []

    def fake_run(config: m.RunConfig) -> RunStats:
        seen.append(config)
        return RunStats(examined=2, halted=True)

    monkeypatch.setattr(m, "run", fake_run)

    m.annotate(
        tmp_path,
        timeout=5,
        endpoint="https://x/analyze",
        key="key",
        force=True,
        skip=True,
        file_log_level="OFF",
        console_log_level="OFF",
    )

    assert len(seen) == 1
    config = seen[0]
    assert config.delay_ms == 5
    assert config.force is True
    assert config.skip is True
