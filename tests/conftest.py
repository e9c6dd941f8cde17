"""Shared pytest fixtures for the full bookpress test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from bookpress.config import PublishConfig
from tests.project_fixtures import RecordingRunner, write_sample_project


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Provide a fresh sample project root with one work, a translation, and a variant."""

    return write_sample_project(tmp_path / "project")


@pytest.fixture
def publish_config(project_root: Path) -> PublishConfig:
    """Provide a default config bound to the sample project."""

    return PublishConfig(project_root=project_root)


@pytest.fixture
def recording_runner() -> RecordingRunner:
    """Provide a stage runner double that records stages instead of spawning tools."""

    return RecordingRunner()
