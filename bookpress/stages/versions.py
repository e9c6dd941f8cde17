"""PDF engine version check against the project's pinned version.

Projects pin their PDF engine in `package.json` under `prince.version`.
A mismatch with the installed engine is reported as a warning and never
stops a build.
"""

from __future__ import annotations

from collections.abc import Callable
import json
from pathlib import Path
import re
import subprocess

from ..config import PublishConfig
from ..parsing import normalize_optional_string
from ..runtime_tools import resolve_executable
from ..telemetry.logger import RunLogger


PRINCE_VERSION_PATTERN = re.compile(r"^Prince\s+(\d+(?:\.\d+)?)")
_VERSION_TIMEOUT_SECONDS = 10.0


def required_prince_version(project_root: Path) -> str | None:
    """Return `prince.version` from the project's `package.json`, if declared."""

    package_json = project_root / "package.json"
    if not package_json.is_file():
        return None
    try:
        payload = json.loads(package_json.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    prince = payload.get("prince")
    if not isinstance(prince, dict):
        return None
    version = prince.get("version")
    if version is None:
        return None
    return normalize_optional_string(str(version))


def installed_prince_version(command: str, project_root: Path | None = None) -> str:
    """Return the installed engine's `major.minor` version.

    Raises:
        OSError: When the engine cannot be started.
        subprocess.SubprocessError: When the engine exits nonzero or hangs.
        ValueError: When the version banner is not recognized.
    """

    completed = subprocess.run(
        [resolve_executable(command, project_root), "--version"],
        capture_output=True,
        text=True,
        timeout=_VERSION_TIMEOUT_SECONDS,
        check=True,
    )
    match = PRINCE_VERSION_PATTERN.match(completed.stdout)
    if match is None:
        raise ValueError(f"Unrecognized version output: {completed.stdout.strip()!r}")
    return match.group(1)


def check_prince_version(
    config: PublishConfig,
    run_logger: RunLogger | None = None,
    version_reader: Callable[[str, Path | None], str] | None = None,
) -> bool | None:
    """Compare the installed engine with the pinned version and log the result.

    Returns:
        `True` on a match, `False` on a mismatch, and `None` when no version
        is pinned or the installed one could not be read.
    """

    required = required_prince_version(config.project_root)
    if required is None:
        return None

    reader = version_reader or installed_prince_version
    try:
        installed = reader(config.executable("prince"), config.project_root)
    except (OSError, subprocess.SubprocessError, ValueError) as exc:
        if run_logger is not None:
            run_logger.log_warning(
                "render-to-pdf", "prince_version_unknown", error_type=type(exc).__name__
            )
        return None

    if installed != required:
        if run_logger is not None:
            run_logger.log_warning(
                "render-to-pdf",
                "prince_version_mismatch",
                installed=installed,
                required=required,
            )
        return False
    if run_logger is not None:
        run_logger.log_info("render-to-pdf", "prince_version_ok", version=installed)
    return True
