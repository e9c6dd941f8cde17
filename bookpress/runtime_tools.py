"""Deterministic runtime executable resolution helpers.

Responsibilities:
- Resolve external tool paths with project-local-first precedence.
- Support tools installed per project (`node_modules/.bin`) and globally.
"""

from __future__ import annotations

from pathlib import Path
import shutil
import sys


def resolve_executable(command_name: str, project_root: Path | None = None) -> str:
    """Resolve an executable with project-local precedence, then PATH.

    Resolution order:
    1. Explicit paths are returned unchanged.
    2. Project directories (`node_modules/.bin/<tool>` then `bin/<tool>`).
    3. System `PATH`.
    4. Raw command name (allowing subprocess to raise a native missing-binary error).
    """

    normalized = command_name.strip()
    if not normalized:
        return command_name
    if Path(normalized).name != normalized:
        return normalized

    if project_root is not None:
        for candidate in _project_candidates(normalized, project_root):
            if candidate.is_file():
                return str(candidate)

    resolved_path = shutil.which(normalized)
    if resolved_path is not None:
        return resolved_path

    return normalized


def _project_candidates(command_name: str, project_root: Path) -> list[Path]:
    """Return deterministic project-local candidate paths for one executable name."""

    candidates: list[Path] = []
    for name in _candidate_names(command_name):
        candidates.append(project_root / "node_modules" / ".bin" / name)
        candidates.append(project_root / "bin" / name)
    return candidates


def _candidate_names(command_name: str) -> tuple[str, ...]:
    """Return command name variants including Windows launcher suffixes."""

    lowered = command_name.lower()
    if lowered.endswith((".exe", ".cmd")):
        return (command_name,)
    if sys.platform.startswith("win"):
        return (f"{command_name}.cmd", f"{command_name}.exe", command_name)
    return (command_name,)
