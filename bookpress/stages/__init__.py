"""External tool stages: construction and execution."""

from .commands import StageFactory, output_filename, site_config_files, site_switches
from .runner import StageRunner, StageRunnerProtocol, install_hint, require_success
from .versions import check_prince_version

__all__ = [
    "StageFactory",
    "StageRunner",
    "StageRunnerProtocol",
    "check_prince_version",
    "install_hint",
    "output_filename",
    "require_success",
    "site_config_files",
    "site_switches",
]
