"""EPUB container assembly and validation."""

from .assembler import EpubAssembler, collect_entries
from .validator import EpubValidator, parse_report, report_path_for

__all__ = [
    "EpubAssembler",
    "EpubValidator",
    "collect_entries",
    "parse_report",
    "report_path_for",
]
