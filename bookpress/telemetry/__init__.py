"""Telemetry and observability helpers.

This package emits deterministic run events and relays external tool output.
"""

from .logger import RunLogger

__all__ = ["RunLogger"]
