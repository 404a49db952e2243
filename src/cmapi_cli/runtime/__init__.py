"""Runtime module for subprocess management.

This module provides process execution with registry bookkeeping and
reliable termination for the external tools driven by the REPL.
"""

from __future__ import annotations

from .process_registry import ProcessInfo, ProcessRegistry
from .process_runner import OutputMode, ProcessResult, ProcessRunner, ProcessSpec

__all__ = [
    "OutputMode",
    "ProcessInfo",
    "ProcessRegistry",
    "ProcessResult",
    "ProcessRunner",
    "ProcessSpec",
]
