"""cmapi-cli - robotics team project assistant.

Environment variables:
    CMAPI_HOME: Administrator directory (default ~/.cmapi-cli)
    CMAPI_LOG_DEBUG: Debug log to a temporary file (default false)
    CMAPI_SIGINT_MODE: cancel | exit | cancel_then_exit (default cancel)

Usage:
    cmapi [--force]
"""

__version__ = "0.1.8"

from .app import main

__all__ = ["__version__", "main"]
