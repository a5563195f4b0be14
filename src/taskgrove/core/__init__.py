"""Core shared infrastructure for taskgrove.

This package contains foundational utilities:
    - config: Application configuration management
    - console: Rich console output and logging
    - result: Result types and the error hierarchy
"""

from __future__ import annotations

from . import config, console, result

__all__ = ["config", "console", "result"]
