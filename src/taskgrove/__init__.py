"""taskgrove - isolated git worktrees for parallel agent workflows.

Gives a multi-agent orchestrator one branch and worktree root per workflow and
one branch and worktree per task, then merges task work back deterministically.

Exports:
    __version__: Package version string.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
