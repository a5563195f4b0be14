from __future__ import annotations

import inspect
import functools
from collections.abc import Callable
from typing import Any, NoReturn, TypeVar

import typer

from taskgrove.core.console import console
from taskgrove.core.result import MergeBatchError, TaskgroveError

F = TypeVar("F", bound=Callable[..., Any])


def render_error(exc: Exception) -> None:
    """Print an error the way every CLI command reports failures."""
    if isinstance(exc, MergeBatchError):
        console.print(f"[red]{len(exc.failures)} task merge(s) failed:[/red]")
        for task_id, err in exc.failures.items():
            message = err.message if isinstance(err, TaskgroveError) else str(err)
            console.print(f"  [red]{task_id}[/red]: {message}")
        if exc.merged:
            console.print(f"[green]Merged:[/green] {', '.join(exc.merged)}")
        return
    message = exc.message if isinstance(exc, TaskgroveError) else str(exc)
    console.print(f"[red]{message}[/red]")


def _handle_exception(exc: Exception) -> NoReturn:
    render_error(exc)
    raise typer.Exit(code=1)


def handle_exceptions(func: F) -> F:
    """Decorate CLI entrypoints to present friendly errors and exit cleanly."""

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except (TaskgroveError, PermissionError) as exc:
                _handle_exception(exc)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (TaskgroveError, PermissionError) as exc:
            _handle_exception(exc)

    return sync_wrapper  # type: ignore[return-value]


__all__ = ["handle_exceptions", "render_error"]
