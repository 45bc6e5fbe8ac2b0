# src/application/side_effects.py

import logging
from typing import Any, Callable

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)

ErrorSink = Callable[[str, BaseException], None]


def log_error_sink(name: str, exc: BaseException) -> None:
    logger.error("Side effect %s failed", name, exc_info=exc)


class SideEffectRunner:
    """
    Runs post-commit side effects.
    A failing side effect is reported to the error sink and never reaches the caller.
    """

    def __init__(self, error_sink: ErrorSink | None = None):
        self.error_sink = error_sink or log_error_sink

    def dispatch(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self.run_guarded(name, func, *args, **kwargs)

    def run_guarded(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            func(*args, **kwargs)
        except Exception as exc:
            try:
                self.error_sink(name, exc)
            except Exception:
                logger.exception("Error sink failed while reporting %s", name)


class BackgroundSideEffectRunner(SideEffectRunner):
    """Defers each side effect to FastAPI background tasks, after the response."""

    def __init__(
        self,
        background_tasks: BackgroundTasks,
        error_sink: ErrorSink | None = None,
    ):
        super().__init__(error_sink)
        self.background_tasks = background_tasks

    def dispatch(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self.background_tasks.add_task(self.run_guarded, name, func, *args, **kwargs)
