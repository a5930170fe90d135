"""
Detached tasks: side effects whose outcome the caller never waits for
(audit writes, Telegram notifications, partner bonus). Failures are logged
and dropped here, so callers never need their own try/except.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable


logger = logging.getLogger(__name__)


class DetachedRunner:
    """
    inline=True runs the task immediately in the caller's thread (tests,
    scripts). Errors are swallowed in both modes.
    """

    def __init__(self, max_workers: int = 4, inline: bool = False) -> None:
        self.inline = inline
        self._executor: ThreadPoolExecutor | None = None
        if not inline:
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="detached")

    def spawn(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if self._executor is None:
            _run_safely(fn, *args, **kwargs)
            return
        try:
            self._executor.submit(_run_safely, fn, *args, **kwargs)
        except RuntimeError as e:
            # executor already shut down (process exit)
            logger.warning("detached_submit_failed", extra={"error": str(e)})

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


def _run_safely(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    try:
        fn(*args, **kwargs)
    except Exception:
        logger.exception(
            "detached_task_failed",
            extra={"error": getattr(fn, "__qualname__", repr(fn))},
        )
