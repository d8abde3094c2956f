"""
Helpers for chaining concurrent.futures stages on a background executor.
"""

from concurrent.futures import Executor, Future
from typing import Any, Callable


def immediate_failed_future(error: BaseException) -> Future:
    """Return an already failed future holding error."""
    future = Future()
    future.set_exception(error)
    return future


def submit(executor: Executor, fn: Callable[..., Any], *args: Any) -> Future:
    """
    Submit fn to executor, turning a rejected submission into a failed future.

    Args:
        executor: Background executor
        fn: Callable to run
        *args: Positional arguments for fn

    Returns:
        Future of fn's result
    """
    try:
        return executor.submit(fn, *args)
    except RuntimeError as e:
        # Executor already shut down
        return immediate_failed_future(e)


def transform(source: Future, fn: Callable[[Any], Any], executor: Executor) -> Future:
    """
    Chain fn onto source, running it on executor once source succeeds.

    A failure of source is propagated to the returned future without
    calling fn. Exceptions raised by fn fail the returned future.

    Args:
        source: Upstream future
        fn: Stage function receiving the upstream result
        executor: Executor the stage runs on

    Returns:
        Future of fn's result
    """
    result = Future()

    def _run_stage(value):
        if not result.set_running_or_notify_cancel():
            return
        try:
            result.set_result(fn(value))
        except BaseException as e:
            result.set_exception(e)

    def _on_done(done: Future):
        if result.cancelled():
            return
        if done.cancelled():
            result.cancel()
            return
        error = done.exception()
        if error is not None:
            result.set_exception(error)
            return
        try:
            executor.submit(_run_stage, done.result())
        except RuntimeError as e:
            result.set_exception(e)

    source.add_done_callback(_on_done)
    return result
