"""Result delivery: one blocking implementation, three calling conventions.

Every storage operation is written once as a plain blocking function.
The helpers here turn such a function into a callback-style call
(``deliver``), turn a callback-style call back into a blocking one
(``wait_for``) and run a blocking function as a cold coroutine
(``run_cold``). Because all three go through the same function, they
report the same outcome and the same exception object.
"""

import functools
import logging
from concurrent.futures import Executor, Future, InvalidStateError
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

import anyio.to_thread

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an operation: a value or the exception that ended it."""

    value: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> "Result[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Optional[T]:
        """Return the value, or raise the captured exception."""
        if self.error is not None:
            raise self.error
        return self.value


Completion = Callable[[Result], None]


def capture(func: Callable[..., T], *args: Any, **kwargs: Any) -> Result[T]:
    """Call ``func`` and fold its return value or exception into a Result."""
    try:
        return Result.success(func(*args, **kwargs))
    except Exception as e:
        return Result.failure(e)


def deliver(
    func: Callable[..., Any],
    completion: Completion,
    *args: Any,
    executor: Optional[Executor] = None,
    **kwargs: Any,
) -> Optional[Future]:
    """Run ``func`` and hand its Result to ``completion`` exactly once.

    Args:
        func: Blocking function to run.
        completion: Called with the Result when ``func`` finishes.
        *args: Positional arguments for ``func``.
        executor: If given, run on it and return its future; otherwise run
            inline and call ``completion`` before returning.
        **kwargs: Keyword arguments for ``func``.
    """
    def run() -> None:
        completion(capture(func, *args, **kwargs))

    if executor is None:
        run()
        return None
    return submit(executor, run)


def submit(executor: Executor, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
    """Run ``fn`` on ``executor``, logging anything it raises.

    Callback-style work has no caller left to receive an exception, so an
    error escaping a completion handler is reported here instead of being
    left on an unobserved future.
    """
    future = executor.submit(fn, *args, **kwargs)
    future.add_done_callback(_report_failure)
    return future


def _report_failure(future: Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"Background delivery raised: {error!r}", exc_info=error)


def wait_for(operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call a callback-style operation and block until it completes.

    ``operation`` is called with ``completion=`` added to its keyword
    arguments. The first Result it receives is returned (or raised);
    later deliveries are ignored.
    """
    future: Future = Future()

    def completion(result: Result) -> None:
        try:
            future.set_result(result)
        except InvalidStateError:
            logger.warning(
                f"{getattr(operation, '__name__', operation)} completed more "
                "than once; ignoring the extra result"
            )

    operation(*args, completion=completion, **kwargs)
    return future.result().unwrap()


async def run_cold(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking function in a worker thread.

    Nothing happens until the returned coroutine is awaited; it completes
    exactly once with the function's value or exception.
    """
    return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))
