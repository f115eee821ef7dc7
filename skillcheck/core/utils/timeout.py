"""Explicit timeouts for blocking provider calls.

LLM and embedding SDK calls are blocking; they run on a small shared thread
pool so the caller can stop waiting after a deadline. The pool holds no state
of its own and is safe to lose on restart.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="skillcheck-provider")


def call_with_timeout(fn: Callable[..., T], timeout: float, *args: Any, **kwargs: Any) -> T:
    """Run `fn(*args, **kwargs)` and wait at most `timeout` seconds.

    Exceptions raised by `fn` propagate unchanged.

    Raises:
        TimeoutError: If the call does not finish in time
    """
    future = _executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        name = getattr(fn, "__name__", repr(fn))
        logger.warning(f"provider_call_timeout: fn={name}, timeout_s={timeout}")
        raise TimeoutError(f"{name} timed out after {timeout}s")
