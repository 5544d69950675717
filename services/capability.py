"""Timeout-bounded invocation of injected capabilities."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Optional, Type, TypeVar

from config.settings import settings
from topic_tree.errors import CapabilityError
from topic_tree.validation import safe_error_message

logger = logging.getLogger(__name__)

R = TypeVar("R")

_EXECUTOR: Optional[ThreadPoolExecutor] = None
_EXECUTOR_GUARD = threading.Lock()


def _executor() -> ThreadPoolExecutor:
    global _EXECUTOR
    with _EXECUTOR_GUARD:
        if _EXECUTOR is None:
            _EXECUTOR = ThreadPoolExecutor(
                max_workers=settings.CAPABILITY_WORKERS,
                thread_name_prefix="capability",
            )
        return _EXECUTOR


def guarded_call(
    label: str,
    fn: Callable[..., R],
    *args: Any,
    timeout_s: Optional[float] = None,
    error_cls: Type[CapabilityError] = CapabilityError,
    **kwargs: Any,
) -> R:
    """Run ``fn`` with a time budget and normalize every failure.

    Any exception raised by the capability, and a missed deadline, surface as
    ``error_cls`` so call sites only have one thing to fall back on. A timeout
    of zero runs the capability inline without a deadline.
    """

    timeout = settings.CAPABILITY_TIMEOUT_S if timeout_s is None else timeout_s
    if timeout <= 0:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:  # noqa: BLE001
            raise error_cls(safe_error_message(exc, label)) from exc

    future: Future = _executor().submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as exc:
        future.cancel()
        logger.warning("capability %s exceeded %.2fs", label, timeout)
        raise error_cls(f"{label}: timed out after {timeout:.2f}s") from exc
    except Exception as exc:  # noqa: BLE001
        raise error_cls(safe_error_message(exc, label)) from exc


def shutdown() -> None:
    global _EXECUTOR
    with _EXECUTOR_GUARD:
        if _EXECUTOR is not None:
            _EXECUTOR.shutdown(wait=False, cancel_futures=True)
            _EXECUTOR = None


__all__ = ["guarded_call", "shutdown"]
