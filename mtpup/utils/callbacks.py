"""Invocation of caller-supplied visitor / progress / preprocess callbacks."""
import inspect
import logging
from typing import Any, Callable, Optional, Type

from ..exceptions import CallbackAbort

logger = logging.getLogger(__name__)


async def invoke_callback(
    callback: Optional[Callable[..., Any]],
    *args: Any,
    error_cls: Type[CallbackAbort] = CallbackAbort,
    label: str = "callback",
) -> Optional[CallbackAbort]:
    """
    Call a sync or async callback and translate its outcome into an abort signal.

    Returns None to continue, or an ``error_cls`` instance when the callback
    returned ``False`` or raised. The error is returned, not raised, so callers
    unwind explicitly.
    """
    if callback is None:
        return None

    try:
        outcome = callback(*args)
        if inspect.isawaitable(outcome):
            outcome = await outcome
    except CallbackAbort as exc:
        logger.debug(f"{label} aborted: {exc}")
        if isinstance(exc, error_cls):
            return exc
        wrapped = error_cls(f"{label} aborted: {exc.hint or exc}")
        wrapped.__cause__ = exc
        return wrapped
    except Exception as exc:
        logger.debug(f"{label} raised {type(exc).__name__}: {exc}")
        wrapped = error_cls(f"{label} failed: {exc}")
        wrapped.__cause__ = exc
        return wrapped

    if outcome is False:
        logger.debug(f"{label} requested stop")
        return error_cls(f"{label} requested stop")
    return None
