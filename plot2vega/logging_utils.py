from __future__ import annotations

import dataclasses
import logging
import reprlib
import time
from functools import wraps
from typing import Any, Callable, MutableMapping, Optional, Sequence, Tuple, TypeVar, cast

import numpy as np

F = TypeVar("F", bound=Callable[..., Any])

_repr = reprlib.Repr()
_repr.maxother = 160
_repr.maxdict = 10
_repr.maxlist = 10
_repr.maxtuple = 10
_repr.maxset = 10


def _sequence_brackets(value: Sequence[Any]) -> Tuple[str, str]:
    if isinstance(value, tuple):
        return "(", ")"
    if isinstance(value, (set, frozenset)):
        return "{", "}"
    return "[", "]"


def _safe_repr(value: Any, *, max_items: int = 5, max_length: int = 400, depth: int = 0) -> str:
    if isinstance(value, np.ndarray):
        summary = f"ndarray(shape={tuple(value.shape)}, dtype={value.dtype})"
        if value.size and value.dtype.kind in "iuf":
            summary += f", min={float(np.nanmin(value)):.6g}, max={float(np.nanmax(value)):.6g}"
        return summary

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        if depth >= 1:
            return f"{type(value).__name__}(...)"
        parts = []
        for spec in dataclasses.fields(value):
            item = getattr(value, spec.name)
            parts.append(f"{spec.name}={_safe_repr(item, max_items=max_items, depth=depth + 1)}")
        return f"{type(value).__name__}({', '.join(parts)})"

    if isinstance(value, dict):
        items = []
        for idx, (key, val) in enumerate(value.items()):
            if idx >= max_items:
                items.append(f"... ({len(value)} keys)")
                break
            items.append(f"{_safe_repr(key)}: {_safe_repr(val, depth=depth + 1)}")
        return "{" + ", ".join(items) + "}"

    if isinstance(value, (list, tuple, set, frozenset)):
        open_br, close_br = _sequence_brackets(value)
        items = []
        for idx, item in enumerate(value):
            if idx >= max_items:
                items.append(f"... ({len(value)} items)")
                break
            items.append(_safe_repr(item, depth=depth + 1))
        return f"{open_br}{', '.join(items)}{close_br}"

    rendered = _repr.repr(value)
    if len(rendered) > max_length:
        return rendered[:max_length] + "... (truncated)"
    return rendered


def _format_arguments(args: Sequence[Any], kwargs: MutableMapping[str, Any]) -> str:
    parts = []
    if args:
        parts.append("args=[" + ", ".join(_safe_repr(arg) for arg in args) + "]")
    if kwargs:
        parts.append(
            "kwargs={"
            + ", ".join(f"{key}={_safe_repr(value)}" for key, value in kwargs.items())
            + "}"
        )
    if not parts:
        return "no-args"
    return ", ".join(parts)


def debug_log_call(
    logger: logging.Logger, *, name: Optional[str] = None, log_result: bool = True
) -> Callable[[F], F]:
    """Return a decorator that emits compact DEBUG logs for function calls."""

    def decorator(func: F) -> F:
        if getattr(func, "_debug_logging_wrapped", False):
            return func

        qualname = name or getattr(func, "__qualname__", getattr(func, "__name__", "<callable>"))

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Entering %s (%s)", qualname, _format_arguments(args, kwargs))
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception:
                if logger.isEnabledFor(logging.DEBUG):
                    logger.exception("Exception in %s", qualname)
                raise
            if logger.isEnabledFor(logging.DEBUG):
                elapsed_ms = (time.perf_counter() - started) * 1000.0
                if log_result:
                    logger.debug(
                        "Exiting %s after %.2f ms -> %s", qualname, elapsed_ms, _safe_repr(result)
                    )
                else:
                    logger.debug("Exiting %s after %.2f ms", qualname, elapsed_ms)
            return result

        setattr(wrapper, "_debug_logging_wrapped", True)
        return cast(F, wrapper)

    return decorator
