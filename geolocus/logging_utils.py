"""Verbose DEBUG call tracing for the locus pipeline modules."""

from __future__ import annotations

import inspect
import logging
import reprlib
from functools import wraps
from typing import Any, Callable, Iterable, MutableMapping, Optional, Sequence, Set, TypeVar, cast

import numpy as np
import sympy

from .model import Element, SampledCurve

F = TypeVar("F", bound=Callable[..., Any])

_repr = reprlib.Repr()
_repr.maxother = 120
_repr.maxlist = 6
_repr.maxtuple = 6
_repr.maxdict = 6
_repr.maxset = 6

_MAX_EXPR_CHARS = 160


def summarize(value: Any, *, max_items: int = 4) -> str:
    """Return a short, log-friendly description of ``value``."""

    if isinstance(value, Element):
        return f"<{value.kind} {value.label()}>"
    if isinstance(value, SampledCurve):
        return f"SampledCurve(points={len(value)}, branches={len(value.branches())})"
    if isinstance(value, np.ndarray):
        if value.size == 0 or value.size > max_items:
            return f"ndarray(shape={tuple(value.shape)}, dtype={value.dtype})"
        return f"ndarray({_repr.repr(value.tolist())})"
    if isinstance(value, sympy.Basic):
        text = sympy.sstr(value)
        if len(text) > _MAX_EXPR_CHARS:
            text = text[:_MAX_EXPR_CHARS] + "..."
        return text
    if isinstance(value, (list, tuple)):
        shown = [summarize(item) for item in list(value)[:max_items]]
        if len(value) > max_items:
            shown.append(f"... +{len(value) - max_items}")
        open_br, close_br = ("(", ")") if isinstance(value, tuple) else ("[", "]")
        return open_br + ", ".join(shown) + close_br
    return _repr.repr(value)


def _format_call(args: Sequence[Any], kwargs: MutableMapping[str, Any]) -> str:
    parts = [summarize(arg) for arg in args]
    parts.extend(f"{key}={summarize(val)}" for key, val in kwargs.items())
    return ", ".join(parts) if parts else "no-args"


def debug_log_call(
    logger: logging.Logger, *, name: Optional[str] = None, log_result: bool = True
) -> Callable[[F], F]:
    """Return a decorator that logs entry, exit and exceptions at DEBUG level."""

    def decorator(func: F) -> F:
        if getattr(func, "_geolocus_traced", False) or inspect.iscoroutinefunction(func):
            return func

        qualname = name or getattr(func, "__qualname__", getattr(func, "__name__", "<callable>"))

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            if not logger.isEnabledFor(logging.DEBUG):
                return func(*args, **kwargs)
            logger.debug("-> %s(%s)", qualname, _format_call(args, kwargs))
            try:
                result = func(*args, **kwargs)
            except Exception:
                logger.debug("!! %s raised", qualname, exc_info=True)
                raise
            if log_result:
                logger.debug("<- %s = %s", qualname, summarize(result))
            else:
                logger.debug("<- %s", qualname)
            return result

        setattr(wrapper, "_geolocus_traced", True)
        return cast(F, wrapper)

    return decorator


def _trace_class(cls: type, logger: logging.Logger, skip: Set[str]) -> None:
    for attr_name, attr_value in list(cls.__dict__.items()):
        if attr_name.startswith("__"):
            continue
        qualified = f"{cls.__name__}.{attr_name}"
        if attr_name in skip or qualified in skip:
            continue
        if isinstance(attr_value, (staticmethod, classmethod)):
            func = attr_value.__func__
            if getattr(func, "__module__", None) != cls.__module__:
                continue
            wrapped = debug_log_call(logger, name=qualified)(func)
            setattr(cls, attr_name, type(attr_value)(wrapped))
        elif inspect.isfunction(attr_value) and attr_value.__module__ == cls.__module__:
            setattr(cls, attr_name, debug_log_call(logger, name=qualified)(attr_value))


def apply_debug_logging(
    namespace: MutableMapping[str, Any],
    *,
    logger: Optional[logging.Logger] = None,
    skip: Optional[Iterable[str]] = None,
    wrap_methods: bool = True,
) -> None:
    """Wrap the public callables defined in ``namespace`` with DEBUG tracing.

    Private helpers (leading underscore) are left alone; they run inside tight
    loops such as curve marching and would flood the log.
    """

    module_name = namespace.get("__name__")
    logger = logger or logging.getLogger(str(module_name or __name__))
    skip_set: Set[str] = set(skip or [])

    for name, value in list(namespace.items()):
        if name.startswith("_") or name in skip_set:
            continue
        if inspect.isfunction(value) and value.__module__ == module_name:
            namespace[name] = debug_log_call(logger, name=name)(value)
        elif wrap_methods and inspect.isclass(value) and value.__module__ == module_name:
            _trace_class(value, logger, skip_set)


__all__ = ["apply_debug_logging", "debug_log_call", "summarize"]
