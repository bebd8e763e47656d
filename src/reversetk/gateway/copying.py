"""
gateway/copying.py — Payload Deep Copy

Structural clone used before rewriting an outbound payload. The transport
keeps a reference to the original for its own retry bookkeeping, so the
rewrite must never touch it.

Differences from copy.deepcopy:
  - Functions are not shared: each one is replaced by a fresh forwarding
    function that delegates every call to the original.
  - Never raises: a class whose constructor or __setitem__ misbehaves is
    rebuilt through __new__ or its builtin base instead.
  - Values with no reachable state (no __dict__, no __slots__, not one of
    the containers handled here) cannot be reconstructed and are shared.
    deque and bytearray are copied; other C-level mutables are not.
"""

from __future__ import annotations

import functools
import inspect
from collections import defaultdict, deque
from enum import Enum
from typing import Any, Callable, Optional

_IMMUTABLE = (type(None), bool, int, float, complex, str, bytes, range, Enum, type)


def copy_payload(value: Any) -> Any:
    """
    Return a structural copy of `value` sharing no mutable container with it.

    Instances of user classes and of builtin-container subclasses keep their
    class, so copied objects still have their methods. Aliased containers
    stay aliased in the copy and self-references do not recurse forever.
    """
    return _copy(value, {})


def unwrap(func: Callable[..., Any]) -> Optional[Callable[..., Any]]:
    """Return the original behind a forwarder produced by copy_payload."""
    return getattr(func, "__wrapped__", None)


# ─────────────────────────────────────────────────────────────────────────────
# Internals
# ─────────────────────────────────────────────────────────────────────────────

def _forwarder(func: Callable[..., Any]) -> Callable[..., Any]:
    def forward(*args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    try:
        functools.update_wrapper(forward, func)
    except Exception:
        forward.__wrapped__ = func  # type: ignore[attr-defined]
    return forward


def _copy(value: Any, memo: dict[int, Any]) -> Any:
    if isinstance(value, _IMMUTABLE):
        return value

    key = id(value)
    if key in memo:
        return memo[key]

    if inspect.isroutine(value) or isinstance(value, functools.partial):
        result = _forwarder(value)
        memo[key] = result
        return result
    if isinstance(value, dict):
        return _copy_dict(value, memo)
    if isinstance(value, list):
        return _copy_list(value, memo)
    if isinstance(value, (tuple, set, frozenset)):
        return _copy_collection(value, memo)
    if isinstance(value, deque):
        return _copy_deque(value, memo)
    if isinstance(value, bytearray):
        return _copy_bytearray(value, memo)
    return _copy_object(value, memo)


def _blank(value: Any, base: type) -> Any:
    """An empty instance of type(value), or of `base` if that class won't build bare."""
    cls = type(value)
    if cls is base:
        return base()
    try:
        return cls()
    except Exception:
        pass
    try:
        return cls.__new__(cls)
    except Exception:
        return base()


def _copy_dict(value: dict, memo: dict[int, Any]) -> dict:
    result = _blank(value, dict)
    memo[id(value)] = result
    if isinstance(value, defaultdict) and isinstance(result, defaultdict):
        result.default_factory = value.default_factory
    _copy_attributes(value, result, memo)
    for k, v in dict.items(value):
        k, v = _copy(k, memo), _copy(v, memo)
        try:
            result[k] = v
        except Exception:
            dict.__setitem__(result, k, v)
    return result


def _copy_list(value: list, memo: dict[int, Any]) -> list:
    result = _blank(value, list)
    memo[id(value)] = result
    _copy_attributes(value, result, memo)
    items = [_copy(item, memo) for item in list.__iter__(value)]
    try:
        result.extend(items)
    except Exception:
        list.extend(result, items)
    return result


def _copy_deque(value: deque, memo: dict[int, Any]) -> deque:
    try:
        result = type(value)(maxlen=value.maxlen)
    except Exception:
        result = deque(maxlen=value.maxlen)
    memo[id(value)] = result
    _copy_attributes(value, result, memo)
    deque.extend(result, [_copy(item, memo) for item in value])
    return result


def _copy_bytearray(value: bytearray, memo: dict[int, Any]) -> bytearray:
    try:
        result = type(value)(value)
    except Exception:
        result = bytearray(value)
    memo[id(value)] = result
    _copy_attributes(value, result, memo)
    return result


def _copy_collection(value: Any, memo: dict[int, Any]) -> Any:
    # Immutable collections are built in one step; a cycle running through
    # one produces an extra, equal copy of it.
    items = [_copy(item, memo) for item in value]
    cls = type(value)
    try:
        if hasattr(value, "_fields"):
            result = cls(*items)
        else:
            result = cls(items)
    except Exception:
        for base in (tuple, frozenset, set):
            if isinstance(value, base):
                result = base(items)
                break
    memo[id(value)] = result
    return result


def _copy_attributes(source: Any, target: Any, memo: dict[int, Any]) -> None:
    state = getattr(source, "__dict__", None) or {}
    for name, attr in state.items():
        try:
            object.__setattr__(target, name, _copy(attr, memo))
        except Exception:
            continue
    for name in _slot_names(type(source)):
        if hasattr(source, name):
            try:
                object.__setattr__(target, name, _copy(getattr(source, name), memo))
            except Exception:
                continue


def _slot_names(cls: type) -> list[str]:
    names: list[str] = []
    for klass in cls.__mro__:
        slots = klass.__dict__.get("__slots__", ())
        if isinstance(slots, str):
            slots = (slots,)
        names.extend(s for s in slots if s not in ("__dict__", "__weakref__"))
    return names


def _copy_object(value: Any, memo: dict[int, Any]) -> Any:
    cls = type(value)
    reachable = hasattr(value, "__dict__") or bool(_slot_names(cls))
    result = None
    if reachable:
        try:
            result = cls.__new__(cls)
        except Exception:
            result = None

    if result is None:
        # Opaque value: forward it if it can be called, otherwise share it.
        result = _forwarder(value) if callable(value) else value
        memo[id(value)] = result
        return result

    memo[id(value)] = result
    _copy_attributes(value, result, memo)
    return result
