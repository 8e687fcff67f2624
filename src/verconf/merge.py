"""Fill a partial document with defaults.

The merger walks the dataclass annotations of :mod:`verconf.schema`.  A
value read from disk is kept only if it has the annotated type; anything
else falls back to the field default and, when a ``warnings`` list is
supplied, a message describing the substitution is appended to it.
Unknown keys are ignored so documents written by newer releases still load.
"""

from __future__ import annotations

import types
from collections.abc import Mapping
from dataclasses import fields, is_dataclass
from functools import lru_cache
from typing import Any, Literal, Union, get_args, get_origin, get_type_hints

from .errors import ConfigValidationError
from .schema import CURRENT_VERSION, ConfigDocument, PartialDocument

_UNION_TYPES = {Union, types.UnionType}


@lru_cache(maxsize=None)
def _hints(cls: type) -> dict[str, Any]:
    return get_type_hints(cls)


def _describe(hint: Any) -> str:
    if is_dataclass(hint):
        return "mapping"
    origin = get_origin(hint)
    if origin is Literal:
        return "one of " + ", ".join(repr(a) for a in get_args(hint))
    if origin in _UNION_TYPES:
        return " or ".join(_describe(a) for a in get_args(hint))
    if origin is not None:
        return getattr(origin, "__name__", str(origin))
    if hint is type(None):
        return "null"
    return getattr(hint, "__name__", str(hint))


def _is_optional(hint: Any) -> bool:
    return get_origin(hint) in _UNION_TYPES and type(None) in get_args(hint)


def _coerce(value: Any, hint: Any, where: str, warnings: list[str] | None) -> tuple[bool, Any]:
    """Return ``(True, converted)`` if *value* matches *hint*."""

    origin = get_origin(hint)
    if origin in _UNION_TYPES:
        args = get_args(hint)
        if value is None:
            return type(None) in args, None
        for arg in args:
            if arg is type(None):
                continue
            ok, out = _coerce(value, arg, where, warnings)
            if ok:
                return True, out
        return False, None
    if origin is Literal:
        allowed = get_args(hint)
        return (not isinstance(value, bool) and value in allowed), value
    if origin is list:
        (item_hint,) = get_args(hint)
        if not isinstance(value, list):
            return False, None
        items = []
        for idx, item in enumerate(value):
            ok, out = _coerce(item, item_hint, f"{where}[{idx}]", warnings)
            if ok:
                items.append(out)
            else:
                _warn(warnings, f"{where}[{idx}]: expected {_describe(item_hint)}, got {type(item).__name__}; entry dropped")
        return True, items
    if origin is dict:
        _, value_hint = get_args(hint)
        if not isinstance(value, Mapping):
            return False, None
        entries = {}
        for key, item in value.items():
            ok, out = _coerce(item, value_hint, f"{where}.{key}", warnings)
            if ok:
                entries[str(key)] = out
            else:
                _warn(warnings, f"{where}.{key}: expected {_describe(value_hint)}, got {type(item).__name__}; entry dropped")
        return True, entries
    if is_dataclass(hint):
        if isinstance(value, hint):
            return True, value
        if not isinstance(value, Mapping):
            return False, None
        return True, _merge_dataclass(hint, value, where, warnings)
    if hint is bool:
        return isinstance(value, bool), value
    if hint is int:
        return isinstance(value, int) and not isinstance(value, bool), value
    if hint is float:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        return ok, float(value) if ok else None
    if hint is str:
        return isinstance(value, str), value
    return False, None


def _warn(warnings: list[str] | None, message: str) -> None:
    if warnings is not None:
        warnings.append(message)


def _merge_dataclass(cls: type, raw: Mapping[str, Any], where: str, warnings: list[str] | None) -> Any:
    hints = _hints(cls)
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.metadata.get("readonly") or f.name not in raw:
            continue
        value = raw[f.name]
        hint = hints[f.name]
        path = f"{where}.{f.name}" if where else f.name
        if value is None and not _is_optional(hint):
            # ``key:`` with no value reads as null; treat it as absent.
            continue
        ok, out = _coerce(value, hint, path, warnings)
        if ok:
            kwargs[f.name] = out
        else:
            _warn(warnings, f"{path}: expected {_describe(hint)}, got {type(value).__name__}; using default")
    return cls(**kwargs)


def merge_with_defaults(partial: PartialDocument, warnings: list[str] | None = None) -> ConfigDocument:
    """Return a fully populated document built from *partial*.

    Never raises for bad data.  The version of *partial* is preserved; the
    store decides whether and when to bump it.
    """

    raw = {k: v for k, v in partial.data.items() if k != "version"}
    doc = _merge_dataclass(ConfigDocument, raw, "", warnings)
    doc.version = partial.version if partial.version >= 1 else CURRENT_VERSION
    return doc


def merge_section(name: str, raw: Any, warnings: list[str] | None = None) -> Any:
    """Return the value of top-level field *name* built from *raw*.

    Section objects of the right type are returned unchanged.  Plain
    mappings are merged against the section defaults, never against a stored
    section.  :class:`ConfigValidationError` is raised for unknown names or
    values of the wrong type.
    """

    hints = _hints(ConfigDocument)
    if name == "version" or name not in hints:
        raise ConfigValidationError(f"unknown config section {name!r}")
    hint = hints[name]
    if is_dataclass(hint) and isinstance(raw, hint):
        return raw
    ok, out = _coerce(raw, hint, name, warnings)
    if not ok:
        raise ConfigValidationError(
            f"{name}: expected {_describe(hint)}, got {type(raw).__name__}"
        )
    return out


__all__ = ["merge_with_defaults", "merge_section"]
