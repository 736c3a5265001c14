"""Checked accessors for step and workflow parameter bags."""

from collections.abc import Mapping
from typing import Any

from factotum.utils.exceptions import ParameterError

_MISSING = object()


def _lookup(parameters: Mapping[str, Any], key: str, required: bool) -> Any:
    value = parameters.get(key, _MISSING)
    if value is _MISSING or value is None:
        if required:
            raise ParameterError(f"Missing required parameter '{key}'")
        return _MISSING
    return value


def _mismatch(key: str, expected: str, value: Any) -> ParameterError:
    return ParameterError(
        f"Parameter '{key}' must be {expected}, got {type(value).__name__}"
    )


def get_str(
    parameters: Mapping[str, Any], key: str, default: str | None = None, required: bool = False
) -> str | None:
    value = _lookup(parameters, key, required)
    if value is _MISSING:
        return default
    if not isinstance(value, str):
        raise _mismatch(key, "a string", value)
    if required and not value.strip():
        raise ParameterError(f"Parameter '{key}' must not be empty")
    return value


def get_int(
    parameters: Mapping[str, Any], key: str, default: int | None = None, required: bool = False
) -> int | None:
    value = _lookup(parameters, key, required)
    if value is _MISSING:
        return default
    # bool is an int subclass, reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise _mismatch(key, "an integer", value)
    return value


def get_int_list(
    parameters: Mapping[str, Any], key: str, default: list[int] | None = None
) -> list[int] | None:
    value = _lookup(parameters, key, False)
    if value is _MISSING:
        return default
    if not isinstance(value, list) or any(
        isinstance(v, bool) or not isinstance(v, int) for v in value
    ):
        raise _mismatch(key, "a list of integers", value)
    return list(value)


def get_str_list(
    parameters: Mapping[str, Any], key: str, default: list[str] | None = None
) -> list[str] | None:
    value = _lookup(parameters, key, False)
    if value is _MISSING:
        return default
    if not isinstance(value, list) or any(not isinstance(v, str) for v in value):
        raise _mismatch(key, "a list of strings", value)
    return list(value)


def get_mapping(
    parameters: Mapping[str, Any], key: str, default: dict[str, Any] | None = None
) -> dict[str, Any] | None:
    value = _lookup(parameters, key, False)
    if value is _MISSING:
        return default
    if not isinstance(value, dict):
        raise _mismatch(key, "a mapping", value)
    return dict(value)


def get_any(parameters: Mapping[str, Any], key: str, default: Any = None) -> Any:
    value = _lookup(parameters, key, False)
    return default if value is _MISSING else value
