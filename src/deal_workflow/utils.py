"""
Utility helpers for the Deal Workflow Engine.

uuid7() wraps fastuuid.uuid7() to return a stdlib uuid.UUID instance.
fastuuid.UUID is a Rust-backed type that is NOT isinstance-compatible with
uuid.UUID, so we roundtrip through the string representation. UUIDv7 keeps
timeline entry ids sortable by creation time.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import fastuuid


def uuid7() -> UUID:
    """Generate a UUIDv7 (time-sortable) as a stdlib uuid.UUID."""
    return UUID(str(fastuuid.uuid7()))


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def resolve_field_path(data: Mapping[str, Any], path: str) -> Any:
    """
    Look up a dotted field path (e.g. 'terms.price') in nested mappings.

    Returns None as soon as a segment is missing or a non-mapping is hit.
    """
    value: Any = data
    for key in path.split('.'):
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
        if value is None:
            return None
    return value


# =============================================================================
# Read-only containers
# =============================================================================


def _read_only(self, *args: Any, **kwargs: Any) -> Any:
    raise TypeError(f'{type(self).__name__} is read-only; change deals through the executor')


class FrozenDict(dict):
    """
    dict that refuses in-place changes.

    Still a real dict, so pydantic serializes it and equality with plain
    dicts holds. Copies (copy(), model_dump(), deepcopy) are unaffected.
    """

    __setitem__ = __delitem__ = __ior__ = _read_only
    clear = pop = popitem = setdefault = update = _read_only

    def __reduce__(self):
        return (type(self), (dict(self),))


class FrozenList(list):
    """list that refuses in-place changes; compares equal to plain lists."""

    __setitem__ = __delitem__ = __iadd__ = __imul__ = _read_only
    append = extend = insert = pop = remove = clear = sort = reverse = _read_only

    def __reduce__(self):
        return (type(self), (list(self),))


def freeze(value: Any) -> Any:
    """Recursively replace dicts and lists with their read-only counterparts."""
    if isinstance(value, Mapping):
        return FrozenDict({key: freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return FrozenList(freeze(item) for item in value)
    if isinstance(value, tuple):
        return tuple(freeze(item) for item in value)
    return value
