"""
Projection of tagged dataclasses onto AMQP annotation maps.

Responsibilities:
- Turn a dataclass instance into `{annotation key: value}` following the
  omit-empty policy below.
- Rebuild a dataclass from an annotation map (inbound path).

Omit-empty policy, per tagged field:
- Optional field (`X | None`): emitted when set; emitted as None when unset
  only if the tag carries `persistempty`.
- Plain field: emitted when it differs from its type's zero value, or always
  with `persistempty`.

Untagged fields are never projected.
"""

from __future__ import annotations

import dataclasses
import logging
import typing
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, NamedTuple, TypeVar

from servicebus.core.errors import NotAStructureError
from servicebus.schemas.tags import AnnotationTag, parse_tag

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FieldDescriptor(NamedTuple):
    attribute: str
    tag: AnnotationTag
    optional: bool


@lru_cache(maxsize=None)
def field_descriptors(cls: type) -> tuple[FieldDescriptor, ...]:
    """
    Build the descriptor table of a dataclass type once.

    Raises:
        UnrecognizedTagOptionError: If any field annotation has an unknown flag.
    """
    hints = typing.get_type_hints(cls)
    descriptors = []
    for f in dataclasses.fields(cls):
        tag = parse_tag(f.metadata)
        if tag is None:
            continue
        optional = type(None) in typing.get_args(hints.get(f.name))
        descriptors.append(FieldDescriptor(attribute=f.name, tag=tag, optional=optional))
    return tuple(descriptors)


def _is_zero(value: Any) -> bool:
    try:
        return bool(value == type(value)())
    except TypeError:
        # Types without a no-argument constructor (datetime, UUID) have no zero value.
        return False


def encode_structure(structure: Any) -> dict[str, Any]:
    """
    Project a tagged dataclass instance onto an annotation map.

    Args:
        structure: Dataclass instance, e.g. `SystemProperties`.

    Returns:
        Mapping from annotation key to field value.

    Raises:
        NotAStructureError: If `structure` is not a dataclass instance.
        UnrecognizedTagOptionError: If a field annotation is malformed.
    """
    if not dataclasses.is_dataclass(structure) or isinstance(structure, type):
        raise NotAStructureError(structure)

    encoded: dict[str, Any] = {}
    for descriptor in field_descriptors(type(structure)):
        value = getattr(structure, descriptor.attribute)
        persist_empty = descriptor.tag.persist_empty
        if descriptor.optional:
            if value is not None or persist_empty:
                encoded[descriptor.tag.name] = value
        elif persist_empty or not _is_zero(value):
            encoded[descriptor.tag.name] = value
    return encoded


def decode_structure(values: Mapping[str, Any], cls: type[T]) -> T:
    """
    Build a fresh `cls` instance from an annotation map.

    Keys that match no tagged field are ignored.

    Raises:
        NotAStructureError: If `cls` is not a dataclass type.
    """
    if not (isinstance(cls, type) and dataclasses.is_dataclass(cls)):
        raise NotAStructureError(cls)

    structure = cls()
    for descriptor in field_descriptors(cls):
        if descriptor.tag.name in values:
            setattr(structure, descriptor.attribute, values[descriptor.tag.name])

    ignored = set(values) - {d.tag.name for d in field_descriptors(cls)}
    if ignored:
        logger.debug("Ignoring unmapped annotations for %s: %s", cls.__name__, sorted(map(str, ignored)))
    return structure
