"""
Field annotations that map dataclass attributes to wire-annotation keys.

A tagged field carries a string under `TAG_KEY` in its dataclass metadata:

    sequence_number: int | None = annotation("x-opt-sequence-number")
    partition_id: int = annotation("x-opt-partition-id,persistempty", default=0)

The first comma-separated token is the annotation key. The only flag
understood is `persistempty`, which forces the field onto the wire even when
it holds its empty value.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from typing import Any, NamedTuple

from servicebus.core.errors import UnrecognizedTagOptionError

TAG_KEY = "annotation"
PERSIST_EMPTY = "persistempty"


class AnnotationTag(NamedTuple):
    name: str
    persist_empty: bool = False


def parse_tag(metadata: Mapping[str, Any]) -> AnnotationTag | None:
    """
    Parse the annotation stored in a field's metadata.

    Args:
        metadata: `dataclasses.Field.metadata` of the field.

    Returns:
        The parsed tag, or None when the field is not tagged.

    Raises:
        UnrecognizedTagOptionError: If a flag other than `persistempty` is present.
    """
    raw = metadata.get(TAG_KEY)
    if raw is None:
        return None

    name, *options = raw.split(",")
    persist_empty = False
    for option in options:
        if option == PERSIST_EMPTY:
            persist_empty = True
        else:
            raise UnrecognizedTagOptionError(option)

    return AnnotationTag(name=name.strip(), persist_empty=persist_empty)


def annotation(tag: str, *, default: Any = None) -> Any:
    """Declare a dataclass field projected onto the wire annotation `tag`."""
    return dataclasses.field(default=default, metadata={TAG_KEY: tag})
