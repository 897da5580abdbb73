"""Lock tokens recovered from Service Bus delivery tags.

The broker serializes the lock token GUID with the .NET byte layout: the
first three groups (4, 2 and 2 bytes) are little-endian, the last 8 bytes
are kept in order. Reading the tag as RFC 4122 bytes therefore needs the
byte pairs (0,3), (1,2), (4,5) and (6,7) swapped.
"""

from __future__ import annotations

import uuid

from servicebus.core.errors import InvalidDeliveryTagError

DELIVERY_TAG_SIZE = 16


def swap_guid_byte_order(raw: bytes) -> bytes:
    """Swap between the .NET and RFC 4122 GUID byte layouts. Self-inverse."""
    swapped = bytearray(raw)
    for left, right in ((0, 3), (1, 2), (4, 5), (6, 7)):
        swapped[left], swapped[right] = swapped[right], swapped[left]
    return bytes(swapped)


def lock_token_from_delivery_tag(tag: bytes) -> uuid.UUID:
    """
    Derive the lock token from a delivery tag.

    Args:
        tag: Raw delivery tag of a received message.

    Returns:
        The lock token as a standard UUID.

    Raises:
        InvalidDeliveryTagError: If the tag is not exactly 16 bytes long.
    """
    if len(tag) != DELIVERY_TAG_SIZE:
        raise InvalidDeliveryTagError(bytes(tag))
    return uuid.UUID(bytes=swap_guid_byte_order(tag))


def delivery_tag_from_lock_token(token: uuid.UUID) -> bytes:
    """Serialize a lock token back to the broker's delivery tag layout."""
    return swap_guid_byte_order(token.bytes)
