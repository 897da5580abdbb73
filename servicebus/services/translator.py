"""
Translation between `Message` and the AMQP wire message.

Outbound (`to_amqp_message`):
- Reuses the wire message a received `Message` wraps, so a message can be
  forwarded as-is.
- Projects `SystemProperties` onto message annotations; this is how a
  scheduled enqueue time reaches the broker.

Inbound (`message_from_amqp`):
- Reverses the projection into a fresh `SystemProperties`.
- Recovers the lock token from the delivery tag.
- Keeps a reference to the wire message for later settlement.

Both directions are synchronous and never retry; errors go to the caller.
"""

from __future__ import annotations

import logging

from servicebus.core.errors import EmptyPayloadError
from servicebus.schemas.amqp import AMQPMessage, MessageHeader, MessageProperties
from servicebus.schemas.message import Message, SystemProperties
from servicebus.services.lock_token import lock_token_from_delivery_tag
from servicebus.services.structure import decode_structure, encode_structure

logger = logging.getLogger(__name__)

LOCK_TOKEN_ANNOTATION = "x-opt-lock-token"


def to_amqp_message(message: Message) -> AMQPMessage:
    """
    Build the wire representation of a message.

    Args:
        message: Message to send.

    Returns:
        Populated AMQP message.

    Raises:
        NotAStructureError: If system properties cannot be projected.
        UnrecognizedTagOptionError: If a system property annotation is malformed.
    """
    amqp_message = message.amqp_message
    if amqp_message is None:
        amqp_message = AMQPMessage.from_bytes(message.data)

    properties = MessageProperties(message_id=message.message_id)
    if message.group_id is not None:
        properties.group_id = message.group_id
    if message.group_sequence is not None:
        properties.group_sequence = message.group_sequence

    properties.correlation_id = message.correlation_id
    properties.content_type = message.content_type
    properties.subject = message.label
    properties.to = message.to
    properties.reply_to = message.reply_to
    properties.reply_to_group_id = message.reply_to_group_id
    amqp_message.properties = properties

    if message.user_properties:
        amqp_message.application_properties = dict(message.user_properties)

    if message.system_properties is not None:
        amqp_message.annotations = encode_structure(message.system_properties)

    if message.lock_token is not None:
        if amqp_message.delivery_annotations is None:
            amqp_message.delivery_annotations = {}
        amqp_message.delivery_annotations[LOCK_TOKEN_ANNOTATION] = message.lock_token

    if message.ttl is not None:
        if amqp_message.header is None:
            amqp_message.header = MessageHeader()
        amqp_message.header.ttl = message.ttl

    return amqp_message


def message_from_amqp(amqp_message: AMQPMessage) -> Message:
    """
    Rebuild a `Message` from a received wire message.

    Args:
        amqp_message: Message delivered by the transport.

    Returns:
        Message referencing `amqp_message` for settlement.

    Raises:
        EmptyPayloadError: If the wire message has no data section.
        InvalidDeliveryTagError: If a non-empty delivery tag is not 16 bytes.
    """
    if not amqp_message.data:
        raise EmptyPayloadError()

    message = Message(data=amqp_message.data[0])
    message._amqp_message = amqp_message

    props = amqp_message.properties
    if props is not None:
        if isinstance(props.message_id, str):
            message.message_id = props.message_id
        elif props.message_id is not None:
            logger.debug("Ignoring message id of type %s", type(props.message_id).__name__)
        message.group_id = props.group_id
        message.group_sequence = props.group_sequence
        if isinstance(props.correlation_id, str):
            message.correlation_id = props.correlation_id
        message.content_type = props.content_type
        message.label = props.subject
        message.to = props.to
        message.reply_to = props.reply_to
        message.reply_to_group_id = props.reply_to_group_id

    header = amqp_message.header or MessageHeader()
    message.delivery_count = header.delivery_count + 1
    if amqp_message.header is not None:
        message.ttl = header.ttl

    if amqp_message.application_properties is not None:
        message.user_properties = dict(amqp_message.application_properties)

    if amqp_message.annotations is not None:
        message.system_properties = decode_structure(amqp_message.annotations, SystemProperties)

    if amqp_message.delivery_tag:
        message.lock_token = lock_token_from_delivery_tag(amqp_message.delivery_tag)

    return message
