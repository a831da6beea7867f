"""Best-effort realtime fan-out of newly committed chat messages.

The relay is not a source of truth: if a publish fails, or nobody is joined to
the conversation's group, the message is still in the log and clients pick it
up on their next ``list`` call.
"""

from __future__ import annotations

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from rest_framework.fields import DateTimeField

logger = logging.getLogger(__name__)

MESSAGE_CREATED = "message-created"

# Channel layer event type; dispatched to ConversationConsumer.message_created.
MESSAGE_CREATED_EVENT = "message.created"


def conversation_group(conversation_id) -> str:
    return f"conversation.{int(conversation_id)}"


def message_payload(message) -> dict:
    """Wire shape shared by the REST response and the relay event."""

    return {
        "id": message.id,
        "conversation": message.conversation_id,
        "sender": message.sender_id,
        "sender_username": message.sender.username,
        "text": message.text,
        "created_at": DateTimeField().to_representation(message.created_at),
    }


def publish_message_created(payload: dict) -> bool:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("relay disabled: no channel layer configured")
        return False

    try:
        async_to_sync(channel_layer.group_send)(
            conversation_group(payload["conversation"]),
            {"type": MESSAGE_CREATED_EVENT, "message": payload},
        )
    except Exception:
        logger.warning(
            "relay publish failed",
            exc_info=True,
            extra={"conversation_id": payload.get("conversation"), "message_id": payload.get("id")},
        )
        return False

    return True
