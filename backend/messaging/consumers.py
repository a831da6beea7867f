from __future__ import annotations

import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .relay import MESSAGE_CREATED, conversation_group

logger = logging.getLogger(__name__)


class ConversationConsumer(AsyncJsonWebsocketConsumer):
    """Websocket side of the relay.

    Clients join the group of a conversation id they obtained from an
    authorized REST call; membership itself is not checked here. The consumer
    keeps no state beyond the groups joined on this connection.
    """

    async def connect(self):
        self.joined: set[str] = set()
        await self.accept()

    async def disconnect(self, code):
        for group in list(getattr(self, "joined", ())):
            await self.channel_layer.group_discard(group, self.channel_name)
        self.joined = set()

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        try:
            content = await self.decode_json(text_data) if text_data else None
        except ValueError:
            content = None
        if not isinstance(content, dict):
            await self.send_json({"type": "error", "message": "Expected a JSON object"})
            return
        await self.receive_json(content, **kwargs)

    async def receive_json(self, content, **kwargs):
        kind = content.get("type")
        if kind not in {"join", "leave"}:
            await self.send_json({"type": "error", "message": f"Unknown event type: {kind}"})
            return

        try:
            conversation_id = int(content.get("conversation_id"))
        except (TypeError, ValueError):
            await self.send_json({"type": "error", "message": "conversation_id must be an integer"})
            return

        group = conversation_group(conversation_id)
        if kind == "join":
            await self.channel_layer.group_add(group, self.channel_name)
            self.joined.add(group)
            logger.debug("relay join", extra={"conversation_id": conversation_id})
            await self.send_json({"type": "joined", "conversation_id": conversation_id})
        else:
            await self.channel_layer.group_discard(group, self.channel_name)
            self.joined.discard(group)
            await self.send_json({"type": "left", "conversation_id": conversation_id})

    async def message_created(self, event):
        await self.send_json({"type": MESSAGE_CREATED, "message": event["message"]})
