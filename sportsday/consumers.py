"""Websocket consumer for the live house scoreboard."""

from __future__ import annotations

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .broadcast import SCOREBOARD_GROUP


class ScoreboardConsumer(AsyncJsonWebsocketConsumer):
    async def connect(self):
        self.group_name = SCOREBOARD_GROUP
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, code):  # pragma: no cover - infrastructure
        await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def broadcast(self, event):
        await self.send_json(event["event"])
