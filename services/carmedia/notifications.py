# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
StatusHub — notification fan-out for connected head units and phones.

Clients open a WebSocket on the service and receive every status snapshot
as ``{"type": "audio_status", "data": {...}}``.  The hub never waits on a
client: a send still running when the next snapshot arrives means that
snapshot is skipped, and clients that error out are dropped.
"""

import asyncio
import json
import logging

from aiohttp import web

log = logging.getLogger(__name__)

MESSAGE_TYPE = "audio_status"


class StatusHub:

    def __init__(self, transport=None):
        self.transport = transport
        self._clients: set[web.WebSocketResponse] = set()
        self._send_task: asyncio.Task | None = None
        self.last: dict | None = None

    def __len__(self):
        return len(self._clients)

    def add(self, ws: web.WebSocketResponse):
        self._clients.add(ws)
        log.info("Status client connected (%d total)", len(self._clients))

    def discard(self, ws: web.WebSocketResponse):
        self._clients.discard(ws)
        log.info("Status client disconnected (%d remaining)", len(self._clients))

    def publish(self, snapshot):
        data = snapshot.to_dict() if hasattr(snapshot, "to_dict") else dict(snapshot)
        self.last = data
        if self.transport is not None:
            self.transport.publish(data)
        if not self._clients:
            return
        if self._send_task and not self._send_task.done():
            return
        self._send_task = asyncio.create_task(self.broadcast(data))

    async def broadcast(self, data: dict):
        message = json.dumps({"type": MESSAGE_TYPE, "data": data})
        disconnected = set()
        for ws in list(self._clients):
            try:
                await ws.send_str(message)
            except Exception:
                disconnected.add(ws)
        if disconnected:
            self._clients -= disconnected
            log.info("Dropped %d status clients", len(disconnected))

    async def send_last(self, ws: web.WebSocketResponse):
        """Give a new client the latest snapshot right away."""
        if self.last is None:
            return
        try:
            await ws.send_json({"type": MESSAGE_TYPE, "data": self.last})
        except Exception as e:
            log.error("Error sending status: %s", e)

    async def close(self):
        if self._send_task:
            self._send_task.cancel()
            try:
                await self._send_task
            except (asyncio.CancelledError, Exception):
                pass
            self._send_task = None
        for ws in list(self._clients):
            await ws.close()
        self._clients.clear()
