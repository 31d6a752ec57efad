# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
ServiceBase — aiohttp plumbing shared by CarMedia daemons.

A daemon subclasses it, names itself and maps remote-control actions:

    class MediaService(ServiceBase):
        id = "media"
        name = "CarMedia"
        port = 4200
        action_map = {"go": "toggle", "right": "next"}

        async def handle_command(self, cmd, data) -> dict:
            ...   # extra keys for the JSON reply

Hooks, all optional:
    on_start() / on_stop()   around the HTTP server's lifetime
    handle_status()          body of GET /status
    on_ws_connect(ws)        first message for a new /ws client
    add_routes(app)          more routes on the same app

Handlers signal bad requests by raising ``CommandError``; the error
middleware turns it into HTTP 400 with the error's code.  Anything else
that escapes a handler is logged with its traceback and answered with 500.
"""

import asyncio
import logging
import signal

from aiohttp import web

from .notifications import StatusHub
from .watchdog import sd_notify, watchdog_loop

log = logging.getLogger(__name__)

INTERNAL_ERROR = "urn:carputer:internal"
INVALID_REQUEST = "urn:carputer:command:invalid"
UNKNOWN_COMMAND = "urn:carputer:command:unknown"


class CommandError(Exception):
    """A remote command that cannot be carried out as asked."""

    def __init__(self, code: str, message: str, detail: str | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"status": "error", "code": self.code, "message": self.message}
        if self.detail:
            body["detail"] = self.detail
        return body


@web.middleware
async def cors_middleware(request, handler):
    if request.method == "OPTIONS":
        resp = web.Response()
    else:
        resp = await handler(request)
    resp.headers["Access-Control-Allow-Origin"] = "*"
    resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return resp


@web.middleware
async def error_middleware(request, handler):
    try:
        return await handler(request)
    except CommandError as e:
        log.warning("%s %s rejected: %s (%s)", request.method, request.path, e.message, e.code)
        return web.json_response(e.to_dict(), status=400)
    except web.HTTPException:
        raise
    except Exception as e:
        log.exception("%s %s failed", request.method, request.path)
        return web.json_response(
            {"status": "error", "code": INTERNAL_ERROR, "message": str(e)}, status=500)


async def read_json_object(request: web.Request) -> dict:
    """Request body as a JSON object, or CommandError."""
    try:
        data = await request.json()
    except ValueError:
        raise CommandError(INVALID_REQUEST, "Body is not valid JSON")
    if not isinstance(data, dict):
        raise CommandError(INVALID_REQUEST, "Body must be a JSON object")
    return data


class ServiceBase:
    id: str = ""
    name: str = ""
    port: int = 0
    action_map: dict = {}

    def __init__(self):
        self.hub = StatusHub()
        self._runner: web.AppRunner | None = None
        self._watchdog: asyncio.Task | None = None

    def resolve_command(self, data: dict) -> str:
        """Command name from ``command``, or from ``action`` via the action map."""
        action = data.get("action")
        if not action:
            return data.get("command", "")
        cmd = self.action_map.get(action)
        if cmd is None:
            raise CommandError(UNKNOWN_COMMAND, f"Unmapped action: {action}")
        return cmd

    # ── Lifecycle ──

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[cors_middleware, error_middleware])
        app.router.add_get("/status", self._status_route)
        app.router.add_post("/command", self._command_route)
        app.router.add_get("/ws", self._ws_route)
        self.add_routes(app)
        return app

    async def start(self):
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        await web.TCPSite(self._runner, "0.0.0.0", self.port).start()
        log.info("%s listening on port %d (HTTP + WebSocket)", self.name, self.port)

        await self.on_start()
        self._watchdog = asyncio.create_task(watchdog_loop(status=f"{self.name} running"))

    async def stop(self):
        sd_notify("STOPPING=1")
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        await self.on_stop()
        await self.hub.close()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        log.info("%s stopped", self.name)

    async def run(self):
        """Start, serve until SIGTERM/SIGINT, then stop."""
        await self.start()
        done = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, done.set)
        try:
            await done.wait()
        finally:
            await self.stop()

    # ── Routes ──

    async def _status_route(self, request):
        return web.json_response(await self.handle_status())

    async def _command_route(self, request):
        data = await read_json_object(request)
        cmd = self.resolve_command(data)
        reply = {"status": "ok", "command": cmd}
        reply.update(await self.handle_command(cmd, data) or {})
        return web.json_response(reply)

    async def _ws_route(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.hub.add(ws)
        try:
            await self.on_ws_connect(ws)
            # Status is push-only; drain whatever the client sends
            async for _ in ws:
                pass
        finally:
            self.hub.discard(ws)
        return ws

    # ── Hooks ──

    async def on_start(self):
        pass

    async def on_stop(self):
        pass

    async def on_ws_connect(self, ws: web.WebSocketResponse):
        await self.hub.send_last(ws)

    async def handle_status(self) -> dict:
        return {"service": self.id, "name": self.name, "clients": len(self.hub)}

    def add_routes(self, app: web.Application):
        pass

    async def handle_command(self, cmd: str, data: dict) -> dict:
        raise NotImplementedError
