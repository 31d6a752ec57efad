#!/usr/bin/env python3
# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
CarMedia Playback Service (carmedia-server)

Plays tracks from removable storage through mpg123 under remote control.
Head units and phones send commands to POST /command and receive status
snapshots on the /ws WebSocket; the library indexer pushes track records to
POST /catalog and clients browse the mounted ones with GET /catalog.

Port: 4200
"""

import asyncio
import logging
import os
import sys

from aiohttp import web

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from carmedia.catalog import TrackCatalog
from carmedia.config import cfg
from carmedia.engine import PlaybackEngine
from carmedia.mounts import MountResolver
from carmedia.service_base import CommandError, ServiceBase, read_json_object
from carmedia.transport import Transport

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger('carmedia')


def _int_param(data, key):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise CommandError("urn:carputer:command:invalid",
                           f"'{key}' must be an integer", repr(value))
    return value


class MediaService(ServiceBase):
    """Playback engine behind an HTTP/WebSocket control surface."""

    id = "media"
    name = "CarMedia"
    port = 4200
    action_map = {
        "play": "toggle",
        "pause": "toggle",
        "go": "toggle",
        "next": "next",
        "prev": "prev",
        "right": "next",
        "left": "prev",
        "stop": "stop",
        "shuffle": "toggle_shuffle",
        "repeat": "toggle_repeat",
    }

    def __init__(self, engine=None, catalog=None, transport=None):
        super().__init__()
        self.port = int(cfg("service", "port", default=self.port))
        self.catalog = catalog if catalog is not None else TrackCatalog()
        self.transport = transport if transport is not None else Transport()
        self.hub.transport = self.transport
        self.engine = engine if engine is not None else PlaybackEngine(resolver=MountResolver())
        self.engine.fanout = self.hub

    async def on_start(self):
        self.transport.set_command_handler(self._handle_remote_command)
        await self.transport.start()
        await self.engine.start()

    async def on_stop(self):
        await self.engine.shutdown()
        await self.transport.stop()

    def add_routes(self, app):
        app.router.add_get('/catalog', self._handle_catalog_list)
        app.router.add_post('/catalog', self._handle_catalog)
        app.router.add_get('/playlist', self._handle_playlist)

    async def handle_status(self) -> dict:
        return {
            'service': self.id,
            'catalog': len(self.catalog),
            'clients': len(self.hub),
            'decoder': {
                'running': self.engine.decoder.is_running,
                'pid': self.engine.decoder.pid,
            },
            'playback': self.engine.status().to_dict(),
        }

    async def handle_command(self, cmd, data) -> dict:
        engine = self.engine

        if cmd == 'play':
            await engine.play()

        elif cmd == 'stop':
            await engine.stop()

        elif cmd == 'toggle':
            await engine.toggle_play_pause()

        elif cmd == 'next':
            await engine.next()

        elif cmd == 'prev':
            await engine.previous()

        elif cmd == 'jump':
            position = _int_param(data, 'position')
            count = len(engine.playlist)
            if not 0 <= position < count:
                raise CommandError(
                    "urn:carputer:audio:playlistjump:outofbounds",
                    "The playlist item you selected is out of bounds",
                    f"{position} / {count}")
            await engine.jump_to(position)

        elif cmd == 'seek':
            await engine.seek(_int_param(data, 'offset'))

        elif cmd == 'queue':
            await self._queue(data.get('ids'), bool(data.get('replace')))

        elif cmd == 'clear':
            await engine.clear()

        elif cmd == 'toggle_shuffle':
            engine.toggle_shuffle()

        elif cmd == 'toggle_repeat':
            engine.toggle_repeat()

        else:
            raise CommandError("urn:carputer:command:unknown", f"Unknown: {cmd}")

        return {'playback': engine.status().to_dict()}

    async def _queue(self, ids, replace):
        if not isinstance(ids, list) or not ids:
            raise CommandError("urn:carputer:audio:missingfiles",
                               "No audio files were supplied to play/queue")
        if any(isinstance(i, bool) or not isinstance(i, int) for i in ids):
            raise CommandError("urn:carputer:audio:invalid",
                               "Audio file ids must be integers")
        tracks = self.catalog.lookup(ids)
        if len(tracks) != len(ids):
            raise CommandError("urn:carputer:audio:invalid",
                               "One or more audio files were not found")
        if replace:
            await self.engine.clear()
        await self.engine.add_tracks(tracks)
        log.info("Queued %d tracks%s", len(tracks), " (replacing)" if replace else "")

    async def _handle_remote_command(self, data):
        """Commands arriving over MQTT use the same vocabulary as /command."""
        try:
            await self.handle_command(self.resolve_command(data), data)
        except CommandError as e:
            log.warning("Remote command rejected: %s (%s)", e.message, e.code)

    # ── HTTP API ──

    async def _handle_catalog(self, request):
        data = await read_json_object(request)
        records = data.get('tracks')
        if not isinstance(records, list):
            raise CommandError("urn:carputer:catalog:invalid", "'tracks' must be a list")
        accepted = self.catalog.update(records, replace=bool(data.get('replace')))
        return web.json_response(
            {'status': 'ok', 'accepted': accepted, 'total': len(self.catalog)})

    async def _handle_catalog_list(self, request):
        """Catalog tracks whose device is mounted right now."""
        mounted = {}
        tracks = []
        for track in self.catalog.tracks():
            device = track.device_id
            if device not in mounted:
                mounted[device] = self.engine.resolver.resolve(device) is not None
            if mounted[device]:
                tracks.append(track.to_dict())
        return web.json_response({'tracks': tracks})

    async def _handle_playlist(self, request):
        view = self.engine.playlist.view()
        by_id = {t.id: t for t in self.engine.playlist.tracks}
        return web.json_response({
            'position': view.position,
            'shuffle': view.shuffle,
            'repeat': view.repeat,
            'tracks': [by_id[i].to_dict() for i in view.track_ids],
        })


def main():
    asyncio.run(MediaService().run())


if __name__ == '__main__':
    main()
