# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
PlaybackEngine — the playlist plus the decoder it drives.

Construct one per process and hand it to whatever takes remote commands:

    engine = PlaybackEngine(resolver=MountResolver(), fanout=hub)
    await engine.start()            # interpreter, dispatcher, broadcaster
    await engine.add_tracks(tracks) # starts playing if the playlist was empty
    await engine.next()
    await engine.shutdown()

Control methods return as soon as their decoder commands are queued; they
never wait for the decoder to answer.  Runtime trouble (decoder crashes,
media pulled out, error replies) is logged and absorbed here, only bad
arguments raise.
"""

import asyncio
import logging
import os

from .config import cfg
from .decoder import (CommandDispatcher, DecoderProcess, DecoderSession, Load,
                      ResponseInterpreter, Seek, Stop, TogglePause)
from .mounts import MountResolver
from .playlist import RESTART_THRESHOLD, Playlist
from .status import StatusBroadcaster, StatusSnapshot, compose_snapshot

log = logging.getLogger(__name__)


class PlaybackEngine:

    def __init__(self, resolver=None, fanout=None, decoder=None, playlist=None,
                 max_retries=None, volume=None, status_interval=None):
        self.playlist = playlist if playlist is not None else Playlist()
        self.resolver = resolver if resolver is not None else MountResolver()
        if decoder is None:
            decoder = DecoderProcess(DecoderSession())
        self.decoder = decoder
        self.session = decoder.session
        if max_retries is None:
            max_retries = cfg("decoder", "max_retries")
        self.dispatcher = CommandDispatcher(decoder, self.session, max_retries)
        self.interpreter = ResponseInterpreter(
            self.session, self.dispatcher,
            on_track_end=self.next,
            volume=volume if volume is not None else int(cfg("decoder", "volume", default=100)),
        )
        decoder.on_line = self.interpreter.feed
        self.broadcaster = StatusBroadcaster(self.status, fanout, status_interval)
        self._tasks: list[asyncio.Task] = []

    @property
    def fanout(self):
        return self.broadcaster.fanout

    @fanout.setter
    def fanout(self, target):
        self.broadcaster.fanout = target

    @property
    def is_playing(self) -> bool:
        return self.session.is_playing

    # ── Lifecycle ──

    async def start(self):
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self.interpreter.run(), name="decoder-interpreter"),
            asyncio.create_task(self.dispatcher.run(), name="decoder-dispatcher"),
            asyncio.create_task(self.broadcaster.run(), name="status-broadcaster"),
        ]
        log.info("Playback engine started")

    async def shutdown(self):
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        await self.decoder.stop(force=True)
        log.info("Playback engine stopped")

    def status(self) -> StatusSnapshot:
        return compose_snapshot(self.playlist, self.session)

    # ── Decoder commands ──

    async def _send(self, command):
        await self.decoder.ensure_running()
        self.dispatcher.enqueue(command)

    # ── Control API ──

    async def play(self):
        """(Re)start the current playlist entry. No-op on an empty playlist.

        Entries whose device or file is gone are skipped, at most once
        around the playlist.
        """
        skipped = 0
        while True:
            track = self.playlist.current()
            if track is None:
                return
            path = self.resolver.track_path(track)
            await self._send(Stop())
            if path is not None and os.path.isfile(path):
                log.info("Loading track %d: %s", track.id, path)
                await self._send(Load(path))
                return

            log.error("Skipping track %d, unable to access %s",
                      track.id, path or f"device {track.device_id}")
            skipped += 1
            if skipped >= len(self.playlist):
                log.error("No playable tracks left in playlist")
                return
            if not self.playlist.next():
                return

    async def stop(self):
        if self.session.is_playing:
            log.info("Stopping playback")
            await self._send(Stop())

    async def toggle_play_pause(self):
        if self.session.is_playing:
            await self._send(TogglePause())
        else:
            await self.play()

    def toggle_shuffle(self) -> bool:
        return self.playlist.toggle_shuffle()

    def toggle_repeat(self) -> bool:
        return self.playlist.toggle_repeat()

    async def jump_to(self, position: int):
        if self.playlist.jump_to(position):
            await self.play()

    async def next(self):
        if self.playlist.next():
            await self.play()

    async def previous(self):
        """Back one entry, or to the start of the track once it is under way."""
        if self.session.is_playing and self.session.progress >= RESTART_THRESHOLD:
            log.info("Restarting track at %ds", self.session.progress)
            await self._send(Seek(0))
            return
        if self.playlist.previous():
            await self.play()

    async def seek(self, offset: int):
        if isinstance(offset, bool) or not isinstance(offset, int):
            raise TypeError(f"seek offset must be an int, not {type(offset).__name__}")
        if not self.session.is_playing:
            return
        await self._send(Seek(offset))

    async def add_tracks(self, tracks):
        if self.playlist.add(tracks):
            await self.play()

    async def clear(self):
        requires_stop = self.playlist.clear() or self.session.is_playing
        if requires_stop:
            await self.stop()
