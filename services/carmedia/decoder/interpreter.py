# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
ResponseInterpreter — reads decoder output and keeps playback status current.

Lines are queued by the process reader and handled strictly in arrival
order.  Any line matching the pending command's marker releases the
dispatcher; status lines update the playing/paused flags; an unrequested
``@P 0`` means the track ran out and the playlist advances.
"""

import asyncio
import logging

from . import protocol
from .protocol import SetVolume, parse_frame, parse_response

log = logging.getLogger(__name__)


class ResponseInterpreter:

    def __init__(self, session, dispatcher, on_track_end=None, volume: int = 100):
        self.session = session
        self.dispatcher = dispatcher
        self.on_track_end = on_track_end
        self.volume = volume
        self._lines: asyncio.Queue[str] = asyncio.Queue()

    def feed(self, line: str):
        """Queue one decoder output line. Called from the process reader."""
        self._lines.put_nowait(line)

    async def _drain(self) -> list[str]:
        batch = [await self._lines.get()]
        while True:
            try:
                batch.append(self._lines.get_nowait())
            except asyncio.QueueEmpty:
                return batch

    async def run(self):
        log.info("Response interpreter started")
        while True:
            for line in await self._drain():
                try:
                    await self.handle(line)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    log.exception("Failed to handle decoder output %r", line)

    async def handle(self, line: str):
        if not line.strip():
            return
        await self.session.observe(line)
        response = parse_response(line)
        marker = response.marker

        if marker == protocol.READY:
            log.info("Decoder ready, setting volume %d", self.volume)
            self.dispatcher.enqueue(SetVolume(self.volume))

        elif marker == protocol.STATUS:
            await self._handle_status(response.status)

        elif marker == protocol.ERROR:
            log.error("Decoder error: %s", response.body)
            await self.session.request_retry()

        elif marker == protocol.FRAME:
            elapsed, remaining = parse_frame(response.body)
            self.session.duration = round(elapsed + remaining)
            self.session.progress = round(elapsed)

        elif marker not in protocol.IGNORED:
            log.warning("Unknown decoder output: %s", line)

        if marker == protocol.FRAME:
            log.debug("Decoder: %s", line)
        else:
            log.info("Decoder: %s", line)

    async def _handle_status(self, status: str):
        if status == protocol.STATUS_STOPPED:
            self.session.clear_playback()
            if await self.session.consume_expected_stop():
                return
            log.info("Track ended, advancing playlist")
            if self.on_track_end:
                await self.on_track_end()
        elif status in (protocol.STATUS_PAUSED, protocol.STATUS_PLAYING):
            self.session.is_playing = True
            self.session.is_paused = status == protocol.STATUS_PAUSED
        else:
            log.warning("Unknown decoder status: %s", status)
