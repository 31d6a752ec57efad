# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
CommandDispatcher — the single writer feeding commands to the decoder.

Commands queue up from any caller; one worker drains everything pending as
a batch and sends it in order with at most one command in flight.  Within a
batch only the last seek survives.  An @E reply makes the worker resend the
same command before touching the next one.
"""

import asyncio
import logging

from .protocol import Command, Seek

log = logging.getLogger(__name__)


def coalesce(batch: list[Command]) -> list[Command]:
    """Drop every seek but the last one, keeping everything else in order."""
    last_seek = -1
    for i, command in enumerate(batch):
        if isinstance(command, Seek):
            last_seek = i
    return [c for i, c in enumerate(batch)
            if not isinstance(c, Seek) or i == last_seek]


class CommandDispatcher:

    def __init__(self, decoder, session, max_retries: int | None = None):
        self.decoder = decoder
        self.session = session
        self.max_retries = max_retries
        self._queue: asyncio.Queue[Command] = asyncio.Queue()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def enqueue(self, command: Command):
        self._queue.put_nowait(command)

    async def _drain(self) -> list[Command]:
        batch = [await self._queue.get()]
        while True:
            try:
                batch.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return batch

    async def run(self):
        log.info("Command dispatcher started")
        while True:
            batch = await self._drain()
            commands = coalesce(batch)
            if len(commands) < len(batch):
                log.debug("Dropped %d superseded seeks", len(batch) - len(commands))
            for command in commands:
                await self.send(command)

    async def send(self, command: Command) -> bool:
        """Deliver *command*, resending on error replies. False if abandoned."""
        retries = 0
        while True:
            await self.session.wait_ready(lambda: self.decoder.is_running)
            await self.session.begin(command)
            log.info("Sending decoder %s", command.line)
            if not await self.decoder.write_line(command.line):
                # Decoder died under us; resend once it is back and ready
                continue
            if not await self.session.wait_reply():
                return True
            retries += 1
            if self.max_retries is not None and retries > self.max_retries:
                log.error("Giving up on decoder %s after %d retries",
                          command.line, self.max_retries)
                return False
            log.warning("Resending decoder %s (retry %d)", command.line, retries)
