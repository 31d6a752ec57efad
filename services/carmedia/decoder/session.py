# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
DecoderSession — protocol flags shared by the dispatcher and the interpreter.

The handshake flags (expected marker, ready, retry, intentional stop) only
change under the session's condition, which doubles as the wake-up channel
for anyone waiting on them.  The playback status fields are written by the
interpreter alone and read freely.
"""

import asyncio

from .protocol import READY, Command, Stop


class DecoderSession:

    def __init__(self):
        self._cond = asyncio.Condition()
        self.expected: str | None = None
        self.ready = False
        self.retry = False
        self.expecting_stop = False
        self.is_playing = False
        self.is_paused = False
        self.progress = 0
        self.duration = 0

    def clear_playback(self):
        self.is_playing = False
        self.is_paused = False
        self.progress = 0
        self.duration = 0

    async def reset(self):
        """Fresh decoder: wait for its ready marker before anything else."""
        async with self._cond:
            self.expecting_stop = False
            self.ready = False
            self.retry = False
            self.expected = READY
            self.clear_playback()
            self._cond.notify_all()

    async def wake(self):
        """Re-evaluate every waiter, e.g. after the decoder process exited."""
        async with self._cond:
            self._cond.notify_all()

    async def wait_ready(self, predicate=None):
        """Block until ready (and *predicate*, if given, holds)."""
        async with self._cond:
            await self._cond.wait_for(
                lambda: self.ready and (predicate is None or predicate()))

    async def begin(self, command: Command):
        """Mark *command* in flight. Call right before writing it."""
        async with self._cond:
            if isinstance(command, Stop):
                self.expecting_stop = True
            self.expected = command.expects
            self.ready = False
            self.retry = False

    async def wait_reply(self) -> bool:
        """Block until the in-flight command is answered; True means resend it."""
        async with self._cond:
            await self._cond.wait_for(lambda: self.ready)
            return self.retry

    async def observe(self, line: str) -> bool:
        """Mark ready if *line* answers the pending command."""
        async with self._cond:
            if self.ready:
                return False
            if self.expected and not line.startswith(self.expected):
                return False
            self.ready = True
            self._cond.notify_all()
            return True

    async def request_retry(self):
        async with self._cond:
            self.retry = True
            self.ready = True
            self._cond.notify_all()

    async def consume_expected_stop(self) -> bool:
        """True (and cleared) if the last stop was one we asked for."""
        async with self._cond:
            expected = self.expecting_stop
            self.expecting_stop = False
            return expected
