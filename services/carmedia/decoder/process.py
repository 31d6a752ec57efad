# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
DecoderProcess — supervises the one ``mpg123 -R`` subprocess.

Owns start/stop and the stdout reader.  Every decoded output line is handed
to ``on_line`` (set by the engine to the interpreter's feed).  Teardown is
best-effort throughout: the decoder may already be gone, and a stop must
always leave the handle cleared.
"""

import asyncio
import logging
import subprocess

from ..config import cfg
from .session import DecoderSession

log = logging.getLogger(__name__)

DEFAULT_COMMAND = ["mpg123", "-R"]
STOP_TIMEOUT = 5


class DecoderProcess:

    def __init__(self, session: DecoderSession, command=None):
        self.session = session
        self.command = list(command or cfg("decoder", "command", default=DEFAULT_COMMAND))
        self.on_line = None
        self._proc: asyncio.subprocess.Process | None = None
        self._reader: asyncio.Task | None = None
        self._listening = False
        self._start_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        proc = self._proc
        return proc is not None and proc.pid is not None and proc.returncode is None

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    async def ensure_running(self) -> bool:
        """Start the decoder unless it is already up. Safe to call concurrently."""
        async with self._start_lock:
            if self.is_running:
                return True
            return await self.start()

    async def start(self) -> bool:
        if self._proc is not None:
            await self.stop(force=True)

        log.info("Starting decoder: %s", " ".join(self.command))
        await self.session.reset()
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            log.error("Decoder failed to start: %s", e)
            return False

        self._proc = proc
        self._listening = True
        self._reader = asyncio.create_task(self._read_lines(proc))
        log.info("Decoder running (pid %d)", proc.pid)
        return True

    async def stop(self, force: bool = False):
        proc = self._proc
        if proc is None or (not force and not self.is_running):
            return

        log.info("Stopping decoder (pid %s)", proc.pid)
        # Detach first so a dying process cannot feed the interpreter
        self._listening = False
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        except Exception as e:
            log.debug("Decoder kill failed: %s", e)
        try:
            if proc.stdin:
                proc.stdin.close()
        except Exception as e:
            log.debug("Decoder stdin close failed: %s", e)
        reader, self._reader = self._reader, None
        if reader:
            reader.cancel()
            try:
                await reader
            except (asyncio.CancelledError, Exception):
                pass
        try:
            await asyncio.wait_for(proc.wait(), STOP_TIMEOUT)
        except asyncio.TimeoutError:
            log.warning("Decoder pid %s did not exit within %ds", proc.pid, STOP_TIMEOUT)
        except Exception as e:
            log.debug("Decoder wait failed: %s", e)
        self._proc = None
        try:
            await self.session.wake()
        except Exception as e:
            log.debug("Session wake failed: %s", e)

    async def write_line(self, line: str) -> bool:
        """Write one command line. False if the pipe is gone."""
        proc = self._proc
        if proc is None or proc.stdin is None or not self.is_running:
            return False
        try:
            proc.stdin.write(line.encode("utf-8") + b"\n")
            await proc.stdin.drain()
            return True
        except (BrokenPipeError, ConnectionResetError) as e:
            log.warning("Decoder pipe closed while writing %r: %s", line, e)
        except OSError as e:
            log.warning("Decoder write failed for %r: %s", line, e)
        return False

    async def _read_lines(self, proc):
        try:
            while True:
                raw = await proc.stdout.readline()
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                callback = self.on_line
                if self._listening and self._proc is proc and callback is not None:
                    callback(line)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning("Decoder read failed: %s", e)
        if self._proc is proc:
            log.warning("Decoder output closed (pid %d)", proc.pid)
            self.session.clear_playback()
        # Reap it so is_running is already false when waiters re-check
        try:
            await asyncio.wait_for(proc.wait(), STOP_TIMEOUT)
        except asyncio.TimeoutError:
            pass
        await self.session.wake()
