# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Playback status snapshots and the loop that pushes them out.

A snapshot is composed on demand from the playlist and the decoder session;
nothing here is stored.  The broadcaster publishes one every interval to the
attached fan-out, whether or not anything changed.  Delivery, slow clients
and dead connections are the fan-out's business.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field

from .config import cfg
from .playlist import RESTART_THRESHOLD

log = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.2
IDLE_RETRY = 0.5


@dataclass(frozen=True)
class StatusSnapshot:
    playlist_position: int = 0
    playlist: list = field(default_factory=list)   # track ids, active order
    track_id: int | None = None
    is_playing: bool = False
    is_paused: bool = False
    position: int = 0          # seconds into the track
    duration: int = 0
    is_shuffle: bool = False
    is_repeat_all: bool = False
    can_move_next: bool = False
    can_move_previous: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def compose_snapshot(playlist, session) -> StatusSnapshot:
    view = playlist.view()
    progress = session.progress
    return StatusSnapshot(
        playlist_position=view.position,
        playlist=list(view.track_ids),
        track_id=view.current_id,
        is_playing=session.is_playing,
        is_paused=session.is_paused,
        position=progress,
        duration=session.duration,
        is_shuffle=view.shuffle,
        is_repeat_all=view.repeat,
        can_move_next=view.repeat or view.position < view.count - 1,
        can_move_previous=view.repeat or view.position > 0 or progress >= RESTART_THRESHOLD,
    )


class StatusBroadcaster:
    """Publish ``compose()`` to ``fanout`` every ``interval`` seconds."""

    def __init__(self, compose, fanout=None, interval: float | None = None):
        self.compose = compose
        self.fanout = fanout
        self.interval = interval if interval is not None else float(
            cfg("status", "interval", default=DEFAULT_INTERVAL))

    async def run(self):
        log.info("Status broadcaster started (every %.2fs)", self.interval)
        while True:
            if self.fanout is None:
                await asyncio.sleep(IDLE_RETRY)
                continue
            try:
                snapshot = self.compose()
                log.debug("Status: item %s at %d/%d",
                          snapshot.playlist_position, snapshot.position, snapshot.duration)
                self.fanout.publish(snapshot)
            except Exception as e:
                log.warning("Status broadcast failed: %s", e)
            await asyncio.sleep(self.interval)
