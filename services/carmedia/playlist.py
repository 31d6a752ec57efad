# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Playlist state — natural order, shuffle permutation, position and mode flags.

``position`` always indexes the *active* order: the shuffle permutation when
shuffle is on, the natural (append) order otherwise.  The permutation is a
full bijection over ``range(len(tracks))`` at all times; it is rebuilt from
scratch on every add, with the pointer relocated so the current track does
not change underneath the listener.

Every operation runs under one lock and never blocks while holding it.
Operations that should start playback return True; the caller plays *after*
the lock is released.
"""

import logging
import random
import threading
from dataclasses import dataclass

from .catalog import Track

log = logging.getLogger(__name__)

# Seconds into a track from which "previous" is offered even at the top
RESTART_THRESHOLD = 5


@dataclass(frozen=True)
class PlaylistView:
    """Consistent read of the playlist taken under one lock acquisition."""
    track_ids: tuple       # ids in active order
    position: int
    current_id: int | None
    shuffle: bool
    repeat: bool

    @property
    def count(self):
        return len(self.track_ids)


class Playlist:

    def __init__(self, rng: random.Random | None = None):
        self._lock = threading.Lock()
        self._rng = rng or random.Random()
        self._tracks: list[Track] = []
        self._order: list[int] = []
        self._position = 0
        self._shuffle = False
        self._repeat = False

    # ── Read access ──

    def __len__(self):
        with self._lock:
            return len(self._tracks)

    @property
    def position(self) -> int:
        with self._lock:
            return self._position

    @property
    def shuffle(self) -> bool:
        return self._shuffle

    @property
    def repeat(self) -> bool:
        return self._repeat

    @property
    def tracks(self) -> list[Track]:
        """Tracks in natural order."""
        with self._lock:
            return list(self._tracks)

    @property
    def order(self) -> list[int]:
        """The shuffle permutation (natural-order indices)."""
        with self._lock:
            return list(self._order)

    def _effective_index(self) -> int:
        return self._order[self._position] if self._shuffle else self._position

    def effective_index(self) -> int | None:
        """Natural-order index of the current track, or None when empty."""
        with self._lock:
            if not self._tracks:
                return None
            return self._effective_index()

    def current(self) -> Track | None:
        with self._lock:
            if not self._tracks:
                return None
            return self._tracks[self._effective_index()]

    def view(self) -> PlaylistView:
        with self._lock:
            if self._shuffle:
                ids = tuple(self._tracks[i].id for i in self._order)
            else:
                ids = tuple(t.id for t in self._tracks)
            current_id = self._tracks[self._effective_index()].id if self._tracks else None
            return PlaylistView(ids, self._position, current_id, self._shuffle, self._repeat)

    def can_move_next(self) -> bool:
        with self._lock:
            return self._repeat or self._position < len(self._tracks) - 1

    def can_move_previous(self, progress: int = 0) -> bool:
        with self._lock:
            return self._repeat or self._position > 0 or progress >= RESTART_THRESHOLD

    # ── Mutation ──

    def add(self, tracks) -> bool:
        """Append *tracks*; returns True if playback should start."""
        tracks = list(tracks)
        with self._lock:
            was_empty = not self._tracks
            looking_for = None if was_empty else self._effective_index()
            self._tracks.extend(tracks)
            order = list(range(len(self._tracks)))
            self._rng.shuffle(order)
            self._order = order
            if self._shuffle and looking_for is not None:
                self._position = order.index(looking_for)
        log.info("Added %d tracks to playlist", len(tracks))
        return was_empty and bool(tracks)

    def clear(self) -> bool:
        """Empty the playlist; returns True if it held anything."""
        with self._lock:
            had_tracks = bool(self._tracks)
            self._tracks.clear()
            self._order.clear()
            self._position = 0
        log.info("Cleared playlist")
        return had_tracks

    def toggle_shuffle(self) -> bool:
        with self._lock:
            if self._tracks:
                if self._shuffle:
                    self._position = self._order[self._position]
                else:
                    self._position = self._order.index(self._position)
            self._shuffle = not self._shuffle
            state = self._shuffle
        log.info("Shuffle: %s", 'on' if state else 'off')
        return state

    def toggle_repeat(self) -> bool:
        with self._lock:
            self._repeat = not self._repeat
            state = self._repeat
        log.info("Repeat: %s", 'on' if state else 'off')
        return state

    def jump_to(self, position: int) -> bool:
        """Move to *position* in the active order. Out of range wraps only with repeat."""
        if isinstance(position, bool) or not isinstance(position, int):
            raise TypeError(f"playlist position must be an int, not {type(position).__name__}")
        with self._lock:
            count = len(self._tracks)
            if count == 0:
                return False
            if not 0 <= position < count:
                if not self._repeat:
                    return False
                position = count - 1 if position < 0 else 0
            self._position = position
        return True

    def next(self) -> bool:
        with self._lock:
            count = len(self._tracks)
            if count == 0:
                return False
            if self._position >= count - 1:
                if not self._repeat:
                    return False
                self._position = 0
            else:
                self._position += 1
        return True

    def previous(self) -> bool:
        with self._lock:
            count = len(self._tracks)
            if count == 0:
                return False
            if self._position <= 0:
                if not self._repeat:
                    return False
                self._position = count - 1
            else:
                self._position -= 1
        return True
