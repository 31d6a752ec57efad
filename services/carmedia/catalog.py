# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Track references and the read-only catalog the playback engine looks them up in.

The indexer that walks removable media owns the catalog contents; it pushes
records in through ``TrackCatalog.update()``.  The engine only ever reads, and
copies ``Track`` values into its playlist once they are queued.
"""

import logging
import threading
from dataclasses import asdict, dataclass

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Track:
    id: int
    device_id: str
    relative_path: str
    duration: int | None = None
    artist: str = ""
    title: str = ""
    album: str = ""
    track_number: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "Track":
        """Build a Track from an indexer record. Raises ValueError on bad input."""
        try:
            track_id = int(data["id"])
            device_id = str(data["device_id"])
            relative_path = str(data["relative_path"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"invalid track record: {e}") from e
        duration = data.get("duration")
        number = data.get("track_number")
        return cls(
            id=track_id,
            device_id=device_id,
            relative_path=relative_path,
            duration=int(duration) if duration is not None else None,
            artist=data.get("artist") or "",
            title=data.get("title") or "",
            album=data.get("album") or "",
            track_number=int(number) if number is not None else None,
        )

    def to_dict(self) -> dict:
        return asdict(self)


class TrackCatalog:
    """Thread-safe id → Track lookup."""

    def __init__(self, tracks=()):
        self._lock = threading.Lock()
        self._tracks: dict[int, Track] = {t.id: t for t in tracks}

    def __len__(self):
        with self._lock:
            return len(self._tracks)

    def __contains__(self, track_id):
        with self._lock:
            return track_id in self._tracks

    def get(self, track_id: int) -> Track | None:
        with self._lock:
            return self._tracks.get(track_id)

    def tracks(self) -> list[Track]:
        with self._lock:
            return list(self._tracks.values())

    def lookup(self, track_ids) -> list[Track]:
        """Return the tracks found for *track_ids*, in request order.

        Stale ids (media removed since the client last synced) are skipped.
        """
        with self._lock:
            found = [self._tracks[i] for i in track_ids if i in self._tracks]
        return found

    def update(self, records, replace: bool = False) -> int:
        """Load indexer records; returns how many were accepted."""
        tracks = []
        for record in records:
            try:
                tracks.append(Track.from_dict(record))
            except ValueError as e:
                log.warning("Skipping catalog record: %s", e)
        with self._lock:
            if replace:
                self._tracks.clear()
            for track in tracks:
                self._tracks[track.id] = track
        log.info("Catalog updated with %d tracks (%d total)", len(tracks), len(self))
        return len(tracks)
