# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Device path resolver — maps a removable device's filesystem UUID to the
directory it is currently mounted on.

Mount lifecycle (udev, automount) belongs to the host; this only reads the
kernel's view of it each time, so a stick pulled mid-playlist resolves to
None on the next lookup.
"""

import logging
import os
import re

from .config import cfg

log = logging.getLogger(__name__)

PROC_MOUNTS = "/proc/mounts"
BY_UUID_DIR = "/dev/disk/by-uuid"

_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    """Decode the \\040-style escapes the kernel uses in /proc/mounts."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


class MountResolver:
    """Resolve device UUIDs to mount paths."""

    def __init__(self, proc_mounts=PROC_MOUNTS, by_uuid_dir=BY_UUID_DIR, static=None):
        self.proc_mounts = proc_mounts
        self.by_uuid_dir = by_uuid_dir
        self.static = dict(static if static is not None else (cfg("devices", default={}) or {}))

    def mounted_devices(self) -> dict[str, str]:
        """Return {device node: mount point} for every mounted block device."""
        mounts = {}
        try:
            with open(self.proc_mounts) as f:
                lines = f.readlines()
        except OSError as e:
            log.error("Cannot read %s: %s", self.proc_mounts, e)
            return mounts
        for line in lines:
            parts = line.split()
            if len(parts) < 2 or not parts[0].startswith("/dev/"):
                continue
            device = os.path.realpath(_unescape(parts[0]))
            # First mount of a device wins, bind mounts come later
            mounts.setdefault(device, _unescape(parts[1]))
        return mounts

    def device_node(self, device_id: str) -> str | None:
        link = os.path.join(self.by_uuid_dir, device_id)
        if not os.path.lexists(link):
            return None
        return os.path.realpath(link)

    def resolve(self, device_id: str) -> str | None:
        """Return the mount path for *device_id*, or None if unavailable."""
        if device_id in self.static:
            path = self.static[device_id]
            return path if os.path.isdir(path) else None
        node = self.device_node(device_id)
        if node is None:
            log.debug("Device %s has no node", device_id)
            return None
        return self.mounted_devices().get(node)

    def track_path(self, track) -> str | None:
        """Absolute path of *track* on its device, or None if the device is gone."""
        mount = self.resolve(track.device_id)
        if mount is None:
            return None
        return os.path.join(mount, track.relative_path.lstrip("/"))
