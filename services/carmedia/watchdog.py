"""Systemd notify support for the media daemon.

READY=1 once the engine is up, WATCHDOG=1 heartbeats while the event loop is
alive, STOPPING=1 on shutdown.  Everything no-ops when NOTIFY_SOCKET is
unset (dev machines, tests).

Usage:
    from carmedia.watchdog import watchdog_loop, sd_notify
    asyncio.create_task(watchdog_loop())
    ...
    sd_notify("STOPPING=1")
"""

import asyncio
import logging
import os
import socket

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 20


def sd_notify(msg: str) -> bool:
    """Send *msg* to the systemd notify socket. False if there is none."""
    addr = os.environ.get("NOTIFY_SOCKET")
    if not addr:
        return False
    if addr[0] == "@":
        addr = "\0" + addr[1:]
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM)
    try:
        sock.sendto(msg.encode(), addr)
        return True
    except OSError as e:
        logger.debug("sd_notify %r failed: %s", msg, e)
        return False
    finally:
        sock.close()


def watchdog_interval() -> float:
    """Half the unit's WatchdogSec when systemd tells us, else the default."""
    usec = os.environ.get("WATCHDOG_USEC")
    try:
        return max(1.0, int(usec) / 2_000_000) if usec else DEFAULT_INTERVAL
    except ValueError:
        return DEFAULT_INTERVAL


async def watchdog_loop(interval: float | None = None, status: str = ""):
    """Send READY=1 then WATCHDOG=1 every *interval* seconds.  Run as a task."""
    interval = interval or watchdog_interval()
    sd_notify("READY=1" + (f"\nSTATUS={status}" if status else ""))
    logger.info("Watchdog started (interval=%.0fs)", interval)
    while True:
        sd_notify("WATCHDOG=1")
        await asyncio.sleep(interval)
