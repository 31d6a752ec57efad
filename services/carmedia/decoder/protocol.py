# CarMedia Server
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Wire vocabulary of the ``mpg123 -R`` remote-control interface.

Outbound, one command per line:

    S            stop
    L <path>     load and play
    J <n>s       jump to n seconds
    P            toggle pause
    V <0-100>    volume

Inbound lines start with a marker:

    @R                       ready for commands
    @P <0|1|2>               stopped / paused / playing
    @E <message>             error
    @F <s> <f> <el> <rem>    frame progress (elapsed and remaining seconds)
    @S @I @V @J              stream info, tags, volume, jump acks (ignored)
"""

import math
from dataclasses import dataclass, field
from typing import ClassVar

READY = "@R"
STATUS = "@P"
ERROR = "@E"
FRAME = "@F"
IGNORED = frozenset({"@S", "@I", "@V", "@J"})

STATUS_STOPPED = "0"
STATUS_PAUSED = "1"
STATUS_PLAYING = "2"


# ── Commands ──

@dataclass(frozen=True)
class Command:
    verb: ClassVar[str] = ""
    expects: ClassVar[str] = ""   # reply marker that completes this command

    @property
    def line(self) -> str:
        return self.verb


@dataclass(frozen=True)
class Stop(Command):
    verb: ClassVar[str] = "S"
    expects: ClassVar[str] = STATUS


@dataclass(frozen=True)
class Load(Command):
    path: str = ""
    verb: ClassVar[str] = "L"
    expects: ClassVar[str] = "@S"

    @property
    def line(self) -> str:
        return f"L {self.path}"


@dataclass(frozen=True)
class Seek(Command):
    seconds: int = 0
    verb: ClassVar[str] = "J"
    expects: ClassVar[str] = "@J"

    @property
    def line(self) -> str:
        return f"J {self.seconds}s"


@dataclass(frozen=True)
class TogglePause(Command):
    verb: ClassVar[str] = "P"
    expects: ClassVar[str] = STATUS


@dataclass(frozen=True)
class SetVolume(Command):
    level: int = 100
    verb: ClassVar[str] = "V"
    expects: ClassVar[str] = "@V"

    def __post_init__(self):
        object.__setattr__(self, "level", max(0, min(100, int(self.level))))

    @property
    def line(self) -> str:
        return f"V {self.level}"


# ── Responses ──

@dataclass(frozen=True)
class Response:
    marker: str
    body: str = ""
    raw: str = field(default="", compare=False)

    @property
    def status(self) -> str:
        """First token of an @P body."""
        return self.body.split(" ", 1)[0] if self.body else ""


def parse_response(line: str) -> Response:
    parts = line.split(" ", 1)
    return Response(parts[0], parts[1] if len(parts) > 1 else "", line)


def _number(fields, index) -> float:
    try:
        value = float(fields[index])
    except (IndexError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def parse_frame(body: str) -> tuple[float, float]:
    """(elapsed, remaining) seconds from an @F body; malformed fields read as 0."""
    fields = body.split()
    return _number(fields, 2), _number(fields, 3)
