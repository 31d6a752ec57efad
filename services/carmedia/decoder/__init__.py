"""
Decoder — drives one ``mpg123 -R`` subprocess over its stdin/stdout pipes.

The decoder does NOT know about playlists.  It plays whatever file it was
last told to load and reports back in one-line messages.  The pieces here
turn playlist decisions into that line protocol and turn the replies back
into playback status:

  protocol.py     — command/response vocabulary of the remote-control mode
  session.py      — handshake flags shared by writer and reader
  process.py      — subprocess start/stop and the stdout reader
  dispatcher.py   — sequential writer, one command in flight, seek coalescing
  interpreter.py  — reply reader, status tracking, auto-advance on track end
"""

from .dispatcher import CommandDispatcher, coalesce
from .interpreter import ResponseInterpreter
from .process import DecoderProcess
from .protocol import Load, Seek, SetVolume, Stop, TogglePause
from .session import DecoderSession

__all__ = [
    "CommandDispatcher",
    "DecoderProcess",
    "DecoderSession",
    "Load",
    "ResponseInterpreter",
    "Seek",
    "SetVolume",
    "Stop",
    "TogglePause",
    "coalesce",
]
