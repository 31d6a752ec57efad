"""
CarMedia — shared library for the in-vehicle media daemon.

The playback engine owns one playlist and one mpg123 process.  Everything
outside it (mount handling, library indexing, the network surfaces) talks
to it through plain method calls on an explicitly constructed instance.

Modules:
  engine.py         — PlaybackEngine, the public control API
  playlist.py       — natural order, shuffle permutation, position, modes
  decoder/          — mpg123 process, command writer, reply reader
  status.py         — status snapshots and the periodic broadcaster
  notifications.py  — WebSocket fan-out of status snapshots
  transport.py      — optional webhook/MQTT status mirror
  catalog.py        — track references and the id lookup
  mounts.py         — device UUID → mount path
  service_base.py   — aiohttp service plumbing
  config.py, watchdog.py
"""
