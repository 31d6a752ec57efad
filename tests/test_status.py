import asyncio

from fakes import Collector, wait_for

from carmedia.catalog import Track
from carmedia.decoder import DecoderSession
from carmedia.playlist import Playlist
from carmedia.status import StatusBroadcaster, StatusSnapshot, compose_snapshot


def make_playlist(n=3):
    playlist = Playlist()
    playlist.add([Track(i, "usb-1", f"{i}.mp3") for i in range(1, n + 1)])
    return playlist


def test_snapshot_of_empty_engine():
    snapshot = compose_snapshot(Playlist(), DecoderSession())
    assert snapshot == StatusSnapshot()
    assert snapshot.to_dict() == {
        "playlist_position": 0,
        "playlist": [],
        "track_id": None,
        "is_playing": False,
        "is_paused": False,
        "position": 0,
        "duration": 0,
        "is_shuffle": False,
        "is_repeat_all": False,
        "can_move_next": False,
        "can_move_previous": False,
    }


def test_snapshot_reflects_playlist_and_session():
    playlist = make_playlist()
    playlist.next()
    session = DecoderSession()
    session.is_playing = True
    session.progress = 12
    session.duration = 200
    snapshot = compose_snapshot(playlist, session)
    assert snapshot.playlist_position == 1
    assert snapshot.playlist == [1, 2, 3]
    assert snapshot.track_id == 2
    assert snapshot.position == 12
    assert snapshot.duration == 200
    assert snapshot.can_move_next is True
    assert snapshot.can_move_previous is True


def test_previous_offered_at_top_once_track_is_underway():
    playlist = make_playlist(1)
    session = DecoderSession()
    assert compose_snapshot(playlist, session).can_move_previous is False
    session.progress = 5
    assert compose_snapshot(playlist, session).can_move_previous is True


def test_repeat_enables_both_directions():
    playlist = make_playlist(1)
    playlist.toggle_repeat()
    snapshot = compose_snapshot(playlist, DecoderSession())
    assert snapshot.is_repeat_all is True
    assert snapshot.can_move_next is True
    assert snapshot.can_move_previous is True


def test_broadcaster_publishes_every_interval_and_survives_errors():
    class Flaky(Collector):
        def publish(self, snapshot):
            super().publish(snapshot)
            if len(self.published) == 1:
                raise RuntimeError("client went away")

    async def scenario():
        fanout = Flaky()
        broadcaster = StatusBroadcaster(lambda: StatusSnapshot(), fanout, interval=0.01)
        task = asyncio.create_task(broadcaster.run())
        await wait_for(lambda: len(fanout.published) >= 3)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    asyncio.run(scenario())


def test_broadcaster_interval_from_config(write_config):
    write_config({"status": {"interval": 0.5}})
    assert StatusBroadcaster(StatusSnapshot).interval == 0.5
    write_config({})
    assert StatusBroadcaster(StatusSnapshot).interval == 0.2
