import asyncio

from carmedia.decoder import (CommandDispatcher, DecoderSession, ResponseInterpreter,
                              SetVolume, Stop)


class Recorder:
    def __init__(self):
        self.ended = 0

    async def __call__(self):
        self.ended += 1


def make(volume=100):
    session = DecoderSession()
    dispatcher = CommandDispatcher(None, session)
    on_end = Recorder()
    interpreter = ResponseInterpreter(session, dispatcher, on_track_end=on_end, volume=volume)
    return session, dispatcher, interpreter, on_end


def test_ready_marker_sets_volume():
    async def scenario():
        session, dispatcher, interpreter, _ = make(volume=65)
        await session.reset()
        await interpreter.handle("@R MPG123 (ThOr) v10")
        assert session.ready is True
        assert dispatcher.pending == 1
        assert dispatcher._queue.get_nowait() == SetVolume(65)

    asyncio.run(scenario())


def test_status_lines_update_playback_flags():
    async def scenario():
        session, _, interpreter, _ = make()
        await interpreter.handle("@P 2")
        assert (session.is_playing, session.is_paused) == (True, False)
        await interpreter.handle("@P 1")
        assert (session.is_playing, session.is_paused) == (True, True)

    asyncio.run(scenario())


def test_frame_updates_progress_and_duration():
    async def scenario():
        session, _, interpreter, _ = make()
        await interpreter.handle("@F 1234 5678 30.67 120.42")
        assert session.progress == 31
        assert session.duration == 151

    asyncio.run(scenario())


def test_requested_stop_does_not_advance():
    async def scenario():
        session, _, interpreter, on_end = make()
        session.is_playing = True
        session.progress = 40
        await session.begin(Stop())
        await interpreter.handle("@P 0")
        assert on_end.ended == 0
        assert session.ready is True
        assert session.is_playing is False
        assert session.progress == 0

        # A later stop with nobody asking is the track running out
        await interpreter.handle("@P 0")
        assert on_end.ended == 1

    asyncio.run(scenario())


def test_error_requests_a_resend():
    async def scenario():
        session, _, interpreter, _ = make()
        await session.begin(Stop())
        await interpreter.handle("@E Unknown command")
        assert session.ready is True
        assert session.retry is True

    asyncio.run(scenario())


def test_ignored_and_unknown_lines_change_nothing(caplog):
    async def scenario():
        session, dispatcher, interpreter, on_end = make()
        for line in ("@I ID3:Song", "@V 100%", "@J 0", "@S 1.0 3 44100", "", "@X what"):
            await interpreter.handle(line)
        assert session.is_playing is False
        assert dispatcher.pending == 0
        assert on_end.ended == 0

    asyncio.run(scenario())
    assert "Unknown decoder output: @X what" in caplog.text


def test_failing_line_does_not_stop_the_worker():
    async def scenario():
        session, _, interpreter, _ = make()

        async def broken():
            raise RuntimeError("boom")

        interpreter.on_track_end = broken
        task = asyncio.create_task(interpreter.run())
        interpreter.feed("@P 0")
        interpreter.feed("@P 2")
        for _ in range(20):
            await asyncio.sleep(0)
        assert session.is_playing is True
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    asyncio.run(scenario())
