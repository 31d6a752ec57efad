import pytest

from carmedia.catalog import Track, TrackCatalog


def record(track_id, **extra):
    data = {"id": track_id, "device_id": "usb-1", "relative_path": f"{track_id}.mp3"}
    data.update(extra)
    return data


def test_track_from_indexer_record():
    track = Track.from_dict(record("7", duration="215", artist="Kraftwerk",
                                   title="Autobahn", track_number=1, album=None))
    assert track.id == 7
    assert track.duration == 215
    assert track.artist == "Kraftwerk"
    assert track.album == ""
    assert track.to_dict()["relative_path"] == "7.mp3"


@pytest.mark.parametrize("data", [{}, {"id": "x", "device_id": "a", "relative_path": "b"},
                                  {"id": 1, "relative_path": "b"}])
def test_bad_records_raise_value_error(data):
    with pytest.raises(ValueError):
        Track.from_dict(data)


def test_lookup_keeps_request_order_and_skips_stale_ids():
    catalog = TrackCatalog()
    catalog.update([record(1), record(2), record(3)])
    assert [t.id for t in catalog.lookup([3, 1, 99, 3])] == [3, 1, 3]
    assert 2 in catalog
    assert catalog.get(99) is None


def test_update_skips_bad_records_and_can_replace():
    catalog = TrackCatalog([Track(1, "usb-1", "1.mp3")])
    assert catalog.update([record(2), {"id": 3}]) == 1
    assert len(catalog) == 2
    assert catalog.update([record(5)], replace=True) == 1
    assert len(catalog) == 1
    assert 1 not in catalog


def test_tracks_returns_a_snapshot():
    catalog = TrackCatalog()
    catalog.update([record(1), record(2, device_id="usb-2")])
    tracks = catalog.tracks()
    assert [t.id for t in tracks] == [1, 2]
    catalog.update([record(3)])
    assert len(tracks) == 2
    assert len(catalog.tracks()) == 3
