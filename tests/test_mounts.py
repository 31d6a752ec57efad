import os

from carmedia.catalog import Track
from carmedia.mounts import MountResolver


def make_resolver(tmp_path, mounts_text, links=None):
    """Fake /proc/mounts plus a by-uuid dir whose links point at fake nodes."""
    proc_mounts = tmp_path / "mounts"
    proc_mounts.write_text(mounts_text)
    by_uuid = tmp_path / "by-uuid"
    by_uuid.mkdir()
    for uuid, node in (links or {}).items():
        os.symlink(node, by_uuid / uuid)
    return MountResolver(proc_mounts=str(proc_mounts), by_uuid_dir=str(by_uuid), static={})


def test_resolves_uuid_to_mount_point(tmp_path):
    node = "/dev/carmedia-test-sda1"
    resolver = make_resolver(
        tmp_path,
        f"proc /proc proc rw 0 0\n{node} /media/usb0 vfat rw 0 0\n",
        {"1234-ABCD": node},
    )
    assert resolver.resolve("1234-ABCD") == "/media/usb0"


def test_unknown_or_unmounted_device(tmp_path):
    node = "/dev/carmedia-test-sdb1"
    resolver = make_resolver(tmp_path, "", {"5678-EF00": node})
    assert resolver.resolve("5678-EF00") is None
    assert resolver.resolve("0000-0000") is None


def test_mount_point_escapes_are_decoded(tmp_path):
    node = "/dev/carmedia-test-sdc1"
    resolver = make_resolver(
        tmp_path,
        f"{node} /media/My\\040Music vfat rw 0 0\n",
        {"AAAA-BBBB": node},
    )
    assert resolver.resolve("AAAA-BBBB") == "/media/My Music"


def test_first_mount_of_a_device_wins(tmp_path):
    node = "/dev/carmedia-test-sdd1"
    resolver = make_resolver(
        tmp_path,
        f"{node} /media/usb1 vfat rw 0 0\n{node} /srv/bind vfat rw 0 0\n",
    )
    assert resolver.mounted_devices() == {node: "/media/usb1"}


def test_non_device_entries_are_skipped(tmp_path):
    resolver = make_resolver(tmp_path, "tmpfs /run tmpfs rw 0 0\n/dev/carmedia-test-sde1 /boot vfat rw 0 0\n")
    assert list(resolver.mounted_devices().values()) == ["/boot"]


def test_unreadable_proc_mounts(tmp_path):
    resolver = MountResolver(proc_mounts=str(tmp_path / "missing"),
                             by_uuid_dir=str(tmp_path), static={})
    assert resolver.mounted_devices() == {}


def test_static_devices_override(tmp_path):
    music = tmp_path / "music"
    music.mkdir()
    resolver = MountResolver(proc_mounts=str(tmp_path / "missing"),
                             static={"usb-1": str(music), "usb-2": str(tmp_path / "gone")})
    track = Track(1, "usb-1", "/Album/01 Song.mp3")
    assert resolver.track_path(track) == os.path.join(str(music), "Album/01 Song.mp3")
    assert resolver.track_path(Track(2, "usb-2", "a.mp3")) is None
    assert resolver.track_path(Track(3, "usb-3", "a.mp3")) is None


def test_static_devices_from_config(tmp_path, write_config):
    write_config({"devices": {"usb-1": str(tmp_path)}})
    assert MountResolver().resolve("usb-1") == str(tmp_path)
