"""Tests for the snapshot store and diagnostic log."""
import threading

from connection import ConnectionState, SnapshotStore


class FakeClock:
    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        if len(self.times) > 1:
            return self.times.pop(0)
        return self.times[0]


def test_initial_values():
    store = SnapshotStore()

    assert store.state is ConnectionState.DISCONNECTED
    assert store.latest_frame == ""
    assert store.last_error == ""
    assert store.debug_log == ""


def test_frame_is_overwritten_not_accumulated():
    store = SnapshotStore()

    for text in ('{"n":1}', '{"n":2}', '{"n":3}'):
        store.set_frame(text)

    assert store.latest_frame == '{"n":3}'
    assert store.snapshot().frames_received == 3


def test_log_lines_are_timestamped_and_never_go_backwards():
    store = SnapshotStore(clock=FakeClock(10.0, 9.5, 11.25))

    store.append_log("first")
    store.append_log("second")
    store.append_log("third")

    assert store.debug_log.split("\n") == [
        "[10000] first",
        "[10000] second",
        "[11250] third",
    ]


def test_clear_log_only_resets_the_log():
    store = SnapshotStore()
    store.set_frame("frame")
    store.set_error("boom")
    store.append_log("line")

    store.clear_log()

    assert store.debug_log == ""
    assert store.latest_frame == "frame"
    assert store.last_error == "boom"


def test_replace_state_unless_keeps_error():
    store = SnapshotStore()
    store.set_state(ConnectionState.ERROR)

    previous, replaced = store.replace_state_unless(ConnectionState.DISCONNECTED, keep=ConnectionState.ERROR)

    assert previous is ConnectionState.ERROR
    assert replaced is False
    assert store.state is ConnectionState.ERROR

    store.set_state(ConnectionState.CONNECTED)
    previous, replaced = store.replace_state_unless(ConnectionState.CLOSING, keep=ConnectionState.ERROR)

    assert previous is ConnectionState.CONNECTED
    assert replaced is True
    assert store.state is ConnectionState.CLOSING


def test_get_status():
    store = SnapshotStore(clock=lambda: 1700000000.0)
    store.set_state(ConnectionState.CONNECTED)
    store.set_frame("{}")
    store.append_log("opened")

    status = store.get_status()

    assert status == {
        "state": "connected",
        "has_frame": True,
        "frames_received": 1,
        "last_frame_at": "2023-11-14T22:13:20+00:00",
        "last_error": None,
        "debug_log_lines": 1,
    }


def test_concurrent_readers_only_see_whole_frames():
    store = SnapshotStore()
    frames = [f'{{"seq":{i}}}' for i in range(2000)]
    allowed = set(frames) | {""}
    seen_bad = []
    done = threading.Event()

    def writer():
        for frame in frames:
            store.set_frame(frame)
        done.set()

    def reader():
        while not done.is_set():
            value = store.latest_frame
            if value not in allowed:
                seen_bad.append(value)

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for thread in readers:
        thread.start()
    writer()
    for thread in readers:
        thread.join()

    assert seen_bad == []
    assert store.latest_frame == frames[-1]
