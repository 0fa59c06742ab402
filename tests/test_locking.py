import time
from threading import Thread

from alarms.locking import ReadWriteLock


def test_readers_share_the_lock():
    lock = ReadWriteLock()
    lock.acquire_read()
    entered = []
    reader = Thread(target=lambda: (lock.acquire_read(), entered.append(True), lock.release_read()))
    reader.start()
    reader.join(timeout=1)
    lock.release_read()
    assert entered == [True]


def test_writer_waits_for_readers_and_blocks_new_ones():
    lock = ReadWriteLock()
    events = []
    lock.acquire_read()

    def writer():
        with lock.write():
            events.append("write")

    def late_reader():
        with lock.read():
            events.append("late-read")

    w = Thread(target=writer)
    w.start()
    time.sleep(0.1)
    assert events == []

    r = Thread(target=late_reader)
    r.start()
    time.sleep(0.1)
    assert events == []

    events.append("first-read-done")
    lock.release_read()
    w.join(timeout=1)
    r.join(timeout=1)
    assert events == ["first-read-done", "write", "late-read"]
