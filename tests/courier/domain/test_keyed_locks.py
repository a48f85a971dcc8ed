"""Per-key mutual exclusion."""

import threading
import time

from courier.shared.locks import KeyedLocks


def test_same_key_is_serialized():
    locks = KeyedLocks()
    active = []
    overlaps = []

    def work():
        with locks.hold("PKG-1"):
            active.append(1)
            if len(active) > 1:
                overlaps.append(len(active))
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=work) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []


def test_different_keys_run_in_parallel():
    locks = KeyedLocks()
    inside = threading.Barrier(2, timeout=2)

    def work(key):
        with locks.hold(key):
            # Both threads must be inside their locks at once to pass the barrier
            inside.wait()

    threads = [threading.Thread(target=work, args=(key,)) for key in ("PKG-1", "PKG-2")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not inside.broken


def test_locks_are_released_after_use():
    locks = KeyedLocks()
    with locks.hold("PKG-1"):
        with locks.hold("PKG-2"):
            assert len(locks) == 2
    assert len(locks) == 0


def test_lock_released_when_body_raises():
    locks = KeyedLocks()
    try:
        with locks.hold("PKG-1"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    assert len(locks) == 0
    with locks.hold("PKG-1"):
        assert len(locks) == 1
