import threading
import time

from learnpath.services.locks import KeyedLocks


def test_same_key_is_serialized():
    locks = KeyedLocks()
    counter = {"value": 0}

    def bump():
        with locks.hold(("course", "s1", "c1")):
            current = counter["value"]
            time.sleep(0.001)
            counter["value"] = current + 1

    threads = [threading.Thread(target=bump) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert counter["value"] == 20


def test_different_keys_do_not_block_each_other():
    locks = KeyedLocks()
    entered = threading.Event()

    def other():
        with locks.hold(("quiz", "s2", "q1")):
            entered.set()

    with locks.hold(("quiz", "s1", "q1")):
        t = threading.Thread(target=other)
        t.start()
        assert entered.wait(timeout=2)
        t.join()


def test_locks_are_released_and_dropped():
    locks = KeyedLocks()
    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2
    assert len(locks) == 0
