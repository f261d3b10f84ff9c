"""
pretested-integration — tests for per-branch finalization locks.

File: tests/unit/integration_plane/test_locking.py
"""

from __future__ import annotations

import threading
import time

import pytest

from pretested_integration.integration_plane.locking import BranchLocks


def test_hold_is_reentrant_for_the_same_thread() -> None:
    locks = BranchLocks()
    with locks.hold(("repo", "main")), locks.hold(("repo", "main"), timeout=0):
        pass
    assert locks.keys == (("repo", "main"),)


def test_hold_serializes_same_key_across_threads() -> None:
    locks = BranchLocks()
    active = 0
    peak = 0
    guard = threading.Lock()

    def worker() -> None:
        nonlocal active, peak
        with locks.hold(("repo", "main")):
            with guard:
                active += 1
                peak = max(peak, active)
            time.sleep(0.01)
            with guard:
                active -= 1

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert peak == 1


def test_different_keys_do_not_block() -> None:
    locks = BranchLocks()
    with locks.hold(("repo", "main")):
        done = threading.Event()

        def other() -> None:
            with locks.hold(("repo", "develop"), timeout=1):
                done.set()

        thread = threading.Thread(target=other)
        thread.start()
        thread.join(timeout=5)
        assert done.is_set()


def test_hold_times_out_when_held_elsewhere() -> None:
    locks = BranchLocks()
    held = threading.Event()
    release = threading.Event()

    def holder() -> None:
        with locks.hold(("repo", "main")):
            held.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=holder)
    thread.start()
    try:
        assert held.wait(timeout=5)
        with pytest.raises(TimeoutError, match="repo main"), locks.hold(
            ("repo", "main"), timeout=0.01
        ):
            pass
    finally:
        release.set()
        thread.join(timeout=5)


def test_negative_timeout_is_rejected() -> None:
    with pytest.raises(ValueError), BranchLocks().hold(("repo", "main"), timeout=-1):
        pass
