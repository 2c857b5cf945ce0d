"""Tests for the advisory lock."""

import os
import time

import pytest

from archivist.backup.lock import LockManager
from archivist.exceptions import LockContention


def test_acquire_writes_pid_and_time(temp_dir):
    lock = LockManager(temp_dir / "backup.lock")

    assert lock.acquire() is True

    pid, acquired_at = lock.read_owner()
    assert pid == os.getpid()
    assert len(acquired_at) == len("2024-01-01 00:00:00")


def test_fresh_lock_blocks(temp_dir):
    """A second acquirer is refused while the lock is fresh."""
    first = LockManager(temp_dir / "backup.lock")
    second = LockManager(temp_dir / "backup.lock")

    assert first.acquire() is True
    assert second.acquire() is False
    assert first.read_owner()[0] == os.getpid()


def test_stale_lock_is_reclaimed(temp_dir):
    """A lock older than the threshold is removed and overwritten."""
    lock_path = temp_dir / "backup.lock"
    lock_path.write_text("999999\n2000-01-01 00:00:00")
    old = time.time() - 7201
    os.utime(lock_path, (old, old))

    lock = LockManager(lock_path, stale_after=7200)
    assert lock.acquire() is True

    pid, acquired_at = lock.read_owner()
    assert pid == os.getpid()
    assert acquired_at != "2000-01-01 00:00:00"


def test_release_is_idempotent(temp_dir):
    lock = LockManager(temp_dir / "backup.lock")
    lock.acquire()

    lock.release()
    lock.release()

    assert not (temp_dir / "backup.lock").exists()
    assert lock.acquire() is True


def test_held_releases_on_error(temp_dir):
    lock = LockManager(temp_dir / "backup.lock")

    with pytest.raises(RuntimeError):
        with lock.held():
            assert (temp_dir / "backup.lock").exists()
            raise RuntimeError("boom")

    assert not (temp_dir / "backup.lock").exists()


def test_held_raises_on_contention(temp_dir):
    other = LockManager(temp_dir / "backup.lock")
    other.acquire()

    with pytest.raises(LockContention) as exc_info:
        with LockManager(temp_dir / "backup.lock").held():
            pass

    assert exc_info.value.lock_path == str(temp_dir / "backup.lock")
    # The holder's lock is untouched
    assert (temp_dir / "backup.lock").exists()


def test_read_owner_garbage(temp_dir):
    lock_path = temp_dir / "backup.lock"
    lock = LockManager(lock_path)
    assert lock.read_owner() is None

    lock_path.write_text("not-a-pid\nwhenever")
    assert lock.read_owner() is None
