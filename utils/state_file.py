"""File locking and atomic JSON persistence for the agent's state files."""

from __future__ import annotations

import errno
import json
import os
import tempfile
import time
from contextlib import contextmanager
from typing import Any, Iterator

try:  # pragma: no cover - platform specific
    import fcntl
except ImportError:  # pragma: no cover - platform specific
    fcntl = None  # type: ignore[assignment]

try:  # pragma: no cover - platform specific
    import msvcrt
except ImportError:  # pragma: no cover - platform specific
    msvcrt = None  # type: ignore[assignment]

E_STATE_LOCKED = "E_STATE_LOCKED"

_TRANSIENT_REPLACE_ERRNOS = {errno.EACCES, errno.EBUSY, errno.EPERM}
_REPLACE_RETRIES = 6
_REPLACE_BASE_DELAY_SECONDS = 0.03


class StateFileLockError(RuntimeError):
    """Raised when a state-file lock cannot be acquired in time."""

    code = E_STATE_LOCKED


def _acquire_nonblocking(handle: Any) -> None:
    if fcntl is not None:  # pragma: no cover - unix-only runtime path
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            raise BlockingIOError(str(exc)) from exc
        return
    if msvcrt is not None:  # pragma: no cover - windows-only runtime path
        handle.seek(0)
        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError as exc:
            raise BlockingIOError(str(exc)) from exc


def _release(handle: Any) -> None:
    if fcntl is not None:  # pragma: no cover - unix-only runtime path
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        return
    if msvcrt is not None:  # pragma: no cover - windows-only runtime path
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)


@contextmanager
def state_file_lock(
    target_path: str,
    *,
    timeout_seconds: float = 2.0,
    poll_seconds: float = 0.05,
) -> Iterator[None]:
    """Hold an inter-process lock on `<target_path>.lock` for the block."""

    lock_path = f"{target_path}.lock"
    os.makedirs(os.path.dirname(lock_path) or ".", exist_ok=True)
    deadline = time.monotonic() + max(0.0, float(timeout_seconds))
    poll = max(0.01, float(poll_seconds))

    handle = open(lock_path, "a+b")
    locked = False
    try:
        # msvcrt locks a byte range, so the file must not be empty.
        handle.seek(0, os.SEEK_END)
        if handle.tell() == 0:
            handle.write(b"0")
            handle.flush()
        handle.seek(0)
        while True:
            try:
                _acquire_nonblocking(handle)
                locked = True
                break
            except BlockingIOError as exc:
                if time.monotonic() >= deadline:
                    raise StateFileLockError(f"{E_STATE_LOCKED}: lock timeout path={target_path}") from exc
                time.sleep(poll)
        yield
    finally:
        if locked:
            try:
                _release(handle)
            except OSError:
                pass
        handle.close()


def atomic_write_json(path: str, payload: Any, *, indent: int = 2) -> None:
    """Write JSON through a temp file in the same directory, then replace."""

    state_dir = os.path.dirname(path) or "."
    os.makedirs(state_dir, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=f"{os.path.basename(path)}.", suffix=".tmp", dir=state_dir, text=True)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=indent)
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError:
                pass
        for attempt in range(_REPLACE_RETRIES + 1):
            try:
                os.replace(tmp_path, path)
                break
            except OSError as exc:
                if exc.errno not in _TRANSIENT_REPLACE_ERRNOS or attempt >= _REPLACE_RETRIES:
                    raise
                time.sleep(_REPLACE_BASE_DELAY_SECONDS * (1.5**attempt))
    except BaseException:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise


def write_json_locked(path: str, payload: Any, *, timeout_seconds: float = 2.0) -> None:
    with state_file_lock(path, timeout_seconds=timeout_seconds):
        atomic_write_json(path, payload)


def read_json_locked(path: str, *, timeout_seconds: float = 2.0) -> Any:
    with state_file_lock(path, timeout_seconds=timeout_seconds):
        with open(path, "r", encoding="utf-8-sig") as f:
            return json.load(f)
