"""Atomic write helpers (temp + fsync + rename).

The destination either holds the complete new payload or its previous
complete content; a partially written file is never visible under the
destination name. The temporary file is created next to the destination so
the final rename never crosses a filesystem boundary.
"""
from __future__ import annotations

import os
import time
import logging
from pathlib import Path

logger = logging.getLogger("configurate")


def temp_path_for(path: Path) -> Path:
    """Sibling temp name: ``.{name}.{time_ns}-{random32}.tmp``.

    The random suffix avoids collisions when the clock is coarse or when
    several writers target the same file.
    """
    suffix = int.from_bytes(os.urandom(4), "little")
    return path.with_name(f".{path.name}.{time.time_ns()}-{suffix}.tmp")


def _fsync_dir(path: Path) -> None:
    if os.name == "nt":
        return
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError as err:
        # some filesystems refuse fsync on directories
        logger.debug("Directory fsync skipped for %s: %s", path, err)
    finally:
        os.close(fd)


def _write_temp(tmp_path: Path, payload: bytes, fsync: bool, mode: int | None) -> None:
    try:
        with open(tmp_path, "xb") as handle:
            handle.write(payload)
            handle.flush()
            if fsync:
                os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
    except BaseException:
        # incomplete temp file holds nothing worth keeping
        tmp_path.unlink(missing_ok=True)
        raise


def _rename_into_place(tmp_path: Path, path: Path) -> None:
    try:
        os.rename(tmp_path, path)
        return
    except OSError:
        if not path.exists():
            # tmp_path is kept: it is the only copy of the new data
            raise
    logger.warning(
        "Rename onto existing %s failed; removing destination and retrying once",
        path,
    )
    path.unlink()
    os.rename(tmp_path, path)


def atomic_write_bytes(
    path: Path,
    payload: bytes,
    *,
    fsync: bool = True,
    mode: int | None = None,
) -> None:
    """Atomically write raw bytes to ``path``.

    Sequence: create parents → write temp → flush/fsync → rename. When the
    rename fails because the destination exists, the destination is removed
    and the rename retried exactly once. If that retry fails the error is
    raised and the temp file is left in place for recovery.

    Args:
        path: Destination file.
        payload: Bytes to write.
        fsync: Durably sync the temp file and the parent directory.
        mode: Optional permission bits applied before the rename.

    Raises:
        OSError: On any filesystem failure.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = temp_path_for(path)
    _write_temp(tmp_path, payload, fsync, mode)
    _rename_into_place(tmp_path, path)
    if fsync:
        _fsync_dir(path.parent)
