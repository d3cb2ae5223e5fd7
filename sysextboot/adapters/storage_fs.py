"""
Filesystem primitives used by the placement logic.

Moves never copy-and-keep: an image exists in exactly one place once a
move returns. Moves across partitions go through a hidden temporary file
in the destination directory, so an interrupted copy never leaves a file
under the final name.
"""
import errno
import os
import shutil
from pathlib import Path
from typing import Optional

import psutil

from sysextboot.internal.logging import get_logger
from sysextboot.kernel.errors import PlacementFailure

logger = get_logger(__name__)


# ---------------------------------------------------------------------
# Space accounting
# ---------------------------------------------------------------------

def free_bytes(directory: Path) -> int:
    return psutil.disk_usage(str(directory)).free


def _ensure_space(src: Path, dst: Path) -> None:
    required = src.stat().st_size
    available = free_bytes(dst.parent)
    if available < required:
        raise PlacementFailure(
            src, dst, f"insufficient space (required {required} bytes, available {available} bytes)"
        )


# ---------------------------------------------------------------------
# Moves
# ---------------------------------------------------------------------

def move_artifact(src: Path, dst: Path) -> Path:
    """
    Move src to dst, replacing dst.

    Same-filesystem moves are a rename. Cross-filesystem moves check the free
    space first, then copy to a temporary name, rename it into place and
    delete src. Any failure raises PlacementFailure and leaves src intact.
    """
    if not src.is_file():
        raise PlacementFailure(src, dst, "source does not exist")

    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PlacementFailure(src, dst, f"cannot create {dst.parent}: {e.strerror or e}") from e

    try:
        src.rename(dst)
        logger.info("Renamed artifact", src=str(src), dst=str(dst))
        return dst
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise PlacementFailure(src, dst, e.strerror or str(e)) from e

    _ensure_space(src, dst)

    tmp = dst.with_name(f".{dst.name}.tmp")
    try:
        shutil.copyfile(src, tmp)
        os.replace(tmp, dst)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise PlacementFailure(src, dst, e.strerror or str(e)) from e

    try:
        src.unlink()
    except OSError as e:
        # dst is already complete and is the copy that gets used.
        logger.warning("Could not remove source after copy", src=str(src), dst=str(dst), error=e.strerror or str(e))
        return dst
    logger.info("Moved artifact across filesystems", src=str(src), dst=str(dst))
    return dst


# ---------------------------------------------------------------------
# Active symlinks
# ---------------------------------------------------------------------

def read_link_target(link: Path) -> Optional[Path]:
    """
    Absolute, normalised target of a symlink, None if link is not a symlink.

    Relative targets are resolved against the directory holding the link.
    Only this one level is resolved, further links are not followed.
    """
    if not link.is_symlink():
        return None
    target = Path(os.readlink(link))
    if not target.is_absolute():
        target = link.parent / target
    return Path(os.path.normpath(target))


def point_symlink(link: Path, target: Path) -> bool:
    """
    Make link point at target. Returns False when it already did.

    The new link is created beside the old one and renamed over it, so the
    loader never sees a missing link.
    """
    if link.is_symlink() and os.readlink(link) == str(target):
        return False

    link.parent.mkdir(parents=True, exist_ok=True)
    tmp = link.with_name(f".{link.name}.new")
    tmp.unlink(missing_ok=True)
    tmp.symlink_to(target)
    os.replace(tmp, link)
    logger.info("Published symlink", link=str(link), target=str(target))
    return True


def remove_symlink(link: Path) -> bool:
    """
    Remove link if it is a symlink. Regular files are left alone.
    """
    if not link.is_symlink():
        return False
    link.unlink()
    logger.info("Removed symlink", link=str(link))
    return True
