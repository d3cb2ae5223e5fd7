from pathlib import Path
from typing import Callable, Dict

from sysextboot.internal.command import CmdResult, run_cmd
from sysextboot.internal.logging import get_logger
from sysextboot.internal.releasefile import parse_release_text

logger = get_logger(__name__)

EXTENSION_RELEASE_DIR = "usr/lib/extension-release.d"


class SquashfsMetadataReader:
    """
    Reads usr/lib/extension-release.d/extension-release.<slot> out of a
    squashfs sysext image with unsquashfs.

    An unreadable image or a missing file yields an empty dict, which the
    placement logic treats as "not legacy".
    """

    def __init__(self, unsquashfs: str = "unsquashfs", runner: Callable[..., CmdResult] = run_cmd):
        self.unsquashfs = unsquashfs
        self._run = runner

    def __call__(self, image: Path, slot_name: str) -> Dict[str, str]:
        member = f"{EXTENSION_RELEASE_DIR}/extension-release.{slot_name}"
        result = self._run([self.unsquashfs, "-cat", str(image), member])

        if result.returncode != 0:
            logger.warning(
                "Cannot read extension-release from image",
                image=str(image),
                member=member,
                returncode=result.returncode,
            )
            return {}

        metadata = parse_release_text(result.stdout)
        logger.debug("Read image metadata", image=str(image), metadata=metadata)
        return metadata
