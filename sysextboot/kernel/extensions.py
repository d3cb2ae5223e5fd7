"""
Keeps optional extensions in sync with the enabled-set file.

Every enabled name gets a version-pinned image in the root extension store
and a symlink in the extensions directory.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from sysextboot.adapters import storage_fs
from sysextboot.internal import paths
from sysextboot.internal.config import BootConfig
from sysextboot.internal.logging import get_logger
from sysextboot.kernel.artifacts import ABSENT, ArtifactLocation, ArtifactSource, Placement

logger = get_logger(__name__)


def read_enabled_extensions(path: Path) -> list[str]:
    """
    Names from the enabled-set file, in order and without duplicates.

    Blank lines and lines starting with # are ignored. A missing file is an
    empty set.
    """
    if not path.is_file():
        return []

    names: list[str] = []
    for line in path.read_text(encoding="utf-8", errors="replace").splitlines():
        name = line.strip()
        if not name or name.startswith("#") or name in names:
            continue
        names.append(name)
    return names


@dataclass(frozen=True)
class ExtensionSlot:
    name: str
    image_name: str
    pinned_path: Path
    symlink: Path

    @classmethod
    def from_config(cls, config: BootConfig, name: str) -> "ExtensionSlot":
        slot_name = f"{config.extension_prefix}{name}"
        return cls(
            name=name,
            image_name=paths.download_name(slot_name),
            pinned_path=config.root_extension_store / paths.pinned_image_name(slot_name, config.version),
            symlink=config.extensions_dir / paths.download_name(slot_name),
        )


class ExtensionSetSync:
    def __init__(
        self,
        config: BootConfig,
        source: Optional[ArtifactSource],
        move: Callable[[Path, Path], Path] = storage_fs.move_artifact,
    ):
        self.config = config
        self.source = source
        self.move = move

    def sync(self, names: Iterable[str]) -> Dict[str, Placement]:
        results: Dict[str, Placement] = {}
        for name in names:
            results[name] = self.ensure(ExtensionSlot.from_config(self.config, name))
        return results

    def ensure(self, slot: ExtensionSlot) -> Placement:
        if not slot.pinned_path.is_file() and self.source is not None:
            logger.info("Fetching extension", name=slot.name, version=self.config.version)
            image = self.source.fetch_verified(slot.image_name, self.config.root_extension_store)
            self.move(image, slot.pinned_path)

        if not slot.pinned_path.is_file():
            logger.warning("Extension image missing, disabling", name=slot.name, path=str(slot.pinned_path))
            storage_fs.remove_symlink(slot.symlink)
            return ABSENT

        storage_fs.point_symlink(slot.symlink, slot.pinned_path)
        return Placement(ArtifactLocation.ROOT_PARTITION, slot.pinned_path)
