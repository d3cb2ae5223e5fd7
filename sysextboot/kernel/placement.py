"""
Placement of the OEM sysext image.

Once per boot the OEM slot is resolved to exactly one of

    OEM_PARTITION   <oem-store>/oem-<id>-<version>.raw
    ROOT_PARTITION  <root-oem-store>/oem-<id>-<version>.raw
    LEGACY_INITIAL  <oem-store>/oem-<id>-initial.raw
    ABSENT          no image

and the active symlink <extensions-dir>/oem-<id>.raw is pointed at it (or
removed for ABSENT). The OEM partition is small, so the root partition is
the fallback whenever a move onto it fails.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from sysextboot.adapters import storage_fs
from sysextboot.internal import paths
from sysextboot.internal.config import BootConfig
from sysextboot.internal.logging import get_logger
from sysextboot.kernel.artifacts import (
    ABSENT,
    ArtifactLocation,
    ArtifactSource,
    MetadataReader,
    Placement,
    is_legacy_tier,
)
from sysextboot.kernel.errors import PlacementFailure

logger = get_logger(__name__)


@dataclass(frozen=True)
class OemSlot:
    oem_id: str
    version: str
    oem_store: Path
    root_store: Path
    extensions_dir: Path

    @classmethod
    def from_config(cls, config: BootConfig, oem_id: str) -> "OemSlot":
        return cls(
            oem_id=oem_id,
            version=config.version,
            oem_store=config.oem_store,
            root_store=config.root_oem_store,
            extensions_dir=config.extensions_dir,
        )

    @property
    def name(self) -> str:
        return paths.oem_slot_name(self.oem_id)

    @property
    def download_name(self) -> str:
        return paths.download_name(self.name)

    @property
    def oem_path(self) -> Path:
        return self.oem_store / paths.pinned_image_name(self.name, self.version)

    @property
    def root_path(self) -> Path:
        return self.root_store / paths.pinned_image_name(self.name, self.version)

    @property
    def initial_path(self) -> Path:
        return self.oem_store / paths.initial_image_name(self.name)

    @property
    def symlink(self) -> Path:
        return self.extensions_dir / f"{self.name}.raw"

    @property
    def migration_manifest(self) -> Path:
        return self.oem_store / paths.migration_manifest_name(self.name)


class StoragePlacer:
    def __init__(
        self,
        source: Optional[ArtifactSource],
        read_metadata: MetadataReader,
        move: Callable[[Path, Path], Path] = storage_fs.move_artifact,
    ):
        """
        source is None in offline mode: a missing image then stays ABSENT.
        """
        self.source = source
        self.read_metadata = read_metadata
        self.move = move

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------

    def place(self, slot: OemSlot) -> Placement:
        """
        Decide where the slot's image lives, move it if needed and publish
        the active symlink. First matching rule wins.
        """
        if slot.oem_path.is_file():
            placement = Placement(ArtifactLocation.OEM_PARTITION, slot.oem_path)
        elif slot.root_path.is_file():
            placement = self._promote_from_root(slot)
        elif slot.initial_path.is_file() and self._is_legacy(slot.initial_path, slot):
            placement = Placement(ArtifactLocation.LEGACY_INITIAL, slot.initial_path)
        else:
            placement = self._fetch_fresh(slot)

        self._publish(slot, placement)
        logger.info(
            "OEM sysext placed",
            oem_id=slot.oem_id,
            location=placement.location.name,
            path=str(placement.path) if placement.path else None,
        )
        return placement

    # ---------------------------------------------------------------------
    # Decision steps
    # ---------------------------------------------------------------------

    def _promote_from_root(self, slot: OemSlot) -> Placement:
        self._evict_stale_active(slot)
        try:
            self.move(slot.root_path, slot.oem_path)
        except PlacementFailure as e:
            logger.warning("Keeping OEM sysext on root partition", reason=e.reason, path=str(slot.root_path))
            return Placement(ArtifactLocation.ROOT_PARTITION, slot.root_path)
        return Placement(ArtifactLocation.OEM_PARTITION, slot.oem_path)

    def _evict_stale_active(self, slot: OemSlot) -> None:
        """
        Move the file the active symlink still points at (an older image on
        the OEM partition) to the root store to make room. Best effort.
        """
        target = storage_fs.read_link_target(slot.symlink)
        if target is None or not target.is_file():
            return
        if target == slot.oem_path or target.parent == slot.root_store:
            return

        try:
            self.move(target, slot.root_store / target.name)
        except PlacementFailure as e:
            logger.warning("Could not move previous OEM sysext off the OEM partition", path=str(target), reason=e.reason)
        else:
            logger.info("Moved previous OEM sysext to root partition", path=str(target))

    def _fetch_fresh(self, slot: OemSlot) -> Placement:
        if self.source is None:
            logger.warning("No OEM sysext present and downloads are disabled", oem_id=slot.oem_id)
            return ABSENT

        image = self.source.fetch_verified(slot.download_name, slot.root_store)

        if self._is_legacy(image, slot):
            return self._place_legacy(image, slot)

        try:
            self.move(image, slot.oem_path)
        except PlacementFailure as e:
            logger.warning("Placing OEM sysext on root partition instead", reason=e.reason)
            # Same filesystem as the download directory: a rename.
            self.move(image, slot.root_path)
            return Placement(ArtifactLocation.ROOT_PARTITION, slot.root_path)
        return Placement(ArtifactLocation.OEM_PARTITION, slot.oem_path)

    def _place_legacy(self, image: Path, slot: OemSlot) -> Placement:
        """
        Legacy images are version-agnostic and only live on the OEM partition.
        They never take a versioned name, so a failed move is fatal.
        """
        try:
            self.move(image, slot.initial_path)
        except PlacementFailure as e:
            logger.error("Cannot place legacy OEM sysext on the OEM partition", reason=e.reason)
            image.unlink(missing_ok=True)
            raise
        return Placement(ArtifactLocation.LEGACY_INITIAL, slot.initial_path)

    def _is_legacy(self, image: Path, slot: OemSlot) -> bool:
        return is_legacy_tier(self.read_metadata(image, slot.name))

    # ---------------------------------------------------------------------
    # Symlink
    # ---------------------------------------------------------------------

    @staticmethod
    def _publish(slot: OemSlot, placement: Placement) -> None:
        if placement.path is None:
            storage_fs.remove_symlink(slot.symlink)
        else:
            storage_fs.point_symlink(slot.symlink, placement.path)
