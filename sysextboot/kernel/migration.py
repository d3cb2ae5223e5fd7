"""
One-shot removal of files made obsolete by moving OEM content into a sysext.

The manifest lists absolute paths, one per line. It is deleted after it
has been processed, so the migration runs exactly once.
"""
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from sysextboot.internal.config import BootConfig
from sysextboot.internal.logging import get_logger
from sysextboot.kernel.errors import MigrationFailure
from sysextboot.kernel.placement import OemSlot

logger = get_logger(__name__)


@dataclass
class MigrationReport:
    manifest: Path
    ran: bool = False
    removed: list[Path] = field(default_factory=list)
    missing: list[Path] = field(default_factory=list)
    failed: list[MigrationFailure] = field(default_factory=list)


def _remove(path: Path) -> bool:
    """
    Remove a file, symlink or directory tree. False if it did not exist.
    """
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
        else:
            return False
    except OSError as e:
        raise MigrationFailure(path, e.strerror or str(e)) from e
    return True


class MigrationRunner:
    def __init__(self, config: BootConfig):
        self.config = config

    def manifest_path(self, oem_id: str) -> Path:
        return OemSlot.from_config(self.config, oem_id).migration_manifest

    def run_if_present(self, oem_id: str) -> MigrationReport:
        manifest = self.manifest_path(oem_id)
        report = MigrationReport(manifest=manifest)

        if not manifest.is_file():
            return report

        report.ran = True
        logger.info("Running OEM migration", oem_id=oem_id, manifest=str(manifest))

        try:
            lines = manifest.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            # Kept for the next boot.
            self._record_failure(report, MigrationFailure(manifest, e.strerror or str(e)))
            return report

        for line in lines:
            entry = line.strip()
            if not entry:
                continue

            path = Path(entry)
            if not path.is_absolute():
                logger.warning("Skipping relative path in migration manifest", entry=entry)
                continue

            try:
                if _remove(path):
                    report.removed.append(path)
                else:
                    report.missing.append(path)
            except MigrationFailure as e:
                self._record_failure(report, e)

        try:
            manifest.unlink()
        except OSError as e:
            # Runs again next boot.
            self._record_failure(report, MigrationFailure(manifest, e.strerror or str(e)))

        logger.info(
            "OEM migration finished",
            oem_id=oem_id,
            removed=len(report.removed),
            missing=len(report.missing),
            failed=len(report.failed),
        )
        return report

    @staticmethod
    def _record_failure(report: MigrationReport, failure: MigrationFailure) -> None:
        logger.warning("Migration could not process path", path=str(failure.path), reason=failure.reason)
        report.failed.append(failure)
