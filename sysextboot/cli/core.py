"""
Core, reusable logic for CLI commands, decoupled from Typer.

Builds the components from a BootConfig and runs the boot step. Errors are
left to propagate; the commands turn them into an exit status.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from sysextboot.adapters.gpg import SignatureVerifier
from sysextboot.adapters.http_fetch import ArtifactFetcher
from sysextboot.adapters.image_meta import SquashfsMetadataReader
from sysextboot.adapters.storage_fs import read_link_target
from sysextboot.adapters.verified_source import NetworkStarter, VerifiedArtifactSource
from sysextboot.internal.config import BootConfig, load_config, read_oem_id
from sysextboot.internal.logging import get_logger, setup_logging
from sysextboot.kernel.artifacts import ArtifactLocation, Placement
from sysextboot.kernel.extensions import ExtensionSetSync, read_enabled_extensions
from sysextboot.kernel.migration import MigrationReport, MigrationRunner
from sysextboot.kernel.placement import OemSlot, StoragePlacer

logger = get_logger(__name__)


@dataclass
class BootSummary:
    oem_id: Optional[str] = None
    oem: Optional[Placement] = None
    migration: Optional[MigrationReport] = None
    extensions: Dict[str, Placement] = field(default_factory=dict)


# ---------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------

def build_source(config: BootConfig) -> Optional[VerifiedArtifactSource]:
    """
    The fetch-and-verify unit, or None when downloads are disabled.
    """
    if not config.allow_download:
        return None
    return VerifiedArtifactSource(
        fetcher=ArtifactFetcher(config),
        verifier=SignatureVerifier(config.trust_anchor),
        network=NetworkStarter(config.network_units),
    )


# ---------------------------------------------------------------------
# Boot step
# ---------------------------------------------------------------------

def setup_oem(
    config: BootConfig,
    oem_id: str,
    source: Optional[VerifiedArtifactSource],
    summary: BootSummary,
) -> None:
    placer = StoragePlacer(source=source, read_metadata=SquashfsMetadataReader())
    summary.oem = placer.place(OemSlot.from_config(config, oem_id))

    # Old files are only dropped once their replacement is active.
    if summary.oem.location is not ArtifactLocation.ABSENT:
        summary.migration = MigrationRunner(config).run_if_present(oem_id)


def sync_extensions(
    config: BootConfig,
    source: Optional[VerifiedArtifactSource],
    summary: BootSummary,
) -> None:
    names = read_enabled_extensions(config.enabled_extensions_file)
    logger.info("Enabled extensions", names=names)
    summary.extensions = ExtensionSetSync(config, source).sync(names)


def run_boot(
    config: BootConfig,
    *,
    oem_id: Optional[str] = None,
    oem: bool = True,
    extensions: bool = True,
) -> BootSummary:
    source = build_source(config)
    summary = BootSummary(oem_id=oem_id or read_oem_id(config))

    if oem:
        if summary.oem_id:
            setup_oem(config, summary.oem_id, source, summary)
        else:
            logger.info("No OEM id found, skipping OEM sysext", oem_release=str(config.oem_release_file))

    if extensions:
        sync_extensions(config, source, summary)

    return summary


# ---------------------------------------------------------------------
# Status (read-only)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class LinkStatus:
    link: Path
    target: Optional[Path]
    location: ArtifactLocation
    exists: bool


def classify(config: BootConfig, target: Optional[Path]) -> ArtifactLocation:
    if target is None:
        return ArtifactLocation.ABSENT
    if target.name.endswith("-initial.raw") and target.parent == config.oem_store:
        return ArtifactLocation.LEGACY_INITIAL
    if target.parent == config.oem_store:
        return ArtifactLocation.OEM_PARTITION
    if target.parent in (config.root_oem_store, config.root_extension_store):
        return ArtifactLocation.ROOT_PARTITION
    return ArtifactLocation.ABSENT


def describe_links(config: BootConfig) -> list[LinkStatus]:
    if not config.extensions_dir.is_dir():
        return []

    rows = []
    for link in sorted(config.extensions_dir.iterdir()):
        if not link.name.endswith(".raw") or not link.is_symlink():
            continue
        target = read_link_target(link)
        rows.append(LinkStatus(
            link=link,
            target=target,
            location=classify(config, target),
            exists=bool(target and target.is_file()),
        ))
    return rows


# ---------------------------------------------------------------------
# Global CLI options
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class CliOptions:
    root: Path = Path("/")
    os_version: Optional[str] = None
    board: Optional[str] = None
    oem_id: Optional[str] = None
    offline: bool = False
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def start_logging(self) -> None:
        setup_logging(log_level_name=self.log_level, log_file_path=self.log_file, console_output=True)

    def load_config(self) -> BootConfig:
        return load_config(
            root=self.root,
            version=self.os_version,
            board=self.board,
            offline=self.offline,
        )
