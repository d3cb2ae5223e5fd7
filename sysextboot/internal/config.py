"""
Immutable boot configuration.

Everything a component needs (OS version, board, filesystem layout,
mirrors, network policy) travels in a BootConfig value. Nothing below the
CLI reads the environment or module-level state.
"""
import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from sysextboot.internal import paths
from sysextboot.internal.releasefile import read_release_file
from sysextboot.kernel.errors import ConfigurationError

VERSION_ENV = "SYSEXTBOOT_OS_VERSION"
BOARD_ENV = "SYSEXTBOOT_BOARD"

RELEASE_VERSION_KEY = "FLATCAR_RELEASE_VERSION"
RELEASE_BOARD_KEY = "FLATCAR_RELEASE_BOARD"
OEM_ID_KEY = "ID"


@dataclass(frozen=True)
class TransferPolicy:
    """
    Bounded network retry policy. These are the only timeouts in the boot step.
    """
    probe_attempts: int = 30
    probe_interval: float = 1.0
    retries: int = 60
    retry_max_time: float = 60.0
    retry_delay: float = 1.0
    connect_timeout: float = 20.0
    read_timeout: float = 60.0


@dataclass(frozen=True)
class BootConfig:
    version: str
    board: str

    release_domain: str = "release.flatcar-linux.net"
    fallback_base_url: str = "https://bincache.flatcar-linux.net/images"

    oem_store: Path = paths.OEM_STORE_DIR
    root_oem_store: Path = paths.ROOT_OEM_STORE_DIR
    root_extension_store: Path = paths.ROOT_EXTENSION_STORE_DIR
    extensions_dir: Path = paths.EXTENSIONS_DIR
    oem_release_file: Path = paths.OEM_RELEASE_FILE
    enabled_extensions_file: Path = paths.ENABLED_EXTENSIONS_FILE
    trust_anchor: Path = paths.TRUST_ANCHOR

    extension_prefix: str = "flatcar-"
    network_units: tuple[str, ...] = ("systemd-networkd.service", "systemd-resolved.service")
    allow_download: bool = True
    transfer: TransferPolicy = field(default_factory=TransferPolicy)

    _PATH_FIELDS = (
        "oem_store",
        "root_oem_store",
        "root_extension_store",
        "extensions_dir",
        "oem_release_file",
        "enabled_extensions_file",
        "trust_anchor",
    )

    def __post_init__(self):
        if not self.version:
            raise ConfigurationError("OS version is not set")
        if not self.board:
            raise ConfigurationError("board is not set")

    def rebased(self, root: Path) -> "BootConfig":
        """
        Return a copy with every filesystem path re-anchored under root.
        """
        changes = {name: paths.rebase(getattr(self, name), root) for name in self._PATH_FIELDS}
        return dataclasses.replace(self, **changes)


def load_config(
    *,
    root: Path = Path("/"),
    version: Optional[str] = None,
    board: Optional[str] = None,
    offline: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> BootConfig:
    """
    Build the configuration for one boot.

    Lookup order for version and board: explicit argument, environment
    (SYSEXTBOOT_OS_VERSION / SYSEXTBOOT_BOARD), then the OS release file
    under root.
    """
    env = os.environ if environ is None else environ
    release = read_release_file(paths.rebase(paths.RELEASE_FILE, root))

    version = version or env.get(VERSION_ENV) or release.get(RELEASE_VERSION_KEY)
    board = board or env.get(BOARD_ENV) or release.get(RELEASE_BOARD_KEY)

    if not version:
        raise ConfigurationError(
            f"OS version unknown: pass --os-version, set {VERSION_ENV} or provide {paths.RELEASE_FILE}"
        )
    if not board:
        raise ConfigurationError(
            f"Board unknown: pass --board, set {BOARD_ENV} or provide {paths.RELEASE_FILE}"
        )

    config = BootConfig(version=version, board=board, allow_download=not offline)
    return config.rebased(root)


def read_oem_id(config: BootConfig) -> Optional[str]:
    """
    OEM id from the OEM partition release file, None when there is no OEM.
    """
    oem_id = read_release_file(config.oem_release_file).get(OEM_ID_KEY, "").strip()
    return oem_id or None
