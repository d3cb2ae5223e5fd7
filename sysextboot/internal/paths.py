from pathlib import Path


# ---------------------------------------------------------------------
# Partitions and extension stores
# ---------------------------------------------------------------------

OEM_PARTITION = Path("/oem")

# Space-constrained store on the OEM partition.
OEM_STORE_DIR = OEM_PARTITION / "sysext"

# Fallback store for OEM images on the root partition.
ROOT_OEM_STORE_DIR = Path("/etc/flatcar/oem-sysext")

# Store for optional (non-OEM) extensions on the root partition.
ROOT_EXTENSION_STORE_DIR = Path("/etc/flatcar/sysext")

# Directory read by systemd-sysext.
EXTENSIONS_DIR = Path("/etc/extensions")


# ---------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------

RELEASE_FILE = Path("/usr/share/flatcar/release")

OEM_RELEASE_FILE = OEM_PARTITION / "oem-release"

ENABLED_EXTENSIONS_FILE = Path("/etc/flatcar/enabled-sysext.conf")

# Installer script carrying the image signing key.
TRUST_ANCHOR = Path("/usr/bin/flatcar-install")


# ---------------------------------------------------------------------
# Per-slot file names
# ---------------------------------------------------------------------

def oem_slot_name(oem_id: str) -> str:
    return f"oem-{oem_id}"


def pinned_image_name(slot_name: str, version: str) -> str:
    """
    Image name carrying the OS version, e.g. oem-azure-3510.2.0.raw.
    """
    return f"{slot_name}-{version}.raw"


def initial_image_name(slot_name: str) -> str:
    return f"{slot_name}-initial.raw"


def download_name(slot_name: str) -> str:
    return f"{slot_name}.raw"


def migration_manifest_name(slot_name: str) -> str:
    return f"migrate-{slot_name}"


def rebase(path: Path, root: Path) -> Path:
    """
    Re-anchor an absolute path under root, e.g. /etc/x under /mnt -> /mnt/etc/x.
    """
    if str(root) in ("", "/"):
        return path
    return root / path.relative_to(path.anchor)
