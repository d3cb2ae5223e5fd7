"""
Defines the artifact model and the ports the placement logic depends on.

The kernel only sees these types. Downloading, signature checking and
reading image metadata are provided by adapters.
"""
import enum
from abc import abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol

# Second field of the OS version -> release channel.
CHANNELS = {
    "0": "alpha",
    "1": "beta",
    "2": "stable",
    "3": "lts",
}

# extension-release ID of the pre-versioning OEM images.
LEGACY_TIER_ID = "_any"


def channel_for_version(version: str) -> Optional[str]:
    """
    Release channel encoded in a version string, e.g. 3510.2.1 -> "stable".

    Returns None when the second field is missing or not a known channel.
    """
    fields = version.split(".")
    if len(fields) < 2:
        return None
    return CHANNELS.get(fields[1])


class ArtifactLocation(enum.Enum):
    OEM_PARTITION = "oem"
    ROOT_PARTITION = "root"
    LEGACY_INITIAL = "initial"
    ABSENT = "absent"


@dataclass(frozen=True)
class Placement:
    """
    Where the active image of a slot lives. path is None only for ABSENT.
    """
    location: ArtifactLocation
    path: Optional[Path] = None

    def __post_init__(self):
        if (self.location is ArtifactLocation.ABSENT) != (self.path is None):
            raise ValueError(f"Inconsistent placement: {self.location.name} with path {self.path}")


ABSENT = Placement(ArtifactLocation.ABSENT)


@dataclass(frozen=True)
class Artifact:
    """
    A sysext image identified by name, OS version and board.
    """
    name: str
    version: str
    board: str

    @property
    def signature_name(self) -> str:
        return f"{self.name}.sig"


def is_legacy_tier(metadata: Dict[str, str]) -> bool:
    return metadata.get("ID") == LEGACY_TIER_ID


class ArtifactSource(Protocol):
    """
    The fetch-and-verify port: yields a locally trusted image or raises.
    """

    @abstractmethod
    def fetch_verified(self, name: str, dest_dir: Path) -> Path:
        """
        Download name into dest_dir and authenticate it.

        Raises DownloadFailure or VerificationFailure. On failure nothing
        is left behind in dest_dir.
        """
        ...


class MetadataReader(Protocol):
    """
    Reads the extension-release key/values embedded in an image.
    """

    def __call__(self, image: Path, slot_name: str) -> Dict[str, str]:
        ...
