"""
Error taxonomy of the boot step.

Fatal errors (ConfigurationError, DownloadFailure, VerificationFailure)
propagate to the CLI, which turns them into a non-zero exit status.
PlacementFailure is raised by the move primitive and handled by the caller,
usually by keeping the image where it is. MigrationFailure never leaves
the MigrationRunner.
"""
from pathlib import Path
from typing import Sequence


class SysextError(Exception):
    """Base class for every error raised by sysextboot."""


class ConfigurationError(SysextError):
    pass


class DownloadFailure(SysextError):
    def __init__(self, name: str, urls: Sequence[str]):
        self.name = name
        self.urls = list(urls)
        super().__init__(f"Failed to download {name} from any of: {', '.join(self.urls)}")


class VerificationFailure(SysextError):
    def __init__(self, artifact: Path, reason: str):
        self.artifact = artifact
        self.reason = reason
        super().__init__(f"Signature verification failed for {artifact}: {reason}")


class PlacementFailure(SysextError):
    def __init__(self, src: Path, dst: Path, reason: str):
        self.src = src
        self.dst = dst
        self.reason = reason
        super().__init__(f"Cannot move {src} to {dst}: {reason}")


class MigrationFailure(SysextError):
    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot remove {path}: {reason}")
