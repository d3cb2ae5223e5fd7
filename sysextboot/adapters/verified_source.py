from pathlib import Path
from typing import Callable, Sequence

from sysextboot.adapters.gpg import SignatureVerifier
from sysextboot.adapters.http_fetch import ArtifactFetcher
from sysextboot.internal.command import CmdResult, run_cmd
from sysextboot.internal.logging import get_logger
from sysextboot.kernel.artifacts import ArtifactSource

logger = get_logger(__name__)


class NetworkStarter:
    """
    Starts the network units once per process, on first use.
    """

    def __init__(self, units: Sequence[str], runner: Callable[..., CmdResult] = run_cmd):
        self.units = list(units)
        self._run = runner
        self.started = False

    def ensure_started(self) -> None:
        if self.started or not self.units:
            return
        self.started = True

        result = self._run(["systemctl", "start", "--quiet", *self.units])
        if result.returncode != 0:
            # Downloads will fail on their own and report the real error.
            logger.warning("Failed to start network units", units=self.units, stderr=result.stderr.strip())


class VerifiedArtifactSource(ArtifactSource):
    """
    Fetch-and-verify: the only way an image enters the system.
    """

    def __init__(self, fetcher: ArtifactFetcher, verifier: SignatureVerifier, network: NetworkStarter):
        self.fetcher = fetcher
        self.verifier = verifier
        self.network = network

    def fetch_verified(self, name: str, dest_dir: Path) -> Path:
        self.network.ensure_started()
        artifact, signature = self.fetcher.fetch(name, dest_dir)
        self.verifier.verify(artifact, signature)
        return artifact
