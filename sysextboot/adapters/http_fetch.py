"""
Downloads a sysext image and its detached signature.

Candidates are tried in order: the channel release server (when the
version encodes a channel), then the board cache mirror. For each
candidate a short HEAD probe loop runs first, then the files are fetched
with bounded retries. A candidate only counts when both the image and its
signature were fetched from it.
"""
import time
from pathlib import Path
from typing import Callable, Optional

import requests
from requests.exceptions import ChunkedEncodingError, ConnectionError, HTTPError, RequestException, Timeout

from sysextboot.internal.config import BootConfig
from sysextboot.internal.logging import get_logger
from sysextboot.kernel.artifacts import Artifact, channel_for_version
from sysextboot.kernel.errors import DownloadFailure

logger = get_logger(__name__)

TRANSIENT_HTTP_STATUS = frozenset({408, 429, 500, 502, 503, 504})

CHUNK_SIZE = 1024 * 1024


class TransferError(Exception):
    """A single URL could not be fetched within the retry policy."""


def candidate_urls(artifact: Artifact, *, release_domain: str, fallback_base_url: str) -> list[str]:
    urls = []

    channel = channel_for_version(artifact.version)
    if channel:
        urls.append(
            f"https://{channel}.{release_domain}/{artifact.board}/{artifact.version}/{artifact.name}"
        )

    cache_board = artifact.board.removesuffix("-usr")
    urls.append(f"{fallback_base_url.rstrip('/')}/{cache_board}/{artifact.version}/{artifact.name}")
    return urls


class ArtifactFetcher:
    def __init__(
        self,
        config: BootConfig,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.policy = config.transfer
        self.session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------

    def fetch(self, name: str, dest_dir: Path) -> tuple[Path, Path]:
        """
        Download name and name.sig into dest_dir.

        Returns (artifact_path, signature_path). Raises DownloadFailure when
        no candidate URL yields both files; nothing is left in dest_dir then.
        """
        artifact = Artifact(name=name, version=self.config.version, board=self.config.board)
        urls = candidate_urls(
            artifact,
            release_domain=self.config.release_domain,
            fallback_base_url=self.config.fallback_base_url,
        )

        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create download directory", path=str(dest_dir), error=e.strerror or str(e))
            raise DownloadFailure(name, urls) from e

        artifact_path = dest_dir / artifact.name
        signature_path = dest_dir / artifact.signature_name

        for url in urls:
            self.wait_until_reachable(url)
            try:
                self.download(url, artifact_path)
                self.download(f"{url}.sig", signature_path)
            except TransferError as e:
                logger.warning("Download candidate failed, trying next", url=url, error=str(e))
                artifact_path.unlink(missing_ok=True)
                signature_path.unlink(missing_ok=True)
                continue

            logger.info("Downloaded artifact", name=name, url=url, path=str(artifact_path))
            return artifact_path, signature_path

        logger.error("No download candidate succeeded", name=name, urls=urls)
        raise DownloadFailure(name, urls)

    # ---------------------------------------------------------------------
    # Readiness probe
    # ---------------------------------------------------------------------

    def wait_until_reachable(self, url: str) -> bool:
        """
        HEAD the URL until it answers, at most probe_attempts times.

        Each attempt is a fresh request, so a failed name lookup is retried
        instead of being stuck inside one long retrying transfer. Returns
        False after exhausting the attempts; the caller downloads anyway.
        """
        attempts = self.policy.probe_attempts
        for attempt in range(attempts):
            try:
                r = self.session.head(
                    url,
                    allow_redirects=True,
                    timeout=(self.policy.connect_timeout, self.policy.read_timeout),
                )
                if r.status_code < 400:
                    return True
                logger.debug(f"Probe rejected ({attempt + 1}/{attempts})", url=url, status=r.status_code)
            except RequestException as e:
                logger.debug(f"Probe failed ({attempt + 1}/{attempts})", url=url, error=str(e))

            if attempt + 1 < attempts:
                self._sleep(self.policy.probe_interval)

        logger.warning("URL not reachable, downloading anyway", url=url, attempts=attempts)
        return False

    # ---------------------------------------------------------------------
    # Transfer
    # ---------------------------------------------------------------------

    def download(self, url: str, target: Path) -> None:
        """
        GET url into target, retrying transient failures.

        Retries stop after policy.retries retries or once policy.retry_max_time
        has passed since the first attempt, whichever comes first.
        """
        deadline = self._clock() + self.policy.retry_max_time
        retries = 0

        while True:
            try:
                self._get(url, target)
                return
            except (ConnectionError, Timeout, ChunkedEncodingError) as e:
                reason = str(e)
            except HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status not in TRANSIENT_HTTP_STATUS:
                    target.unlink(missing_ok=True)
                    raise TransferError(f"HTTP {status} for {url}") from e
                reason = f"HTTP {status}"
            except RequestException as e:
                target.unlink(missing_ok=True)
                raise TransferError(f"{url}: {e}") from e
            except OSError as e:
                # Local write error, e.g. a full root partition.
                target.unlink(missing_ok=True)
                raise TransferError(f"cannot write {target}: {e}") from e

            target.unlink(missing_ok=True)
            retries += 1
            if retries > self.policy.retries or self._clock() >= deadline:
                raise TransferError(f"giving up on {url} after {retries} attempts: {reason}")

            logger.info(
                f"Transient download error, retrying ({retries}/{self.policy.retries})",
                url=url,
                error=reason,
            )
            self._sleep(self.policy.retry_delay)

    def _get(self, url: str, target: Path) -> None:
        with self.session.get(
            url,
            stream=True,
            timeout=(self.policy.connect_timeout, self.policy.read_timeout),
        ) as r:
            r.raise_for_status()
            with open(target, "wb") as f:
                for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
