"""
Detached-signature verification with an ephemeral gpg trust store.

The signing key and its long key id are taken from a trusted local
executable (the installer script shipped in the read-only /usr). A fresh
gpg home directory is created for every verification, so the ambient
keyring of the machine is never consulted, and only signatures made by the
configured key id are accepted.
"""
import re
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from sysextboot.internal.command import CmdResult, run_cmd
from sysextboot.internal.logging import get_logger
from sysextboot.kernel.errors import VerificationFailure

logger = get_logger(__name__)

_KEY_BLOCK_RE = re.compile(
    rb"-----BEGIN PGP PUBLIC KEY BLOCK-----.*?-----END PGP PUBLIC KEY BLOCK-----",
    re.DOTALL,
)
_KEY_ID_RE = re.compile(rb"""GPG_LONG_ID=["']?([0-9A-Fa-f]{16,40})""")


@dataclass(frozen=True)
class TrustedKey:
    armored: str
    key_id: str


class TrustAnchorError(Exception):
    pass


def extract_trusted_key(anchor: Path) -> TrustedKey:
    """
    Pull the armored public key block and GPG_LONG_ID out of anchor.
    """
    try:
        data = anchor.read_bytes()
    except OSError as e:
        raise TrustAnchorError(f"cannot read trust anchor {anchor}: {e.strerror or e}") from e

    block = _KEY_BLOCK_RE.search(data)
    if not block:
        raise TrustAnchorError(f"no public key block in {anchor}")

    key_id = _KEY_ID_RE.search(data)
    if not key_id:
        raise TrustAnchorError(f"no GPG_LONG_ID in {anchor}")

    return TrustedKey(
        armored=block.group(0).decode("ascii", errors="replace"),
        key_id=key_id.group(1).decode("ascii").upper(),
    )


def signed_by(status_output: str, key_id: str) -> bool:
    """
    True if gpg --status-fd output reports a good signature by key_id.

    GOODSIG carries the signing key id, VALIDSIG the signing key fingerprint
    and, as last field, the primary key fingerprint. Any of them may match,
    so subkey signatures of the trusted key are accepted.
    """
    key_id = key_id.upper()
    for line in status_output.splitlines():
        fields = line.split()
        if len(fields) < 3 or fields[0] != "[GNUPG:]":
            continue
        if fields[1] == "GOODSIG" and fields[2].upper().endswith(key_id):
            return True
        if fields[1] == "VALIDSIG":
            candidates = [fields[2]] + ([fields[-1]] if len(fields) > 3 else [])
            if any(c.upper().endswith(key_id) for c in candidates):
                return True
    return False


class SignatureVerifier:
    def __init__(
        self,
        trust_anchor: Path,
        gpg: str = "gpg",
        runner: Callable[..., CmdResult] = run_cmd,
    ):
        self.trust_anchor = trust_anchor
        self.gpg = gpg
        self._run = runner

    def verify(self, artifact: Path, signature: Path) -> None:
        """
        Verify artifact against its detached signature.

        On success the signature file is deleted. On failure artifact and
        signature are deleted and VerificationFailure is raised. The trust
        store is removed in both cases.
        """
        try:
            key = extract_trusted_key(self.trust_anchor)
        except TrustAnchorError as e:
            self._discard(artifact, signature)
            raise VerificationFailure(artifact, str(e)) from e

        homedir = Path(tempfile.mkdtemp(prefix="sysextboot-gnupg-"))
        try:
            homedir.chmod(0o700)
            ok, reason = self._verify_with(homedir, key, artifact, signature)
        finally:
            shutil.rmtree(homedir, ignore_errors=True)

        if not ok:
            logger.error("Signature verification failed", artifact=str(artifact), reason=reason)
            self._discard(artifact, signature)
            raise VerificationFailure(artifact, reason)

        signature.unlink(missing_ok=True)
        logger.info("Signature verified", artifact=str(artifact), key_id=key.key_id)

    def _verify_with(self, homedir: Path, key: TrustedKey, artifact: Path, signature: Path) -> tuple[bool, str]:
        base = [self.gpg, "--batch", "--no-tty", "--homedir", str(homedir)]

        imported = self._run(base + ["--import"], input_text=key.armored)
        if imported.returncode != 0:
            return False, f"key import failed: {imported.stderr.strip()}"

        result = self._run(
            base + [
                "--trusted-key", key.key_id,
                "--status-fd", "1",
                "--verify", str(signature), str(artifact),
            ]
        )
        if result.returncode != 0:
            return False, f"gpg exited with status {result.returncode}: {result.stderr.strip()}"
        if not signed_by(result.stdout, key.key_id):
            return False, f"not signed by trusted key {key.key_id}"
        return True, ""

    @staticmethod
    def _discard(artifact: Path, signature: Path) -> None:
        artifact.unlink(missing_ok=True)
        signature.unlink(missing_ok=True)
