"""
Parser for os-release style KEY=VALUE files.

Used for the OS release file, the OEM release file and the
extension-release file embedded in every sysext image.
"""
import shlex
from pathlib import Path
from typing import Dict


def parse_release_text(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        if not key:
            continue

        try:
            parts = shlex.split(value, comments=False, posix=True)
        except ValueError:
            # Unbalanced quotes: keep the raw value.
            parts = [value.strip()]

        values[key] = " ".join(parts)

    return values


def read_release_file(path: Path) -> Dict[str, str]:
    """
    Returns an empty dict when the file does not exist.
    """
    if not path.is_file():
        return {}
    return parse_release_text(path.read_text(encoding="utf-8", errors="replace"))
