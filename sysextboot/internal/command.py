import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from sysextboot.internal.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(a)) for a in argv)


def run_cmd(argv: Sequence[str], *, input_text: Optional[str] = None) -> CmdResult:
    """
    Run an external command with captured output.

    - Always logs the command line.
    - A missing binary is reported as returncode 127 instead of raising.
    - The exit status is left to the caller.
    """
    argv_list = [str(a) for a in argv]
    logger.info("Running command", cmd=format_argv(argv_list))

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as e:
        logger.error("Command not found", cmd=argv_list[0])
        result = CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))
    else:
        result = CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)

    if result.stderr:
        logger.debug("Command stderr", cmd=argv_list[0], stderr=result.stderr.strip())

    return result
