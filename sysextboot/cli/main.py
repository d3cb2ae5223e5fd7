from pathlib import Path
from typing import Optional

import typer

from sysextboot.cli import core
from sysextboot.cli.commands import boot, status, version

app = typer.Typer(
    name="sysextboot",
    help="Fetch, verify and place systemd-sysext images at boot.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    root: Path = typer.Option(Path("/"), "--root", help="Prefix for every configured path."),
    os_version: Optional[str] = typer.Option(None, "--os-version", help="OS version, e.g. 3510.2.1."),
    board: Optional[str] = typer.Option(None, "--board", help="Board, e.g. amd64-usr."),
    oem_id: Optional[str] = typer.Option(None, "--oem-id", help="OEM id; read from the OEM release file if unset."),
    offline: bool = typer.Option(False, "--offline", help="Never download; use only images already on disk."),
    log_level: str = typer.Option("INFO", "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    log_file: Optional[Path] = typer.Option(None, "--log-file", help="Also write logs to this file."),
):
    ctx.obj = core.CliOptions(
        root=root,
        os_version=os_version,
        board=board,
        oem_id=oem_id,
        offline=offline,
        log_level=log_level,
        log_file=log_file,
    )


app.command("run")(boot.run)
app.command("oem")(boot.oem)
app.command("extensions")(boot.extensions)
app.command("status")(status.status)
app.command("version")(version.version)

if __name__ == "__main__":
    app()
