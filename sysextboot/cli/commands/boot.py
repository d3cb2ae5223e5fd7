import typer
from rich.console import Console

from sysextboot.cli import core
from sysextboot.internal.logging import get_logger
from sysextboot.kernel.errors import SysextError

console = Console(stderr=True)
logger = get_logger(__name__)


def _execute(ctx: typer.Context, *, oem: bool, extensions: bool) -> core.BootSummary:
    options: core.CliOptions = ctx.obj or core.CliOptions()
    options.start_logging()

    try:
        config = options.load_config()
        summary = core.run_boot(config, oem_id=options.oem_id, oem=oem, extensions=extensions)
    except SysextError as exc:
        logger.error("Boot step failed", error=str(exc), error_type=type(exc).__name__)
        console.print(f"[red]sysextboot failed:[/red] {exc}", soft_wrap=True)
        raise typer.Exit(1)

    _report(summary)
    return summary


def _report(summary: core.BootSummary) -> None:
    if summary.oem is not None:
        where = summary.oem.path or "nowhere"
        console.print(f"OEM sysext [cyan]oem-{summary.oem_id}[/cyan]: {summary.oem.location.name} ({where})")
    if summary.migration is not None and summary.migration.ran:
        console.print(
            f"Migration removed {len(summary.migration.removed)} path(s), "
            f"{len(summary.migration.failed)} failure(s)"
        )
    for name, placement in summary.extensions.items():
        console.print(f"Extension [cyan]{name}[/cyan]: {placement.location.name}")


def run(ctx: typer.Context):
    """
    Run the whole boot step: OEM sysext, migration and enabled extensions.
    """
    _execute(ctx, oem=True, extensions=True)


def oem(ctx: typer.Context):
    """
    Place the OEM sysext and run the OEM migration.
    """
    _execute(ctx, oem=True, extensions=False)


def extensions(ctx: typer.Context):
    """
    Sync the enabled optional extensions.
    """
    _execute(ctx, oem=False, extensions=True)
