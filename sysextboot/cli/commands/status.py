import typer
from rich.console import Console
from rich.table import Table

from sysextboot.cli import core
from sysextboot.kernel.errors import ConfigurationError

console = Console()


def status(ctx: typer.Context):
    """
    Show the active sysext symlinks and where their images live.
    """
    options: core.CliOptions = ctx.obj or core.CliOptions()

    try:
        config = options.load_config()
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    rows = core.describe_links(config)
    if not rows:
        console.print(f"[yellow]No sysext symlinks in {config.extensions_dir}.[/yellow]")
        return

    table = Table(title=f"Active sysexts ({config.version}, {config.board})")
    table.add_column("Link", style="cyan", no_wrap=True)
    table.add_column("Target")
    table.add_column("Location", style="green")
    table.add_column("Present", justify="center")

    for row in rows:
        table.add_row(
            row.link.name,
            str(row.target) if row.target else "-",
            row.location.name,
            "yes" if row.exists else "[red]no[/red]",
        )
    console.print(table)
