import importlib.metadata

import typer


def version():
    """
    Show the sysextboot version.
    """
    try:
        package_version = importlib.metadata.version("sysextboot")
    except importlib.metadata.PackageNotFoundError:
        typer.echo("sysextboot is not installed or version metadata not found.")
        raise typer.Exit(1)
    typer.echo(f"sysextboot version: {package_version}")
