"""CLI entry point for the datamodel provisioning tools.

Provides commands:
  - upload: Validate and upload a file to server storage
  - wait: Poll a build task until it finishes or times out
  - demo: Create a CSV-based datamodel from scratch and build it
  - change-connection: Build a CSV datamodel, then repoint it at another file
  - export: Save every datamodel schema as a .smodel file
  - config: Manage the stored API token
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import httpx
import keyring
from keyring.errors import KeyringError
import typer
from rich.console import Console
from rich.table import Table

from dmlib.config import KEY_NAME, SERVICE_NAME, ClientConfig, load_client_config
from dmlib.errors import BuildTimeoutError, DatamodelError
from dmlib.models import BuildOutcome, PollConfig, ProvisionResult

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Datamodel provisioning - upload files, create datamodels, build and export",
    rich_markup_mode="rich",
)
console = Console()

config_app = typer.Typer(help="Manage configuration (API token)")
app.add_typer(config_app, name="config")

EXIT_FAILED = 1
EXIT_TIMED_OUT = 2


@app.callback()
def app_callback(
    ctx: typer.Context,
    base_url: Annotated[
        str | None,
        typer.Option("--base-url", "-u", help="Server address, e.g. https://host:30845"),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to dmlib JSON config"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Store global options; the client config is resolved lazily per command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    ctx.obj = {"base_url": base_url, "config_path": config_path}


def _client_config(ctx: typer.Context) -> ClientConfig:
    opts = ctx.obj or {}
    try:
        return load_client_config(opts.get("config_path"), base_url=opts.get("base_url"))
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=EXIT_FAILED)


def _run(coro):
    """Run a command coroutine, mapping dmlib errors to exit codes."""
    try:
        return asyncio.run(coro)
    except BuildTimeoutError as e:
        console.print(f"[yellow]Timed out:[/yellow] {e}")
        raise typer.Exit(code=EXIT_TIMED_OUT)
    except DatamodelError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=EXIT_FAILED)
    except httpx.HTTPError as e:
        console.print(f"[red]Connection error:[/red] {e}")
        raise typer.Exit(code=EXIT_FAILED)


def _print_provision_result(result: ProvisionResult) -> None:
    table = Table(title="Provisioning Summary")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Datamodel", f"{result.datamodel_title} ({result.datamodel_oid})")
    table.add_row("Datasets", ", ".join(result.dataset_oids))
    table.add_row("Tables", ", ".join(result.table_oids))
    for upload in result.uploads:
        table.add_row("Uploaded", upload.storage_path)
    colour = "green" if result.build.succeeded else "red"
    table.add_row(
        "Build",
        f"[{colour}]{result.build.outcome.value}[/{colour}] "
        f"after {result.build.queries} status queries",
    )
    console.print(table)


# ---------------------------------------------------------------------------
# Core commands
# ---------------------------------------------------------------------------


@app.command()
def upload(
    ctx: typer.Context,
    file_path: Annotated[
        Path,
        typer.Argument(help="Local file to upload", exists=True, dir_okay=False, readable=True),
    ],
) -> None:
    """Validate FILE with the storage service, then upload it."""
    from dmlib.api.client import DatamodelsClient
    from dmlib.upload.uploader import StagedUploader

    config = _client_config(ctx)

    async def _upload():
        async with DatamodelsClient(config) as client:
            return await StagedUploader(client).upload(file_path)

    result = _run(_upload())
    console.print(f"[green]Uploaded[/green] {file_path} -> [bold]{result.storage_path}[/bold]")
    console.print(f"[dim]file name: {result.file_name}[/dim]")


@app.command()
def wait(
    ctx: typer.Context,
    build_id: Annotated[str, typer.Argument(help="Build task oid")],
    interval: Annotated[
        float | None,
        typer.Option("--interval", "-i", help="Seconds between status queries"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Maximum seconds to wait"),
    ] = None,
) -> None:
    """Poll BUILD_ID until it is done or failed, or the timeout elapses."""
    from dmlib.api.client import DatamodelsClient
    from dmlib.build.poller import BuildPoller

    config = _client_config(ctx)
    try:
        poll_config = PollConfig(
            interval=interval if interval is not None else config.poll_interval,
            timeout=timeout if timeout is not None else config.poll_timeout,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=EXIT_FAILED)

    async def _wait():
        async with DatamodelsClient(config) as client:
            return await BuildPoller(client, poll_config).wait_for_completion(build_id)

    result = _run(_wait())
    if result.outcome is BuildOutcome.DONE:
        console.print(f"[green]Build {build_id} done[/green] after {result.queries} queries")
    elif result.outcome is BuildOutcome.FAILED:
        console.print(f"[red]Build {build_id} failed[/red]")
        raise typer.Exit(code=EXIT_FAILED)
    else:
        console.print(
            f"[yellow]Build {build_id} still {result.status!r}[/yellow] "
            f"after {result.queries} queries"
        )
        raise typer.Exit(code=EXIT_TIMED_OUT)


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------


@app.command()
def demo(
    ctx: typer.Context,
    csv_path: Annotated[
        Path,
        typer.Argument(help="CSV file with id, first name, last name, country columns", exists=True),
    ],
    title: Annotated[
        str | None,
        typer.Option("--title", help="Datamodel title (default: test-<epoch ms>)"),
    ] = None,
) -> None:
    """Create a CSV-based datamodel from scratch, build it and wait."""
    from dmlib.api.client import DatamodelsClient
    from dmlib.build.poller import BuildPoller
    from dmlib.upload.uploader import StagedUploader
    from dmlib.workflows.provisioner import DatamodelProvisioner
    from dmlib.workflows.steps import StepLog

    config = _client_config(ctx)

    async def _demo() -> ProvisionResult:
        async with DatamodelsClient(config) as client:
            provisioner = DatamodelProvisioner(
                client,
                StagedUploader(client),
                BuildPoller(client, config.poll_config()),
                steps=StepLog(console),
            )
            return await provisioner.create_csv_datamodel(csv_path, title=title)

    result = _run(_demo())
    _print_provision_result(result)
    if not result.build.succeeded:
        raise typer.Exit(code=EXIT_FAILED)


@app.command("change-connection")
def change_connection(
    ctx: typer.Context,
    first_csv: Annotated[Path, typer.Argument(help="CSV the dataset starts on", exists=True)],
    second_csv: Annotated[Path, typer.Argument(help="CSV the dataset is moved to", exists=True)],
    title: Annotated[
        str | None,
        typer.Option("--title", help="Datamodel title (default: test-<epoch ms>)"),
    ] = None,
) -> None:
    """Build a CSV datamodel, then change its dataset connection to another file."""
    from dmlib.api.client import DatamodelsClient
    from dmlib.build.poller import BuildPoller
    from dmlib.upload.uploader import StagedUploader
    from dmlib.workflows.provisioner import DatamodelProvisioner
    from dmlib.workflows.steps import StepLog

    config = _client_config(ctx)

    async def _change() -> ProvisionResult:
        async with DatamodelsClient(config) as client:
            provisioner = DatamodelProvisioner(
                client,
                StagedUploader(client),
                BuildPoller(client, config.poll_config()),
                steps=StepLog(console),
            )
            return await provisioner.change_connection(first_csv, second_csv, title=title)

    result = _run(_change())
    _print_provision_result(result)
    if not result.build.succeeded:
        raise typer.Exit(code=EXIT_FAILED)


@app.command()
def export(
    ctx: typer.Context,
    target: Annotated[
        Path,
        typer.Option("--target", "-o", help="Folder to write .smodel files to", file_okay=False),
    ] = Path("backup"),
) -> None:
    """Export every datamodel schema as <title>.smodel."""
    from dmlib.api.client import DatamodelsClient
    from dmlib.workflows.export import SchemaExporter
    from dmlib.workflows.steps import StepLog

    config = _client_config(ctx)

    async def _export():
        async with DatamodelsClient(config) as client:
            return await SchemaExporter(client, target, steps=StepLog(console)).export_all()

    written = _run(_export())
    console.print(f"[green]Exported {len(written)} datamodel(s)[/green] to {target}")


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------


@config_app.command("set-token")
def set_token(
    token: Annotated[str, typer.Argument(help="API token to store in system keyring")],
) -> None:
    """Store the API token in the system keyring (service: dmlib)."""
    if not token or token.strip() == "":
        console.print("[red]Error:[/red] Token cannot be empty")
        raise typer.Exit(code=EXIT_FAILED)

    try:
        keyring.set_password(SERVICE_NAME, KEY_NAME, token.strip())
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Failed to store token: {e}")
        raise typer.Exit(code=EXIT_FAILED)
    console.print(f"[green]✓[/green] Token stored in system keyring (service: {SERVICE_NAME})")


@config_app.command("show-token")
def show_token() -> None:
    """Display the stored API token (masked)."""
    token = keyring.get_password(SERVICE_NAME, KEY_NAME)
    if not token:
        console.print(
            "[yellow]No token found in keyring.[/yellow]\n"
            "Set it with: [bold]dmlib config set-token YOUR_TOKEN[/bold]"
        )
        raise typer.Exit(code=EXIT_FAILED)

    # Mask all but first 8 characters
    if len(token) > 8:
        masked = token[:8] + "*" * (len(token) - 8)
    else:
        masked = token[:2] + "*" * max(1, len(token) - 2)
    console.print(f"[green]Token:[/green] {masked}")


@config_app.command("remove-token")
def remove_token() -> None:
    """Delete the stored API token from the system keyring."""
    if not keyring.get_password(SERVICE_NAME, KEY_NAME):
        console.print("[yellow]Warning:[/yellow] No token found in keyring. Nothing to remove.")
        return
    keyring.delete_password(SERVICE_NAME, KEY_NAME)
    console.print("[green]✓[/green] Token removed from system keyring")


if __name__ == "__main__":
    app()
