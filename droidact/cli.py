"""CLI commands for droidact."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from droidact import __version__

if TYPE_CHECKING:
    from droidact.core.config import DroidactConfig
    from droidact.core.device_controller import DeviceController
    from droidact.models.action import Action

# Load .env file from current directory or parent directories
load_dotenv()

app = typer.Typer(
    name="droidact",
    help="Run declarative UI actions on an Android device",
    no_args_is_help=True,
)
console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"droidact version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """droidact - declarative Android UI actions."""
    pass


def _load_config(device: str | None, actions: Path | None) -> DroidactConfig:
    from droidact.core.config import ConfigLoader

    config = ConfigLoader.load()
    if device:
        config.device = device
    if actions:
        config.actions_path = actions
    return config


def _load_actions(config: DroidactConfig) -> dict[str, Action]:
    from droidact.core.parser import ActionParser, ParseError

    try:
        return ActionParser.parse(config.actions_path)
    except ParseError as e:
        console.print(f"[red]Parse error:[/red] {e}")
        raise typer.Exit(2)


def _make_device(config: DroidactConfig) -> DeviceController:
    from droidact.core.device_controller import DeviceController

    return DeviceController(
        config.device,
        adb_path=config.adb_path,
        command_timeout=config.timeouts.command,
        ui_dump_timeout=config.timeouts.ui_dump,
        screenshot_timeout=config.timeouts.screenshot,
    )


@app.command()
def run(
    action_ids: list[str] = typer.Argument(..., help="Action ids to run, in order"),
    device: str | None = typer.Option(None, "--device", "-d", help="Device ID"),
    actions: Path | None = typer.Option(None, "--actions", "-a", help="Action YAML file"),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Run one or more actions; they execute one at a time in order."""
    from droidact.core.config import setup_logging
    from droidact.core.engine import ActionEngine
    from droidact.core.errors import ActionFailedError, UnknownActionError

    config = _load_config(device, actions)
    action_table = _load_actions(config)

    if config.verbose:
        log_file = setup_logging(verbose=True, log_dir=config.artifacts_dir)
        if log_file and not as_json:
            console.print(f"[dim]Verbose logging → {log_file}[/dim]")

    rows: list[dict] = []
    with ActionEngine(_make_device(config), action_table, config) as engine:
        futures = [(action_id, engine.enqueue(action_id)) for action_id in action_ids]
        for action_id, future in futures:
            try:
                rows.append(future.result().to_dict())
            except ActionFailedError as e:
                rows.append(e.result.to_dict())
            except UnknownActionError as e:
                rows.append({
                    "action_id": action_id,
                    "status": "error",
                    "error": str(e),
                    "error_kind": e.kind,
                })

    if as_json:
        console.print_json(json.dumps(rows))
    else:
        table = Table(title="Results")
        table.add_column("Action", style="cyan")
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Error")
        for row in rows:
            ok = row["status"] == "ok"
            duration = f"{row['duration_ms']}ms" if "duration_ms" in row else "-"
            table.add_row(
                row["action_id"],
                "[green]ok[/green]" if ok else "[red]error[/red]",
                duration,
                "" if ok else f"{row.get('error_kind', '')}: {row.get('error', '')}",
            )
        console.print(table)

    if any(row["status"] != "ok" for row in rows):
        raise typer.Exit(1)


@app.command(name="actions")
def list_actions(
    actions: Path | None = typer.Option(None, "--actions", "-a", help="Action YAML file"),
) -> None:
    """List actions defined in the action file."""
    config = _load_config(None, actions)
    action_table = _load_actions(config)

    table = Table(title=f"Actions ({config.actions_path})")
    table.add_column("Id", style="cyan")
    table.add_column("Steps", justify="right")
    table.add_column("Timeout", justify="right")
    table.add_column("Description")

    for action_id, action in action_table.items():
        timeout = f"{action.timeout:g}s" if action.timeout is not None else "default"
        table.add_row(action_id, str(len(action.steps)), timeout, action.description or "")

    console.print(table)


@app.command()
def health(
    device: str | None = typer.Option(None, "--device", "-d", help="Device ID"),
) -> None:
    """Check that the device is reachable and booted."""
    from droidact.core.engine import ActionEngine

    config = _load_config(device, None)
    with ActionEngine(_make_device(config), {}, config) as engine:
        readiness = engine.readiness_check()

    if readiness.device_reachable and readiness.boot_completed:
        console.print(f"[green]ok[/green] {config.device} booted")
        return

    status = "starting" if readiness.device_reachable else "down"
    console.print(
        f"[yellow]{status}[/yellow] {config.device} "
        f"(reachable={readiness.device_reachable}, boot_completed={readiness.boot_completed})"
    )
    raise typer.Exit(1)


@app.command()
def state(
    device: str | None = typer.Option(None, "--device", "-d", help="Device ID"),
) -> None:
    """Show foreground package and screen state."""
    from droidact.core.errors import DeviceUnreachableError

    config = _load_config(device, None)
    controller = _make_device(config)
    try:
        foreground = controller.foreground_package()
        screen_on = controller.is_screen_on()
    except DeviceUnreachableError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[dim]Device:[/dim]     {config.device}")
    console.print(f"[dim]Foreground:[/dim] {foreground or 'unknown'}")
    console.print(f"[dim]Screen:[/dim]     {'on' if screen_on else 'off'}")


@app.command()
def screenshot(
    output: Path = typer.Argument(..., help="PNG file to write"),
    device: str | None = typer.Option(None, "--device", "-d", help="Device ID"),
) -> None:
    """Save a screenshot of the device."""
    from droidact.core.errors import DeviceUnreachableError

    config = _load_config(device, None)
    try:
        data = _make_device(config).screenshot()
    except DeviceUnreachableError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data)
    console.print(f"Saved {len(data)} bytes to {output}")


@app.command()
def devices() -> None:
    """List connected devices."""
    from droidact.core.device_controller import DeviceController
    from droidact.core.errors import DeviceUnreachableError

    config = _load_config(None, None)
    try:
        device_list = DeviceController.list_devices(config.adb_path)
    except DeviceUnreachableError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not device_list:
        console.print("[yellow]No devices found[/yellow]")
        raise typer.Exit(1)

    table = Table(title="Devices")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Status")
    for entry in device_list:
        table.add_row(entry["id"], entry["name"], entry["status"])
    console.print(table)


if __name__ == "__main__":
    app()
