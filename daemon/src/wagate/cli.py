"""CLI entry point for wagate."""

from pathlib import Path

import click

from wagate import __version__
from wagate.config import load_config
from wagate.errors import ConfigError
from wagate.logging import setup_logging


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """wagate - keep a messaging session alive and deliver outbound messages."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config)
    except ConfigError as e:
        raise click.ClickException(str(e))
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command()
@click.option(
    "--show-qr/--no-show-qr",
    default=True,
    help="Print pairing QR codes to the terminal.",
)
@click.pass_context
def run(ctx: click.Context, show_qr: bool) -> None:
    """Run the daemon until interrupted."""
    import asyncio

    from wagate.daemon import Daemon
    from wagate.daemon_lock import AlreadyRunningError, InstanceLock
    from wagate.errors import StartupError

    config = ctx.obj["config"]
    lock = InstanceLock(Path(config.lock_file))

    try:
        lock.acquire()
    except AlreadyRunningError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    presenter = _print_challenge if show_qr else None

    async def _run():
        daemon = Daemon(config=config, on_pairing_challenge=presenter)
        try:
            await daemon.start()
            if config.status_server.enabled:
                port = daemon.status_server.get_port()
                click.echo(f"Status: http://{config.status_server.host}:{port}/status")
                click.echo(f"Pairing: http://{config.status_server.host}:{port}/qr")
            click.echo("Press Ctrl+C to stop")
            await daemon.run_forever()
        except StartupError as e:
            click.echo(f"Startup error: {e}", err=True)
            raise SystemExit(1)
        finally:
            await daemon.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")
    finally:
        lock.release()


def _print_challenge(payload: str, attempt: int, max_attempts: int) -> None:
    """Show a pairing challenge as a terminal QR code."""
    from wagate.pairing.qr_renderer import QrRenderer

    click.echo("")
    click.echo(f"Pairing code (attempt {attempt}/{max_attempts}) - scan to link:")
    click.echo(QrRenderer(payload).to_terminal())


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show whether the daemon is running."""
    from wagate.daemon_lock import InstanceLock

    lock = InstanceLock(Path(ctx.obj["config"].lock_file))
    pid = lock.owner_pid()
    if pid is None:
        click.echo("wagate status: not running")
        return

    if lock.owner_running():
        click.echo(f"wagate status: running (PID {pid})")
    else:
        click.echo("wagate status: not running (stale lock file)")


@main.group()
def credentials() -> None:
    """Stored session credential commands."""
    pass


@credentials.command("clear")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def credentials_clear(ctx: click.Context, yes: bool) -> None:
    """Delete stored credentials so the next run pairs again."""
    from wagate.credential_store import FileCredentialStore
    from wagate.daemon_lock import InstanceLock

    config = ctx.obj["config"]
    if InstanceLock(Path(config.lock_file)).owner_running():
        click.echo("Error: stop the running daemon first", err=True)
        raise SystemExit(1)

    if not yes:
        click.confirm("Delete stored credentials? The session will need pairing again", abort=True)

    store = FileCredentialStore(Path(config.credentials_dir))
    if store.clear():
        click.echo("Credentials cleared")
    else:
        click.echo("No stored credentials")


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"wagate version {__version__}")
