# cli/main.py
import asyncio
import dataclasses
import sys

import click
from rich import print
from rich.console import Console

from session.driver import run_session
from util.config import DEFAULT_CONFIG_PATH, load_or_create_config
from util.errors import ConfigError, PipeError
from util.log import configure, log

# stdout belongs to the session payload
err_console = Console(stderr=True)


@click.group()
def cli():
    """[bold green]P2P Pipe[/bold green] - stdin/stdout over a WebRTC data channel"""
    pass


@cli.command()
@click.option("--server", default=None, help="Rendezvous server URL, e.g. ws://host:8080 (overrides config)")
@click.option("--log", "enable_log", is_flag=True, help="Write event records to stderr")
@click.option("--config", "config_path", default=DEFAULT_CONFIG_PATH, show_default=True,
              help="Config file, created with defaults if missing")
def connect(server, enable_log, config_path):
    """Pair with a peer through the rendezvous server and pipe stdin/stdout to it"""
    configure(enable_log)
    try:
        config = load_or_create_config(config_path)
        if server:
            config = dataclasses.replace(config, server_ip=server)
        outcome = asyncio.run(run_session(config))
    except KeyboardInterrupt:
        log("interrupted")
        sys.exit(130)
    except PipeError as e:
        err_console.print(f"[red]✘ {type(e).__name__}:[/red] {e}")
        sys.exit(1)
    log("exit", outcome=outcome.name)


@cli.command()
@click.option("--config", "config_path", default=DEFAULT_CONFIG_PATH, show_default=True)
def status(config_path):
    """Show the configuration a session would use"""
    try:
        config = load_or_create_config(config_path)
    except ConfigError as e:
        err_console.print(f"[red]✘ {e}[/red]")
        sys.exit(1)
    print(f"[cyan]Config:[/cyan] {config_path}")
    print(f"[yellow]Rendezvous:[/yellow] {config.server_ip}")
    print(f"[yellow]STUN:[/yellow] {', '.join(config.stun_servers) or '(none)'}")
    print(f"[yellow]Channel:[/yellow] {config.channel_label}")


if __name__ == "__main__":
    cli()
