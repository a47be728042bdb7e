import functools
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.table import Table

from netforge import __version__
from netforge.config import ConfigError, DEFAULT_PORT, DEFAULT_UNIX_SOCKET, load_settings
from netforge.controller import NetworkController, NetworkKind
from netforge.docker_manager import DockerError
from netforge.log import setup_logging
from netforge.network import NetworkError

console = Console()


def handle_errors(fn):
    """Decorator to catch and display common errors."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (ConfigError, NetworkError, DockerError) as e:
            console.print(f"[bold red]Error:[/bold red] {e}")
            raise SystemExit(1)

    return wrapper


def _settings(ctx: click.Context):
    settings = load_settings(ctx.obj["config"])
    setup_logging(debug=ctx.obj["debug"] or settings.debug)
    return settings


@click.group()
@click.version_option(version=__version__, prog_name="netforge")
@click.option("-c", "--config", "config_path", default=None,
              help="Config file (default: netforge.yaml in $HOME or the current directory)")
@click.option("-d", "--debug", is_flag=True, envvar="NETFORGE_DEBUG", help="Enable debug log")
@click.pass_context
def cli(ctx, config_path, debug):
    """Netforge - create Docker networks on free private subnets."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_path
    ctx.obj["debug"] = debug


@cli.command()
@click.option("-p", "--port", type=click.IntRange(1, 65535), default=None, envvar="NETFORGE_PORT",
              help=f"HTTP listening port (default: {DEFAULT_PORT})")
@click.option("-u", "--unix-socket", default=None, envvar="NETFORGE_UNIX_SOCKET",
              help=f"Unix socket path (default: {DEFAULT_UNIX_SOCKET})")
@click.pass_context
@handle_errors
def serve(ctx, port, unix_socket):
    """Run the allocation daemon."""
    from netforge.api import create_app
    from netforge.server import serve as run_server

    settings = _settings(ctx)
    controller = NetworkController(settings)
    run_server(
        create_app(controller),
        port=port or settings.port,
        unix_socket=unix_socket or settings.unix_socket,
    )


@cli.command()
@click.argument("kind", type=click.Choice([k.value for k in NetworkKind]))
@click.argument("name", required=False)
@click.pass_context
@handle_errors
def create(ctx, kind, name):
    """Create a bridge or overlay network on the next free subnet."""
    controller = NetworkController(_settings(ctx))
    result = controller.request_network(kind, name)

    table = Table(title="Network Created")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for key, value in result.to_dict().items():
        if value:
            table.add_row(key, str(value))
    console.print(table)


@cli.command()
@click.pass_context
@handle_errors
def networks(ctx):
    """List private subnets currently used by Docker networks."""
    controller = NetworkController(_settings(ctx))
    subnets = controller.existing_allocations()
    if not subnets:
        console.print("No private Docker networks found.")
        return
    for subnet in subnets:
        console.print(str(subnet))


@cli.command()
@click.pass_context
@handle_errors
def scopes(ctx):
    """Show the configured allocation scopes."""
    settings = _settings(ctx)

    table = Table(title="Allocation Scopes")
    table.add_column("Kind", style="cyan")
    table.add_column("Scope", style="green")
    table.add_column("Subnet Prefix")
    table.add_column("Blacklist", style="dim")

    for kind in NetworkKind:
        scope = settings.scope_for(kind.value)
        table.add_row(
            kind.value,
            str(scope.cidr),
            f"/{scope.subnet_prefix}",
            "\n".join(str(b) for b in scope.blacklist) or "-",
        )

    console.print(table)


@cli.command()
@click.argument("path")
@handle_errors
def init(path):
    """Scaffold a netforge YAML configuration."""
    target = Path(path)
    if target.exists():
        console.print(f"[bold red]File already exists:[/bold red] {target}")
        raise SystemExit(1)

    scaffold = {
        "debug": False,
        "port": DEFAULT_PORT,
        "unix_socket": DEFAULT_UNIX_SOCKET,
        "bridge": {
            "scope": "172.20.0.0/14",
            "subnet_prefix": 24,
            "blacklist": ["172.20.0.0/24"],
        },
        "overlay": {
            "scope": "10.10.0.0/16",
            "subnet_prefix": 24,
            "blacklist": [],
        },
    }

    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w") as f:
        yaml.dump(scaffold, f, default_flow_style=False, sort_keys=False)

    console.print(f"[bold green]Created config:[/bold green] {target}")
    console.print(f"Edit the file, then run: [bold]netforge -c {path} serve[/bold]")
