"""errorpipe CLI - inspect and exercise an error pipeline configuration.

Commands:
    routes   - Show the effective error route table and resolver chain
    resolve  - Run a synthetic fault through the pipeline
"""

import asyncio
import logging
import sys
from typing import Optional

import click

from . import __version__
from .config import load_config, resolve_type
from .faults.domains import ConfigFault
from .pipeline import ErrorPipeline
from .request import RequestRecord


# ============================================================================
# Output helpers
# ============================================================================

def success(message: str) -> None:
    click.echo(click.style(message, fg="green"))


def error(message: str) -> None:
    click.echo(click.style(message, fg="red"), err=True)


def section(title: str) -> None:
    click.echo()
    click.echo(click.style(title, fg="cyan", bold=True))


def kv(key: str, value: str, width: int = 14) -> None:
    click.echo(f"  {click.style(key.ljust(width), dim=True)} {value}")


def _build(ctx: click.Context) -> ErrorPipeline:
    try:
        config = load_config(list(ctx.obj["config"]), env_file=ctx.obj["env_file"])
        return ErrorPipeline(config)
    except ConfigFault as e:
        error(f"  Invalid configuration: {e.message}")
        sys.exit(1)


# ============================================================================
# Commands
# ============================================================================

@click.group()
@click.version_option(version=__version__, prog_name="errorpipe")
@click.option("--config", "-c", "config", multiple=True, type=click.Path(),
              help="YAML/JSON config file (repeatable)")
@click.option("--env-file", type=click.Path(), default=None, help=".env file to load")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx, config: tuple, env_file: Optional[str], verbose: bool):
    """Error resolution pipeline tools.

    \b
    Examples:
      errorpipe routes -c errorpipe.yaml
      errorpipe resolve --type builtins.RuntimeError --path /api/members/ex
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["env_file"] = env_file
    ctx.obj["verbose"] = verbose


@cli.command("routes")
@click.pass_context
def routes(ctx):
    """
    Show error routes and resolver strategies.

    Routes are listed in lookup precedence: exact status, exception type,
    status class, default.
    """
    pipeline = _build(ctx)

    section("Error routes")
    for route in pipeline.routes.routes():
        kv(route.describe(), f"{route.path}  ({route.kind})")

    section("Resolver chain")
    for entry in pipeline.chain.entries:
        kv(str(entry.priority), entry.name, width=6)


@cli.command("resolve")
@click.option("--type", "type_", default="builtins.RuntimeError", show_default=True,
              help="Dotted exception type to raise")
@click.option("--message", "-m", default=None, help="Exception message")
@click.option("--path", default="/", show_default=True, help="Request path")
@click.option("--accept", default=None, help="Accept header (default: none, i.e. JSON)")
@click.option("--method", default="GET", show_default=True)
@click.pass_context
def resolve(ctx, type_: str, message: Optional[str], path: str, accept: Optional[str], method: str):
    """
    Raise a fault for a synthetic request and print the final response.

    Examples:
      errorpipe resolve --type errorpipe.faults.InvalidInputFault -m "bad id"
      errorpipe resolve --path /page --accept text/html
    """
    pipeline = _build(ctx)
    try:
        exc_type = resolve_type(type_)
    except ConfigFault as e:
        error(f"  {e.message}")
        sys.exit(1)

    def handler(request):
        raise exc_type(message) if message is not None else exc_type()

    headers = {"accept": accept} if accept else {}
    request = RequestRecord(path=path, method=method, headers=headers)
    response = asyncio.run(pipeline.dispatch(request, handler))

    section("Response")
    kv("Status", str(response.status_code))
    kv("Content-Type", response.content_type or "-")
    click.echo()
    click.echo(response.text_body)
    if response.status_code < 500:
        success(f"  Resolved {exc_type.__name__} as {response.status_code}")


def main():
    """Entry point for `errorpipe` command."""
    cli(obj={})


if __name__ == "__main__":
    main()
