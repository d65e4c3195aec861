"""
CLI interface for telecall.

Provides commands to inspect a registry and exercise calls, locally through
an in-process dispatcher or remotely through the HTTP client.

Handler modules come from --module options or from handler_modules in the
configuration file (see telecall.config).
"""

import asyncio
import json
import sys
from pathlib import Path

import click
import yaml

from telecall import __version__
from telecall.abort import Abort
from telecall.config import ServerConfig, get_telecall_home, load_config
from telecall.errors import ConfigError, ConnectionFailure, RemoteCallError


def _parse_json_arg(text: str | None, what: str, default):
    if text is None:
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{what} is not valid JSON: {e}")


def _require_config(ctx) -> ServerConfig:
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _build_registry(ctx, modules: tuple[str, ...]):
    from telecall.registry import CallRegistry

    names = list(modules) or _require_config(ctx).handler_modules
    if not names:
        click.echo("✗ No handler modules. Pass --module or set handler_modules in config.", err=True)
        raise SystemExit(1)
    # Handler modules are usually importable from the working directory
    if "" not in sys.path and "." not in sys.path:
        sys.path.insert(0, "")
    try:
        return CallRegistry.from_modules(names)
    except ImportError as e:
        click.echo(f"✗ Cannot import handler module: {e}", err=True)
        raise SystemExit(1)


@click.group()
@click.version_option(version=__version__, prog_name="telecall")
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None,
              help="Configuration file (default: $TELECALL_CONFIG or $TELECALL_HOME/config.yaml)")
@click.option("-v", "--verbose", is_flag=True, help="Log dispatch details to stderr")
@click.pass_context
def main(ctx, config_path: Path | None, verbose: bool):
    """
    telecall - remote function calls with a shielded dispatch runtime.
    """
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config_path)
    except ConfigError as e:
        # init must still work with a broken config; other commands check
        ctx.obj["config_error"] = str(e)

    if verbose:
        from telecall.utils import setup_logging

        config = ctx.obj.get("config") or ServerConfig()
        setup_logging("DEBUG", config.log_format, console_output=True)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Write a default configuration file."""
    home = get_telecall_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg_path.write_text(yaml.safe_dump(ServerConfig().to_dict(), sort_keys=False))
    click.echo(f"Initialized telecall config at {cfg_path}")


@main.command("list")
@click.option("--module", "modules", multiple=True, help="Handler module (repeatable)")
@click.pass_context
def list_calls(ctx, modules: tuple[str, ...]):
    """List registered call identifiers."""
    from telecall.shield import describe

    registry = _build_registry(ctx, modules)
    identifiers = registry.list_identifiers()
    if not identifiers:
        click.echo("No calls registered.")
        return

    for identifier in identifiers:
        entry = registry.get(identifier)
        if entry.schema is None:
            click.echo(identifier)
        else:
            args = ", ".join(describe(node) for node in entry.schema)
            click.echo(f"{identifier}({args})")


@main.command("dispatch")
@click.argument("path")
@click.argument("args_json", required=False)
@click.option("--module", "modules", multiple=True, help="Handler module (repeatable)")
@click.option("--context", "context_json", help="Context mapping as JSON")
@click.pass_context
def dispatch_call(ctx, path: str, args_json: str | None, modules: tuple[str, ...], context_json: str | None):
    """
    Run one call through an in-process dispatcher.

    PATH is the call identifier, ARGS_JSON a JSON list of arguments.

    Examples:

        telecall dispatch math:add '[2, 3]' --module math

        telecall dispatch todos.api:list_todos --context '{"user": "ada"}'
    """
    from telecall.dispatch import Dispatcher

    args = _parse_json_arg(args_json, "ARGS_JSON", [])
    context = _parse_json_arg(context_json, "--context", None)
    if context is not None and not isinstance(context, dict):
        raise click.BadParameter("--context must be a JSON object")

    registry = _build_registry(ctx, modules)
    response = asyncio.run(Dispatcher(registry).handle({"path": path, "args": args}, context))
    click.echo(response.to_json())
    if not response.is_success:
        raise SystemExit(1)


@main.command("call")
@click.argument("url")
@click.argument("path")
@click.argument("args_json", required=False)
@click.option("--endpoint", default=None, help="Endpoint path (default: telecall_url from config)")
@click.pass_context
def remote_call(ctx, url: str, path: str, args_json: str | None, endpoint: str | None):
    """
    Call a handler on a running server.

    URL is the server origin, PATH the call identifier, ARGS_JSON a JSON list.

    Exit codes: 0 success, 1 aborted or server error, 2 server unreachable.
    """
    from telecall.client import TelecallClient

    args = _parse_json_arg(args_json, "ARGS_JSON", [])
    if not isinstance(args, list):
        raise click.BadParameter("ARGS_JSON must be a JSON list")
    telecall_url = endpoint or (ctx.obj.get("config") or ServerConfig()).telecall_url

    async def _call():
        async with TelecallClient(url, telecall_url=telecall_url) as client:
            return await client.call(path, *args)

    try:
        value = asyncio.run(_call())
    except Abort as e:
        click.echo(json.dumps({"abort": e.payload}))
        raise SystemExit(1)
    except RemoteCallError as e:
        click.echo(f"✗ {path} failed: {e}", err=True)
        raise SystemExit(1)
    except ConnectionFailure as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(2)

    click.echo(json.dumps({"return": value}))


if __name__ == "__main__":
    main()
