"""
CLI for nrequire.

Provides the `nrequire` command for loading modules, checking module files
the way a test harness would, and calling exported functions.
"""

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console

from .config import ConfigError
from .config import build_registry
from .config import load_config
from .diagnostics import format_diagnostic
from .diagnostics import render_diagnostic
from .diagnostics import to_dict
from .models import DiagnosticKind
from .pool import WorkerPool

console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


@click.group()
@click.version_option(version="1.0.0", prog_name="nrequire")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--search-path", "-p", multiple=True, type=click.Path(file_okay=False, path_type=Path),
              help="Module search directory (repeatable)")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, search_path: tuple[Path, ...], log_level: str | None) -> None:
    """nrequire - CommonJS-style module loading for Python sources."""
    try:
        config = load_config(
            config_path,
            search_paths=list(search_path) or None,
            log_level=log_level,
        )
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    _setup_logging(config.log_level)
    ctx.obj = {"config": config, "registry": build_registry(config)}


@cli.command()
@click.argument("module_id")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def load(ctx: click.Context, module_id: str, as_json: bool) -> None:
    """Load MODULE_ID and list its exports."""
    registry = ctx.obj["registry"]
    entry = registry.get_or_load(module_id)

    if as_json:
        if entry.ok:
            payload = {"status": "loaded", "identity": entry.identity.model_dump(), "exports": _export_names(entry.exports)}
        else:
            payload = {"status": "failed", "diagnostic": to_dict(entry.diagnostic)}
        click.echo(json.dumps(payload, indent=2))
    elif entry.ok:
        click.secho(f"Loaded {entry.identity.name} ({entry.identity.path})", fg="green", bold=True)
        for name in _export_names(entry.exports):
            click.echo(f"  {name}")
    else:
        click.echo(format_diagnostic(entry.diagnostic), err=True)

    sys.exit(0 if entry.ok else 1)


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.pass_context
def check(ctx: click.Context, files: tuple[Path, ...]) -> None:
    """Load each of FILES and report which ones fail.

    A failing module never stops the run; every file is reported.
    """
    registry = ctx.obj["registry"]
    failures = 0

    for path in files:
        entry = registry.get_or_load(str(path.resolve()))
        if entry.ok:
            console.print(f"[green]✓[/green] {path}")
        else:
            failures += 1
            console.print(f"[red]✗[/red] {path} [dim]{entry.diagnostic.kind.value}[/dim]")
            console.print(render_diagnostic(entry.diagnostic))

    console.print()
    summary = f"{len(files) - failures}/{len(files)} modules loaded"
    console.print(f"[bold {'green' if not failures else 'red'}]{summary}[/]")
    sys.exit(0 if not failures else 1)


@cli.command()
@click.argument("module_id")
@click.argument("function")
@click.argument("param", required=False, default="null")
@click.pass_context
def call(ctx: click.Context, module_id: str, function: str, param: str) -> None:
    """Call FUNCTION exported by MODULE_ID with a JSON PARAM."""
    try:
        value = json.loads(param)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"PARAM must be JSON: {e}", param_hint="PARAM") from e

    config = ctx.obj["config"]
    with WorkerPool(ctx.obj["registry"], max_workers=config.max_workers) as pool:
        outcome = pool.submit(module_id, function, value).result()

    if outcome.ok:
        click.echo(json.dumps(outcome.result))
        sys.exit(0)
    click.echo(format_diagnostic(outcome.diagnostic), err=True)
    sys.exit(1)


@cli.command()
def kinds() -> None:
    """List diagnostic kinds."""
    descriptions = {
        DiagnosticKind.RESOLUTION_ERROR: "Module identifier could not be mapped to source",
        DiagnosticKind.COMPILE_ERROR: "Source failed to compile (syntax errors)",
        DiagnosticKind.RUNTIME_ERROR: "Module code raised while being instantiated",
    }
    for kind, desc in descriptions.items():
        click.echo(f"  {click.style(kind.value, fg='cyan', bold=True):28} {desc}")


def _export_names(exports) -> list[str]:
    if isinstance(exports, dict):
        return sorted(exports)
    if hasattr(exports, "__dict__") and not isinstance(exports, type):
        return sorted(k for k in vars(exports) if not k.startswith("_"))
    return [getattr(exports, "__name__", type(exports).__name__)]


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
