from __future__ import annotations

import asyncio

import typer

from .config import DEFAULT_CONFIG_PATH, load_config
from .core import RunContext
from .errors import PipelineError
from .logging import configure_logging, get_logger
from .pipeline import load_registry, run_entry


app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Build, serve and watch the site. Runs `default` when no command is given.",
)
log = get_logger("devflow.cli")


def _make_context(config: str, root: str) -> RunContext:
    params = load_config(config, root=root)
    configure_logging(params)
    return RunContext(params=params, registry=load_registry())


def _run(entry: str, config: str, root: str) -> None:
    try:
        ctx = _make_context(config, root)
    except PipelineError as e:
        log.error("%s", e)
        raise typer.Exit(code=e.exit_code)
    try:
        asyncio.run(run_entry(entry, ctx))
    except PipelineError as e:
        log.error("'%s' failed: %s", entry, e)
        raise typer.Exit(code=e.exit_code)
    except KeyboardInterrupt:
        log.info("Interrupted")
    finally:
        ctx.close()


ConfigOption = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path to YAML config")
RootOption = typer.Option(".", "--root", help="Site root directory")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config: str = ConfigOption,
    root: str = RootOption,
):
    ctx.obj = {"config": config, "root": root}
    if ctx.invoked_subcommand is None:
        _run("default", config, root)


@app.command()
def default(ctx: typer.Context):
    """Build the site, then serve it and rebuild on changes."""
    _run("default", ctx.obj["config"], ctx.obj["root"])


@app.command()
def build(ctx: typer.Context):
    """Build scripts, images, config and the site once."""
    _run("build", ctx.obj["config"], ctx.obj["root"])


@app.command("list")
def list_tasks(ctx: typer.Context):
    """List registered tasks."""
    try:
        registry = load_registry()
    except PipelineError as e:
        typer.echo(str(e))
        raise typer.Exit(code=e.exit_code)
    if not len(registry):
        typer.echo("No tasks discovered.")
        raise typer.Exit(code=0)
    typer.echo("Registered tasks:")
    for name in registry.names():
        typer.echo(f"- {name}")


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
