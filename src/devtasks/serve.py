"""Tasks that talk to the browser: reload, serving and watching."""

from __future__ import annotations

from devflow import RunContext, task
from devflow.pipeline import watch_rules
from devflow.server import LiveReloadServer
from devflow.utils import debounce_seconds, server_address, site_dir
from devflow.watcher import Watcher


@task(name="reload")
async def reload(ctx: RunContext) -> None:
    ctx.notifier.notify("Reloading...")
    ctx.notifier.reload()


@task(name="startServer")
async def start_server(ctx: RunContext) -> None:
    host, port = server_address(ctx.params)
    server = LiveReloadServer(site_dir(ctx.params), ctx.notifier, host=host, port=port)
    server.start()
    ctx.services["server"] = server


@task(name="startWatching")
async def start_watching(ctx: RunContext) -> None:
    """Watch every rule of the fixed table. Returns only once stopped."""
    watcher = Watcher(ctx, debounce=debounce_seconds(ctx.params))
    watcher.add_rules(watch_rules(ctx.registry))
    ctx.services["watcher"] = watcher
    await watcher.run_forever()
