from __future__ import annotations

from devflow import RunContext, task
from devflow.logging import get_logger
from devflow.process import run_command
from devflow.utils import site_command


log = get_logger("devflow.task.generateSite")


@task(name="generateSite")
async def generate_site(ctx: RunContext) -> None:
    """Run the static site generator (`bundle exec jekyll build` by default)."""
    ctx.notifier.notify("Building Jekyll...")
    out = await run_command("generateSite", site_command(ctx.params), ctx.root)
    for line in out.decode("utf-8", errors="replace").splitlines():
        if line.strip():
            log.debug("%s", line.rstrip())
