"""Script tasks.

`mainAssets` concatenates every main script into one bundle with a
sourcemap, minifies it (rjsmin by default, or an external command) and
writes it to both the source assets folder and the live `_site` copy.
When the live-reload server is up it also reloads the browser, which is
why the main-scripts watch rule binds `mainAssets` alone.
`previewAssets` copies preview scripts verbatim.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import rjsmin

from devflow import RunContext, task
from devflow.globs import iter_files, static_prefix
from devflow.logging import get_logger
from devflow.process import run_command
from devflow.utils import _get, minify_command, site_dir


log = get_logger("devflow.task.mainAssets")

_B64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"


def _vlq(value: int) -> str:
    v = (-value << 1) | 1 if value < 0 else value << 1
    out = ""
    while True:
        digit = v & 0x1F
        v >>= 5
        if v:
            digit |= 0x20
        out += _B64[digit]
        if not v:
            return out


def concat_sources(root: Path, sources: list[Path], bundle_name: str) -> tuple[str, dict]:
    """Join sources line-for-line and build a v3 sourcemap for the result."""
    chunks: list[str] = []
    mappings: list[str] = []
    rel_sources: list[str] = []
    contents: list[str] = []
    prev_src, prev_line = 0, 0
    for idx, src in enumerate(sources):
        text = src.read_text(encoding="utf-8").rstrip("\n")
        rel_sources.append(src.relative_to(root).as_posix())
        contents.append(text)
        chunks.append(text)
        for line_no in range(len(text.split("\n"))):
            mappings.append(
                _vlq(0) + _vlq(idx - prev_src) + _vlq(line_no - prev_line) + _vlq(0)
            )
            prev_src, prev_line = idx, line_no
    sourcemap = {
        "version": 3,
        "file": bundle_name,
        "sources": rel_sources,
        "sourcesContent": contents,
        "names": [],
        "mappings": ";".join(mappings),
    }
    return "\n".join(chunks) + "\n", sourcemap


@task(name="mainAssets")
async def main_assets(ctx: RunContext) -> None:
    ctx.notifier.notify("Building JS files...")
    params = ctx.params
    bundle_name = _get(params, "scripts", "bundle_name", default="scripts.min.js")
    dest_rel = _get(params, "scripts", "dest", default="assets/js")
    pattern = _get(params, "scripts", "main_src", default="src/js/main/**/*.js")

    sources = list(iter_files(ctx.root, [pattern]))
    log.info("Bundling %d script(s) into %s", len(sources), bundle_name)
    bundle, sourcemap = concat_sources(ctx.root, sources, bundle_name)

    cmd = minify_command(params)
    minify = bool(_get(params, "scripts", "minify", default=True))
    if cmd:
        out = await run_command("mainAssets", cmd, ctx.root, stdin=bundle.encode("utf-8"))
        bundle = out.decode("utf-8")
    elif minify:
        bundle = rjsmin.jsmin(bundle)
    if cmd or minify:
        # Line mappings no longer hold once the minifier rewrites the bundle.
        sourcemap["mappings"] = ""

    bundle = bundle.rstrip("\n") + f"\n//# sourceMappingURL={bundle_name}.map\n"
    for dest in (site_dir(params) / dest_rel, ctx.root / dest_rel):
        dest.mkdir(parents=True, exist_ok=True)
        (dest / bundle_name).write_text(bundle, encoding="utf-8")
        (dest / f"{bundle_name}.map").write_text(
            json.dumps(sourcemap), encoding="utf-8"
        )
    # Only a watch-triggered run has a server; build runs must not reload.
    if "server" in ctx.services:
        ctx.notifier.reload()


@task(name="previewAssets")
async def preview_assets(ctx: RunContext) -> None:
    ctx.notifier.notify("Copying preview files...")
    pattern = _get(ctx.params, "scripts", "preview_src", default="src/js/preview/**/*.*")
    dest = ctx.root / _get(ctx.params, "scripts", "dest", default="assets/js")
    base = ctx.root / static_prefix(pattern)
    for src in iter_files(ctx.root, [pattern]):
        target = dest / src.relative_to(base)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, target)
