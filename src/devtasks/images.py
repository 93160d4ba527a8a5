"""Image optimization task.

JPEGs are re-encoded progressive and optimized, PNGs losslessly
optimized; GIF and SVG files are copied as they are. Relative paths under
the source folder are kept.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from PIL import Image

from devflow import RunContext, task
from devflow.globs import iter_files, static_prefix
from devflow.logging import get_logger
from devflow.utils import _get


log = get_logger("devflow.task.images")

_COPY_ONLY = {".gif", ".svg"}


def optimize_image(src: Path, dest: Path, jpeg_quality: int = 85) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    suffix = src.suffix.lower()
    if suffix in _COPY_ONLY:
        shutil.copy2(src, dest)
        return
    with Image.open(src) as img:
        if suffix in (".jpg", ".jpeg"):
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.save(dest, "JPEG", quality=jpeg_quality, optimize=True, progressive=True)
        elif suffix == ".png":
            img.save(dest, "PNG", optimize=True)
        else:
            img.save(dest)
    # Keep the original when re-encoding made it larger.
    if dest.stat().st_size > src.stat().st_size:
        shutil.copy2(src, dest)


def optimize_all(root: Path, pattern: str, dest: Path, jpeg_quality: int) -> int:
    base = root / static_prefix(pattern)
    count = 0
    for src in iter_files(root, [pattern]):
        optimize_image(src, dest / src.relative_to(base), jpeg_quality)
        count += 1
    return count


@task(name="images")
async def images(ctx: RunContext) -> None:
    ctx.notifier.notify("Copying image files...")
    pattern = _get(ctx.params, "images", "src", default="src/img/**/*.{jpg,png,gif,svg}")
    dest = ctx.root / _get(ctx.params, "images", "dest", default="assets/img")
    quality = int(_get(ctx.params, "images", "jpeg_quality", default=85))
    # Pillow work runs off the loop thread.
    count = await asyncio.to_thread(optimize_all, ctx.root, pattern, dest, quality)
    log.info("Optimized %d image(s) into %s", count, dest)
