"""Build the root `_config.yml` from `src/yml/_config.yml`.

Source files may pull in other files with directive comments:

    #= include authors.yml      inline every time
    #= require defaults/*.yml   inline once per build

Paths are relative to the including file and may be globs. The directive's
indentation is applied to each included line.
"""

from __future__ import annotations

import re
from pathlib import Path

import yaml

from devflow import RunContext, task
from devflow.globs import iter_files
from devflow.logging import get_logger
from devflow.utils import _get


log = get_logger("devflow.task.config")

DIRECTIVE = re.compile(r"^(?P<indent>[ \t]*)(?:#|//)=\s*(?P<kind>include|require)\s+(?P<path>\S+)\s*$")


class IncludeError(ValueError):
    pass


def _targets(base_dir: Path, ref: str) -> list[Path]:
    ref = ref.strip("'\"")
    if any(ch in ref for ch in "*?[{"):
        found = list(iter_files(base_dir, [ref]))
        if not found:
            log.warning("No files match include '%s' in %s", ref, base_dir)
        return found
    target = (base_dir / ref).resolve()
    if not target.is_file():
        raise IncludeError(f"Included file not found: {target}")
    return [target]


def expand_includes(path: Path, _chain: tuple[Path, ...] = (), _required: set | None = None) -> str:
    path = path.resolve()
    if path in _chain:
        cycle = " -> ".join(p.name for p in (*_chain, path))
        raise IncludeError(f"Include cycle: {cycle}")
    required = _required if _required is not None else set()
    required.add(path)
    out: list[str] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        m = DIRECTIVE.match(line)
        if not m:
            out.append(line)
            continue
        for target in _targets(path.parent, m.group("path")):
            target = target.resolve()
            if m.group("kind") == "require" and target in required:
                continue
            body = expand_includes(target, (*_chain, path), required)
            indent = m.group("indent")
            out.extend(indent + ln if ln else ln for ln in body.split("\n"))
    return "\n".join(out)


@task(name="config")
async def build_config(ctx: RunContext) -> None:
    src = ctx.root / _get(ctx.params, "config", "src", default="src/yml/_config.yml")
    dest = ctx.root / _get(ctx.params, "config", "dest", default="_config.yml")
    text = expand_includes(src).rstrip("\n") + "\n"
    # Malformed YAML fails this task, not the site build.
    yaml.safe_load(text)
    dest.write_text(text, encoding="utf-8")
    log.info("Wrote %s", dest)
