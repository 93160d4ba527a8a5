from __future__ import annotations

"""Small helpers for reading paths and settings out of config params."""

import shlex
from pathlib import Path
from typing import Dict


def _get(d: Dict, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
        if cur is None:
            return default
    return cur


def root_dir(p: Dict) -> Path:
    return Path(_get(p, "runtime", "root", default="."))


def site_dir(p: Dict) -> Path:
    return root_dir(p) / _get(p, "site", "dir", default="_site")


def site_command(p: Dict) -> list[str]:
    return as_argv(_get(p, "site", "command", default="bundle exec jekyll build"))


def minify_command(p: Dict) -> list[str] | None:
    cmd = _get(p, "scripts", "minify_command")
    return as_argv(cmd) if cmd else None


def debounce_seconds(p: Dict) -> float:
    return float(_get(p, "watch", "debounce_ms", default=50)) / 1000.0


def server_address(p: Dict) -> tuple[str, int]:
    return (
        str(_get(p, "server", "host", default="127.0.0.1")),
        int(_get(p, "server", "port", default=3000)),
    )


def as_argv(cmd) -> list[str]:
    if isinstance(cmd, str):
        return shlex.split(cmd)
    return [str(c) for c in cmd]
