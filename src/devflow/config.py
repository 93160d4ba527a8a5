from __future__ import annotations

import copy
from pathlib import Path

import yaml

from .logging import get_logger


log = get_logger("devflow.config")

DEFAULT_CONFIG_PATH = "configs/site.yaml"

DEFAULTS: dict = {
    "site": {
        "dir": "_site",
        "command": ["bundle", "exec", "jekyll", "build"],
    },
    "server": {
        "host": "127.0.0.1",
        "port": 3000,
    },
    "watch": {
        "debounce_ms": 50,
    },
    "scripts": {
        "main_src": "src/js/main/**/*.js",
        "preview_src": "src/js/preview/**/*.*",
        "bundle_name": "scripts.min.js",
        "dest": "assets/js",
        "minify": True,
        "minify_command": None,
    },
    "images": {
        "src": "src/img/**/*.{jpg,png,gif,svg}",
        "dest": "assets/img",
        "jpeg_quality": 85,
    },
    "logging": {
        "level": None,
        "file": None,
    },
    "config": {
        "src": "src/yml/_config.yml",
        "dest": "_config.yml",
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = value
    return out


def load_config(path: str | Path | None, root: str | Path = ".") -> dict:
    """Load YAML config over DEFAULTS and record the site root under `runtime`.

    A missing file is not an error; the defaults describe the stock layout.
    """
    raw: dict = {}
    if path is not None:
        p = Path(path)
        if not p.is_absolute():
            p = Path(root) / p
        if p.exists():
            with open(p, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            log.debug("Loaded config from %s", p)
        else:
            log.debug("No config at %s, using defaults", p)
    params = deep_merge(DEFAULTS, raw)
    params.setdefault("runtime", {})
    params["runtime"]["root"] = str(Path(root).resolve())
    return params
