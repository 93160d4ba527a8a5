"""Top-level entry points and the fixed watch-rule table.

Both entry points are pure compositions over a registry; building them
twice yields two equivalent, independent task graphs.
"""

from __future__ import annotations

import importlib
import pkgutil
from typing import Callable, Dict, List

from .core import RunContext, Task, TaskRegistry, TaskSpec, run_task
from .errors import UnknownTaskError
from .logging import get_logger
from .watcher import WatchRule


log = get_logger("devflow.pipeline")

TASKS_PACKAGE = "devtasks"

# (rule name, patterns, chain). A single-element chain binds the leaf itself.
WATCH_TABLE: list[tuple[str, tuple[str, ...], tuple[str, ...]]] = [
    ("config", ("src/yml/*.yml",), ("config", "generateSite", "reload")),
    ("styles", ("_sass/**/*.scss",), ("generateSite", "reload")),
    ("main-scripts", ("src/js/main/**/*.js",), ("mainAssets",)),
    ("preview-scripts", ("src/js/preview/**/*.js",), ("previewAssets", "reload")),
    ("images", ("src/img/**/*",), ("images", "config", "generateSite", "reload")),
    (
        "content",
        (
            "*.html",
            "_includes/*.html",
            "_layouts/*.html",
            "_posts/*",
            "_authors/*",
            "pages/*",
            "category/*",
        ),
        ("config", "generateSite", "reload"),
    ),
]


def discover_tasks(package: str = TASKS_PACKAGE) -> List[TaskSpec]:
    """Import all modules in the tasks package and collect decorated functions."""
    specs: List[TaskSpec] = []
    try:
        pkg = importlib.import_module(package)
    except ModuleNotFoundError:
        log.warning("No tasks package found: %s", package)
        return specs
    for m in pkgutil.iter_modules(pkg.__path__, prefix=f"{package}."):
        try:
            mod = importlib.import_module(m.name)
        except Exception as e:  # noqa: BLE001
            log.warning("Failed to import %s: %s", m.name, e)
            continue
        for attr_name in dir(mod):
            obj = getattr(mod, attr_name)
            spec = getattr(obj, "_task_spec", None)
            if isinstance(spec, TaskSpec) and spec.fn is obj:
                specs.append(spec)
    return specs


def load_registry(package: str = TASKS_PACKAGE) -> TaskRegistry:
    """Register every discovered task; two tasks sharing a name is an error."""
    registry = TaskRegistry()
    for spec in discover_tasks(package):
        registry.register_spec(spec)
    return registry


def build_pipeline(registry: TaskRegistry) -> Task:
    return registry.series(
        registry.parallel("mainAssets", "previewAssets", "images", name="assets"),
        "config",
        "generateSite",
        name="build",
    )


def default_pipeline(registry: TaskRegistry) -> Task:
    return registry.series(
        build_pipeline(registry),
        registry.parallel("startServer", "startWatching", name="serve"),
        name="default",
    )


ENTRY_POINTS: Dict[str, Callable[[TaskRegistry], Task]] = {
    "build": build_pipeline,
    "default": default_pipeline,
}


def watch_rules(
    registry: TaskRegistry, debounce: float | None = None
) -> list[WatchRule]:
    rules: list[WatchRule] = []
    for name, patterns, chain in WATCH_TABLE:
        if len(chain) == 1:
            target = registry.get(chain[0])
        else:
            target = registry.series(*chain, name=f"watch:{name}")
        rules.append(
            WatchRule(name=name, patterns=patterns, target=target, debounce=debounce)
        )
    return rules


async def run_entry(name: str, ctx: RunContext) -> None:
    """Compose the named entry point from `ctx.registry` and run it once."""
    if name not in ENTRY_POINTS:
        raise UnknownTaskError(name)
    pipeline = ENTRY_POINTS[name](ctx.registry)
    log.info("Pipeline: %s", pipeline.describe())
    await run_task(pipeline, ctx)
