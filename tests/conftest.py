# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from devflow import NotificationChannel, RunContext, TaskRegistry

from .fakes import Recorder


SITE_LEAVES = (
    "mainAssets",
    "previewAssets",
    "images",
    "config",
    "generateSite",
    "startServer",
    "startWatching",
)


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture()
def channel(recorder: Recorder) -> NotificationChannel:
    ch = NotificationChannel()
    recorder.listen(ch)
    return ch


@pytest.fixture()
def registry() -> TaskRegistry:
    return TaskRegistry()


@pytest.fixture()
def ctx(tmp_path: Path, registry: TaskRegistry, channel: NotificationChannel) -> RunContext:
    return RunContext(
        params={"runtime": {"root": str(tmp_path)}},
        notifier=channel,
        registry=registry,
    )


@pytest.fixture()
def site_registry(registry: TaskRegistry, recorder: Recorder) -> TaskRegistry:
    """
    Registry holding every leaf the entry points and watch rules name,
    each backed by a recording fake instead of the real collaborator.
    """
    for name in SITE_LEAVES:
        registry.register(name, recorder.leaf(name))
    registry.register("reload", recorder.reload_leaf())
    return registry
