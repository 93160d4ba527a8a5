# tests/test_tasks.py

from __future__ import annotations

import json
import logging
import sys
from types import SimpleNamespace

import pytest
import yaml
from PIL import Image

from devflow import RunContext, TaskExecutionError, TaskRegistry, run_task
from devflow.config import load_config
from devtasks.images import images
from devtasks.jekyll import generate_site
from devtasks.scripts import _vlq, concat_sources, main_assets, preview_assets
from devtasks.serve import reload
from devtasks.siteconfig import IncludeError, build_config, expand_includes


def _write(path, text: str = "x") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


@pytest.fixture()
def site_ctx(tmp_path, channel) -> RunContext:
    return RunContext(params=load_config(None, root=tmp_path), notifier=channel)


async def _run(executor, ctx: RunContext, name: str) -> None:
    registry = TaskRegistry()
    await run_task(registry.register(name, executor), ctx)


def test_vlq() -> None:
    assert [_vlq(v) for v in (0, 1, -1, 15, 16)] == ["A", "C", "D", "e", "gB"]


def test_concat_sources_maps_every_line(tmp_path) -> None:
    a, b = tmp_path / "a.js", tmp_path / "b.js"
    _write(a, "var a = 1;\nvar b = 2;\n")
    _write(b, "go();")

    bundle, smap = concat_sources(tmp_path, [a, b], "scripts.min.js")

    assert bundle == "var a = 1;\nvar b = 2;\ngo();\n"
    assert smap["sources"] == ["a.js", "b.js"]
    assert smap["mappings"] == "AAAA;AACA;ACDA"


@pytest.mark.asyncio
async def test_main_assets_writes_bundle_to_both_destinations(tmp_path, site_ctx, recorder) -> None:
    _write(tmp_path / "src/js/main/b.js", "b();")
    _write(tmp_path / "src/js/main/a/a.js", "a();")

    await _run(main_assets, site_ctx, "mainAssets")

    for dest in ("assets/js", "_site/assets/js"):
        text = (tmp_path / dest / "scripts.min.js").read_text()
        assert text.index("a();") < text.index("b();")
        assert text.endswith("//# sourceMappingURL=scripts.min.js.map\n")
        smap = json.loads((tmp_path / dest / "scripts.min.js.map").read_text())
        assert smap["sources"] == ["src/js/main/a/a.js", "src/js/main/b.js"]
    # No live server: a plain build never reloads.
    assert recorder.reloads() == 0


@pytest.mark.asyncio
async def test_main_assets_reloads_only_with_live_server(tmp_path, site_ctx, recorder) -> None:
    _write(tmp_path / "src/js/main/a.js", "a();")
    site_ctx.services["server"] = SimpleNamespace(stop=lambda: None)

    await _run(main_assets, site_ctx, "mainAssets")

    assert recorder.reloads() == 1
    assert recorder.index("message:Building JS files...") < recorder.index("reload:")


@pytest.mark.asyncio
async def test_main_assets_minifies_by_default(tmp_path, site_ctx) -> None:
    _write(
        tmp_path / "src/js/main/math.js",
        "/* math helpers */\nfunction  add(a, b) {\n  // sum of both\n  return a + b;\n}\n",
    )

    await _run(main_assets, site_ctx, "mainAssets")

    text = (tmp_path / "assets/js/scripts.min.js").read_text()
    assert "math helpers" not in text
    assert "sum of both" not in text
    assert "return a+b" in text
    smap = json.loads((tmp_path / "assets/js/scripts.min.js.map").read_text())
    assert smap["mappings"] == ""


@pytest.mark.asyncio
async def test_main_assets_logs_under_its_task_logger(tmp_path, site_ctx, caplog) -> None:
    _write(tmp_path / "src/js/main/a.js", "a();\n")

    with caplog.at_level(logging.INFO, logger="devflow.task.mainAssets"):
        await _run(main_assets, site_ctx, "mainAssets")

    bundled = [r for r in caplog.records if r.getMessage().startswith("Bundling 1 script(s)")]
    assert [r.name for r in bundled] == ["devflow.task.mainAssets"]


@pytest.mark.asyncio
async def test_main_assets_minify_off_keeps_line_mappings(tmp_path, site_ctx) -> None:
    _write(tmp_path / "src/js/main/a.js", "// keep me\na();\n")
    site_ctx.params["scripts"]["minify"] = False

    await _run(main_assets, site_ctx, "mainAssets")

    text = (tmp_path / "assets/js/scripts.min.js").read_text()
    assert text.startswith("// keep me\na();\n")
    smap = json.loads((tmp_path / "assets/js/scripts.min.js.map").read_text())
    assert smap["mappings"] == "AAAA;AACA"


@pytest.mark.asyncio
async def test_main_assets_pipes_through_minifier(tmp_path, site_ctx) -> None:
    _write(tmp_path / "src/js/main/a.js", "a();\n\n\nb();\n")
    script = "import sys; sys.stdout.write(''.join(sys.stdin.read().split()))"
    site_ctx.params["scripts"]["minify_command"] = [sys.executable, "-c", script]

    await _run(main_assets, site_ctx, "mainAssets")

    text = (tmp_path / "assets/js/scripts.min.js").read_text()
    assert text.startswith("a();b();\n")


@pytest.mark.asyncio
async def test_preview_assets_are_copied(tmp_path, site_ctx) -> None:
    _write(tmp_path / "src/js/preview/preview.js", "p();")
    _write(tmp_path / "src/js/preview/lib/util.js", "u();")

    await _run(preview_assets, site_ctx, "previewAssets")

    assert (tmp_path / "assets/js/preview.js").read_text() == "p();"
    assert (tmp_path / "assets/js/lib/util.js").read_text() == "u();"


@pytest.mark.asyncio
async def test_images_are_optimized_and_copied(tmp_path, site_ctx) -> None:
    src = tmp_path / "src/img"
    (src / "photos").mkdir(parents=True)
    Image.new("RGB", (32, 32), (200, 10, 10)).save(src / "photos/red.jpg", quality=100)
    Image.new("RGBA", (16, 16), (0, 0, 255, 128)).save(src / "blue.png")
    _write(src / "logo.svg", "<svg xmlns='http://www.w3.org/2000/svg'/>")
    _write(src / "notes.txt", "skip me")

    await _run(images, site_ctx, "images")

    out = tmp_path / "assets/img"
    assert (out / "photos/red.jpg").stat().st_size <= (src / "photos/red.jpg").stat().st_size
    with Image.open(out / "blue.png") as img:
        assert img.size == (16, 16)
    assert (out / "logo.svg").read_text() == "<svg xmlns='http://www.w3.org/2000/svg'/>"
    assert not (out / "notes.txt").exists()


def test_expand_includes(tmp_path) -> None:
    _write(tmp_path / "_config.yml", "title: Site\n#= include parts/authors.yml\nnav:\n  #= include parts/nav.yml\n")
    _write(tmp_path / "parts/authors.yml", "authors:\n  - ann\n#= require shared.yml\n")
    _write(tmp_path / "parts/nav.yml", "- home\n- blog\n#= require shared.yml\n")
    _write(tmp_path / "parts/shared.yml", "shared: true")

    text = expand_includes(tmp_path / "_config.yml")

    assert text.count("shared: true") == 1
    assert "  - home\n  - blog" in text
    assert yaml.safe_load(text)["nav"] == ["home", "blog"]


def test_expand_includes_with_glob(tmp_path) -> None:
    _write(tmp_path / "_config.yml", "#= include defaults/*.yml\n")
    _write(tmp_path / "defaults/b.yml", "b: 2")
    _write(tmp_path / "defaults/a.yml", "a: 1")

    assert expand_includes(tmp_path / "_config.yml") == "a: 1\nb: 2"


def test_include_cycle_and_missing_file(tmp_path) -> None:
    _write(tmp_path / "a.yml", "#= include b.yml\n")
    _write(tmp_path / "b.yml", "#= include a.yml\n")
    with pytest.raises(IncludeError, match="cycle"):
        expand_includes(tmp_path / "a.yml")

    _write(tmp_path / "c.yml", "#= include nowhere.yml\n")
    with pytest.raises(IncludeError, match="not found"):
        expand_includes(tmp_path / "c.yml")


@pytest.mark.asyncio
async def test_config_task_writes_root_config(tmp_path, site_ctx) -> None:
    _write(tmp_path / "src/yml/_config.yml", "title: Blog\n#= include authors.yml\n")
    _write(tmp_path / "src/yml/authors.yml", "author: Sam")

    await _run(build_config, site_ctx, "config")

    assert yaml.safe_load((tmp_path / "_config.yml").read_text()) == {
        "title": "Blog",
        "author": "Sam",
    }


@pytest.mark.asyncio
async def test_config_task_rejects_invalid_yaml(tmp_path, site_ctx) -> None:
    _write(tmp_path / "src/yml/_config.yml", "title: [unclosed\n")

    with pytest.raises(TaskExecutionError) as info:
        await _run(build_config, site_ctx, "config")
    assert isinstance(info.value.__cause__, yaml.YAMLError)
    assert not (tmp_path / "_config.yml").exists()


@pytest.mark.asyncio
async def test_generate_site_runs_configured_command(tmp_path, site_ctx, recorder) -> None:
    script = "import pathlib; pathlib.Path('_site').mkdir(); pathlib.Path('_site/index.html').write_text('ok')"
    site_ctx.params["site"]["command"] = [sys.executable, "-c", script]

    await _run(generate_site, site_ctx, "generateSite")

    assert (tmp_path / "_site/index.html").read_text() == "ok"
    assert "message:Building Jekyll..." in recorder.events


@pytest.mark.asyncio
async def test_generate_site_failure_carries_exit_code(site_ctx) -> None:
    script = "import sys; sys.stderr.write('Liquid Exception'); sys.exit(3)"
    site_ctx.params["site"]["command"] = [sys.executable, "-c", script]

    with pytest.raises(TaskExecutionError) as info:
        await _run(generate_site, site_ctx, "generateSite")
    assert info.value.returncode == 3
    assert "Liquid Exception" in str(info.value)


@pytest.mark.asyncio
async def test_generate_site_missing_executable(site_ctx) -> None:
    site_ctx.params["site"]["command"] = ["definitely-not-a-real-jekyll"]
    with pytest.raises(TaskExecutionError, match="could not start"):
        await _run(generate_site, site_ctx, "generateSite")


@pytest.mark.asyncio
async def test_reload_task_notifies_then_reloads(site_ctx, recorder) -> None:
    await _run(reload, site_ctx, "reload")
    assert recorder.events == ["message:Reloading...", "reload:"]
