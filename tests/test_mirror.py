"""仓库镜像：去外层目录、替换旧目录、清理临时文件、资源复制。"""

import threading
from unittest.mock import patch

import aiohttp
import pytest
from aiohttp import web

from feed_tools import mirror as mirror_mod
from feed_tools.errors import MirrorError, TooManyRedirectsError
from feed_tools.repos import RepoDescriptor

from helpers import make_zip, serve, url


def zip_handler(payload: bytes):
    async def handler(request):
        return web.Response(body=payload, content_type="application/zip")

    return handler


def no_leftovers(settings, name):
    assert not (settings.repos_dir / f"{name}.zip").exists()
    assert not (settings.repos_dir / f"{name}-temp").exists()


@pytest.mark.asyncio
async def test_single_wrapper_directory_is_stripped(settings):
    payload = make_zip({"x-main/README.md": "hello", "x-main/pkg/package.json": "{}"})
    async with serve({"/x.zip": zip_handler(payload)}) as server:
        repo = RepoDescriptor(name="x", archive_url=url(server, "/x.zip"))
        async with aiohttp.ClientSession() as session:
            path = await mirror_mod.mirror(session, repo, settings)

    assert path == settings.repos_dir / "x"
    assert (path / "README.md").read_text() == "hello"
    assert (path / "pkg" / "package.json").exists()
    assert not (path / "x-main").exists()
    no_leftovers(settings, "x")


@pytest.mark.asyncio
async def test_multiple_top_level_entries_keep_layout(settings):
    payload = make_zip({"a.txt": "a", "dir/b.txt": "b"})
    async with serve({"/y.zip": zip_handler(payload)}) as server:
        repo = RepoDescriptor(name="y", archive_url=url(server, "/y.zip"))
        async with aiohttp.ClientSession() as session:
            path = await mirror_mod.mirror(session, repo, settings)

    assert sorted(p.name for p in path.iterdir()) == ["a.txt", "dir"]
    no_leftovers(settings, "y")


@pytest.mark.asyncio
async def test_old_directory_is_fully_replaced(settings):
    stale = settings.repos_dir / "x" / "stale.txt"
    stale.parent.mkdir(parents=True)
    stale.write_text("old")
    payload = make_zip({"x-main/new.txt": "new"})
    async with serve({"/x.zip": zip_handler(payload)}) as server:
        repo = RepoDescriptor(name="x", archive_url=url(server, "/x.zip"))
        async with aiohttp.ClientSession() as session:
            await mirror_mod.mirror(session, repo, settings)

    assert not stale.exists()
    assert (settings.repos_dir / "x" / "new.txt").exists()


@pytest.mark.asyncio
async def test_unreachable_repo_keeps_previous_mirror_and_leaks_nothing(settings):
    payload = make_zip({"x-main/keep.txt": "v1"})
    state = {"up": True}

    async def handler(request):
        if state["up"]:
            return web.Response(body=payload)
        return web.Response(status=503)

    async with serve({"/x.zip": handler}) as server:
        repo = RepoDescriptor(name="x", archive_url=url(server, "/x.zip"))
        async with aiohttp.ClientSession() as session:
            await mirror_mod.mirror(session, repo, settings)
            state["up"] = False
            for _ in range(2):
                with pytest.raises(MirrorError):
                    await mirror_mod.mirror(session, repo, settings)

    assert (settings.repos_dir / "x" / "keep.txt").read_text() == "v1"
    no_leftovers(settings, "x")


@pytest.mark.asyncio
async def test_corrupt_archive_raises_and_cleans_up(settings):
    async with serve({"/bad.zip": zip_handler(b"not a zip")}) as server:
        repo = RepoDescriptor(name="bad", archive_url=url(server, "/bad.zip"))
        async with aiohttp.ClientSession() as session:
            with pytest.raises(MirrorError):
                await mirror_mod.mirror(session, repo, settings)
    no_leftovers(settings, "bad")


@pytest.mark.asyncio
async def test_redirects_are_followed(settings):
    payload = make_zip({"r-main/ok.txt": "ok"})

    async def hop(request):
        raise web.HTTPFound("/final.zip")

    async with serve({"/start.zip": hop, "/final.zip": zip_handler(payload)}) as server:
        repo = RepoDescriptor(name="r", archive_url=url(server, "/start.zip"))
        async with aiohttp.ClientSession() as session:
            path = await mirror_mod.mirror(session, repo, settings)
    assert (path / "ok.txt").exists()


@pytest.mark.asyncio
async def test_redirect_loop_raises_too_many_redirects(settings):
    async def loop(request):
        raise web.HTTPFound("/loop.zip")

    async with serve({"/loop.zip": loop}) as server:
        repo = RepoDescriptor(name="l", archive_url=url(server, "/loop.zip"))
        async with aiohttp.ClientSession() as session:
            with pytest.raises(TooManyRedirectsError):
                await mirror_mod.mirror(session, repo, settings)
    no_leftovers(settings, "l")


def test_post_commands_continue_after_failure(settings, tmp_path):
    repo_path = tmp_path / "work"
    repo_path.mkdir()
    repo = RepoDescriptor(
        name="c", archive_url="unused",
        commands=["exit 3", "echo done > marker.txt"],
    )
    failures = mirror_mod.run_post_commands(repo, repo_path, settings.logs_dir)
    assert failures == 1
    assert (repo_path / "marker.txt").exists()
    logs = sorted((settings.logs_dir / "commands").iterdir())
    assert len(logs) == 2


def test_public_assets_copied_and_missing_ones_warned(settings, tmp_path, capsys):
    repo_path = tmp_path / "work"
    repo_path.mkdir()
    (repo_path / "boards.json").write_text("[]")
    repo = RepoDescriptor(name="b", archive_url="unused", public=["boards.json", "missing.json"])

    copied = mirror_mod.copy_public_assets(repo, repo_path, settings.public_dir)

    assert copied == 1
    assert (settings.public_dir / "boards.json").read_text() == "[]"
    assert "源文件不存在" in capsys.readouterr().out


def test_board_images_copied_per_item(settings, tmp_path):
    repo_path = tmp_path / "boards"
    for name in ("uno", "esp32", ".hidden", "node_modules"):
        (repo_path / name).mkdir(parents=True)
        (repo_path / name / "board.webp").write_bytes(b"img-" + name.encode())
    (repo_path / "noimg").mkdir()

    copied = mirror_mod.copy_board_images(repo_path, settings.boards_public_dir)

    assert copied == 2
    assert (settings.boards_public_dir / "uno" / "board.webp").read_bytes() == b"img-uno"
    assert (settings.boards_public_dir / "esp32" / "board.webp").exists()
    assert not (settings.boards_public_dir / ".hidden").exists()
    assert not (settings.boards_public_dir / "noimg").exists()


@pytest.mark.asyncio
async def test_post_commands_run_off_the_event_loop(settings):
    payload = make_zip({"y-main/README.md": "hi"})
    threads = []

    def record(repo, repo_path, logs_dir):
        threads.append(threading.current_thread())
        return 0

    async with serve({"/y.zip": zip_handler(payload)}) as server:
        repo = RepoDescriptor(name="y", archive_url=url(server, "/y.zip"), commands=["npm i"])
        with patch("feed_tools.mirror.run_post_commands", side_effect=record):
            async with aiohttp.ClientSession() as session:
                await mirror_mod.mirror(session, repo, settings)

    assert threads and threads[0] is not threading.main_thread()
