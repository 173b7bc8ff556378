"""
仓库镜像：下载 zip → 解压到 <name>-temp → 去掉 zip 外层目录 → 替换 repos/<name>。
每一步都可重复执行；无论成败都会清理临时 zip 和 -temp 目录。
下载失败时旧目录保持不动。
"""

import asyncio
import shutil
import zipfile
from pathlib import Path
from typing import Iterator

import aiohttp

from .commands import log_name, run_command
from .config import Settings
from .console import emoji
from .errors import MirrorError
from .fetch import download_to
from .repos import BOARD_IMAGE, BOARDS_REPO, RepoDescriptor


def iter_item_dirs(repo_path: Path) -> Iterator[Path]:
    """仓库下的一级目录（跳过隐藏目录和 node_modules），按名称排序。"""
    for item in sorted(repo_path.iterdir(), key=lambda p: p.name):
        if item.is_dir() and not item.name.startswith(".") and item.name != "node_modules":
            yield item


def _cleanup(zip_path: Path, temp_dir: Path) -> None:
    if zip_path.exists():
        zip_path.unlink()
    if temp_dir.exists():
        shutil.rmtree(temp_dir, ignore_errors=True)


def extract_zip(zip_path: Path, dest_dir: Path) -> None:
    print(f"正在解压: {zip_path} -> {dest_dir}", flush=True)
    dest_dir.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(zip_path) as zf:
            zf.extractall(dest_dir)
    except zipfile.BadZipFile as e:
        raise MirrorError(f"解压失败: {zip_path}: {e}") from e


def relocate(temp_dir: Path, repo_path: Path) -> None:
    """zip 只有一个顶层目录时（如 x-main/）把它提升为 repo_path，否则整个临时目录改名。"""
    entries = list(temp_dir.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        shutil.move(str(entries[0]), str(repo_path))
        print(f"已移动: {entries[0]} -> {repo_path}", flush=True)
    else:
        shutil.move(str(temp_dir), str(repo_path))


async def download_and_extract(
    session: aiohttp.ClientSession, repo: RepoDescriptor, settings: Settings
) -> Path:
    repos_dir = settings.repos_dir
    repo_path = repos_dir / repo.name
    zip_path = repos_dir / f"{repo.name}.zip"
    temp_dir = repos_dir / f"{repo.name}-temp"
    repos_dir.mkdir(parents=True, exist_ok=True)
    try:
        print(f"正在下载: {repo.archive_url}", flush=True)
        await download_to(
            session, repo.archive_url, zip_path,
            timeout=settings.archive_timeout, max_redirects=settings.max_redirects,
        )
        print(f"下载完成: {zip_path}", flush=True)

        if repo_path.exists():
            print(f"删除旧目录: {repo_path}", flush=True)
            shutil.rmtree(repo_path)
        if temp_dir.exists():
            shutil.rmtree(temp_dir)

        extract_zip(zip_path, temp_dir)
        relocate(temp_dir, repo_path)
    except MirrorError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
        raise MirrorError(f"下载或解压仓库失败: {repo.name}: {e}") from e
    finally:
        _cleanup(zip_path, temp_dir)
    return repo_path


def run_post_commands(repo: RepoDescriptor, repo_path: Path, logs_dir: Path) -> int:
    """按顺序执行仓库命令；失败只记录，不中断。返回失败条数。"""
    if not repo.commands:
        print("该仓库未配置命令，跳过命令执行步骤", flush=True)
        return 0
    failures = 0
    for idx, cmd in enumerate(repo.commands, start=1):
        log_path = logs_dir / "commands" / f"{repo.name}-{idx}-{log_name(cmd)}.log"
        if not run_command(cmd, repo_path, f"执行: {cmd}", log_path):
            failures += 1
    return failures


def copy_public_assets(repo: RepoDescriptor, repo_path: Path, public_dir: Path) -> int:
    if not repo.public:
        return 0
    print("\n>>> 复制文件到 public 目录...", flush=True)
    public_dir.mkdir(parents=True, exist_ok=True)
    copied = 0
    for rel in repo.public:
        src = repo_path / rel
        dest = public_dir / rel
        if not src.is_file():
            print(f"{emoji.get('⚠️')} 源文件不存在: {src}", flush=True)
            continue
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dest)
            copied += 1
            print(f"已复制: {rel} -> {dest}", flush=True)
        except OSError as e:
            print(f"{emoji.get('❌')} 复制文件失败: {rel} - {e}", flush=True)
    return copied


def copy_board_images(repo_path: Path, boards_dir: Path) -> int:
    print("\n>>> 复制开发板图片到 public/imgs/boards 目录...", flush=True)
    boards_dir.mkdir(parents=True, exist_ok=True)
    copied = 0
    for item in iter_item_dirs(repo_path):
        src = item / BOARD_IMAGE
        if not src.is_file():
            continue
        dest = boards_dir / item.name / BOARD_IMAGE
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dest)
            copied += 1
            print(f"已复制: {item.name}/{BOARD_IMAGE} -> {dest}", flush=True)
        except OSError as e:
            print(f"{emoji.get('❌')} 复制文件失败: {item.name}/{BOARD_IMAGE} - {e}", flush=True)
    return copied


async def mirror(session: aiohttp.ClientSession, repo: RepoDescriptor, settings: Settings) -> Path:
    """完整镜像一个仓库。只有下载/解压/替换目录失败会抛 MirrorError，后续步骤尽力而为。"""
    repo_path = await download_and_extract(session, repo, settings)
    await asyncio.to_thread(run_post_commands, repo, repo_path, settings.logs_dir)
    copy_public_assets(repo, repo_path, settings.public_dir)
    if repo.name == BOARDS_REPO:
        copy_board_images(repo_path, settings.boards_public_dir)
    return repo_path
