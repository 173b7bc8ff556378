"""
命令入口：run / stop / status / update [--force] / unpublish <包名>[@版本] / help。

run:    启动 verdaccio → 等待就绪 → 初始化账号与 .npmrc → 启动静态文件服务器。
update: 确认 verdaccio 在运行 → 认证 → 逐个仓库镜像、执行命令、复制资源、发布包 → 同步远程资源。
返回值即进程退出码，0 表示成功，其余见 errors.py。
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Iterable, List, Optional

import aiohttp

from . import config, credentials, static_server
from .config import Settings, load_settings
from .console import banner, emoji
from .errors import (
    FeedError,
    ManifestError,
    MirrorError,
    PerFileSyncError,
    PublishError,
    ReadinessTimeoutError,
)
from .mirror import mirror
from .publisher import publish_repo
from .readiness import wait_until_ready
from .registry_client import make_client
from .repos import REPOS, RepoDescriptor
from .supervisor import ProcessSupervisor, ServiceSpec
from .syncer import sync

COMMANDS = ("run", "stop", "status", "update", "unpublish", "help")

HELP_TEXT = """
Verdaccio 服务管理工具

用法:
  verdaccio-local run                       启动 verdaccio 与静态文件服务器（后台）
  verdaccio-local stop                      停止后台服务
  verdaccio-local status                    查看服务状态
  verdaccio-local update                    镜像仓库、发布包并同步资源（跳过已存在的文件）
  verdaccio-local update --force            同上，已发布的包先移除再发布，资源覆盖已有文件
  verdaccio-local unpublish <包名>          从本地仓库中卸载指定的包
  verdaccio-local unpublish <包名>@<版本>   从本地仓库中卸载指定版本的包
  verdaccio-local help                      显示帮助信息

示例:
  verdaccio-local unpublish @aily/arduino_uno
  verdaccio-local unpublish @aily/arduino_uno@1.0.0
"""


# ================== 服务定义 ==================
def registry_service(settings: Settings) -> ServiceSpec:
    return ServiceSpec(
        name="verdaccio",
        title="Verdaccio 服务",
        command=[str(settings.verdaccio_bin), "--config", str(settings.config_path)],
        pid_file=settings.pid_file,
        log_file=settings.logs_dir / "verdaccio.log",
        cwd=settings.base_dir,
        url=settings.registry_url,
        match=["verdaccio", str(settings.config_path)],
    )


def static_service(settings: Settings) -> ServiceSpec:
    return ServiceSpec(
        name="static-server",
        title="静态文件服务器",
        command=[
            config.PYTHON, str(Path(static_server.__file__).resolve()),
            str(settings.public_dir), str(settings.static_port),
        ],
        pid_file=settings.static_pid_file,
        log_file=settings.logs_dir / "static-server.log",
        cwd=settings.base_dir,
        url=settings.static_url,
    )


async def _wait_registry(settings: Settings, attempts: int) -> int:
    return await wait_until_ready(
        settings.ping_url, attempts, settings.ready_interval, settings.probe_timeout,
    )


# ================== run / stop / status ==================
def cmd_run(settings: Settings, supervisor: ProcessSupervisor) -> int:
    supervisor.start(registry_service(settings))

    print("等待 Verdaccio 服务就绪...", flush=True)
    try:
        asyncio.run(_wait_registry(settings, settings.ready_attempts))
    except ReadinessTimeoutError as e:
        print(f"{emoji.get('❌')} Verdaccio 启动超时: {e}，日志见 {settings.logs_dir / 'verdaccio.log'}", flush=True)
        return e.exit_code
    print(f"{emoji.get('✅')} Verdaccio 服务已就绪", flush=True)

    credentials.bootstrap(settings)
    supervisor.start(static_service(settings))
    return 0


def cmd_stop(settings: Settings, supervisor: ProcessSupervisor) -> int:
    supervisor.stop(static_service(settings))
    supervisor.stop(registry_service(settings))
    return 0


def cmd_status(settings: Settings, supervisor: ProcessSupervisor) -> int:
    supervisor.report(registry_service(settings))
    supervisor.report(static_service(settings))
    return 0


# ================== update ==================
async def _check_registry(settings: Settings) -> None:
    print("检查 Verdaccio 服务状态...", flush=True)
    try:
        await _wait_registry(settings, settings.check_attempts)
    except ReadinessTimeoutError:
        print(f"{emoji.get('❌')} Verdaccio 服务未运行，请先执行: verdaccio-local run", flush=True)
        raise
    print("Verdaccio 服务已就绪", flush=True)


async def run_update(
    settings: Settings,
    force: bool = False,
    repos: Iterable[RepoDescriptor] = REPOS,
    client=None,
) -> int:
    banner(
        "开始更新仓库并发布包...",
        f"资源同步模式: {'强制更新（覆盖已有文件）' if force else '增量同步（跳过已有文件）'}",
    )
    await _check_registry(settings)
    credentials.bootstrap(settings)
    if client is None:
        client = make_client(settings, settings.npmrc_path)

    mirror_failed: List[str] = []
    publish_failed: List[str] = []
    settings.repos_dir.mkdir(parents=True, exist_ok=True)

    async with aiohttp.ClientSession() as session:
        for repo in repos:
            print("\n" + "-" * 40, flush=True)
            print(f"处理仓库: {repo.name}", flush=True)
            print("-" * 40, flush=True)
            try:
                repo_path = await mirror(session, repo, settings)
            except MirrorError as e:
                mirror_failed.append(repo.name)
                print(f"{emoji.get('❌')} {e}", flush=True)
                print(f"仓库 {repo.name} 下载失败，跳过...", flush=True)
                continue
            report = await asyncio.to_thread(publish_repo, repo_path, client, force)
            publish_failed += [name for name, _ in report.failed]
            print(
                f"\n{emoji.get('📦')} {repo.name}: 发布 {len(report.published)}，"
                f"跳过 {len(report.skipped)}，失败 {len(report.failed)}",
                flush=True,
            )

        print("", flush=True)
        banner("仓库更新和包发布完成!")
        print("\n", flush=True)

        banner(
            "开始同步远程资源...",
            f"公开 URL: {settings.resource_url}",
            f"存储桶: {settings.resource_bucket}",
            f"文件清单: {settings.manifest_file}",
            f"模式: {'强制更新（覆盖已有文件）' if force else '增量同步（跳过已有文件）'}",
        )
        sync_error: Optional[ManifestError] = None
        try:
            summary = await sync(
                settings.manifest_url,
                settings.public_dir,
                force=force,
                base_url=settings.resource_url,
                session=session,
                manifest_timeout=settings.manifest_timeout,
                file_timeout=settings.file_timeout,
                max_redirects=settings.max_redirects,
            )
        except ManifestError as e:
            sync_error = e
            summary = None
            print(f"{emoji.get('❌')} 同步失败: {e}", flush=True)

    if summary is not None:
        banner(
            "同步完成!",
            f"下载成功: {summary.downloaded} 个文件",
            f"已跳过: {summary.skipped} 个文件",
            f"下载失败: {summary.failed} 个文件",
            f"目标目录: {settings.public_dir}",
        )
    if mirror_failed:
        print(f"{emoji.get('⚠️')} 镜像失败的仓库: {', '.join(mirror_failed)}", flush=True)
    if publish_failed:
        print(f"{emoji.get('⚠️')} 发布失败的包: {', '.join(publish_failed)}", flush=True)
    banner("update done!")

    if mirror_failed:
        return MirrorError.exit_code
    if publish_failed:
        return PublishError.exit_code
    if sync_error is not None:
        return sync_error.exit_code
    if summary.failed:
        return PerFileSyncError.exit_code
    return 0


# ================== unpublish ==================
async def run_unpublish(settings: Settings, spec: str, client=None) -> int:
    banner(f"准备从 npm 仓库中卸载包: {spec}")
    await _check_registry(settings)
    if client is None:
        npmrc = settings.npmrc_path if settings.npmrc_path.exists() else None
        client = make_client(settings, npmrc)
    print(f"\n正在卸载: {spec}...", flush=True)
    try:
        client.unpublish(spec)
    except PublishError as e:
        print(f"\n{emoji.get('❌')} 卸载失败: {e}", flush=True)
        print("\n可能的原因:", flush=True)
        print("  1. 包名不存在", flush=True)
        print("  2. 指定的版本不存在", flush=True)
        print("  3. 没有足够的权限", flush=True)
        return e.exit_code
    print(f"\n{emoji.get('✅')} 包 {spec} 已成功从仓库中卸载", flush=True)
    banner("unpublish 操作完成")
    return 0


# ================== 入口 ==================
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="verdaccio-local", add_help=False)
    sub = p.add_subparsers(dest="command")
    sub.add_parser("run")
    sub.add_parser("stop")
    sub.add_parser("status")
    up = sub.add_parser("update")
    up.add_argument("--force", "-f", action="store_true")
    un = sub.add_parser("unpublish")
    un.add_argument("spec", nargs="?")
    sub.add_parser("help")
    return p


def main(
    argv: Optional[List[str]] = None,
    base_dir: Optional[Path] = None,
    supervisor: Optional[ProcessSupervisor] = None,
) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] in ("help", "--help", "-h"):
        print(HELP_TEXT, flush=True)
        return 0
    if argv[0] not in COMMANDS:
        print(f"未知命令: {argv[0]}", flush=True)
        print(HELP_TEXT, flush=True)
        return 1
    try:
        args = build_parser().parse_args(argv)
    except SystemExit:
        print(HELP_TEXT, flush=True)
        return 1

    try:
        settings = load_settings(base_dir or Path.cwd())
        if args.command == "unpublish" and not args.spec:
            print("错误: 请指定要卸载的包名", flush=True)
            print("用法: verdaccio-local unpublish <包名>[@版本]", flush=True)
            return 1
        if args.command == "update":
            return asyncio.run(run_update(settings, args.force))
        if args.command == "unpublish":
            return asyncio.run(run_unpublish(settings, args.spec))

        supervisor = supervisor or ProcessSupervisor()
        if args.command == "run":
            return cmd_run(settings, supervisor)
        if args.command == "stop":
            return cmd_stop(settings, supervisor)
        return cmd_status(settings, supervisor)
    except FeedError as e:
        print(f"{emoji.get('❌')} {type(e).__name__}: {e}", flush=True)
        return e.exit_code
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        print(f"{emoji.get('❌')} 网络请求失败: {e!r}", flush=True)
        return 1


def entry() -> None:
    config.setup_console()
    raise SystemExit(main())
