"""
资源同步：按远程清单（manifest.json）把文件下载到 public/ 下。
清单格式：["a.txt", "dir/b.png"] 或 {"files": [...]}。
非强制模式下已存在的文件直接跳过（只看是否存在，不校验内容）。
"""

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import aiohttp

from .console import emoji
from .errors import (
    FeedError,
    HttpStatusError,
    ManifestFetchError,
    ManifestFormatError,
    ManifestNotFoundError,
    PerFileSyncError,
    TooManyRedirectsError,
)
from .fetch import download_to, fetch_bytes


@dataclass
class SyncSummary:
    downloaded: int = 0
    skipped: int = 0
    failed: int = 0


def parse_manifest(content: bytes) -> List[str]:
    try:
        manifest = json.loads(content)
    except ValueError as e:
        raise ManifestFormatError(f"清单不是合法 JSON: {e}") from e
    if isinstance(manifest, dict):
        manifest = manifest.get("files")
    if not isinstance(manifest, list) or not all(isinstance(k, str) for k in manifest):
        raise ManifestFormatError("清单格式无效，应为文件路径数组或包含 files 字段的对象")
    # 去重，保持顺序
    return list(dict.fromkeys(k for k in manifest if k.strip()))


async def fetch_manifest(
    session: aiohttp.ClientSession, manifest_url: str, timeout: float = 30, max_redirects: int = 5
) -> List[str]:
    print(f"正在获取文件清单: {manifest_url}", flush=True)
    try:
        content = await fetch_bytes(session, manifest_url, timeout=timeout, max_redirects=max_redirects)
    except HttpStatusError as e:
        if e.status == 404:
            raise ManifestNotFoundError(manifest_url) from e
        raise ManifestFetchError(f"获取文件清单失败: {e}") from e
    except (TooManyRedirectsError, aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise ManifestFetchError(f"获取文件清单失败: {manifest_url}: {e!r}") from e
    return parse_manifest(content)


def file_url(base_url: str, key: str) -> str:
    return f"{base_url.rstrip('/')}/{quote(key, safe='/')}"


def destination(dest_root: Path, key: str) -> Path:
    """清单中的 key 映射到 dest_root 下；越出 dest_root 的 key 抛 PerFileSyncError。"""
    root = dest_root.resolve()
    dest = (root / key.lstrip("/")).resolve()
    try:
        dest.relative_to(root)
    except ValueError:
        raise PerFileSyncError(f"非法路径: {key}") from None
    if dest == root:
        raise PerFileSyncError(f"非法路径: {key}")
    return dest


async def sync(
    manifest_url: str,
    dest_root: Path,
    force: bool = False,
    base_url: Optional[str] = None,
    session: Optional[aiohttp.ClientSession] = None,
    manifest_timeout: float = 30,
    file_timeout: float = 120,
    max_redirects: int = 5,
) -> SyncSummary:
    """
    同步清单中的全部文件，返回下载/跳过/失败计数。
    base_url 默认取 manifest_url 所在目录。清单获取或解析失败抛 ManifestError，单个文件失败只计数。
    """
    if base_url is None:
        base_url = manifest_url.rsplit("/", 1)[0]
    if session is None:
        async with aiohttp.ClientSession() as own:
            return await sync(
                manifest_url, dest_root, force, base_url, own,
                manifest_timeout, file_timeout, max_redirects,
            )

    dest_root.mkdir(parents=True, exist_ok=True)
    keys = await fetch_manifest(session, manifest_url, manifest_timeout, max_redirects)
    summary = SyncSummary()
    if not keys:
        print("文件清单为空，没有文件需要下载", flush=True)
        return summary
    print(f"\n共 {len(keys)} 个文件在清单中...\n", flush=True)

    total = len(keys)
    for i, key in enumerate(keys, start=1):
        progress = f"[{i}/{total}]"
        try:
            dest = destination(dest_root, key)
            if not force and dest.exists():
                summary.skipped += 1
                print(f"{progress} - {key} (已存在，跳过)", flush=True)
                continue
            await download_to(
                session, file_url(base_url, key), dest,
                timeout=file_timeout, max_redirects=max_redirects,
            )
        except (FeedError, aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            summary.failed += 1
            print(f"{progress} {emoji.get('❌')} {key}: {e}", flush=True)
            continue
        summary.downloaded += 1
        print(f"{progress} {emoji.get('✅')} {key}", flush=True)
    return summary
