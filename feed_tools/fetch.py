"""
异步 HTTP 下载：手动跟随重定向（有跳数上限），每次请求单独设置超时。
超时指连接建立和两次读取之间的空闲时间，不限制整体传输时长。
仓库 zip、资源清单、单个资源文件都走这里。
"""

import asyncio
from pathlib import Path
from urllib.parse import urljoin

import aiohttp

from .errors import HttpStatusError, TooManyRedirectsError

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0 Safari/537.36"
)
CHUNK_SIZE = 256 * 1024
REDIRECT_CODES = (301, 302, 303, 307, 308)


async def _open(session, url, timeout, max_redirects):
    """返回最终 200 的响应（调用方负责 release）。"""
    current = url
    for _ in range(max_redirects + 1):
        resp = await session.get(
            current,
            allow_redirects=False,
            timeout=aiohttp.ClientTimeout(total=None, sock_connect=timeout, sock_read=timeout),
            headers={"User-Agent": USER_AGENT},
        )
        location = resp.headers.get("Location")
        if resp.status in REDIRECT_CODES and location:
            resp.release()
            current = urljoin(current, location)
            print(f"重定向到: {current}", flush=True)
            continue
        if resp.status != 200:
            resp.release()
            raise HttpStatusError(current, resp.status)
        return resp
    raise TooManyRedirectsError(url, max_redirects)


async def fetch_bytes(
    session: aiohttp.ClientSession, url: str, timeout: float = 30, max_redirects: int = 5
) -> bytes:
    resp = await _open(session, url, timeout, max_redirects)
    try:
        return await resp.read()
    finally:
        resp.release()


async def download_to(
    session: aiohttp.ClientSession,
    url: str,
    dest: Path,
    timeout: float = 60,
    max_redirects: int = 5,
) -> Path:
    """下载到 dest（自动创建父目录）；失败时不留下半截文件。"""
    dest.parent.mkdir(parents=True, exist_ok=True)
    resp = await _open(session, url, timeout, max_redirects)
    try:
        with dest.open("wb") as f:
            while True:
                chunk = await resp.content.read(CHUNK_SIZE)
                if not chunk:
                    break
                f.write(chunk)
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError):
        try:
            dest.unlink()
        except FileNotFoundError:
            pass
        raise
    finally:
        resp.release()
    return dest
