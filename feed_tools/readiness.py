"""
就绪探测：按固定间隔请求健康检查地址，2xx 视为就绪。
连接被拒、非 2xx、单次请求超时都按「尚未就绪」处理并重试，超过次数上限抛 ReadinessTimeoutError。
"""

import asyncio
from typing import Awaitable, Callable, Optional

import aiohttp

from .errors import ReadinessTimeoutError

Probe = Callable[[], Awaitable[bool]]


async def http_probe(session: aiohttp.ClientSession, url: str, timeout: float) -> bool:
    """单次探测；任何异常都视为未就绪。"""
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
            await resp.read()
            return 200 <= resp.status < 300
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError):
        return False


async def wait_until_ready(
    url: str,
    max_attempts: int = 30,
    interval: float = 1.0,
    attempt_timeout: float = 1.0,
    probe: Optional[Probe] = None,
) -> int:
    """等待服务就绪，返回实际探测次数。"""
    if max_attempts < 1:
        raise ValueError("max_attempts 至少为 1")

    async def _run(check: Probe) -> int:
        for attempt in range(1, max_attempts + 1):
            if await check():
                return attempt
            if attempt < max_attempts:
                await asyncio.sleep(interval)
        raise ReadinessTimeoutError(url, max_attempts)

    if probe is not None:
        return await _run(probe)
    async with aiohttp.ClientSession() as session:
        return await _run(lambda: http_probe(session, url, attempt_timeout))
