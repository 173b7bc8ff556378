"""就绪探测的重试次数。"""

import asyncio

import pytest
from aiohttp import web

from feed_tools.errors import ReadinessTimeoutError
from feed_tools.readiness import wait_until_ready

from helpers import serve, url


def counting_probe(succeed_on):
    calls = {"n": 0}

    async def probe():
        calls["n"] += 1
        return succeed_on is not None and calls["n"] >= succeed_on

    return probe, calls


@pytest.mark.asyncio
async def test_ready_after_exactly_n_attempts():
    probe, calls = counting_probe(succeed_on=3)
    attempts = await wait_until_ready("http://x/-/ping", max_attempts=5, interval=0, probe=probe)
    assert attempts == 3
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_never_ready_fails_after_max_attempts():
    probe, calls = counting_probe(succeed_on=None)
    with pytest.raises(ReadinessTimeoutError) as exc:
        await wait_until_ready("http://x/-/ping", max_attempts=4, interval=0, probe=probe)
    assert calls["n"] == 4
    assert exc.value.attempts == 4


@pytest.mark.asyncio
async def test_http_probe_retries_non_2xx_until_ok():
    hits = {"n": 0}

    async def ping(request):
        hits["n"] += 1
        return web.Response(status=503 if hits["n"] < 2 else 200, text="{}")

    async with serve({"/-/ping": ping}) as server:
        attempts = await wait_until_ready(url(server, "/-/ping"), max_attempts=5, interval=0)
    assert attempts == 2


@pytest.mark.asyncio
async def test_per_attempt_timeout_counts_as_not_ready():
    async def slow(request):
        await asyncio.sleep(1)
        return web.Response(text="late")

    async with serve({"/-/ping": slow}) as server:
        with pytest.raises(ReadinessTimeoutError):
            await wait_until_ready(
                url(server, "/-/ping"), max_attempts=2, interval=0, attempt_timeout=0.1,
            )


@pytest.mark.asyncio
async def test_connection_refused_is_not_ready():
    with pytest.raises(ReadinessTimeoutError):
        await wait_until_ready("http://127.0.0.1:9/-/ping", max_attempts=2, interval=0, attempt_timeout=0.5)
