from __future__ import annotations

import asyncio
import logging

import aiohttp
from aiohttp import web
from discord.ext import tasks

ALIVE_TEXT = "Clock Bot Alive"
PING_INTERVAL_SECONDS = 300


async def handle_root(request: web.Request) -> web.Response:
    return web.Response(text=ALIVE_TEXT)


def build_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/", handle_root)
    return app


class KeepAlive:
    """Tiny HTTP endpoint for hosts that idle out silent processes, plus an optional self-ping."""

    def __init__(self, port: int, ping_url: str | None = None, logger: logging.Logger | None = None) -> None:
        self.port = port
        self.ping_url = ping_url
        self.logger = logger or logging.getLogger(__name__)
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        self._runner = web.AppRunner(build_app())
        await self._runner.setup()
        await web.TCPSite(self._runner, host="0.0.0.0", port=self.port).start()
        self.logger.info("Keep-alive server on port %s", self.port)

        if not self.ping_url:
            self.logger.warning("No PING_URL set, self-ping disabled")
            return
        self.ping_loop.start()

    @tasks.loop(seconds=PING_INTERVAL_SECONDS)
    async def ping_loop(self) -> None:
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30)) as session:
                async with session.get(self.ping_url) as resp:
                    self.logger.debug("Self-ping returned HTTP %s", resp.status)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self.logger.warning("Self-ping failed: %s", exc)

    async def stop(self) -> None:
        if self.ping_loop.is_running():
            self.ping_loop.cancel()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
