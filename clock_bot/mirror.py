from __future__ import annotations

import asyncio
import base64
import enum
import logging
from dataclasses import dataclass
from typing import Callable, Protocol

import aiohttp

from .errors import MirrorError

GITHUB_API_ROOT = "https://api.github.com"
DEFAULT_DEBOUNCE_SECONDS = 3.0


@dataclass(frozen=True, slots=True)
class RemoteFile:
    content: str
    sha: str


class ContentsClient(Protocol):
    async def get_file(self, path: str, ref: str) -> RemoteFile | None: ...

    async def put_file(self, path: str, content: str, sha: str | None, branch: str, message: str) -> str: ...

    async def close(self) -> None: ...


class GitHubContentsClient:
    """Reads and writes one file through the GitHub repository contents API."""

    def __init__(
        self,
        token: str,
        repo: str,
        *,
        api_root: str = GITHUB_API_ROOT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._token = token
        self.repo = repo
        self.api_root = api_root.rstrip("/")
        self._session = session
        self._owns_session = session is None

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            # Do not log this header.
            "Authorization": f"Bearer {self._token}",
            "User-Agent": "clock-bot-mirror",
        }

    def _url(self, path: str) -> str:
        return f"{self.api_root}/repos/{self.repo}/contents/{path.lstrip('/')}"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=30))
            self._owns_session = True
        return self._session

    async def get_file(self, path: str, ref: str) -> RemoteFile | None:
        try:
            async with self._get_session().get(self._url(path), headers=self._headers(), params={"ref": ref}) as resp:
                if resp.status == 404:
                    return None
                if resp.status >= 400:
                    raise MirrorError(f"GET {path} failed with HTTP {resp.status}: {await resp.text()}")
                payload = await resp.json()
        except aiohttp.ClientError as exc:
            raise MirrorError(f"GET {path} failed: {exc}") from exc

        content = base64.b64decode(payload.get("content") or "").decode("utf-8")
        return RemoteFile(content=content, sha=str(payload["sha"]))

    async def put_file(self, path: str, content: str, sha: str | None, branch: str, message: str) -> str:
        body = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha

        try:
            async with self._get_session().put(self._url(path), headers=self._headers(), json=body) as resp:
                if resp.status >= 400:
                    raise MirrorError(f"PUT {path} failed with HTTP {resp.status}: {await resp.text()}")
                payload = await resp.json()
        except aiohttp.ClientError as exc:
            raise MirrorError(f"PUT {path} failed: {exc}") from exc

        return str((payload.get("content") or {}).get("sha", ""))

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()


class MirrorState(enum.Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    PUSHING = "pushing"


class RemoteMirror:
    """Debounced, best-effort copy of the local snapshot to a remote file.

    Calls to ``schedule_push`` inside the debounce window collapse into one
    push. A call that lands while a push is in flight queues exactly one
    follow-up push. Failures are logged and never reach the caller.
    """

    def __init__(
        self,
        client: ContentsClient,
        snapshot: Callable[[], str],
        *,
        path: str,
        branch: str = "main",
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.snapshot = snapshot
        self.path = path
        self.branch = branch
        self.debounce_seconds = debounce_seconds
        self.logger = logger or logging.getLogger(__name__)

        self.state = MirrorState.IDLE
        self.push_count = 0
        self.last_error: str | None = None
        self._dirty = False
        self._task: asyncio.Task | None = None

    def schedule_push(self) -> None:
        if self.state is MirrorState.SCHEDULED:
            return
        if self.state is MirrorState.PUSHING:
            self._dirty = True
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("No running event loop, remote push skipped")
            return

        self.state = MirrorState.SCHEDULED
        self._task = loop.create_task(self._run())

    async def _run(self) -> None:
        try:
            await asyncio.sleep(self.debounce_seconds)
            while True:
                self.state = MirrorState.PUSHING
                self._dirty = False
                await self._push_logged()
                if not self._dirty:
                    break
                self.state = MirrorState.SCHEDULED
                await asyncio.sleep(self.debounce_seconds)
        finally:
            self.state = MirrorState.IDLE
            self._task = None

    async def _push_logged(self) -> None:
        try:
            await self.push()
        except MirrorError as exc:
            self.last_error = str(exc)
            self.logger.warning("Remote mirror push failed: %s", exc)
        except Exception as exc:  # pragma: no cover - runtime safety
            self.last_error = str(exc)
            self.logger.exception("Remote mirror push crashed")

    async def push(self) -> bool:
        """Upload the current snapshot. Returns False when the remote copy is already current."""
        content = self.snapshot()

        # Last write wins: whatever sha is current now is the one overwritten.
        remote = await self.client.get_file(self.path, self.branch)
        if remote is not None and remote.content == content:
            self.logger.debug("Remote mirror already up to date")
            return False

        await self.client.put_file(
            self.path,
            content,
            remote.sha if remote else None,
            self.branch,
            "Update timesheet",
        )
        self.push_count += 1
        self.last_error = None
        self.logger.info("Pushed timesheet to %s@%s", self.path, self.branch)
        return True

    async def aclose(self) -> None:
        task = self._task
        if task is not None:
            if self.state is MirrorState.SCHEDULED:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                await self._push_logged()
            else:
                await asyncio.gather(task, return_exceptions=True)
            self.state = MirrorState.IDLE
            self._task = None
        await self.client.close()
