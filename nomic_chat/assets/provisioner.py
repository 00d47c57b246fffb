"""Fetch the chat executable and model weights into the base directory."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Awaitable, Callable

import aiohttp

from nomic_chat.assets import catalog
from nomic_chat.config import SessionConfig
from nomic_chat.errors import DownloadFailed

log = logging.getLogger("nomic_chat.assets")

CHUNK_SIZE = 64 * 1024
EXECUTABLE_MODE = 0o755

# Receives (destination, bytes_done, bytes_total or None)
ProgressCallback = Callable[[Path, int, int | None], None]


def _partial_path(destination: Path) -> Path:
    return destination.with_name(destination.name + ".part")


class AssetProvisioner:
    """Makes sure the executable and model file exist locally.

    Downloads go to ``<destination>.part`` first and are moved into place only
    once complete, so an interrupted download never looks like a usable asset.
    A leftover partial file is resumed with an HTTP Range request.
    """

    def __init__(
        self,
        executable_path: Path,
        model_path: Path,
        model: str,
        *,
        executable_url: str | None = None,
        model_url: str | None = None,
        progress: ProgressCallback | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
    ):
        self.executable_path = Path(executable_path)
        self.model_path = Path(model_path)
        self.model = model
        self._executable_url = executable_url
        self._model_url = model_url
        self.progress = progress
        self.timeout = timeout or aiohttp.ClientTimeout(total=None, sock_connect=30, sock_read=60)

    @classmethod
    def from_config(cls, config: SessionConfig, **kwargs) -> "AssetProvisioner":
        return cls(config.executable_path, config.model_path, config.model, **kwargs)

    @property
    def executable_url(self) -> str:
        return self._executable_url or catalog.executable_url()

    @property
    def model_url(self) -> str:
        return self._model_url or catalog.model_url(self.model)

    def missing(self, force: bool = False) -> list[str]:
        """Names of the assets that ensure_assets() would fetch."""
        names = []
        if force or not self.executable_path.exists():
            names.append("executable")
        if force or not self.model_path.exists():
            names.append("model")
        return names

    async def ensure_assets(self, force: bool = False) -> None:
        """Download whatever is missing (or everything, when forced).

        Both downloads run concurrently; this returns only after both have
        finished and raises the first failure, if any.
        """
        fetchers: dict[str, Callable[[aiohttp.ClientSession], Awaitable[None]]] = {
            "executable": self.fetch_executable,
            "model": self.fetch_model,
        }
        wanted = self.missing(force)
        if not wanted:
            log.debug("Assets already present, nothing to download")
            return

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            results = await asyncio.gather(
                *(fetchers[name](session) for name in wanted),
                return_exceptions=True,
            )

        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def fetch_executable(self, session: aiohttp.ClientSession) -> None:
        """Download the chat executable and mark it executable."""
        log.info("Downloading executable")
        await self._download(session, self.executable_url, self.executable_path)
        await asyncio.to_thread(os.chmod, self.executable_path, EXECUTABLE_MODE)
        log.info(f"File downloaded successfully to {self.executable_path}")

    async def fetch_model(self, session: aiohttp.ClientSession) -> None:
        """Download the model weights."""
        log.info("Downloading model")
        await self._download(session, self.model_url, self.model_path)
        log.info(f"File downloaded successfully to {self.model_path}")

    async def _download(
        self, session: aiohttp.ClientSession, url: str, destination: Path
    ) -> None:
        """Stream ``url`` into ``destination`` via a resumable ``.part`` file."""
        partial = _partial_path(destination)
        try:
            await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadFailed(url, destination, str(e)) from e

        offset = partial.stat().st_size if partial.exists() else 0
        headers = {"Range": f"bytes={offset}-"} if offset else {}

        try:
            async with session.get(url, headers=headers) as resp:
                if resp.status == 416 and offset:
                    # Server won't honour our range; start over.
                    log.warning(f"Range rejected for {url}, restarting download")
                    partial.unlink()
                    resp.release()
                    return await self._download(session, url, destination)
                if not 200 <= resp.status < 300:
                    raise DownloadFailed(url, destination, f"HTTP {resp.status} {resp.reason or ''}".strip())

                resumed = resp.status == 206 and offset > 0
                if resumed:
                    log.info(f"Resuming {destination.name} at {offset} bytes")
                else:
                    offset = 0

                total = resp.content_length
                if total is not None:
                    total += offset

                await self._write_body(resp, partial, destination, offset, total, resumed)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadFailed(url, destination, str(e) or type(e).__name__) from e
        except OSError as e:
            raise DownloadFailed(url, destination, str(e)) from e

        try:
            await asyncio.to_thread(os.replace, partial, destination)
        except OSError as e:
            raise DownloadFailed(url, destination, str(e)) from e

    async def _write_body(
        self,
        resp: aiohttp.ClientResponse,
        partial: Path,
        destination: Path,
        offset: int,
        total: int | None,
        append: bool,
    ) -> None:
        done = offset
        last_decile = _decile(done, total)
        with open(partial, "ab" if append else "wb") as fh:
            async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                fh.write(chunk)
                done += len(chunk)

                if self.progress:
                    self.progress(destination, done, total)

                decile = _decile(done, total)
                if decile is not None and decile != last_decile:
                    log.info(f"{destination.name}: {decile * 10}% done")
                    last_decile = decile


def _decile(done: int, total: int | None) -> int | None:
    if not total:
        return None
    return min(10, done * 10 // total)
