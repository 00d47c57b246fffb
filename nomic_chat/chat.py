"""High-level chat client: download, launch and talk to a local model."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Mapping

from nomic_chat.assets import AssetProvisioner, ProgressCallback
from nomic_chat.config import DEFAULT_MODEL, SessionConfig, default_base_path
from nomic_chat.errors import NotInitialized
from nomic_chat.session import ChatSession, ProcessSession, PromptReply
from nomic_chat.transcript import Transcript

log = logging.getLogger("nomic_chat")

SessionFactory = Callable[[SessionConfig, Transcript | None], ChatSession]


class GPT4All:
    """A locally running chat model.

    Typical use::

        bot = GPT4All("gpt4all-lora-quantized")
        await bot.init()
        await bot.open()
        reply = bot.prompt("Write me a haiku")
        async for chunk in reply.stream:
            print(chunk, end="")
        text = await reply.completion
        await bot.close()
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        decoder_config: Mapping[str, object] | None = None,
        base_path: Path | str | None = None,
        *,
        idle_timeout_s: float | None = None,
        startup_timeout_s: float | None = None,
        kill_timeout_s: float | None = None,
        transcript_path: Path | str | None = None,
        executable_url: str | None = None,
        model_url: str | None = None,
        progress: ProgressCallback | None = None,
        session_factory: SessionFactory = ProcessSession,
    ):
        overrides: dict[str, object] = {}
        if idle_timeout_s is not None:
            overrides["idle_timeout_s"] = idle_timeout_s
        if startup_timeout_s is not None:
            overrides["startup_timeout_s"] = startup_timeout_s
        if kill_timeout_s is not None:
            overrides["kill_timeout_s"] = kill_timeout_s

        # Raises InvalidModel straight away for unknown models.
        self.config = SessionConfig(
            model=model,
            decoder_options=decoder_config or {},
            base_path=Path(base_path) if base_path is not None else default_base_path(),
            transcript_path=Path(transcript_path) if transcript_path else None,
            **overrides,
        )
        self.provisioner = AssetProvisioner.from_config(
            self.config,
            executable_url=executable_url,
            model_url=model_url,
            progress=progress,
        )
        transcript = Transcript(self.config.transcript_path) if self.config.transcript_path else None
        self.session: ChatSession = session_factory(self.config, transcript)

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def executable_path(self) -> Path:
        return self.config.executable_path

    @property
    def model_path(self) -> Path:
        return self.config.model_path

    @property
    def is_open(self) -> bool:
        return self.session.is_open

    async def __aenter__(self) -> "GPT4All":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def init(self, force_download: bool = False) -> None:
        """Download the executable and model if missing (or always, if forced)."""
        await self.provisioner.ensure_assets(force=force_download)

    async def open(self) -> None:
        await self.session.open()

    async def close(self) -> None:
        await self.session.close()

    def prompt(self, text: str) -> PromptReply:
        if not self.session.is_open:
            raise NotInitialized("Bot is not initialized (call open() first)")
        return self.session.prompt(text)

    async def ask(self, text: str) -> str:
        """Prompt and wait for the full response."""
        return await self.prompt(text).completion
