"""nomic-chat exception hierarchy."""

from __future__ import annotations

from pathlib import Path


class NomicChatError(Exception):
    """Base exception for all nomic-chat errors."""


class InvalidModel(NomicChatError, ValueError):
    """Model identifier is not one of the supported models."""

    def __init__(self, model: str, supported: tuple[str, ...]) -> None:
        self.model = model
        self.supported = supported
        listing = "\n    ".join(supported)
        super().__init__(
            f"Model {model} is not supported. Current models supported are:\n    {listing}"
        )


class UnsupportedPlatform(NomicChatError):
    """No chat executable is published for this platform/architecture."""

    def __init__(self, platform: str) -> None:
        self.platform = platform
        super().__init__(
            f"Your platform is not supported: {platform}. Current binaries supported "
            "are for OSX (ARM and Intel), Linux and Windows."
        )


class DownloadFailed(NomicChatError):
    """Fetching an asset failed (network error, HTTP error or local I/O)."""

    def __init__(self, url: str, destination: Path | str, reason: str) -> None:
        self.url = url
        self.destination = Path(destination)
        self.reason = reason
        super().__init__(f"Download of {url} to {self.destination} failed: {reason}")


class NotInitialized(NomicChatError):
    """Operation needs an open chat process."""


class StartupTimeout(NomicChatError):
    """The chat process never signalled it was ready for input."""

    def __init__(self, timeout_s: float, detail: str | None = None) -> None:
        self.timeout_s = timeout_s
        message = f"Chat process not ready after {timeout_s:.1f}s"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StreamError(NomicChatError):
    """The chat process output failed during a turn."""


class ProcessExited(StreamError):
    """The chat process exited while a turn was in flight."""

    def __init__(self, returncode: int | None) -> None:
        self.returncode = returncode
        super().__init__(f"Chat process exited with code {returncode}")


class SessionClosed(StreamError):
    """The session was closed while a turn was in flight."""


class TurnInProgress(NomicChatError):
    """A prompt was issued before the previous turn finished."""
