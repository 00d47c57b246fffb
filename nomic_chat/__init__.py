"""nomic-chat - run a local GPT4All chat model as a subprocess."""

from nomic_chat.chat import GPT4All
from nomic_chat.config import DEFAULT_MODEL, SUPPORTED_MODELS, SessionConfig
from nomic_chat.errors import (
    DownloadFailed,
    InvalidModel,
    NomicChatError,
    NotInitialized,
    ProcessExited,
    SessionClosed,
    StartupTimeout,
    StreamError,
    TurnInProgress,
    UnsupportedPlatform,
)
from nomic_chat.session import ChunkStream, ProcessSession, PromptReply

__version__ = "0.1.0"

__all__ = [
    "ChunkStream",
    "DEFAULT_MODEL",
    "DownloadFailed",
    "GPT4All",
    "InvalidModel",
    "NomicChatError",
    "NotInitialized",
    "ProcessExited",
    "ProcessSession",
    "PromptReply",
    "SUPPORTED_MODELS",
    "SessionClosed",
    "SessionConfig",
    "StartupTimeout",
    "StreamError",
    "TurnInProgress",
    "UnsupportedPlatform",
]
