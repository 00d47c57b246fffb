"""Session configuration.

Defaults come from the environment so scripts and the CLI can be tuned
without code changes; explicit constructor arguments always win.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from nomic_chat.errors import InvalidModel

SUPPORTED_MODELS: tuple[str, ...] = (
    "gpt4all-lora-quantized",
    "gpt4all-lora-unfiltered-quantized",
)
DEFAULT_MODEL = SUPPORTED_MODELS[0]
MODEL_EXTENSION = ".bin"


def default_base_path() -> Path:
    home = os.getenv("NOMIC_CHAT_HOME")
    if home:
        return Path(home).expanduser()
    return Path.home() / ".nomic"


def env_idle_timeout() -> float:
    return float(os.getenv("NOMIC_CHAT_IDLE_TIMEOUT", "4.0"))


def env_startup_timeout() -> float:
    return float(os.getenv("NOMIC_CHAT_STARTUP_TIMEOUT", "300"))


def env_kill_timeout() -> float:
    return float(os.getenv("NOMIC_CHAT_KILL_TIMEOUT", "5"))


def log_level() -> str:
    return os.getenv("NOMIC_CHAT_LOG_LEVEL", "INFO").upper()


def executable_name() -> str:
    return "gpt4all.exe" if sys.platform == "win32" else "gpt4all"


@dataclass(frozen=True)
class SessionConfig:
    """Everything needed to launch one chat process."""

    model: str = DEFAULT_MODEL
    decoder_options: Mapping[str, object] = field(default_factory=dict)
    base_path: Path = field(default_factory=default_base_path)

    # Policy knobs
    idle_timeout_s: float = field(default_factory=env_idle_timeout)
    startup_timeout_s: float = field(default_factory=env_startup_timeout)
    kill_timeout_s: float = field(default_factory=env_kill_timeout)
    transcript_path: Path | None = None

    def __post_init__(self) -> None:
        if self.model not in SUPPORTED_MODELS:
            raise InvalidModel(self.model, SUPPORTED_MODELS)
        if self.idle_timeout_s <= 0:
            raise ValueError(f"idle_timeout_s must be positive, got {self.idle_timeout_s}")
        object.__setattr__(self, "base_path", Path(self.base_path).expanduser())
        object.__setattr__(
            self, "decoder_options", MappingProxyType(dict(self.decoder_options))
        )

    @property
    def executable_path(self) -> Path:
        return self.base_path / executable_name()

    @property
    def model_path(self) -> Path:
        return self.base_path / f"{self.model}{MODEL_EXTENSION}"

    def launch_args(self) -> list[str]:
        """Build the chat executable command line."""
        args = [str(self.executable_path), "--model", str(self.model_path)]
        for key, value in self.decoder_options.items():
            args.extend([f"--{key}", str(value)])
        return args
