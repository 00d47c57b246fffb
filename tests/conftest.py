from __future__ import annotations

import os
import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest

from nomic_chat.config import SessionConfig

StubFactory = Callable[..., SessionConfig]


@pytest.fixture
def make_stub(tmp_path: Path) -> StubFactory:
    """Install a stub chat executable and return a config that launches it."""

    def factory(body: str, **config_kwargs) -> SessionConfig:
        config = SessionConfig(base_path=tmp_path, **config_kwargs)
        script = config.executable_path
        script.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
        os.chmod(script, 0o755)
        config.model_path.write_bytes(b"weights")
        return config

    return factory
