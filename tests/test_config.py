"""Tests for configuration defaults and env overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from nomic_chat.config import SUPPORTED_MODELS, SessionConfig, executable_name
from nomic_chat.errors import InvalidModel


@pytest.mark.parametrize("model", SUPPORTED_MODELS)
def test_supported_models_accepted(model, tmp_path):
    config = SessionConfig(model=model, base_path=tmp_path)
    assert config.model_path == tmp_path / f"{model}.bin"


@pytest.mark.parametrize("model", ["", "gpt-4", "gpt4all-lora-quantized.bin", "GPT4ALL-LORA-QUANTIZED"])
def test_unknown_model_rejected(model):
    with pytest.raises(InvalidModel) as exc_info:
        SessionConfig(model=model)
    assert exc_info.value.model == model
    assert "gpt4all-lora-unfiltered-quantized" in str(exc_info.value)


def test_invalid_model_is_value_error():
    with pytest.raises(ValueError):
        SessionConfig(model="nope")


def test_default_base_path(monkeypatch):
    monkeypatch.delenv("NOMIC_CHAT_HOME", raising=False)
    config = SessionConfig()
    assert config.base_path == Path.home() / ".nomic"
    assert config.executable_path == Path.home() / ".nomic" / executable_name()


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("NOMIC_CHAT_HOME", str(tmp_path))
    monkeypatch.setenv("NOMIC_CHAT_IDLE_TIMEOUT", "1.5")
    monkeypatch.setenv("NOMIC_CHAT_STARTUP_TIMEOUT", "30")
    config = SessionConfig()
    assert config.base_path == tmp_path
    assert config.idle_timeout_s == 1.5
    assert config.startup_timeout_s == 30.0


def test_explicit_values_beat_env(monkeypatch, tmp_path):
    monkeypatch.setenv("NOMIC_CHAT_IDLE_TIMEOUT", "1.5")
    config = SessionConfig(base_path=tmp_path, idle_timeout_s=9)
    assert config.idle_timeout_s == 9


def test_launch_args(tmp_path):
    config = SessionConfig(base_path=tmp_path, decoder_options={"temp": 0.1, "top_k": 40})
    assert config.launch_args() == [
        str(tmp_path / executable_name()),
        "--model",
        str(tmp_path / "gpt4all-lora-quantized.bin"),
        "--temp",
        "0.1",
        "--top_k",
        "40",
    ]


def test_decoder_options_are_frozen(tmp_path):
    options = {"temp": 0.1}
    config = SessionConfig(base_path=tmp_path, decoder_options=options)
    options["temp"] = 0.9
    assert config.decoder_options["temp"] == 0.1
    with pytest.raises(TypeError):
        config.decoder_options["temp"] = 0.5  # type: ignore[index]


def test_idle_timeout_must_be_positive(tmp_path):
    with pytest.raises(ValueError):
        SessionConfig(base_path=tmp_path, idle_timeout_s=0)
