"""Download locations for the chat executable and model weights.

Keep the URL tables in one place so the provisioner and the CLI don't drift.
"""

from __future__ import annotations

import platform

from nomic_chat.errors import UnsupportedPlatform

EXECUTABLE_BASE_URL = "https://github.com/nomic-ai/gpt4all/blob/main/chat"
MODEL_BASE_URL = "https://the-eye.eu/public/AI/models/nomic-ai/gpt4all"

# (system, machine) -> published binary name
_EXECUTABLES: dict[tuple[str, str], str] = {
    ("darwin", "arm64"): "gpt4all-lora-quantized-OSX-m1",
    ("darwin", "x86_64"): "gpt4all-lora-quantized-OSX-intel",
    ("linux", "x86_64"): "gpt4all-lora-quantized-linux-x86",
    ("windows", "x86_64"): "gpt4all-lora-quantized-win64.exe",
}

_MACHINE_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "aarch64": "arm64",
}


def current_platform() -> tuple[str, str]:
    """Return the normalized (system, machine) pair for this host."""
    system = platform.system().strip().lower()
    machine = platform.machine().strip().lower()
    return system, _MACHINE_ALIASES.get(machine, machine)


def executable_url(system: str | None = None, machine: str | None = None) -> str:
    if system is None or machine is None:
        detected_system, detected_machine = current_platform()
        system = system or detected_system
        machine = machine or detected_machine

    system = system.strip().lower()
    machine = machine.strip().lower()
    machine = _MACHINE_ALIASES.get(machine, machine)

    name = _EXECUTABLES.get((system, machine))
    if not name:
        raise UnsupportedPlatform(f"{system}/{machine}")
    return f"{EXECUTABLE_BASE_URL}/{name}?raw=true"


def model_url(model: str) -> str:
    return f"{MODEL_BASE_URL}/{model}.bin"
