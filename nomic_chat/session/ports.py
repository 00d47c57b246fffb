"""Ports (interfaces) for chat sessions.

The facade and the CLI depend on this contract rather than on the concrete
subprocess-backed session.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from nomic_chat.session.turn import PromptReply


@runtime_checkable
class ChatSession(Protocol):
    """A long-lived chat process that answers one prompt at a time."""

    @property
    def is_open(self) -> bool:
        ...

    async def open(self) -> None:
        ...

    async def close(self) -> None:
        ...

    def prompt(self, text: str) -> PromptReply:
        ...
