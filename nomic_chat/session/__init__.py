"""Chat process session and response demultiplexing."""

from nomic_chat.session.ports import ChatSession
from nomic_chat.session.process import ProcessSession, SessionState
from nomic_chat.session.turn import MARKER, ChunkStream, PromptReply, Turn, TurnState

__all__ = [
    "MARKER",
    "ChatSession",
    "ChunkStream",
    "ProcessSession",
    "PromptReply",
    "SessionState",
    "Turn",
    "TurnState",
]
