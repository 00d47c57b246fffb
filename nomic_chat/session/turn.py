"""Per-turn response demultiplexing.

The chat process has no framing: output is an unstructured byte stream and the
only delimiter is the ``>`` prompt character it prints when it is idle. A
``Turn`` splits that stream into two outputs that share one completion signal:

- ``stream``: the chunks as they arrive (an async iterator)
- ``completion``: a future holding the full response text

A turn ends when a chunk contains the marker, when no output arrives for
``idle_timeout_s``, or when the session reports an error. Whichever happens
first wins; later inputs are ignored.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass

log = logging.getLogger("nomic_chat.turn")

MARKER = ">"


class TurnState(enum.Enum):
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    DONE = "done"
    ERRORED = "errored"


_END = object()


@dataclass(frozen=True)
class _Failure:
    error: BaseException


class ChunkStream:
    """Single-pass async iterator over one turn's output chunks.

    Ends after the turn finishes; raises the turn's error (after yielding any
    chunks that arrived before it) if the turn failed.
    """

    def __init__(self, queue: asyncio.Queue, completion: asyncio.Future[str]):
        self._queue = queue
        self._completion = completion
        self._exhausted = False
        self.error: BaseException | None = None

    def __aiter__(self) -> "ChunkStream":
        return self

    async def __anext__(self) -> str:
        if self._exhausted:
            raise StopAsyncIteration

        item = await self._queue.get()
        if item is _END:
            self._exhausted = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._exhausted = True
            self.error = item.error
            # The error surfaces here; don't let asyncio also complain that
            # the completion's exception was never retrieved.
            if self._completion.done() and not self._completion.cancelled():
                self._completion.exception()
            raise item.error
        return item

    async def collect(self) -> list[str]:
        """Drain the stream into a list."""
        return [chunk async for chunk in self]


@dataclass(frozen=True)
class PromptReply:
    """The two views of one prompt's response."""

    stream: ChunkStream
    completion: asyncio.Future[str]

    async def text(self) -> str:
        """Wait for the full response text."""
        return await self.completion

    @property
    def done(self) -> bool:
        return self.completion.done()


class Turn:
    """State machine for one prompt/response cycle."""

    def __init__(self, idle_timeout_s: float, marker: str = MARKER):
        self._loop = asyncio.get_running_loop()
        self.idle_timeout_s = idle_timeout_s
        self.marker = marker
        self.state = TurnState.STREAMING
        self.text = ""
        self.finished_by: str | None = None
        self._idle_timer: asyncio.TimerHandle | None = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self.completion: asyncio.Future[str] = self._loop.create_future()
        self.stream = ChunkStream(self._queue, self.completion)
        self.completion.add_done_callback(self._on_completion_done)

    @property
    def active(self) -> bool:
        return self.state is TurnState.STREAMING

    def reply(self) -> PromptReply:
        """Return the stream and completion views of this turn."""
        return PromptReply(stream=self.stream, completion=self.completion)

    def feed(self, text: str) -> None:
        """Handle one chunk of decoded output."""
        if not self.active or not text:
            return

        if self.marker in text:
            if text.endswith(self.marker):
                text = text[: -len(self.marker)]
            self._push(text)
            self._finalize("marker")
            return

        self._push(text)
        self._arm_idle_timer()

    def fail(self, error: BaseException) -> bool:
        """End the turn with an error. Returns False if it had already ended."""
        if not self.active:
            return False
        self._cancel_idle_timer()
        self.state = TurnState.ERRORED
        self._queue.put_nowait(_Failure(error))
        if not self.completion.done():
            self.completion.set_exception(error)
        log.debug(f"Turn failed: {error}")
        return True

    def _push(self, text: str) -> None:
        """Accumulate and enqueue a chunk."""
        if not text:
            return
        self.text += text
        self._queue.put_nowait(text)

    def _arm_idle_timer(self) -> None:
        """Restart the quiescence window."""
        self._cancel_idle_timer()
        self._idle_timer = self._loop.call_later(self.idle_timeout_s, self._on_idle)

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _on_idle(self) -> None:
        """Idle timer fired: finish with whatever text has arrived."""
        self._idle_timer = None
        if self.active:
            log.debug(f"No output for {self.idle_timeout_s}s, treating response as complete")
            self._finalize("idle")

    def _finalize(self, reason: str) -> None:
        """Resolve the completion and end the stream, exactly once."""
        self.state = TurnState.FINALIZING
        self._cancel_idle_timer()
        self.finished_by = reason
        # Chunks first, then the result: the completion never resolves
        # before the stream has everything.
        self._queue.put_nowait(_END)
        if not self.completion.done():
            self.completion.set_result(self.text)
        self.state = TurnState.DONE

    def _on_completion_done(self, future: asyncio.Future[str]) -> None:
        if future.cancelled() and self.active:
            log.debug("Completion cancelled by caller, ending turn")
            self._finalize("cancelled")
