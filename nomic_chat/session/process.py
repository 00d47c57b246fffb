"""Subprocess-backed chat session."""

from __future__ import annotations

import asyncio
import codecs
import enum
import logging

from nomic_chat.config import SessionConfig
from nomic_chat.errors import (
    NotInitialized,
    ProcessExited,
    SessionClosed,
    StartupTimeout,
    StreamError,
    TurnInProgress,
)
from nomic_chat.session.turn import MARKER, PromptReply, Turn
from nomic_chat.transcript import Transcript

log = logging.getLogger("nomic_chat.session")

READ_SIZE = 4096
# How long to wait for an exit code after stdout hits EOF
EXIT_GRACE_S = 0.5


class SessionState(enum.Enum):
    CLOSED = "closed"
    STARTING = "starting"
    OPEN = "open"


class ProcessSession:
    """Owns the chat process and routes its output to the active turn.

    One reader task pumps stdout into whichever ``Turn`` is active; a second
    task watches for the process exiting. Only one turn may be active at a
    time and only one process exists per session.
    """

    def __init__(self, config: SessionConfig, transcript: Transcript | None = None):
        self.config = config
        self.transcript = transcript
        self.state = SessionState.CLOSED
        self.process: asyncio.subprocess.Process | None = None
        self._ready: asyncio.Future[None] | None = None
        self._turn: Turn | None = None
        self._output_error: StreamError | None = None
        self._reader_task: asyncio.Task | None = None
        self._exit_task: asyncio.Task | None = None
        self._open_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    @property
    def returncode(self) -> int | None:
        return self.process.returncode if self.process else None

    @property
    def turn_active(self) -> bool:
        return self._turn is not None and self._turn.active

    async def __aenter__(self) -> "ProcessSession":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> None:
        """Start the chat process and wait until it prompts for input.

        An already-open session is closed first, so there is never more than
        one process per session.
        """
        async with self._open_lock:
            if self.process is not None:
                log.info("Session already open, restarting chat process")
                await self._teardown()
            await self._spawn()

    async def _spawn(self) -> None:
        """Launch the executable and wait for its first prompt marker."""
        args = self.config.launch_args()
        log.info(f"Starting chat process: {' '.join(args)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError as e:
            raise NotInitialized(
                f"Chat executable not found: {args[0]} (call init() to download it)"
            ) from e
        except PermissionError as e:
            raise NotInitialized(f"Chat executable is not runnable: {args[0]}") from e

        if process.stdin is None or process.stdout is None:
            raise RuntimeError("Chat process pipes missing")

        ready: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self.process = process
        self.state = SessionState.STARTING
        self._ready = ready
        self._output_error = None
        self._reader_task = asyncio.create_task(self._pump_output(process))
        self._exit_task = asyncio.create_task(self._watch_exit(process))

        timeout = self.config.startup_timeout_s
        try:
            await asyncio.wait_for(ready, timeout=timeout)
        except asyncio.TimeoutError:
            await self._teardown()
            raise StartupTimeout(timeout) from None
        except StreamError as e:
            await self._teardown()
            if isinstance(e, SessionClosed):
                raise
            raise ProcessExited(process.returncode) from e
        except BaseException:
            await self._teardown()
            raise

        self.state = SessionState.OPEN
        log.info(f"Chat process ready (pid {process.pid})")
        if self.transcript:
            self.transcript.log_event(f"Session opened (model {self.config.model})")

    async def close(self) -> None:
        """Terminate the chat process. Safe to call when already closed."""
        await self._teardown()

    async def _teardown(self) -> None:
        """Fail pending work, stop the process and cancel the background tasks."""
        process = self.process
        if process is None:
            return

        # Detach everything before the first await so a concurrent close()
        # or a late reader callback sees a closed session.
        self.process = None
        self.state = SessionState.CLOSED
        turn, self._turn = self._turn, None
        ready, self._ready = self._ready, None
        tasks = [t for t in (self._reader_task, self._exit_task) if t is not None]
        self._reader_task = self._exit_task = None

        if turn is not None:
            turn.fail(SessionClosed("Session closed while a response was pending"))
        if ready is not None and not ready.done():
            ready.set_exception(SessionClosed("Session closed before the chat process was ready"))

        if process.stdin is not None:
            process.stdin.close()

        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self.config.kill_timeout_s)
            except asyncio.TimeoutError:
                log.warning(f"Chat process {process.pid} ignored SIGTERM, killing")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        log.info(f"Chat process {process.pid} stopped (code {process.returncode})")
        if self.transcript:
            self.transcript.log_event("Session closed")

    def prompt(self, text: str) -> PromptReply:
        """Send one prompt; returns the live stream and the completion future."""
        process = self.process
        if self.state is not SessionState.OPEN or process is None or process.stdin is None:
            raise NotInitialized("Chat process is not initialized (call open() first)")
        if self.turn_active:
            raise TurnInProgress("Previous response is still streaming")

        turn = Turn(self.config.idle_timeout_s)
        self._turn = turn
        if self.transcript:
            self.transcript.log_prompt(text)
            turn.completion.add_done_callback(lambda _: self._log_turn(turn))

        if self._output_error is not None:
            turn.fail(StreamError(f"Chat output is no longer readable: {self._output_error}"))
            return turn.reply()

        log.debug(f"Prompt: {text[:50]}...")
        try:
            process.stdin.write((text + "\n").encode("utf-8"))
        except (ConnectionError, RuntimeError) as e:
            turn.fail(StreamError(f"Writing prompt failed: {e}"))
        return turn.reply()

    def _log_turn(self, turn: Turn) -> None:
        """Record a finished turn in the transcript."""
        if self.transcript is None or turn.completion.cancelled():
            return
        if turn.completion.exception() is not None:
            self.transcript.log_event(f"Response failed: {turn.completion.exception()}")
        else:
            self.transcript.log_response(turn.text, turn.finished_by)

    def _dispatch(self, process: asyncio.subprocess.Process, text: str) -> None:
        """Route one chunk of output to the readiness gate or the active turn."""
        if self.process is not process:
            return

        ready = self._ready
        if ready is not None and not ready.done():
            if MARKER in text:
                ready.set_result(None)
            return

        turn = self._turn
        if turn is None or not turn.active:
            log.debug(f"Dropping {len(text)} chars of output outside a turn")
            return
        turn.feed(text)

    async def _pump_output(self, process: asyncio.subprocess.Process) -> None:
        """Read stdout until EOF, feeding decoded text to the readiness gate or the active turn."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        error: StreamError

        try:
            if process.stdout is None:
                raise RuntimeError("Chat process stdout missing")

            while True:
                data = await process.stdout.read(READ_SIZE)
                if not data:
                    break
                text = decoder.decode(data)
                if text:
                    self._dispatch(process, text)

            tail = decoder.decode(b"", final=True)
            if tail:
                self._dispatch(process, tail)

            try:
                returncode = await asyncio.wait_for(process.wait(), timeout=EXIT_GRACE_S)
                error = ProcessExited(returncode)
            except asyncio.TimeoutError:
                error = StreamError("Chat process closed its output")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception("Chat output reader failed")
            error = StreamError(f"Reading chat output failed: {e}")
            error.__cause__ = e

        self._output_failed(process, error)

    async def _watch_exit(self, process: asyncio.subprocess.Process) -> None:
        """Fail the active turn if the process exits while the session still owns it."""
        returncode = await process.wait()
        if self.process is not process:
            return
        log.warning(f"Chat process exited unexpectedly with code {returncode}")
        self._output_failed(process, ProcessExited(returncode))

    def _output_failed(self, process: asyncio.subprocess.Process, error: StreamError) -> None:
        """Record an output failure and propagate it to startup and the active turn."""
        if self.process is not process:
            return
        if self._output_error is None:
            self._output_error = error

        ready = self._ready
        if ready is not None and not ready.done():
            ready.set_exception(error)

        turn = self._turn
        if turn is not None and turn.fail(error):
            log.warning(f"Response aborted: {error}")
