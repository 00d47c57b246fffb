"""Command line entry point.

Usage:
    nomic-chat [--model M] [--base-path P] download [--force]
    nomic-chat [--model M] chat [--option key=value ...] [--no-download]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import nullcontext
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

from nomic_chat.assets import ProgressCallback
from nomic_chat.chat import GPT4All
from nomic_chat.config import DEFAULT_MODEL, SUPPORTED_MODELS, log_level
from nomic_chat.errors import NomicChatError, StreamError

EXIT_COMMANDS = {"/exit", "/quit"}


class DownloadProgress:
    """Provisioner progress callback that draws one rich bar per asset."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self._tasks: dict[Path, TaskID] = {}

    def __call__(self, destination: Path, done: int, total: int | None) -> None:
        task = self._tasks.get(destination)
        if task is None:
            task = self.progress.add_task(destination.name, total=total)
            self._tasks[destination] = task
        self.progress.update(task, completed=done, total=total)


def _progress_bar() -> Progress:
    return Progress(
        TextColumn("[cyan]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=Console(stderr=True),
    )


def _parse_option(raw: str) -> tuple[str, str]:
    """Parse KEY=VALUE; a leading ``--`` on the key is tolerated."""
    key, sep, value = raw.partition("=")
    key = key.strip().lstrip("-")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got {raw!r}")
    return key, value.strip()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="nomic-chat", description="Run a local GPT4All chat model")
    parser.add_argument(
        "--base-path",
        type=Path,
        default=None,
        help="asset directory (default: NOMIC_CHAT_HOME or ~/.nomic)",
    )
    parser.add_argument("--model", "-m", default=DEFAULT_MODEL, choices=SUPPORTED_MODELS)
    sub = parser.add_subparsers(dest="command", required=True)

    download = sub.add_parser("download", help="fetch the executable and model")
    download.add_argument("--force", action="store_true", help="re-download even if present")

    chat = sub.add_parser("chat", help="interactive chat session")
    chat.add_argument(
        "--option",
        "-o",
        action="append",
        type=_parse_option,
        default=[],
        metavar="KEY=VALUE",
        help=(
            "decoder option passed to the executable as --KEY VALUE "
            "(repeatable: -o temp=0.7 -o top_k=40; a dashed key needs the --option=--top_k=40 form)"
        ),
    )
    chat.add_argument("--no-download", action="store_true", help="fail instead of downloading missing assets")
    chat.add_argument("--idle-timeout", type=float, default=None, help="seconds of silence that end a response")
    chat.add_argument("--transcript", type=Path, default=None, help="append the conversation to this file")
    return parser.parse_args(argv)


def _build_bot(args: argparse.Namespace, progress: ProgressCallback | None = None) -> GPT4All:
    options = dict(getattr(args, "option", []) or [])
    return GPT4All(
        args.model,
        options,
        args.base_path,
        idle_timeout_s=getattr(args, "idle_timeout", None),
        transcript_path=getattr(args, "transcript", None),
        progress=progress,
    )


async def _read_line(prompt: str) -> str | None:
    try:
        return await asyncio.to_thread(input, prompt)
    except EOFError:
        return None


async def run_chat(bot: GPT4All, *, download: bool = True, progress_bar: Progress | None = None) -> int:
    """Interactive loop: read a line, stream the reply, repeat until /exit or EOF."""
    if download:
        with progress_bar or nullcontext():
            await bot.init()
    elif bot.provisioner.missing():
        missing = ", ".join(bot.provisioner.missing())
        print(f"Error: missing {missing}; run 'nomic-chat download' first", file=sys.stderr)
        return 1

    print("Loading model...", file=sys.stderr)
    async with bot:
        while True:
            line = await _read_line("> ")
            if line is None or line.strip() in EXIT_COMMANDS:
                break
            if not line.strip():
                continue

            reply = bot.prompt(line)
            try:
                async for chunk in reply.stream:
                    print(chunk, end="", flush=True)
                await reply.completion
            except StreamError as e:
                print(f"\nError: {e}", file=sys.stderr)
                return 3
            print()
    return 0


async def main(argv: list[str]) -> int:
    load_dotenv()
    logging.basicConfig(
        level=log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = _parse_args(argv)
    progress_bar = _progress_bar()

    try:
        bot = _build_bot(args, progress=DownloadProgress(progress_bar))
        if args.command == "download":
            with progress_bar:
                await bot.init(force_download=args.force)
            print(f"Executable: {bot.executable_path}")
            print(f"Model: {bot.model_path}")
            return 0
        return await run_chat(bot, download=not args.no_download, progress_bar=progress_bar)
    except NomicChatError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


def run() -> None:
    raise SystemExit(asyncio.run(main(sys.argv[1:])))


if __name__ == "__main__":
    run()
