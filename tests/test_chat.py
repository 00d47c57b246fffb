import asyncio

import pytest

from nomic_chat import GPT4All, InvalidModel, NotInitialized, SessionConfig
from nomic_chat.session import PromptReply
from nomic_chat.session.turn import Turn
from stubs import ECHO_STUB


class FakeSession:
    def __init__(self, config: SessionConfig, transcript=None) -> None:
        self.config = config
        self.transcript = transcript
        self.is_open = False
        self.prompts: list[str] = []

    async def open(self) -> None:
        self.is_open = True

    async def close(self) -> None:
        self.is_open = False

    def prompt(self, text: str) -> PromptReply:
        self.prompts.append(text)
        turn = Turn(idle_timeout_s=5)
        turn.feed(text.upper() + ">")
        return turn.reply()


def test_unknown_model_fails_at_construction(tmp_path):
    with pytest.raises(InvalidModel):
        GPT4All("llama-7b", base_path=tmp_path)


def test_paths_follow_base_path(tmp_path):
    bot = GPT4All("gpt4all-lora-unfiltered-quantized", base_path=tmp_path)
    assert bot.model_path == tmp_path / "gpt4all-lora-unfiltered-quantized.bin"
    assert bot.executable_path.parent == tmp_path
    assert bot.provisioner.model_path == bot.model_path


def test_timeouts_override_config(tmp_path):
    bot = GPT4All(
        base_path=tmp_path,
        idle_timeout_s=1.5,
        startup_timeout_s=20,
        kill_timeout_s=0.5,
        session_factory=FakeSession,
    )
    assert bot.config.idle_timeout_s == 1.5
    assert bot.config.startup_timeout_s == 20
    assert bot.config.kill_timeout_s == 0.5
    assert bot.session.config.kill_timeout_s == 0.5


@pytest.mark.asyncio
async def test_prompt_before_open_fails(tmp_path):
    bot = GPT4All(base_path=tmp_path, session_factory=FakeSession)
    with pytest.raises(NotInitialized):
        bot.prompt("hello")


@pytest.mark.asyncio
async def test_prompt_goes_through_session(tmp_path):
    bot = GPT4All(base_path=tmp_path, decoder_config={"temp": 0.2}, session_factory=FakeSession)
    async with bot:
        assert await bot.ask("hi") == "HI"
    assert bot.session.prompts == ["hi"]
    assert bot.session.config.decoder_options == {"temp": 0.2}
    assert not bot.is_open


@pytest.mark.asyncio
async def test_transcript_is_wired(tmp_path):
    bot = GPT4All(base_path=tmp_path, transcript_path=tmp_path / "chat.log", session_factory=FakeSession)
    assert bot.session.transcript.path == tmp_path / "chat.log"


@pytest.mark.asyncio
async def test_end_to_end_with_stub(make_stub):
    config = make_stub(ECHO_STUB)
    bot = GPT4All(config.model, base_path=config.base_path)

    await bot.init()  # both assets already exist: nothing to fetch
    await bot.open()
    try:
        reply = bot.prompt("hello there")
        chunks = [chunk async for chunk in reply.stream]
        text = await asyncio.wait_for(reply.text(), timeout=5)
    finally:
        await bot.close()

    assert text == "hello there"
    assert "".join(chunks) == text
    assert reply.done
