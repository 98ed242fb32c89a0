"""
Tests for the Telegram relay: queueing, ordering and replies.
The bot is a mock; polling is never started.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import NetworkError

from app.agent.relay_manager import RelayManager
from app.agent.telegram_relay import (
    BUSY_REPLY, ERROR_REPLY, MAX_MESSAGE_LENGTH, TelegramAgentRelay, verify_telegram_connection,
)


def fake_bot():
    return MagicMock(send_message=AsyncMock(), send_chat_action=AsyncMock())


def sent_texts(bot) -> list:
    return [c.kwargs["text"] for c in bot.send_message.await_args_list]


def make_relay(on_message, queue_size=None, bot=None):
    return TelegramAgentRelay(
        agent_id=1,
        bot_token="123:abc",
        chat_id=555,
        on_message=on_message,
        queue_size=queue_size,
        bot=bot or fake_bot(),
    )


@pytest.mark.asyncio
async def test_messages_processed_one_at_a_time_in_order():
    active = 0
    max_active = 0
    seen = []

    async def on_message(text: str) -> str:
        nonlocal active, max_active
        active += 1
        max_active = max(max_active, active)
        await asyncio.sleep(0.01)
        seen.append(text)
        active -= 1
        return f"answer to {text}"

    relay = make_relay(on_message)
    relay.start_consumer()
    try:
        for text in ("first", "second", "third"):
            assert await relay.enqueue(text)
        await asyncio.wait_for(relay.queue.join(), timeout=5)
    finally:
        await relay.stop()

    assert max_active == 1
    assert seen == ["first", "second", "third"]
    assert sent_texts(relay.bot) == ["answer to first", "answer to second", "answer to third"]
    relay.bot.send_message.assert_awaited_with(chat_id="555", text="answer to third")


@pytest.mark.asyncio
async def test_pipeline_failure_replies_with_error():
    relay = make_relay(AsyncMock(side_effect=RuntimeError("db down")))
    await relay.process("count users")
    assert sent_texts(relay.bot) == [ERROR_REPLY]


@pytest.mark.asyncio
async def test_consumer_survives_failures():
    on_message = AsyncMock(side_effect=[RuntimeError("boom"), "2 users"])
    relay = make_relay(on_message)
    relay.start_consumer()
    try:
        await relay.enqueue("bad")
        await relay.enqueue("good")
        await asyncio.wait_for(relay.queue.join(), timeout=5)
        assert relay.running
    finally:
        await relay.stop()

    assert sent_texts(relay.bot) == [ERROR_REPLY, "2 users"]
    assert not relay.running


@pytest.mark.asyncio
async def test_full_queue_replies_busy():
    relay = make_relay(AsyncMock(return_value="ok"), queue_size=1)
    # No consumer running, so the first message stays queued
    assert await relay.enqueue("one") is True
    assert await relay.enqueue("two") is False
    assert sent_texts(relay.bot) == [BUSY_REPLY]
    assert relay.queue.qsize() == 1


@pytest.mark.asyncio
async def test_long_replies_truncated():
    relay = make_relay(AsyncMock(return_value="x" * 10000))
    await relay.process("dump everything")
    text = sent_texts(relay.bot)[0]
    assert len(text) == MAX_MESSAGE_LENGTH


@pytest.mark.asyncio
async def test_send_failure_is_logged_not_raised():
    bot = fake_bot()
    bot.send_message.side_effect = NetworkError("timed out")
    relay = make_relay(AsyncMock(return_value="ok"), bot=bot)
    await relay.process("hello")
    bot.send_message.assert_awaited_once()


@pytest.mark.asyncio
async def test_only_configured_chat_is_relayed():
    relay = make_relay(AsyncMock(return_value="ok"))

    other = SimpleNamespace(effective_message=SimpleNamespace(text="hi"), effective_chat=SimpleNamespace(id=999))
    await relay._handle_text(other, None)
    assert relay.queue.empty()

    mine = SimpleNamespace(effective_message=SimpleNamespace(text="hi"), effective_chat=SimpleNamespace(id=555))
    await relay._handle_text(mine, None)
    assert relay.queue.get_nowait() == "hi"


@pytest.mark.asyncio
async def test_verify_telegram_connection():
    bot = MagicMock()
    bot.__aenter__ = AsyncMock(return_value=bot)
    bot.__aexit__ = AsyncMock(return_value=False)
    bot.get_me = AsyncMock(return_value=SimpleNamespace(username="askdb_bot"))
    with patch("app.agent.telegram_relay.Bot", return_value=bot):
        assert await verify_telegram_connection("123:abc") == {"valid": True, "bot_username": "askdb_bot"}

    bot.get_me = AsyncMock(side_effect=NetworkError("Unauthorized"))
    with patch("app.agent.telegram_relay.Bot", return_value=bot):
        result = await verify_telegram_connection("123:abc")
    assert result["valid"] is False


# ============ Relay manager ============

class FakeRelay:
    def __init__(self, agent_id, bot_token, chat_id, on_message):
        self.agent_id = agent_id
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.on_message = on_message
        self.started = False
        self.stopped = False

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True


def make_agent(agent_id=7, is_active=True, credentials=None):
    credential = SimpleNamespace(
        credentials=credentials or {"type": "telegram", "botToken": "123:abc", "chatId": "555"}
    )
    return SimpleNamespace(id=agent_id, user_id=1, project_id=2, is_active=is_active, credential=credential)


@pytest.mark.asyncio
async def test_manager_starts_and_stops_relays():
    manager = RelayManager(relay_factory=FakeRelay)
    with patch("app.agent.relay_manager.settings.telegram_relays_enabled", True):
        await manager.sync_agent(make_agent())
        relay = manager.get(7)
        assert relay.started and relay.chat_id == "555"
        assert manager.running_count == 1

        await manager.sync_agent(make_agent(is_active=False))
        assert relay.stopped
        assert manager.get(7) is None


@pytest.mark.asyncio
async def test_manager_ignores_email_credentials():
    manager = RelayManager(relay_factory=FakeRelay)
    with patch("app.agent.relay_manager.settings.telegram_relays_enabled", True):
        await manager.sync_agent(make_agent(credentials={"type": "email", "email": "a@example.com", "password": "pw"}))
    assert manager.running_count == 0


@pytest.mark.asyncio
async def test_manager_disabled_does_nothing():
    manager = RelayManager(relay_factory=FakeRelay)
    await manager.sync_agent(make_agent())
    assert manager.running_count == 0


class SlowRelay(FakeRelay):
    created: list = []

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        SlowRelay.created.append(self)

    async def start(self):
        await asyncio.sleep(0.01)
        self.started = True


@pytest.mark.asyncio
async def test_concurrent_syncs_leave_one_relay():
    SlowRelay.created = []
    manager = RelayManager(relay_factory=SlowRelay)
    with patch("app.agent.relay_manager.settings.telegram_relays_enabled", True):
        await asyncio.gather(manager.sync_agent(make_agent()), manager.sync_agent(make_agent()))
        assert manager.running_count == 1
        live = [r for r in SlowRelay.created if r.started and not r.stopped]
        assert live == [manager.get(7)]

        await manager.stop_all()

    assert manager.running_count == 0
    assert all(r.stopped for r in SlowRelay.created if r.started)


class BrokenRelay(FakeRelay):
    async def start(self):
        raise RuntimeError("event loop closed")


@pytest.mark.asyncio
async def test_start_failure_is_logged_and_cleaned_up():
    built = []

    def factory(**kwargs):
        relay = BrokenRelay(**kwargs)
        built.append(relay)
        return relay

    manager = RelayManager(relay_factory=factory)
    with patch("app.agent.relay_manager.settings.telegram_relays_enabled", True):
        await manager.sync_agent(make_agent())

    assert built[0].stopped
    assert manager.running_count == 0
