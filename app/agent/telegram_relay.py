"""
Telegram relay for one agent.

A long-poll bot whose handler only enqueues incoming text; one consumer task
takes messages off a bounded queue and runs them through the ask pipeline one
at a time, so replies go out in arrival order and a slow query never overlaps
the next. When the queue is full the user gets a busy notice instead.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from telegram import Bot, Update
from telegram.constants import ChatAction
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from app.config import settings

logger = logging.getLogger(__name__)

OnMessage = Callable[[str], Awaitable[str]]

ERROR_REPLY = "Error processing your request"
BUSY_REPLY = "Still working on earlier questions, please send this one again in a moment."

# Telegram rejects longer messages
MAX_MESSAGE_LENGTH = 4096


class TelegramAgentRelay:
    """
    Relays one Telegram chat to one agent's project.

    Only text from the configured chat is accepted; everything else is ignored.
    """

    def __init__(
        self,
        agent_id: int,
        bot_token: str,
        chat_id: str,
        on_message: OnMessage,
        queue_size: Optional[int] = None,
        bot: Optional[Bot] = None,
    ):
        self.agent_id = agent_id
        self.bot_token = bot_token
        self.chat_id = str(chat_id)
        self.on_message = on_message
        self.queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size or settings.relay_queue_size)
        self.app: Optional[Application] = None
        self._bot = bot
        self._consumer: Optional[asyncio.Task] = None

    @property
    def bot(self) -> Bot:
        if self._bot is not None:
            return self._bot
        return self.app.bot

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    async def start(self):
        """Start polling and the consumer."""
        self.app = (
            Application.builder()
            .token(self.bot_token)
            .build()
        )
        self.app.add_handler(
            MessageHandler(filters.TEXT & ~filters.COMMAND, self._handle_text)
        )
        self.app.add_error_handler(self._error_handler)

        await self.app.initialize()
        await self.app.start()
        await self.app.updater.start_polling(drop_pending_updates=True)

        self.start_consumer()
        logger.info(f"🤖 Telegram relay for agent {self.agent_id} started (polling mode)")

    def start_consumer(self):
        if not self.running:
            self._consumer = asyncio.create_task(
                self._consume(), name=f"telegram-relay-{self.agent_id}"
            )

    async def stop(self):
        """Cancel the consumer and stop polling. Queued messages are dropped."""
        if self._consumer:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        if self.app:
            try:
                await self.app.updater.stop()
                await self.app.stop()
                await self.app.shutdown()
            except Exception as e:
                logger.warning(f"Relay {self.agent_id} shutdown error: {e}")
            self.app = None
            logger.info(f"🤖 Telegram relay for agent {self.agent_id} stopped")

    async def enqueue(self, text: str) -> bool:
        """Queue a message for the consumer. Returns False if the queue was full."""
        try:
            self.queue.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning(f"Relay {self.agent_id} queue full, rejecting message")
            await self._send(BUSY_REPLY)
            return False
        return True

    async def process(self, text: str):
        """Answer one message and reply. Never raises for pipeline failures."""
        try:
            await self.bot.send_chat_action(chat_id=self.chat_id, action=ChatAction.TYPING)
            reply = await self.on_message(text)
        except Exception:
            logger.exception(f"Relay {self.agent_id} failed to process message")
            reply = ERROR_REPLY
        await self._send(reply)

    async def _consume(self):
        while True:
            text = await self.queue.get()
            try:
                await self.process(text)
            finally:
                self.queue.task_done()

    async def _send(self, text: str):
        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[:MAX_MESSAGE_LENGTH - 1] + "…"
        try:
            await self.bot.send_message(chat_id=self.chat_id, text=text)
        except TelegramError as e:
            logger.warning(f"Relay {self.agent_id} could not send reply: {e}")

    async def _handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        if message is None or not message.text:
            return
        if str(update.effective_chat.id) != self.chat_id:
            return
        await self.enqueue(message.text)

    async def _error_handler(self, update: object, context: ContextTypes.DEFAULT_TYPE):
        logger.exception(f"Relay {self.agent_id} unhandled exception: {context.error}", exc_info=context.error)


async def verify_telegram_connection(bot_token: str) -> dict:
    """
    Check a bot token with getMe.
    Returns {"valid": True, "bot_username": ...} or {"valid": False, "error": ...}.
    """
    try:
        async with Bot(bot_token) as bot:
            me = await bot.get_me()
    except TelegramError as e:
        logger.info(f"Telegram connection verification failed: {e}")
        return {"valid": False, "error": str(e)}
    return {"valid": True, "bot_username": me.username}
