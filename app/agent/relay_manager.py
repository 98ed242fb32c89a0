"""
Relay manager - keeps one running Telegram relay per active Telegram agent.

Started from the application lifespan. The agent routes call sync_agent()
after every create or update and stop_agent() after a delete.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.agent.telegram_relay import TelegramAgentRelay, OnMessage
from app.config import settings
from app.db import Agent, Project, async_session_maker
from app.exceptions import AskDBError, InvalidConfigError
from app.schemas import TelegramCredentials, parse_credentials
from app.services.ask_service import answer_question, format_query_result

logger = logging.getLogger(__name__)


class RelayManager:
    def __init__(
        self,
        session_factory=async_session_maker,
        relay_factory: Callable[..., TelegramAgentRelay] = TelegramAgentRelay,
    ):
        self._session_factory = session_factory
        self._relay_factory = relay_factory
        self._relays: Dict[int, TelegramAgentRelay] = {}
        # Held across stop and start so one agent never gets two pollers
        self._locks: Dict[int, asyncio.Lock] = {}

    @property
    def enabled(self) -> bool:
        return settings.telegram_relays_enabled

    def get(self, agent_id: int) -> Optional[TelegramAgentRelay]:
        return self._relays.get(agent_id)

    @property
    def running_count(self) -> int:
        return len(self._relays)

    async def start_all(self) -> int:
        """Start relays for every active agent. Returns how many started."""
        if not self.enabled:
            return 0

        async with self._session_factory() as db:
            result = await db.execute(
                select(Agent)
                .where(Agent.is_active.is_(True))
                .options(selectinload(Agent.credential))
            )
            agents = result.scalars().all()

        for agent in agents:
            await self.sync_agent(agent)
        return len(self._relays)

    def _lock(self, agent_id: int) -> asyncio.Lock:
        return self._locks.setdefault(agent_id, asyncio.Lock())

    async def sync_agent(self, agent: Agent):
        """Bring the relay for this agent in line with its current state."""
        if not self.enabled:
            return

        async with self._lock(agent.id):
            await self._stop(agent.id)
            if not agent.is_active or agent.credential is None:
                return

            try:
                creds = parse_credentials(agent.credential.credentials)
            except InvalidConfigError as e:
                logger.warning(f"Agent {agent.id} has unusable credentials: {e}")
                return
            if not isinstance(creds, TelegramCredentials):
                return

            relay = self._relay_factory(
                agent_id=agent.id,
                bot_token=creds.bot_token,
                chat_id=creds.chat_id,
                on_message=self._answerer(agent.user_id, agent.project_id),
            )
            try:
                await relay.start()
            except Exception as e:
                # The agent row is already saved; a dead relay must not fail the request
                logger.warning(f"Could not start Telegram relay for agent {agent.id}: {type(e).__name__}: {e}")
                await relay.stop()
                return
            self._relays[agent.id] = relay

    async def stop_agent(self, agent_id: int):
        async with self._lock(agent_id):
            await self._stop(agent_id)

    async def _stop(self, agent_id: int):
        relay = self._relays.pop(agent_id, None)
        if relay:
            await relay.stop()

    async def stop_all(self):
        for agent_id in list(self._relays):
            await self.stop_agent(agent_id)

    def _answerer(self, user_id: int, project_id: int) -> OnMessage:
        """Ask-pipeline callback bound to one agent's owner and project"""
        async def on_message(text: str) -> str:
            async with self._session_factory() as db:
                project = await db.get(Project, project_id)
                if project is None or project.user_id != user_id:
                    raise AskDBError(f"Project {project_id} not found")
                _, fields, rows = await answer_question(db, user_id, project, text)
            return format_query_result(fields, rows)
        return on_message


_relay_manager: Optional[RelayManager] = None


def get_relay_manager() -> RelayManager:
    global _relay_manager
    if _relay_manager is None:
        _relay_manager = RelayManager()
    return _relay_manager
