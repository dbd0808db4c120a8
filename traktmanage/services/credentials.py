"""Key-value configuration store for Trakt credentials and OAuth tokens."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import ConfigEntry
from ..models import Credentials, Tokens

logger = logging.getLogger(__name__)

CREDENTIALS_KEY = "credentials"
TOKENS_KEY = "tokens"


class ConfigStore:
    """Persist small JSON documents in the ``config`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> str | None:
        async with self._session_factory() as session:
            entry = await session.get(ConfigEntry, key)
            return entry.value if entry is not None else None

    async def set(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            await session.merge(ConfigEntry(key=key, value=value))
            await session.commit()

    async def get_json(self, key: str) -> Any | None:
        """Return the decoded value for ``key``; unreadable JSON counts as absent."""

        raw = await self.get(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Failed to parse JSON for config key %r: %s", key, exc)
            return None

    async def set_json(self, key: str, value: Any) -> None:
        await self.set(key, json.dumps(value))

    async def load_credentials(self) -> Credentials | None:
        return self._validate(Credentials, CREDENTIALS_KEY, await self.get_json(CREDENTIALS_KEY))

    async def save_credentials(self, credentials: Credentials) -> None:
        await self.set_json(CREDENTIALS_KEY, credentials.model_dump())

    async def load_tokens(self) -> Tokens | None:
        return self._validate(Tokens, TOKENS_KEY, await self.get_json(TOKENS_KEY))

    async def save_tokens(self, tokens: Tokens) -> None:
        await self.set_json(TOKENS_KEY, tokens.model_dump())

    @staticmethod
    def _validate(model, key: str, payload: Any):
        if payload is None:
            return None
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Stored %s entry is invalid and will be ignored: %s", key, exc)
            return None
