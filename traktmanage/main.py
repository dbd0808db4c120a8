"""Runtime wiring shared by every CLI command."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator

import httpx

from .config import Settings
from .database import Database
from .prompt import Prompt
from .services.credentials import ConfigStore
from .services.history_cache import HistoryCache
from .services.manager import HistoryManager
from .services.trakt import TraktClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(settings: Settings, prompt: Prompt) -> AsyncIterator[HistoryManager]:
    """Open the cache and HTTP client, load credentials and yield a manager."""

    exit_stack = AsyncExitStack()
    database = Database(settings.database_url)
    exit_stack.push_async_callback(database.dispose)
    try:
        await database.create_all()
        http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.trakt_api_url),
                timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0),
            )
        )
        store = ConfigStore(database.session_factory)
        trakt = TraktClient(settings, http_client, store, prompt)
        await trakt.initialise()
        logger.debug("Using cache at %s", settings.database_url)

        yield HistoryManager(trakt, HistoryCache(database.session_factory), prompt)
    finally:
        await exit_stack.aclose()
