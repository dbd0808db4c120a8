"""Utilities for communicating with the Trakt API."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urlencode

import httpx

from ..config import Settings
from ..exceptions import AuthError, MalformedRecordError, TransportError, UserCancelled
from ..models import Credentials, HistoryKind, Tokens, WatchEvent
from ..prompt import Prompt
from .credentials import ConfigStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuthState:
    """Credentials and the current token pair, refreshed in place."""

    credentials: Credentials
    tokens: Tokens | None = None


class TraktClient:
    """Thin wrapper around the Trakt HTTP API."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        store: ConfigStore,
        prompt: Prompt,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self._settings = settings
        self._client = http_client
        self._store = store
        self._prompt = prompt
        self._clock = clock
        self._max_retries = settings.trakt_max_retries
        self._auth: AuthState | None = None

    @property
    def auth_state(self) -> AuthState:
        if self._auth is None:
            raise AuthError("Trakt client used before initialise()")
        return self._auth

    async def initialise(self) -> None:
        """Load stored credentials and tokens, asking for credentials on first run."""

        credentials = await self._store.load_credentials()
        if credentials is None:
            logger.info("No stored Trakt credentials, starting first time setup")
            credentials = Credentials(
                client_id=self._ask_required("Trakt client ID:"),
                client_secret=self._ask_required("Trakt client secret:"),
                username=self._ask_required("Trakt username:"),
            )
            await self._store.save_credentials(credentials)
        tokens = await self._store.load_tokens()
        self._auth = AuthState(credentials=credentials, tokens=tokens)

    def authorize_url(self) -> str:
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.auth_state.credentials.client_id,
                "redirect_uri": self._settings.trakt_redirect_uri,
            }
        )
        return f"{self._settings.trakt_authorize_url}?{query}"

    async def ensure_auth(self) -> None:
        """Make sure a usable access token is available."""

        state = self.auth_state
        if state.tokens is None:
            await self.authenticate()
        elif state.tokens.is_expired(
            self._clock(), self._settings.token_refresh_margin_seconds
        ):
            await self.refresh_tokens()

    async def authenticate(self) -> Tokens:
        """Run the PIN based authorization-code exchange."""

        state = self.auth_state
        pin = self._ask_required(
            f"Open {self.authorize_url()} in a browser and enter the PIN:"
        )
        tokens = await self._exchange_token(
            {
                "code": pin,
                "client_id": state.credentials.client_id,
                "client_secret": state.credentials.client_secret,
                "redirect_uri": self._settings.trakt_redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        await self._save_tokens(tokens)
        logger.info("Authenticated with Trakt as %s", state.credentials.username)
        return tokens

    async def refresh_tokens(self) -> Tokens:
        """Refresh the access token, re-authenticating if that is not possible."""

        state = self.auth_state
        refresh_token = state.tokens.refresh_token if state.tokens else None
        if not refresh_token:
            logger.info("No refresh token stored, authentication required")
            return await self.authenticate()

        logger.info("Refreshing Trakt access token")
        try:
            tokens = await self._exchange_token(
                {
                    "refresh_token": refresh_token,
                    "client_id": state.credentials.client_id,
                    "client_secret": state.credentials.client_secret,
                    "redirect_uri": self._settings.trakt_redirect_uri,
                    "grant_type": "refresh_token",
                }
            )
        except AuthError as exc:
            logger.warning("Token refresh failed, re-authenticating: %s", exc)
            return await self.authenticate()
        await self._save_tokens(tokens)
        return tokens

    async def fetch_history(self, kind: HistoryKind) -> list[WatchEvent]:
        """Fetch every play of ``kind``, following Trakt pagination."""

        await self.ensure_auth()
        url = f"/users/{self.auth_state.credentials.username}/history/{kind}"
        collected: list[WatchEvent] = []
        page = 1

        while True:
            params = {"page": page, "limit": self._settings.trakt_page_size}
            response = await self._get_page(url, params, kind=kind, page=page)
            try:
                data = response.json()
            except ValueError as exc:
                raise TransportError(
                    f"Unexpected non-JSON Trakt response for {kind} history"
                ) from exc
            if not isinstance(data, list):
                raise TransportError(f"Unexpected Trakt response structure for {kind}")

            for item in data:
                try:
                    collected.append(WatchEvent.from_payload(item, kind))
                except MalformedRecordError as exc:
                    logger.warning("Dropping malformed %s history item: %s", kind, exc)

            page_count = self._extract_page_count(response)
            logger.info(
                "Fetched %s page %s/%s (%s items)", kind, page, page_count, len(collected)
            )
            if not data or page >= page_count:
                break
            page += 1

        return collected

    async def delete_events(self, ids: list[int]) -> dict[str, Any]:
        """Remove plays by history id in one bulk request."""

        if not ids:
            return {}

        response = await self._request(
            "POST", "/sync/history/remove", json={"ids": list(ids)}
        )
        try:
            data = response.json()
        except ValueError:
            return {}
        if not isinstance(data, dict):
            return {}
        logger.info(
            "Trakt removal summary: deleted=%s not_found=%s",
            data.get("deleted"),
            data.get("not_found"),
        )
        return data

    def _headers(self) -> dict[str, str]:
        state = self.auth_state
        headers = {
            "Content-Type": "application/json",
            "trakt-api-version": "2",
            "trakt-api-key": state.credentials.client_id,
            "User-Agent": f"{self._settings.app_name} (traktmanage)",
        }
        if state.tokens is not None:
            headers["Authorization"] = f"Bearer {state.tokens.access_token}"
        return headers

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        await self.ensure_auth()
        try:
            response = await self._client.request(
                method, url, headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise TransportError(
                f"API request failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )
        return response

    async def _get_page(
        self, url: str, params: dict[str, Any], *, kind: str, page: int
    ) -> httpx.Response:
        # Bare retry on transient errors (network, 5xx)
        attempt = 0
        while True:
            try:
                return await self._request("GET", url, params=params)
            except TransportError as exc:
                transient = exc.status_code is None or 500 <= exc.status_code < 600
                attempt += 1
                if not transient or attempt > self._max_retries:
                    logger.warning(
                        "Failed to fetch Trakt %s history (page %s): %s", kind, page, exc
                    )
                    raise
                backoff = self._settings.trakt_retry_backoff_seconds * (
                    min(2 ** (attempt - 1), 5) + (0.1 * attempt)
                )
                logger.info(
                    "Transient error talking to Trakt (%s). Retrying page %s in %.1fs",
                    exc,
                    page,
                    backoff,
                )
                await asyncio.sleep(backoff)

    async def _exchange_token(self, payload: dict[str, Any]) -> Tokens:
        try:
            response = await self._client.post(
                "/oauth/token",
                json=payload,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise AuthError(f"Token exchange failed: {exc}") from exc
        if response.status_code >= 400:
            raise AuthError(f"Auth failed: {response.text}")
        try:
            return Tokens.from_response(response.json(), now=self._clock())
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthError("Unexpected token response from Trakt") from exc

    async def _save_tokens(self, tokens: Tokens) -> None:
        self.auth_state.tokens = tokens
        await self._store.save_tokens(tokens)

    def _ask_required(self, question: str) -> str:
        answer = self._prompt.ask(question).strip()
        if not answer:
            raise UserCancelled(f"No answer given for {question!r}")
        return answer

    @staticmethod
    def _extract_page_count(response: httpx.Response) -> int:
        header_value = response.headers.get("x-pagination-page-count")
        if not header_value:
            return 1
        try:
            return int(header_value)
        except (TypeError, ValueError):
            return 1
