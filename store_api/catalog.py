# store_api/catalog.py
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Upstream catalog unreachable or answered with a non-success status."""


class GameNotFound(Exception):
    pass


class CatalogClient:
    """Read-only proxy to the free-to-play games catalog. Bodies are relayed as-is."""

    def __init__(self, base_url: str = "https://www.freetogame.com/api", timeout: float = 10.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def aclose(self):
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[dict] = None) -> Any:
        try:
            r = await self._client.get(path, params=params)
            r.raise_for_status()
            return r.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CatalogError(f"GET {path} failed: {exc}") from exc

    async def list_games(self) -> Any:
        return await self._get("/games")

    async def get_game(self, game_id: str) -> Any:
        data = await self._get("/game", params={"id": game_id})
        # the catalog answers unknown ids with 200 and {"status": 0, "status_message": ...}
        if not data or (isinstance(data, dict) and data.get("status") == 0):
            raise GameNotFound(game_id)
        return data
